"""
Adapter errors.

Both are programmer errors at the application boundary. They are raised
immediately and never retried; the server's connection-level handling
decides what the client sees.
"""


class AdapterError(Exception):
    """Base class for errors raised by the request/response adapter."""


class InvalidExchangeError(AdapterError, ValueError):
    """The response applier was called without an exchange."""

    def __init__(self, message: str = "Null exchange given."):
        super().__init__(message)


class UnrecognizedBodyError(AdapterError, TypeError):
    """
    A response body that is none of the supported body shapes.

    Attributes:
        body: The offending value.
    """

    def __init__(self, body):
        self.body = body
        super().__init__(f"Unrecognized body: {body!r}")
