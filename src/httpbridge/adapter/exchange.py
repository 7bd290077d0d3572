"""
=============================================================================
EXCHANGE CAPABILITY INTERFACE
=============================================================================

The adapter never imports the server's HttpExchange. It talks to whatever
object the server hands it through this narrow protocol, which lists only
the operations translation actually needs:

    ┌──────────────────────────────┬──────────────────────────────────────┐
    │ request side (read)          │ response side (write)                │
    ├──────────────────────────────┼──────────────────────────────────────┤
    │ start_blocking()             │ status_code = 404                    │
    │ get_destination_address()    │ response_headers.put(name, value)    │
    │ get_source_address()         │ response_headers.put_all(name, vals) │
    │ get_host_name()              │ get_response_sender().send(...)      │
    │ request_uri, query_string    │ get_output_stream()                  │
    │ request_scheme               │                                      │
    │ request_method               │                                      │
    │ request_headers              │                                      │
    │ request_content_length       │                                      │
    │ get_input_stream()           │                                      │
    └──────────────────────────────┴──────────────────────────────────────┘

httpbridge.core.exchange.HttpExchange satisfies it structurally, and so
does any test double with the same attributes.

=============================================================================
"""

from typing import BinaryIO, Iterable, Iterator, Optional, Protocol, Union


class HeaderEntry(Protocol):
    """One header name with all of its values."""

    name: str
    values: list[str]


class RequestHeaders(Protocol):
    def __iter__(self) -> Iterator[HeaderEntry]:
        ...

    def get_first(self, name: str) -> Optional[str]:
        ...


class ResponseHeaders(Protocol):
    def put(self, name: str, value: str):
        ...

    def put_all(self, name: str, values: Iterable[str]):
        ...


class ResponseSender(Protocol):
    def send(self, data: Union[str, bytes], charset: str = "utf-8") -> None:
        ...


class Exchange(Protocol):
    request_uri: str
    query_string: Optional[str]
    request_scheme: str
    request_method: str
    request_headers: RequestHeaders
    request_content_length: int
    response_headers: ResponseHeaders
    status_code: int

    def start_blocking(self) -> None:
        ...

    def get_destination_address(self) -> tuple:
        ...

    def get_source_address(self) -> tuple:
        ...

    def get_host_name(self) -> str:
        ...

    def get_input_stream(self) -> BinaryIO:
        ...

    def get_output_stream(self) -> BinaryIO:
        ...

    def get_response_sender(self) -> ResponseSender:
        ...
