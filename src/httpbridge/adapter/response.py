"""
=============================================================================
RESPONSE APPLIER
=============================================================================

Writes a handler's response value onto the exchange, strictly in order:

    1. status       exchange.status_code = 201
    2. headers      "X-A": "1"          → put      X-A: 1
                    "X-B": ["1", "2"]   → put_all  X-B: 1
                                                   X-B: 2
    3. body         by variant (see body.py)

Each step is skipped when its field is absent, so an empty Response
touches nothing and the server's defaults stand.

Multi-valued response headers become repeated header lines. Request
headers go the other way (joined with ","), so the two sides are not
symmetric.

Status and headers already applied stay applied if the body step fails.

=============================================================================
"""

import shutil
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .body import ChunkedBody, FileBody, StreamBody, TextBody, classify_body
from .errors import InvalidExchangeError, UnrecognizedBodyError
from .exchange import Exchange


HeaderValue = Union[str, list, tuple]


@dataclass(frozen=True)
class Response:
    """
    What a handler returns.

    Attributes:
        status: Status code, or None to keep the server default (200).
        headers: Name → value, or name → sequence of values.
        body: Any shape classify_body() accepts.
    """

    status: Optional[int] = None
    headers: Mapping[str, HeaderValue] = field(default_factory=dict)
    body: Any = None


def _unpack(response) -> tuple:
    if isinstance(response, Response):
        return response.status, response.headers, response.body
    if isinstance(response, Mapping):
        return response.get("status"), response.get("headers"), response.get("body")
    raise TypeError(f"Unsupported response value: {response!r}")


def apply_response(exchange: Optional[Exchange], response) -> None:
    """
    Apply a Response (or a mapping with status/headers/body keys).

    Raises:
        InvalidExchangeError: If ``exchange`` is None.
        UnrecognizedBodyError: If the body has no known shape.
    """
    if exchange is None:
        raise InvalidExchangeError()
    if response is None:
        return

    status, headers, body = _unpack(response)

    if status is not None:
        exchange.status_code = status
    if headers:
        set_headers(exchange, headers)
    write_body(exchange, body)


def set_headers(exchange: Exchange, headers: Mapping[str, HeaderValue]) -> None:
    response_headers = exchange.response_headers
    for name, value in headers.items():
        if isinstance(value, str):
            response_headers.put(name, value)
        elif isinstance(value, (list, tuple)):
            response_headers.put_all(name, [str(v) for v in value])
        else:
            response_headers.put(name, str(value))


def write_body(exchange: Exchange, body) -> None:
    variant = classify_body(body)

    if variant is None:
        return

    if isinstance(variant, TextBody):
        exchange.get_response_sender().send(variant.text, "utf-8")

    elif isinstance(variant, ChunkedBody):
        sender = exchange.get_response_sender()
        for chunk in variant.chunks:
            if not isinstance(chunk, str):
                raise UnrecognizedBodyError(chunk)
            sender.send(chunk.encode("utf-8"))

    elif isinstance(variant, StreamBody):
        copy_stream(exchange, variant.stream)

    elif isinstance(variant, FileBody):
        copy_stream(exchange, open(variant.path, "rb"))

    else:
        raise UnrecognizedBodyError(body)


def copy_stream(exchange: Exchange, stream) -> None:
    """Copy ``stream`` to the response verbatim, closing it on every path."""
    try:
        shutil.copyfileobj(stream, exchange.get_output_stream())
    finally:
        stream.close()
