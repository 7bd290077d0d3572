"""
=============================================================================
REQUEST TRANSLATOR
=============================================================================

Turns the server's exchange into an immutable Request value:

    GET /search?q=x HTTP/1.1                 Request(
    Host: example.com:8080          ──►          server_port=8080,
    Accept: text/html                            server_name="example.com",
    X-Forwarded-For: 1.1.1.1                     uri="/search",
    X-Forwarded-For: 2.2.2.2                     query_string="q=x",
                                                 scheme="http",
                                                 request_method="get",
                                                 headers={
                                                   "accept": "text/html",
                                                   "host": "example.com:8080",
                                                   "x-forwarded-for":
                                                       "1.1.1.1,2.2.2.2",
                                                 },
                                                 content_length=-1,
                                                 character_encoding="ISO-8859-1",
                                                 body=<live stream>, ...)

=============================================================================
HEADER FOLDING
=============================================================================

A header that arrived once is kept as its single string. A header that
arrived several times is joined with "," (no space), in arrival order.
The join loses the boundaries between values when a value itself contains
a comma; that is accepted behavior of this layer.

=============================================================================
"""

from collections.abc import Mapping
from dataclasses import dataclass, fields
from types import MappingProxyType
from typing import BinaryIO, Iterator, Optional

from ..http.headers import extract_token
from .exchange import Exchange, RequestHeaders


DEFAULT_CHARACTER_ENCODING = "ISO-8859-1"
"""Charset of a body whose Content-Type names none (HTTP/1.1, RFC 2616 3.7.1)."""


@dataclass(frozen=True, eq=False)
class Request(Mapping):
    """
    Immutable snapshot of one request.

    Also a read-only mapping over its field names, so handlers can use
    either ``request.uri`` or ``request["uri"]``. Equality is mapping
    equality, and like a dict a Request is unhashable.

    Everything is captured when the request is built except ``body``, which
    is the live request stream: read it at most once, front to back.
    """

    server_port: int
    server_name: str
    remote_addr: str
    uri: str
    query_string: Optional[str]
    scheme: str
    request_method: str
    headers: Mapping[str, str]
    content_type: Optional[str]
    content_length: int
    character_encoding: str
    body: BinaryIO

    __hash__ = None

    def __getitem__(self, key: str):
        if key not in _REQUEST_KEYS:
            raise KeyError(key)
        return getattr(self, key)

    def __iter__(self) -> Iterator[str]:
        return iter(_REQUEST_KEYS)

    def __len__(self) -> int:
        return len(_REQUEST_KEYS)


_REQUEST_KEYS = tuple(f.name for f in fields(Request))


def fold_headers(headers: RequestHeaders) -> Mapping[str, str]:
    """Lower-case names; one value unwrapped, several joined with ","."""
    folded = {}
    for entry in headers:
        values = list(entry.values)
        folded[entry.name.lower()] = values[0] if len(values) == 1 else ",".join(values)
    return MappingProxyType(folded)


def build_request(exchange: Exchange) -> Request:
    """
    Build the Request for an exchange.

    Reads metadata only; the body stream is handed over unread.
    """
    content_type = exchange.request_headers.get_first("Content-Type")
    charset = extract_token(content_type, "charset") if content_type else None

    return Request(
        server_port=exchange.get_destination_address()[1],
        server_name=exchange.get_host_name(),
        remote_addr=exchange.get_source_address()[0],
        uri=exchange.request_uri,
        query_string=exchange.query_string,
        scheme=str(exchange.request_scheme).lower(),
        request_method=str(exchange.request_method).lower(),
        headers=fold_headers(exchange.request_headers),
        content_type=content_type,
        content_length=exchange.request_content_length,
        character_encoding=charset or DEFAULT_CHARACTER_ENCODING,
        body=exchange.get_input_stream(),
    )
