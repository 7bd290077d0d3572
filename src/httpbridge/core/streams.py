"""
=============================================================================
REQUEST AND RESPONSE BODY STREAMS
=============================================================================

The server never buffers a whole body. Both directions are streams bound to
the connection:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   socket ──► Connection._buffer ──► RequestBodyStream ──► handler    │
    │                                     (stops at end of body)          │
    │                                                                      │
    │   handler ──► ResponseOutputStream ──► Connection.send() ──► socket  │
    │               (status line + headers on first write, then framing)  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
BODY FRAMING
=============================================================================

How does the reader know where a body ends? HTTP/1.1 has three answers:

    Content-Length: 11          exactly 11 bytes follow
    Transfer-Encoding: chunked  size-prefixed chunks, zero-size chunk ends
    (neither, response only)    body ends when the connection closes

    Chunked encoding on the wire:

        5\\r\\n            ← chunk size in hex
        hello\\r\\n        ← chunk data
        0\\r\\n            ← last chunk
        \\r\\n             ← end of trailers

Requests use the first two (a request with neither has no body). Responses
use whatever the application declared; without a Content-Length the server
picks chunked for HTTP/1.1 clients and close-delimited for HTTP/1.0.

=============================================================================
"""

import io
import logging
from typing import TYPE_CHECKING, Optional

from ..http.dates import format_http_date
from ..http.parser import HTTPParseError
from ..http.status_codes import body_allowed, reason_phrase

if TYPE_CHECKING:
    from .connection import Connection
    from .exchange import HttpExchange


logger = logging.getLogger(__name__)


class RequestBodyStream(io.RawIOBase):
    """
    Forward-only stream over one request body.

    Reads stop at the end of the body even though the socket may hold more
    bytes (a pipelined request), so the next exchange finds them intact.

    Args:
        connection: Connection to pull bytes from.
        content_length: Declared Content-Length, or None.
        chunked: True for "Transfer-Encoding: chunked".
    """

    def __init__(
        self,
        connection: "Connection",
        content_length: Optional[int] = None,
        chunked: bool = False,
    ):
        super().__init__()
        self._connection = connection
        self._chunked = chunked
        self._remaining = 0 if chunked else (content_length or 0)
        self._finished = not chunked and self._remaining == 0
        self.bytes_read = 0

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed body stream")
        data = self._read_raw(len(buffer))
        buffer[:len(data)] = data
        return len(data)

    @property
    def finished(self) -> bool:
        return self._finished

    def drain(self) -> int:
        """
        Discard whatever the handler did not read.

        Needed before the connection can carry another request. Works even
        after close(), since closing the stream does not consume the body.
        """
        drained = 0
        while not self._finished:
            drained += len(self._read_raw(8192))
        return drained

    # =========================================================================
    # FRAMING
    # =========================================================================

    def _read_raw(self, size: int) -> bytes:
        if self._finished or size <= 0:
            return b""
        if self._chunked:
            return self._read_chunked(size)
        return self._read_fixed(size)

    def _read_fixed(self, size: int) -> bytes:
        data = self._connection.read(min(size, self._remaining))
        if not data:
            raise ConnectionError("Connection closed before end of request body")
        self._remaining -= len(data)
        self.bytes_read += len(data)
        if self._remaining == 0:
            self._finished = True
        return data

    def _read_chunked(self, size: int) -> bytes:
        if self._remaining == 0:
            self._remaining = self._read_chunk_size()
            if self._remaining == 0:
                self._read_trailers()
                self._finished = True
                return b""

        data = self._connection.read(min(size, self._remaining))
        if not data:
            raise ConnectionError("Connection closed inside a request body chunk")
        self._remaining -= len(data)
        self.bytes_read += len(data)

        if self._remaining == 0:
            # Each chunk's data is followed by CRLF
            if self._connection.readline() != b"\r\n":
                raise HTTPParseError("Malformed chunk terminator")
        return data

    def _read_chunk_size(self) -> int:
        line = self._connection.readline()
        if not line.endswith(b"\r\n"):
            raise ConnectionError("Connection closed before chunk size")
        # Chunk extensions (";name=value") are ignored
        size_text = line[:-2].split(b";", 1)[0].strip()
        try:
            return int(size_text, 16)
        except ValueError:
            raise HTTPParseError(f"Invalid chunk size: {size_text!r}")

    def _read_trailers(self) -> None:
        # Trailer fields are discarded; an empty line ends them
        while True:
            line = self._connection.readline()
            if line in (b"\r\n", b""):
                return


class ResponseOutputStream(io.RawIOBase):
    """
    Writable stream for one response body.

    The first write (or close, for an empty body) commits the response:
    status line and headers go out and can no longer change. Framing is
    decided at that moment:

        ┌────────────────────────────────┬───────────────────────────────┐
        │ situation                      │ framing                       │
        ├────────────────────────────────┼───────────────────────────────┤
        │ HEAD, 1xx, 204, 304            │ no body bytes are sent        │
        │ Content-Length set by handler  │ exactly that many bytes       │
        │ closed before any write        │ Content-Length: 0             │
        │ HTTP/1.1 client                │ Transfer-Encoding: chunked    │
        │ HTTP/1.0 client                │ close-delimited               │
        └────────────────────────────────┴───────────────────────────────┘

    A declared Content-Length is a contract. Bytes past it are never sent:
    the write that overruns it sends what still fits, then raises
    ValueError. A body that ends short closes the connection, since the
    client is still waiting for the missing bytes.
    """

    def __init__(self, exchange: "HttpExchange"):
        super().__init__()
        self._exchange = exchange
        self._committed = False
        self._chunked = False
        self._suppress_body = False
        self._declared_length: Optional[int] = None
        self._remaining: Optional[int] = None
        self.bytes_written = 0

    def writable(self) -> bool:
        return True

    @property
    def committed(self) -> bool:
        return self._committed

    def write(self, data) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed response stream")

        data = bytes(data)
        if not self._committed:
            self._commit(final=False)

        if not data or self._suppress_body:
            return len(data)

        if self._remaining is not None and len(data) > self._remaining:
            fits = data[:self._remaining]
            if fits:
                self._send(fits)
            self._remaining = 0
            self._exchange.persistent = False
            raise ValueError(
                f"Response body exceeds declared Content-Length of {self._declared_length} bytes"
            )

        self._send(data)
        return len(data)

    def close(self) -> None:
        if self.closed:
            return
        try:
            if not self._committed:
                self._commit(final=True)
            if self._chunked:
                self._exchange.connection.send(b"0\r\n\r\n")
            elif self._remaining:
                logger.warning(
                    f"[{self._exchange.connection.id}] Response ended {self._remaining} bytes "
                    f"short of its Content-Length of {self._declared_length}"
                )
                self._exchange.persistent = False
        finally:
            super().close()

    def abort(self) -> None:
        """Close without sending anything further (connection is going away)."""
        self._committed = True
        self._chunked = False
        self._remaining = None
        super().close()

    def _send(self, data: bytes) -> None:
        if self._chunked:
            self._exchange.connection.send(
                f"{len(data):x}\r\n".encode("ascii") + data + b"\r\n"
            )
        else:
            self._exchange.connection.send(data)
        if self._remaining is not None:
            self._remaining -= len(data)
        self.bytes_written += len(data)

    def _parse_declared_length(self, headers) -> Optional[int]:
        """
        The handler's Content-Length as an int, or None when absent.

        An unusable value (not a number, negative, or several that disagree)
        is dropped with a warning and the body is framed as if none was set.
        """
        values = {value.strip() for value in headers.get("Content-Length")}
        if not values:
            return None
        if len(values) == 1:
            (value,) = values
            if value.isascii() and value.isdigit():
                return int(value)
        logger.warning(
            f"[{self._exchange.connection.id}] Ignoring invalid response "
            f"Content-Length {sorted(values)!r}"
        )
        headers.remove("Content-Length")
        return None

    def _commit(self, final: bool) -> None:
        exchange = self._exchange
        headers = exchange.response_headers
        status = exchange.status_code

        self._suppress_body = (
            exchange.request_method.upper() == "HEAD" or not body_allowed(status)
        )
        declared = None if self._suppress_body else self._parse_declared_length(headers)

        if not body_allowed(status):
            headers.remove("Content-Length")
            headers.remove("Transfer-Encoding")
        elif self._suppress_body:
            pass
        elif declared is not None:
            headers.put("Content-Length", str(declared))
            self._declared_length = self._remaining = declared
        elif final:
            headers.put("Content-Length", "0")
        elif exchange.protocol == "HTTP/1.1":
            headers.put("Transfer-Encoding", "chunked")
            self._chunked = True
        else:
            # HTTP/1.0 has no chunked encoding: the close marks the end
            exchange.persistent = False

        if not headers.contains("Date"):
            headers.put("Date", format_http_date())
        if not headers.contains("Server") and exchange.server_name:
            headers.put("Server", exchange.server_name)

        if not exchange.persistent:
            headers.put("Connection", "close")
        elif exchange.protocol == "HTTP/1.0":
            headers.put("Connection", "keep-alive")

        lines = [f"HTTP/1.1 {status} {reason_phrase(status)}"]
        lines.extend(f"{name}: {value}" for name, value in headers.items())
        head = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1", errors="replace")

        # Mark committed before sending so a failed send is not retried
        self._committed = True
        exchange.connection.send(head)
