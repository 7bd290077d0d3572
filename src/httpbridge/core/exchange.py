"""
=============================================================================
HTTP EXCHANGE
=============================================================================

An HttpExchange is the server's native view of ONE request/response pair on
a connection. It is what a server-level HttpHandler receives.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          HttpExchange                               │
    ├──────────────────────────────────┬──────────────────────────────────┤
    │  REQUEST SIDE (read)             │  RESPONSE SIDE (write)           │
    │                                  │                                  │
    │  request_method   "GET"          │  status_code       200           │
    │  request_uri      "/a/b"         │  response_headers  HeaderMap     │
    │  query_string     "x=1"          │  get_output_stream()             │
    │  request_scheme   "http"         │  get_response_sender()           │
    │  request_headers  HeaderMap      │                                  │
    │  get_input_stream()              │  end_exchange()                  │
    └──────────────────────────────────┴──────────────────────────────────┘

=============================================================================
BLOCKING MODE
=============================================================================

Streams are only handed out after start_blocking(). A handler that calls it
declares "I will do plain blocking reads and writes on this worker thread".
Asking for a stream without doing so is a programming error and raises
RuntimeError, so blocking I/O never happens by accident.

=============================================================================
"""

import io
import logging
import time
from typing import TYPE_CHECKING, Optional, Union

from ..http.headers import HeaderMap
from ..http.parser import HTTPParseError, RequestHead
from .streams import RequestBodyStream, ResponseOutputStream

if TYPE_CHECKING:
    from .connection import Connection


logger = logging.getLogger(__name__)


class HttpExchange:
    """
    One request/response exchange on a connection.

    Args:
        connection: The connection the request arrived on.
        head: Parsed request line and headers.
        server_name: Value for the default Server header.
        keep_alive: Whether the server allows persistent connections.

    Raises:
        HTTPParseError: If the body framing headers are invalid.
    """

    def __init__(
        self,
        connection: "Connection",
        head: RequestHead,
        server_name: str = "",
        keep_alive: bool = True,
    ):
        self.connection = connection
        self.head = head
        self.server_name = server_name
        self.started_at = time.time()

        self.request_headers = head.headers
        self.response_headers = HeaderMap()
        self.persistent = keep_alive and head.is_keep_alive

        self._status_code = 200
        self._blocking = False
        self._complete = False
        self._input: Optional[io.BufferedReader] = None
        self._output: Optional[ResponseOutputStream] = None
        self._sender: Optional["Sender"] = None

        self._chunked_request, self._content_length = self._body_framing()
        self._body = RequestBodyStream(
            connection,
            content_length=self._content_length,
            chunked=self._chunked_request,
        )

    def _body_framing(self) -> tuple[bool, Optional[int]]:
        encodings = [
            token.strip().lower()
            for value in self.request_headers.get("Transfer-Encoding")
            for token in value.split(",")
            if token.strip()
        ]
        if encodings:
            if encodings[-1] != "chunked":
                raise HTTPParseError(
                    f"Unsupported transfer encoding: {', '.join(encodings)}",
                    status_code=501,
                )
            # Transfer-Encoding overrides Content-Length (RFC 7230 3.3.3)
            return True, None

        lengths = set(self.request_headers.get("Content-Length"))
        if not lengths:
            return False, None
        if len(lengths) > 1:
            raise HTTPParseError("Conflicting Content-Length headers")
        try:
            length = int(lengths.pop())
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if length < 0:
            raise HTTPParseError("Invalid Content-Length header")
        return False, length

    # =========================================================================
    # REQUEST SIDE
    # =========================================================================

    @property
    def request_method(self) -> str:
        return self.head.method

    @property
    def request_uri(self) -> str:
        """Raw request path, without the query string, not decoded."""
        return self.head.path

    @property
    def query_string(self) -> Optional[str]:
        return self.head.query_string

    @property
    def protocol(self) -> str:
        return self.head.version

    @property
    def request_scheme(self) -> str:
        return "https" if self.connection.is_secure else "http"

    @property
    def request_content_length(self) -> int:
        """Declared request body length, -1 when unknown (chunked or absent)."""
        return -1 if self._content_length is None else self._content_length

    def get_source_address(self) -> tuple:
        """Peer (ip, port)."""
        return self.connection.address

    def get_destination_address(self) -> tuple:
        """Local (ip, port) the request arrived on."""
        return self.connection.local_address

    def get_host_name(self) -> str:
        """
        Host the client addressed: the Host header without its port, or the
        local address when the header is missing.

            Host: example.com:8080   → "example.com"
            Host: [::1]:8080         → "::1"
        """
        host = self.request_headers.get_first("Host")
        if not host:
            return self.get_destination_address()[0]

        if host.startswith("["):
            return host[1:host.find("]")] if "]" in host else host[1:]
        return host.rsplit(":", 1)[0] if host.count(":") == 1 else host

    # =========================================================================
    # BLOCKING MODE + STREAMS
    # =========================================================================

    @property
    def is_blocking(self) -> bool:
        return self._blocking

    def start_blocking(self) -> None:
        """Switch the exchange to blocking stream I/O."""
        self._blocking = True

    def get_input_stream(self) -> io.BufferedReader:
        """Live request body stream. Requires start_blocking()."""
        if not self._blocking:
            raise RuntimeError("start_blocking() has not been called")
        if self._input is None:
            self._input = io.BufferedReader(self._body)
        return self._input

    def get_output_stream(self) -> ResponseOutputStream:
        """Response body stream. Requires start_blocking()."""
        if not self._blocking:
            raise RuntimeError("start_blocking() has not been called")
        return self._response_stream()

    def get_response_sender(self) -> "Sender":
        if self._sender is None:
            self._sender = Sender(self)
        return self._sender

    def _response_stream(self) -> ResponseOutputStream:
        if self._output is None:
            self._output = ResponseOutputStream(self)
        return self._output

    # =========================================================================
    # RESPONSE SIDE
    # =========================================================================

    @property
    def status_code(self) -> int:
        return self._status_code

    @status_code.setter
    def status_code(self, code: int) -> None:
        if self.is_response_started:
            raise RuntimeError("Response already started, status cannot change")
        self._status_code = int(code)

    @property
    def is_response_started(self) -> bool:
        return self._output is not None and self._output.committed

    @property
    def is_complete(self) -> bool:
        return self._complete

    @property
    def response_bytes(self) -> int:
        return self._output.bytes_written if self._output else 0

    @property
    def request_bytes(self) -> int:
        return self._body.bytes_read

    def end_exchange(self) -> None:
        """
        Finish the exchange.

        1. Close the response stream (commits an empty response if the
           handler never wrote, sends the last chunk if chunked).
        2. Drain the unread request body so the connection can be reused;
           if that fails the connection is marked non-persistent.
        """
        if self._complete:
            return
        self._complete = True

        self._response_stream().close()

        if self.persistent:
            try:
                self._body.drain()
            except (OSError, HTTPParseError) as e:
                logger.debug(f"[{self.connection.id}] Could not drain request body: {e}")
                self.persistent = False

    def abort(self) -> None:
        """Give up on the exchange without writing anything more."""
        self._complete = True
        self.persistent = False
        self._response_stream().abort()


class Sender:
    """
    Convenience writer on top of the response stream.

    Each send() is one write on the output stream; str is encoded first.
    """

    def __init__(self, exchange: HttpExchange):
        self._exchange = exchange

    def send(self, data: Union[str, bytes], charset: str = "utf-8") -> None:
        if isinstance(data, str):
            data = data.encode(charset)
        self._exchange._response_stream().write(data)
