"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket with the reads and writes an HTTP exchange
needs.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

recv() returns whatever the kernel has, not "one request". A single recv()
may hold half a request head, or a head plus the first bytes of the body,
or even the start of the next pipelined request.

So the connection keeps a buffer:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  _buffer                                                            │
    │  ┌───────────────────────────┬──────────────┬─────────────────────┐ │
    │  │ GET / HTTP/1.1\r\n...\r\n │ body bytes   │ next request ...    │ │
    │  └───────────────────────────┴──────────────┴─────────────────────┘ │
    │   read_head() consumes this   read() hands     stays buffered for   │
    │                               these to the     the next exchange    │
    │                               body stream                           │
    └─────────────────────────────────────────────────────────────────────┘

The head is read eagerly (the server must know method, target and headers
before it can call anyone). The body is NOT: it is pulled on demand by the
request body stream, straight from this buffer and then the socket.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► READING ──► PROCESSING ──► WRITING ──► KEEP_ALIVE ──┐
     │         │                          │            │        │
     │         ▼                          ▼            ▼        │
     └──────► CLOSING ◄───────────────────┴────────────┘        │
                 │            (next request) ◄──────────────────┘
                 ▼
               CLOSED

=============================================================================
"""

import socket
import ssl
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional

from ..http.parser import HTTPParseError


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states, used for logging and teardown."""
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    One client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short unique identifier for log lines.
        state: Current connection state.
        requests_handled: Number of request heads read so far.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    # Configuration (passed from ServerConfig)
    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_header_size: int = 64 * 1024

    # Bounds on the read-and-discard phase of close()
    DRAIN_TIMEOUT = 0.5
    DRAIN_LIMIT = 64 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        # Worker threads do plain blocking I/O, bounded by the timeout
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    # =========================================================================
    # ADDRESSES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def local_address(self) -> tuple:
        """(ip, port) this connection was accepted on."""
        return self.socket.getsockname()[:2]

    @property
    def is_secure(self) -> bool:
        return isinstance(self.socket, ssl.SSLSocket)

    @property
    def age(self) -> float:
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def read_head(self) -> Optional[bytes]:
        """
        Read one complete request head (up to and including the blank line).

        Anything received past the head stays buffered for the body stream.

        Returns:
            Head bytes, or None if the client closed the connection (or a
            keep-alive connection went idle) before sending a new request.

        Raises:
            TimeoutError: If the first request on the connection times out.
            HTTPParseError: If the head grows past max_header_size (431).
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        # Subsequent requests get the shorter keep-alive timeout
        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                if len(self._buffer) > self.max_header_size:
                    raise HTTPParseError(
                        f"Request head too large: {len(self._buffer)} bytes",
                        status_code=431,
                    )
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk

            head_end = self._buffer.find(b"\r\n\r\n") + 4
            head, self._buffer = self._buffer[:head_end], self._buffer[head_end:]

            self.requests_handled += 1
            return head

        except socket.timeout:
            # Idle keep-alive connections are expected to time out
            if self.requests_handled > 0:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            self.socket.settimeout(self.timeout)

    def read(self, size: int) -> bytes:
        """
        Read up to ``size`` raw bytes, buffered data first.

        Returns b"" only when the peer has closed the connection.
        """
        if self._buffer:
            data, self._buffer = self._buffer[:size], self._buffer[size:]
            return data
        return self._recv(min(size, self.buffer_size))

    def readline(self, limit: int = 8192) -> bytes:
        """Read through the next CRLF (used for chunk-size lines)."""
        while b"\r\n" not in self._buffer:
            if len(self._buffer) > limit:
                raise HTTPParseError("Line too long")
            chunk = self._recv()
            if not chunk:
                line, self._buffer = self._buffer, b""
                return line
            self._buffer += chunk

        end = self._buffer.find(b"\r\n") + 2
        line, self._buffer = self._buffer[:end], self._buffer[end:]
        return line

    def _recv(self, size: Optional[int] = None) -> bytes:
        try:
            data = self.socket.recv(size or self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            # Client disconnected abruptly
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> None:
        """
        Send all of ``data``.

        Unlike reads, write failures are raised: a half-written response
        must abort the exchange, not continue silently.
        """
        self.state = ConnectionState.WRITING
        self.socket.sendall(data)
        self.last_activity = time.time()

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

        1. shutdown(SHUT_WR) sends FIN so the client sees end of response
        2. drain what the client still sends, for at most DRAIN_TIMEOUT
           seconds and DRAIN_LIMIT bytes
        3. close() releases the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

        deadline = time.monotonic() + self.DRAIN_TIMEOUT
        drained = 0
        try:
            while drained < self.DRAIN_LIMIT:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                chunk = self.socket.recv(4096)
                if not chunk:
                    break
                drained += len(chunk)
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def set_keep_alive(self):
        """Mark connection ready for the next request."""
        self.state = ConnectionState.KEEP_ALIVE

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
