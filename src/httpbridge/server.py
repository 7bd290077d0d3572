"""
=============================================================================
EMBEDDED HTTP SERVER
=============================================================================

The server that the adapter runs on. It owns sockets and threads and knows
nothing about Request/Response values: it hands every request to ONE
HttpHandler as a native HttpExchange.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                              Server                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ┌──────────────┐   conn    ┌──────────────┐                       │
    │   │ SocketServer │ ────────► │  ThreadPool  │                       │
    │   │ (io threads) │  submit   │  (workers)   │                       │
    │   └──────────────┘           └──────┬───────┘                       │
    │                                     │ _process_connection(conn)     │
    │                                     ▼                               │
    │                        read head → HttpExchange                     │
    │                                     │                               │
    │                                     ▼                               │
    │                        handler.handle_request(exchange)             │
    │                                     │                               │
    │                                     ▼                               │
    │                        end_exchange() → access log                  │
    │                                     │                               │
    │                          keep-alive? loop : close                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
BUILDING A SERVER
=============================================================================

    server = (Builder()
        .add_listener(8080, "0.0.0.0")
        .set_handler(my_handler)
        .set_io_threads(2)
        .set_worker_threads(16)
        .build())
    server.start()
    ...
    server.stop()

=============================================================================
FAILURES
=============================================================================

    ┌──────────────────────────────────┬──────────────────────────────────┐
    │ what went wrong                  │ what the client sees             │
    ├──────────────────────────────────┼──────────────────────────────────┤
    │ malformed request head / framing │ 4xx/5xx from the parser, close   │
    │ first request never arrives      │ 408, close                       │
    │ handler raised, nothing sent yet │ 500, close                       │
    │ handler raised mid-response      │ connection dropped               │
    │ worker queue full                │ 503, close                       │
    └──────────────────────────────────┴──────────────────────────────────┘

Handler failures are always logged with their traceback.

=============================================================================
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import fields, replace
from typing import Callable, Optional, Union

from .config import ServerConfig
from .core.access_log import log_exchange
from .core.connection import Connection, ConnectionState
from .core.exchange import HttpExchange
from .core.socket_server import SocketServer
from .core.thread_pool import ThreadPool
from .http.dates import format_http_date
from .http.parser import HTTPParseError, RequestHeadParser
from .http.status_codes import HTTPStatus, reason_phrase


logger = logging.getLogger(__name__)


class HttpHandler(ABC):
    """Server-level request handler. Called on a worker thread."""

    @abstractmethod
    def handle_request(self, exchange: HttpExchange) -> None:
        ...


class _FunctionHandler(HttpHandler):
    def __init__(self, func: Callable[[HttpExchange], None]):
        self.func = func

    def handle_request(self, exchange: HttpExchange) -> None:
        self.func(exchange)


HandlerLike = Union[HttpHandler, Callable[[HttpExchange], None]]


def as_http_handler(handler: HandlerLike) -> HttpHandler:
    """Accept an HttpHandler or a plain function of one exchange."""
    if isinstance(handler, HttpHandler):
        return handler
    if callable(handler):
        return _FunctionHandler(handler)
    raise TypeError(f"Not an HttpHandler: {handler!r}")


# =============================================================================
# BUILDER
# =============================================================================

class Builder:
    """
    Fluent server builder. Every setter returns the builder.

    Settings without a dedicated setter go through set_server_option(),
    which accepts any ServerConfig field name.
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.listeners: list[tuple[str, int]] = []
        self.handler: Optional[HttpHandler] = None

    def add_listener(self, port: int, host: str) -> "Builder":
        self.listeners.append((host, port))
        return self

    def set_handler(self, handler: HandlerLike) -> "Builder":
        self.handler = as_http_handler(handler)
        return self

    def set_io_threads(self, count: int) -> "Builder":
        self.config.io_threads = count
        return self

    def set_worker_threads(self, count: int) -> "Builder":
        self.config.worker_threads = count
        return self

    def set_server_option(self, name: str, value) -> "Builder":
        known = {f.name for f in fields(ServerConfig)}
        if name not in known:
            raise ValueError(f"Unknown server option: {name!r}")
        setattr(self.config, name, value)
        return self

    def build(self) -> "Server":
        """
        Raises:
            ValueError: No listener, no handler, or an invalid setting.
        """
        if not self.listeners:
            raise ValueError("At least one listener is required")
        if self.handler is None:
            raise ValueError("A handler is required")

        configs = [replace(self.config, host=host, port=port) for host, port in self.listeners]
        for config in configs:
            config.validate()
        return Server(configs, self.handler)


# =============================================================================
# SERVER
# =============================================================================

class Server:
    """
    A built server. Nothing is bound until start().

    One SocketServer per listener; all listeners share the worker pool.
    """

    def __init__(self, listener_configs: list[ServerConfig], handler: HttpHandler):
        self.config = listener_configs[0]
        self.handler = handler

        self._socket_servers = [SocketServer(config) for config in listener_configs]
        self._thread_pool = ThreadPool(
            workers=self.config.worker_threads,
            queue_size=self.config.backlog,
        )
        self._parser = RequestHeadParser(max_header_size=self.config.max_header_size)
        self._running = False
        self._stopped = threading.Event()
        self._lock = threading.Lock()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def addresses(self) -> list[tuple]:
        """Bound (host, port) of every listener."""
        return [server.address for server in self._socket_servers]

    @property
    def port(self) -> int:
        """Bound port of the first listener."""
        return self.addresses[0][1]

    def start(self) -> "Server":
        """
        Bind every listener and start serving. Returns immediately.

        Raises:
            OSError: If a listener cannot bind; nothing is left running.
        """
        with self._lock:
            if self._running:
                raise RuntimeError("Server already running")

            self._thread_pool.start()
            self._running = True
            self._stopped.clear()
            try:
                for socket_server in self._socket_servers:
                    socket_server.start(self._handle_connection)
            except OSError:
                self._running = False
                self._teardown()
                raise

        logger.info(
            f"{self.config.server_name} started: "
            f"{self.config.io_threads} I/O threads, {self.config.worker_threads} workers"
        )
        return self

    def stop(self, timeout: float = 30.0) -> None:
        """
        Graceful shutdown.

        1. Stop accepting new connections
        2. Let in-flight connections finish, up to ``timeout`` seconds
        3. Stop the worker threads
        """
        with self._lock:
            if not self._running:
                return
            logger.info("Stopping server...")
            self._running = False
            self._teardown(timeout)
        logger.info("Server stopped")

    def _teardown(self, timeout: float = 30.0) -> None:
        for socket_server in self._socket_servers:
            socket_server.shutdown()
        self._thread_pool.shutdown(wait=True, timeout=timeout)
        self._stopped.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until stop() has completed. False on timeout."""
        return self._stopped.wait(timeout)

    def __enter__(self):
        if not self._running:
            self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Runs on an I/O thread: hand the connection to the worker pool."""
        submitted = self._thread_pool.submit(self._process_connection, args=(conn,))
        if not submitted:
            logger.warning(f"[{conn.id}] Worker queue full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            conn.close()

    def _process_connection(self, conn: Connection):
        """
        Keep-alive loop for one connection (runs on a worker thread).

            1. Read a request head
            2. Parse it and wrap it in an HttpExchange
            3. Run the handler, then end the exchange
            4. Persistent? Go to 1. Otherwise close.
        """
        with conn:
            while self._running:
                try:
                    raw_head = conn.read_head()
                    if raw_head is None:
                        break

                    head = self._parser.parse(raw_head)
                    exchange = HttpExchange(
                        conn,
                        head,
                        server_name=self.config.server_name,
                        keep_alive=self.config.keep_alive,
                    )

                    conn.state = ConnectionState.PROCESSING
                    self._dispatch(exchange)

                    if not exchange.persistent:
                        break
                    conn.set_keep_alive()

                except HTTPParseError as e:
                    logger.info(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
                    self._send_error(conn, e.status_code, str(e))
                    break

                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break

                except OSError as e:
                    logger.debug(f"[{conn.id}] Connection error: {e}")
                    break

    def _dispatch(self, exchange: HttpExchange) -> None:
        conn = exchange.connection
        try:
            try:
                self.handler.handle_request(exchange)
            except Exception as e:
                logger.exception(f"[{conn.id}] Handler error: {e}")
                self._fail_exchange(exchange)
            exchange.end_exchange()
        except OSError as e:
            logger.debug(f"[{conn.id}] Response write failed: {e}")
            exchange.abort()
        finally:
            log_exchange(exchange, self.config.log_format)

    def _fail_exchange(self, exchange: HttpExchange) -> None:
        """Replace a failed response with a 500, or drop the connection."""
        if exchange.is_response_started:
            exchange.abort()
            return

        body = b"Internal Server Error"
        exchange.persistent = False
        exchange.response_headers.clear()
        exchange.status_code = HTTPStatus.INTERNAL_SERVER_ERROR
        exchange.response_headers.put("Content-Type", "text/plain; charset=utf-8")
        exchange.response_headers.put("Content-Length", str(len(body)))
        exchange.get_response_sender().send(body)

    def _send_error(self, conn: Connection, status: int, message: str):
        """
        Write a complete error response outside of any exchange.

        Used for failures before a handler could run (parse errors,
        timeouts, overload). The connection always closes afterwards.
        """
        body = message.encode("utf-8")
        head = (
            f"HTTP/1.1 {int(status)} {reason_phrase(status)}\r\n"
            f"Content-Type: text/plain; charset=utf-8\r\n"
            f"Content-Length: {len(body)}\r\n"
            f"Date: {format_http_date()}\r\n"
            f"Server: {self.config.server_name}\r\n"
            f"Connection: close\r\n"
            f"\r\n"
        )
        try:
            conn.send(head.encode("latin-1", errors="replace") + body)
        except OSError as e:
            logger.debug(f"[{conn.id}] Could not send {int(status)}: {e}")
