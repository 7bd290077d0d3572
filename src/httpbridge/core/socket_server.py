"""
=============================================================================
LISTENING SOCKET + I/O THREADS
=============================================================================

Owns the listening socket and the I/O threads that accept from it.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          SocketServer                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                 ┌────────────────────────────┐                      │
    │                 │  listening socket          │  bound once          │
    │                 │  (host, port, backlog)     │                      │
    │                 └─────────────┬──────────────┘                      │
    │            ┌──────────────────┼──────────────────┐                  │
    │            ▼                  ▼                  ▼                  │
    │      io thread 0        io thread 1   ...   io thread N             │
    │      accept()           accept()            accept()                │
    │            │                  │                  │                  │
    │            └──────────► connection_handler(conn) ◄┘                 │
    │                          (submits to worker pool)                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Several threads may block in accept() on the same socket; the kernel
hands each new connection to exactly one of them.

accept() uses a 1 second timeout so every I/O thread regularly re-checks
the running flag and shutdown() never waits on a blocked accept for long.

=============================================================================
"""

import socket
import threading
import logging
from typing import Callable, Optional

from .connection import Connection
from ..config import ServerConfig


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Listening socket plus I/O threads.

    Usage:
        server = SocketServer(config)
        server.start(handle_connection)   # returns once listening
        ...
        server.shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._io_threads: list[threading.Thread] = []
        self._shutdown_event = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> tuple:
        """Bound (host, port); the real port even when configured with 0."""
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        """
        Create the listening socket.

        SO_REUSEADDR   restart without "Address already in use" (TIME_WAIT)
        TCP_NODELAY    no Nagle delay on small responses
        """
        family = socket.AF_INET
        infos = socket.getaddrinfo(
            self.config.host, self.config.port, type=socket.SOCK_STREAM
        )
        if infos:
            family = infos[0][0]

        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(1.0)
        return sock

    def start(self, connection_handler: Callable[[Connection], None]) -> None:
        """
        Bind, listen and start the I/O threads. Returns immediately.

        Raises:
            OSError: If the address cannot be bound.
        """
        if self._running:
            raise RuntimeError("Socket server already running")

        self._socket = self._create_socket()
        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._running = True
        self._shutdown_event.clear()

        for index in range(self.config.io_threads):
            thread = threading.Thread(
                target=self._accept_loop,
                args=(connection_handler,),
                name=f"httpbridge-io-{index}",
                daemon=True,
            )
            self._io_threads.append(thread)
            thread.start()

        host, port = self.address
        logger.info(f"Listening on {host}:{port} with {self.config.io_threads} I/O threads")

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                # Socket closed underneath us, usually during shutdown
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_header_size=self.config.max_header_size,
            )

            try:
                connection_handler(conn)
            except Exception as e:
                logger.exception(f"[{conn.id}] Connection hand-off failed: {e}")
                conn.close()

    def shutdown(self) -> None:
        """
        Stop accepting and release the listening socket. Idempotent.
        """
        if not self._running:
            return

        logger.info("Shutting down socket server...")
        self._running = False

        current = threading.current_thread()
        for thread in self._io_threads:
            if thread is not current:
                thread.join(timeout=2.0)
        self._io_threads.clear()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._shutdown_event.set()
        logger.info("Socket server stopped")

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until shutdown() completes. False on timeout."""
        return self._shutdown_event.wait(timeout)
