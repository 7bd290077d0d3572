"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every knob of the embedded server lives in one dataclass. The Builder
(server.py) fills it in; the bootstrap (adapter/bootstrap.py) only exposes
the handful of options most applications need and leaves the rest to the
configurator callback.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    Priority (highest to lowest):

    1. Command-line arguments       python -m httpbridge app:handler --port 3000
    2. Environment variables        HTTP_PORT=3000 python -m httpbridge ...
    3. Default values               (in this dataclass)

=============================================================================
THREADING MODEL
=============================================================================

    io_threads       Threads blocked in accept() on the listening socket.
                     They hand each new connection to the worker pool.
    worker_threads   Threads that run a connection end to end: read the
                     request head, call the handler, write the response.

Defaults follow the usual embedded-server rule of thumb: one I/O thread per
core (at least 2), eight workers per I/O thread.

=============================================================================
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def default_io_threads() -> int:
    return max(os.cpu_count() or 1, 2)


def default_worker_threads() -> int:
    return default_io_threads() * 8


@dataclass
class ServerConfig:
    """
    Configuration for the embedded HTTP server.

    NETWORK      host, port, backlog, buffer_size, timeout
    HTTP         keep_alive, keep_alive_timeout, max_header_size
    THREADING    io_threads, worker_threads
    IDENTITY     server_name
    LOGGING      log_level, log_format
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "localhost"
    port: int = 80
    """0 lets the OS pick a free port (handy in tests)."""

    backlog: int = 128
    buffer_size: int = 8192

    timeout: Optional[float] = 30.0
    """Socket read/write timeout in seconds. None blocks forever."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    max_header_size: int = 64 * 1024

    # ─────────────────────────────────────────────────────────────────────
    # THREADING
    # ─────────────────────────────────────────────────────────────────────

    io_threads: int = field(default_factory=default_io_threads)
    worker_threads: int = field(default_factory=default_worker_threads)

    # ─────────────────────────────────────────────────────────────────────
    # IDENTITY / LOGGING
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "httpbridge/1.0"
    log_level: str = "INFO"
    log_format: str = "text"
    """Access log format: 'text' (common log format) or 'json'."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

            HTTP_HOST            Server host (default: localhost)
            HTTP_PORT            Server port (default: 80)
            HTTP_IO_THREADS      Acceptor threads
            HTTP_WORKER_THREADS  Worker threads
            HTTP_TIMEOUT         Socket timeout in seconds (default: 30)
            HTTP_LOG_LEVEL       Logging level (default: INFO)
            HTTP_LOG_FORMAT      Access log format (default: text)
        """
        config = cls(
            host=os.getenv("HTTP_HOST", "localhost"),
            port=int(os.getenv("HTTP_PORT", "80")),
            timeout=float(os.getenv("HTTP_TIMEOUT", "30")),
            log_level=os.getenv("HTTP_LOG_LEVEL", "INFO"),
            log_format=os.getenv("HTTP_LOG_FORMAT", "text"),
        )
        if os.getenv("HTTP_IO_THREADS"):
            config.io_threads = int(os.environ["HTTP_IO_THREADS"])
        if os.getenv("HTTP_WORKER_THREADS"):
            config.worker_threads = int(os.environ["HTTP_WORKER_THREADS"])
        return config

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by Builder.build(), so a bad value fails at startup rather
        than on the first request.

        Raises:
            ValueError: On the first invalid setting.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.io_threads < 1:
            raise ValueError("io_threads must be >= 1")

        if self.worker_threads < 1:
            raise ValueError("worker_threads must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.max_header_size < 1024:
            raise ValueError("max_header_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"Invalid log_format: {self.log_format!r}")

        if any(c in self.server_name for c in "\r\n\0"):
            raise ValueError(f"Invalid server_name: {self.server_name!r}")
