"""
=============================================================================
HTTPBRIDGE CLI ENTRY POINT
=============================================================================

Serves an application handler from the command line.

=============================================================================
USAGE
=============================================================================

    # Serve myapp.web:app on localhost:80
    python -m httpbridge myapp.web:app

    # Custom port, all interfaces
    python -m httpbridge myapp.web:app --host 0.0.0.0 --port 8080

    # Thread sizing
    python -m httpbridge myapp.web:app --io-threads 2 --worker-threads 32

    # JSON access log
    python -m httpbridge myapp.web:app --log-format json

The handler is any callable taking a Request and returning a Response
(or a mapping with status/headers/body).

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    1. Command-line arguments     --port 3000
    2. Environment variables      HTTP_PORT=3000 (see ServerConfig.from_env)
    3. Defaults                   ServerConfig

SIGINT (Ctrl+C) and SIGTERM stop the server gracefully.

=============================================================================
"""

import argparse
import importlib
import logging
import signal
import sys

from . import __version__
from .adapter.bootstrap import ServerOptions, run_server
from .config import ServerConfig


logger = logging.getLogger("httpbridge")


def load_handler(spec: str):
    """
    Import ``module:attribute`` and return the attribute.

    Raises:
        ValueError: If ``spec`` has no colon or the attribute is not callable.
        ImportError / AttributeError: If the target does not exist.
    """
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Handler must look like 'module:attribute', got {spec!r}")

    target = importlib.import_module(module_name)
    for part in attr.split("."):
        target = getattr(target, part)

    if not callable(target):
        raise ValueError(f"{spec} is not callable")
    return target


def setup_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("httpbridge").setLevel(level)


def build_parser(defaults: ServerConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="httpbridge",
        description="Serve a Request -> Response handler over HTTP/1.1",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m httpbridge myapp:app                     # localhost:80
  python -m httpbridge myapp:app --port 8080         # custom port
  python -m httpbridge myapp:app --host 0.0.0.0      # all interfaces
  python -m httpbridge myapp:app --worker-threads 32
        """,
    )

    parser.add_argument("handler", help="Application handler as module:attribute")

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=defaults.host,
        help=f"Host to bind to (default: {defaults.host})",
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=defaults.port,
        help=f"Port to listen on (default: {defaults.port})",
    )

    # ─────────────────────────────────────────────────────────────────────
    # THREADING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--io-threads",
        type=int,
        default=defaults.io_threads,
        help=f"Acceptor threads (default: {defaults.io_threads})",
    )
    parser.add_argument(
        "--worker-threads",
        type=int,
        default=defaults.worker_threads,
        help=f"Request threads (default: {defaults.worker_threads})",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=defaults.log_level.upper(),
        help=f"Logging level (default: {defaults.log_level.upper()})",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=defaults.log_format,
        help=f"Access log format (default: {defaults.log_format})",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"httpbridge {__version__}",
    )
    return parser


def main(argv=None) -> int:
    defaults = ServerConfig.from_env()
    args = build_parser(defaults).parse_args(argv)
    setup_logging(args.log_level)

    try:
        handler = load_handler(args.handler)
    except (ImportError, AttributeError, ValueError) as e:
        print(f"Error: cannot load handler {args.handler!r}: {e}", file=sys.stderr)
        return 2

    def configure(builder):
        builder.set_server_option("timeout", defaults.timeout)
        builder.set_server_option("log_format", args.log_format)

    options = ServerOptions(
        port=args.port,
        host=args.host,
        io_threads=args.io_threads,
        worker_threads=args.worker_threads,
        configurator=configure,
    )

    try:
        server = run_server(handler, options)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signal.Signals(signum).name}")
        server.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    print(f"httpbridge serving {args.handler} on http://{args.host}:{server.port} (Ctrl+C to stop)")
    server.wait()
    return 0


if __name__ == "__main__":
    sys.exit(main())
