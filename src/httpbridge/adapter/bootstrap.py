"""
=============================================================================
SERVER BOOTSTRAP
=============================================================================

One call from "a function of Request" to a running server:

    def app(request):
        return Response(status=200, body="hello")

    server = run_server(app, port=8080)
    ...
    server.stop()

Only the common options are typed fields. Everything else goes through the
configurator, which receives the Builder right before build():

    def tune(builder):
        builder.set_server_option("keep_alive_timeout", 15.0)

    run_server(app, ServerOptions(port=8080, configurator=tune))

=============================================================================
"""

import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional

from ..server import Builder, Server
from .bridge import ApplicationHandler, proxy_handler


logger = logging.getLogger(__name__)


@dataclass
class ServerOptions:
    """
    Attributes:
        port: Port to listen on. 0 picks a free port.
        host: Host name or address to listen on.
        io_threads: Acceptor threads (default: number of cores, at least 2).
        worker_threads: Request threads (default: io_threads * 8).
        configurator: Called with the Builder before build().
    """

    port: int = 80
    host: str = "localhost"
    io_threads: Optional[int] = None
    worker_threads: Optional[int] = None
    configurator: Optional[Callable[[Builder], None]] = None


def build_server(handler: ApplicationHandler, options: ServerOptions) -> Server:
    """Configure a Builder from ``options`` and build, without starting."""
    builder = Builder()
    builder.add_listener(options.port, options.host)
    builder.set_handler(proxy_handler(handler))

    if options.io_threads is not None:
        builder.set_io_threads(options.io_threads)
    if options.worker_threads is not None:
        builder.set_worker_threads(options.worker_threads)
    if options.configurator is not None:
        options.configurator(builder)

    return builder.build()


def run_server(
    handler: ApplicationHandler,
    options: Optional[ServerOptions] = None,
    **overrides,
) -> Server:
    """
    Build and start a server for ``handler``.

    Keyword overrides replace fields of ``options``:
        run_server(app, port=8080, io_threads=2)

    Returns:
        The started Server. Call server.stop() to shut it down.
    """
    options = replace(options or ServerOptions(), **overrides)
    server = build_server(handler, options)
    server.start()
    logger.info(f"Serving {handler!r} on {options.host}:{server.port}")
    return server
