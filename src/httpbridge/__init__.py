"""
=============================================================================
HTTPBRIDGE - Request/Response Values on an Embedded HTTP/1.1 Server
=============================================================================

Application code is a plain function from an immutable Request value to a
Response value. httpbridge runs that function on a threaded HTTP/1.1
server and translates in both directions.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   socket ──► embedded server ──► HttpExchange (native)              │
    │                                        │                             │
    │                     ┌──────────────────┴─────────────────┐          │
    │                     │           adapter                   │          │
    │                     │  build_request ──► handler(request) │          │
    │                     │  apply_response ◄── Response        │          │
    │                     └──────────────────┬─────────────────┘          │
    │                                        │                             │
    │   socket ◄── status, headers, body ◄───┘                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    httpbridge/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m httpbridge)
    ├── server.py            # Builder, Server, HttpHandler
    ├── config.py            # ServerConfig dataclass
    ├── adapter/             # Request/Response translation
    │   ├── request.py       # exchange → Request
    │   ├── response.py      # Response → exchange
    │   ├── body.py          # Response body shapes
    │   ├── bridge.py        # HandlerBridge
    │   ├── bootstrap.py     # ServerOptions, run_server
    │   ├── responses.py     # Response helpers
    │   ├── exchange.py      # Exchange protocol
    │   └── errors.py        # Adapter errors
    ├── core/                # Embedded server internals
    │   ├── socket_server.py # Listening socket, I/O threads
    │   ├── connection.py    # Connection wrapper
    │   ├── thread_pool.py   # Worker threads
    │   ├── exchange.py      # HttpExchange
    │   ├── streams.py       # Body streams and framing
    │   └── access_log.py    # Access log
    └── http/                # HTTP protocol pieces
        ├── headers.py       # HeaderMap
        ├── parser.py        # Request head parser
        ├── status_codes.py  # Status codes
        ├── mime_types.py    # MIME types
        └── dates.py         # HTTP dates

=============================================================================
QUICK START
=============================================================================

    from httpbridge import Response, run_server

    def app(request):
        name = request.headers.get("x-name", "world")
        return Response(
            status=200,
            headers={"Content-Type": "text/plain; charset=utf-8"},
            body=f"hello {name}",
        )

    server = run_server(app, port=8080)
    ...
    server.stop()

=============================================================================
"""

__version__ = "1.0.0"

from .adapter import (
    Request,
    Response,
    ServerOptions,
    apply_response,
    build_request,
    proxy_handler,
    run_server,
)
from .config import ServerConfig
from .server import Builder, HttpHandler, Server

__all__ = [
    "Request",
    "Response",
    "ServerOptions",
    "apply_response",
    "build_request",
    "proxy_handler",
    "run_server",
    "ServerConfig",
    "Builder",
    "HttpHandler",
    "Server",
    "__version__",
]
