"""
Handler bridge: runs an application handler as the server's HttpHandler.

    exchange ──► start_blocking() ──► build_request() ──► handler(request)
                                                               │
    exchange ◄──────────────── apply_response() ◄──────────────┘

The handler is called exactly once per exchange. Nothing is retried and no
error is caught here: a failing handler surfaces in the server, which logs
it and answers 500 (or drops the connection if the response had started).
"""

import logging
from typing import Callable

from ..server import HttpHandler
from .exchange import Exchange
from .request import Request, build_request
from .response import apply_response


logger = logging.getLogger(__name__)

ApplicationHandler = Callable[[Request], object]


class HandlerBridge(HttpHandler):
    """HttpHandler that speaks Request/Response values to ``handler``."""

    def __init__(self, handler: ApplicationHandler):
        if not callable(handler):
            raise TypeError(f"Handler must be callable, got {handler!r}")
        self.handler = handler

    def handle_request(self, exchange: Exchange) -> None:
        exchange.start_blocking()
        request = build_request(exchange)
        logger.debug(f"{request.request_method} {request.uri} → {self.handler!r}")
        apply_response(exchange, self.handler(request))

    def __repr__(self) -> str:
        return f"HandlerBridge({self.handler!r})"


def proxy_handler(handler: ApplicationHandler) -> HandlerBridge:
    """Wrap an application handler for Builder.set_handler()."""
    return HandlerBridge(handler)
