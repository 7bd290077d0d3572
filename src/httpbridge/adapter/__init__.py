"""
Request/response adapter.

Lets a plain function ``Request -> Response`` run on the embedded server:

    request.py    exchange → Request          (Request Translator)
    response.py   Response → exchange         (Response Applier)
    body.py       the body shapes a Response may carry
    bridge.py     HandlerBridge, the HttpHandler that ties both together
    bootstrap.py  ServerOptions + run_server()
    responses.py  helpers for building Response values
    exchange.py   the Exchange protocol the adapter talks to
    errors.py     AdapterError and subclasses
"""

from .body import Body, ChunkedBody, FileBody, StreamBody, TextBody, classify_body
from .bootstrap import ServerOptions, build_server, run_server
from .bridge import HandlerBridge, proxy_handler
from .errors import AdapterError, InvalidExchangeError, UnrecognizedBodyError
from .exchange import Exchange
from .request import DEFAULT_CHARACTER_ENCODING, Request, build_request, fold_headers
from .response import Response, apply_response

__all__ = [
    "Body",
    "ChunkedBody",
    "FileBody",
    "StreamBody",
    "TextBody",
    "classify_body",
    "ServerOptions",
    "build_server",
    "run_server",
    "HandlerBridge",
    "proxy_handler",
    "AdapterError",
    "InvalidExchangeError",
    "UnrecognizedBodyError",
    "Exchange",
    "DEFAULT_CHARACTER_ENCODING",
    "Request",
    "build_request",
    "fold_headers",
    "Response",
    "apply_response",
]
