"""
Core server machinery.

    socket_server.py  Listening socket and I/O (acceptor) threads
    connection.py     Client socket wrapper with buffered reads
    thread_pool.py    Worker threads
    streams.py        Request body / response body streams and framing
    exchange.py       HttpExchange, the per-request native object
    access_log.py     One log line per finished exchange
"""

from .connection import Connection, ConnectionState
from .exchange import HttpExchange, Sender
from .socket_server import SocketServer
from .streams import RequestBodyStream, ResponseOutputStream
from .thread_pool import ThreadPool

__all__ = [
    "Connection",
    "ConnectionState",
    "HttpExchange",
    "Sender",
    "SocketServer",
    "RequestBodyStream",
    "ResponseOutputStream",
    "ThreadPool",
]
