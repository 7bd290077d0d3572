"""
pytest configuration and fixtures.
"""

import io
import socket
from typing import Generator

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from httpbridge.adapter import run_server
from httpbridge.http import HeaderMap


# =============================================================================
# RECORDING EXCHANGE
# =============================================================================
# A stand-in for the server's HttpExchange that records every mutation the
# adapter makes, in order, as tuples in ``exchange.calls``:
#
#     ("start_blocking",)
#     ("status", 200)
#     ("put", "X-A", "1")
#     ("put_all", "X-B", ["1", "2"])
#     ("write", b"hello")
# =============================================================================


class RecordingResponseHeaders:
    def __init__(self, calls: list):
        self.calls = calls
        self.map = HeaderMap()

    def put(self, name, value):
        self.calls.append(("put", name, value))
        self.map.put(name, value)

    def put_all(self, name, values):
        values = list(values)
        self.calls.append(("put_all", name, values))
        self.map.put_all(name, values)

    def get(self, name):
        return self.map.get(name)


class RecordingSender:
    def __init__(self, calls: list):
        self.calls = calls

    def send(self, data, charset="utf-8"):
        if isinstance(data, str):
            data = data.encode(charset)
        self.calls.append(("write", bytes(data)))


class RecordingOutputStream(io.RawIOBase):
    def __init__(self, calls: list, fail_after: int = None):
        super().__init__()
        self.calls = calls
        self.fail_after = fail_after

    def writable(self):
        return True

    def write(self, data):
        if self.fail_after is not None:
            if self.fail_after <= 0:
                raise OSError("connection reset by peer")
            self.fail_after -= 1
        self.calls.append(("write", bytes(data)))
        return len(data)


class RecordingExchange:
    """Test double satisfying httpbridge.adapter.Exchange."""

    def __init__(
        self,
        method="GET",
        uri="/",
        query_string=None,
        scheme="http",
        headers=(),
        body=b"",
        host_name="localhost",
        local_address=("127.0.0.1", 8080),
        remote_address=("10.0.0.7", 51234),
        content_length=-1,
        fail_output_after=None,
    ):
        self.calls = []
        self.request_method = method
        self.request_uri = uri
        self.query_string = query_string
        self.request_scheme = scheme
        self.request_headers = HeaderMap(headers)
        self.request_content_length = content_length
        self.response_headers = RecordingResponseHeaders(self.calls)
        self.blocking = False

        self._status_code = 200
        self._host_name = host_name
        self._local_address = local_address
        self._remote_address = remote_address
        self._input = io.BytesIO(body)
        self._output = RecordingOutputStream(self.calls, fail_output_after)

    @property
    def status_code(self):
        return self._status_code

    @status_code.setter
    def status_code(self, code):
        self.calls.append(("status", code))
        self._status_code = code

    def start_blocking(self):
        self.calls.append(("start_blocking",))
        self.blocking = True

    def get_destination_address(self):
        return self._local_address

    def get_source_address(self):
        return self._remote_address

    def get_host_name(self):
        return self._host_name

    def get_input_stream(self):
        return self._input

    def get_output_stream(self):
        return self._output

    def get_response_sender(self):
        return RecordingSender(self.calls)

    @property
    def writes(self) -> list:
        return [call[1] for call in self.calls if call[0] == "write"]


@pytest.fixture
def exchange() -> RecordingExchange:
    return RecordingExchange()


@pytest.fixture
def make_exchange():
    """Factory for RecordingExchange with custom request data."""
    return RecordingExchange


# =============================================================================
# SOCKETS + SERVERS
# =============================================================================


@pytest.fixture
def tcp_pair() -> Generator[tuple, None, None]:
    """A connected (server_side, client_side) pair of TCP sockets."""
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)

    client = socket.create_connection(listener.getsockname(), timeout=5.0)
    server_side, _ = listener.accept()
    listener.close()

    yield server_side, client

    for sock in (server_side, client):
        try:
            sock.close()
        except OSError:
            pass


@pytest.fixture
def serve():
    """
    Start a server for an application handler on a free port.

        server = serve(app)
        server.port
    """
    servers = []

    def _serve(handler, **overrides):
        overrides.setdefault("host", "127.0.0.1")
        overrides.setdefault("port", 0)
        overrides.setdefault("io_threads", 1)
        overrides.setdefault("worker_threads", 4)
        server = run_server(handler, **overrides)
        servers.append(server)
        return server

    yield _serve

    for server in servers:
        server.stop(timeout=5.0)
