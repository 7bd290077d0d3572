"""
Unit tests for HttpExchange and its body streams, over a real TCP pair.
"""

import socket

import pytest

from httpbridge.core.connection import Connection
from httpbridge.core.exchange import HttpExchange
from httpbridge.http import HTTPParseError, RequestHeadParser


def open_exchange(tcp_pair, raw: bytes, **kwargs):
    """Send ``raw`` from the client and build the server-side exchange."""
    server_side, client = tcp_pair
    client.sendall(raw)
    conn = Connection(socket=server_side, address=client.getsockname(), timeout=5.0)
    head = RequestHeadParser().parse(conn.read_head())
    kwargs.setdefault("server_name", "test/1.0")
    return HttpExchange(conn, head, **kwargs), conn, client


def read_response(conn: Connection, client: socket.socket):
    """Half-close the server side and parse everything the client got."""
    conn.socket.shutdown(socket.SHUT_WR)
    data = b""
    while True:
        chunk = client.recv(65536)
        if not chunk:
            break
        data += chunk

    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    headers = [tuple(line.split(": ", 1)) for line in lines[1:]]
    return lines[0], headers, body


def header_values(headers, name):
    return [value for key, value in headers if key.lower() == name.lower()]


class TestRequestSide:

    def test_metadata(self, tcp_pair):
        exchange, conn, client = open_exchange(
            tcp_pair,
            b"GET /a/b?x=1 HTTP/1.1\r\nHost: example.com:8080\r\n\r\n",
        )

        assert exchange.request_method == "GET"
        assert exchange.request_uri == "/a/b"
        assert exchange.query_string == "x=1"
        assert exchange.request_scheme == "http"
        assert exchange.protocol == "HTTP/1.1"
        assert exchange.request_content_length == -1
        assert exchange.get_host_name() == "example.com"
        assert exchange.get_source_address() == client.getsockname()
        assert exchange.get_destination_address() == client.getpeername()

    @pytest.mark.parametrize("host, expected", [
        ("example.com", "example.com"),
        ("example.com:80", "example.com"),
        ("[::1]:8080", "::1"),
        ("[::1]", "::1"),
    ])
    def test_host_name(self, tcp_pair, host, expected):
        raw = f"GET / HTTP/1.1\r\nHost: {host}\r\n\r\n".encode()
        exchange, _, _ = open_exchange(tcp_pair, raw)

        assert exchange.get_host_name() == expected

    def test_host_name_falls_back_to_local_address(self, tcp_pair):
        exchange, _, _ = open_exchange(tcp_pair, b"GET / HTTP/1.0\r\n\r\n")

        assert exchange.get_host_name() == "127.0.0.1"

    def test_streams_require_blocking(self, tcp_pair):
        exchange, _, _ = open_exchange(tcp_pair, b"GET / HTTP/1.1\r\n\r\n")

        with pytest.raises(RuntimeError):
            exchange.get_input_stream()
        with pytest.raises(RuntimeError):
            exchange.get_output_stream()

        exchange.start_blocking()
        assert exchange.is_blocking
        assert exchange.get_input_stream() is exchange.get_input_stream()

    def test_fixed_length_body(self, tcp_pair):
        exchange, _, _ = open_exchange(
            tcp_pair,
            b"POST /echo HTTP/1.1\r\nContent-Length: 11\r\n\r\nhello world",
        )
        exchange.start_blocking()

        assert exchange.request_content_length == 11
        assert exchange.get_input_stream().read() == b"hello world"
        assert exchange.request_bytes == 11

    def test_body_stops_at_content_length(self, tcp_pair):
        exchange, conn, _ = open_exchange(
            tcp_pair,
            b"POST / HTTP/1.1\r\nContent-Length: 3\r\n\r\nabcGET /next HTTP/1.1\r\n\r\n",
        )
        exchange.start_blocking()

        assert exchange.get_input_stream().read() == b"abc"
        assert conn.read_head() == b"GET /next HTTP/1.1\r\n\r\n"

    def test_chunked_body(self, tcp_pair):
        exchange, _, _ = open_exchange(
            tcp_pair,
            b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n"
            b"5\r\nhello\r\n"
            b"6;ext=1\r\n world\r\n"
            b"0\r\nX-Trailer: yes\r\n\r\n",
        )
        exchange.start_blocking()

        assert exchange.request_content_length == -1
        assert exchange.get_input_stream().read() == b"hello world"

    def test_malformed_chunk_size(self, tcp_pair):
        exchange, _, _ = open_exchange(
            tcp_pair,
            b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\nzz\r\n",
        )
        exchange.start_blocking()

        with pytest.raises(HTTPParseError):
            exchange.get_input_stream().read()

    def test_no_framing_means_empty_body(self, tcp_pair):
        exchange, _, _ = open_exchange(tcp_pair, b"POST / HTTP/1.1\r\n\r\n")
        exchange.start_blocking()

        assert exchange.get_input_stream().read() == b""

    def test_unsupported_transfer_encoding_is_501(self, tcp_pair):
        server_side, client = tcp_pair
        client.sendall(b"POST / HTTP/1.1\r\nTransfer-Encoding: gzip\r\n\r\n")
        conn = Connection(socket=server_side, address=client.getsockname())
        head = RequestHeadParser().parse(conn.read_head())

        with pytest.raises(HTTPParseError) as exc_info:
            HttpExchange(conn, head)

        assert exc_info.value.status_code == 501

    @pytest.mark.parametrize("lengths", [
        b"Content-Length: 3\r\nContent-Length: 4\r\n",
        b"Content-Length: abc\r\n",
        b"Content-Length: -1\r\n",
    ])
    def test_bad_content_length_is_400(self, tcp_pair, lengths):
        server_side, client = tcp_pair
        client.sendall(b"POST / HTTP/1.1\r\n" + lengths + b"\r\n")
        conn = Connection(socket=server_side, address=client.getsockname())
        head = RequestHeadParser().parse(conn.read_head())

        with pytest.raises(HTTPParseError) as exc_info:
            HttpExchange(conn, head)

        assert exc_info.value.status_code == 400


class TestResponseSide:

    def test_chunked_when_length_unknown(self, tcp_pair):
        exchange, conn, client = open_exchange(tcp_pair, b"GET / HTTP/1.1\r\n\r\n")
        exchange.start_blocking()

        exchange.get_response_sender().send("hello")
        exchange.end_exchange()
        status_line, headers, body = read_response(conn, client)

        assert status_line == "HTTP/1.1 200 OK"
        assert header_values(headers, "Transfer-Encoding") == ["chunked"]
        assert header_values(headers, "Server") == ["test/1.0"]
        assert len(header_values(headers, "Date")) == 1
        assert body == b"5\r\nhello\r\n0\r\n\r\n"
        assert exchange.persistent is True

    def test_declared_content_length_passes_through(self, tcp_pair):
        exchange, conn, client = open_exchange(tcp_pair, b"GET / HTTP/1.1\r\n\r\n")
        exchange.start_blocking()
        exchange.status_code = 201
        exchange.response_headers.put("Content-Length", "5")

        exchange.get_output_stream().write(b"hello")
        exchange.end_exchange()
        status_line, headers, body = read_response(conn, client)

        assert status_line == "HTTP/1.1 201 Created"
        assert header_values(headers, "Content-Length") == ["5"]
        assert header_values(headers, "Transfer-Encoding") == []
        assert body == b"hello"

    def test_write_past_declared_length_is_cut_off(self, tcp_pair):
        exchange, conn, client = open_exchange(tcp_pair, b"GET / HTTP/1.1\r\n\r\n")
        exchange.start_blocking()
        exchange.response_headers.put("Content-Length", "2")

        with pytest.raises(ValueError, match="Content-Length"):
            exchange.get_output_stream().write(b"hello world")
        exchange.end_exchange()
        _, headers, body = read_response(conn, client)

        assert exchange.persistent is False
        assert header_values(headers, "Content-Length") == ["2"]
        assert body == b"he"

    def test_writes_up_to_declared_length_are_accepted(self, tcp_pair):
        exchange, conn, client = open_exchange(tcp_pair, b"GET / HTTP/1.1\r\n\r\n")
        exchange.start_blocking()
        exchange.response_headers.put("Content-Length", "5")
        stream = exchange.get_output_stream()

        stream.write(b"hel")
        stream.write(b"lo")
        with pytest.raises(ValueError):
            stream.write(b"!")
        exchange.end_exchange()
        _, _, body = read_response(conn, client)

        assert body == b"hello"

    def test_short_body_closes_connection(self, tcp_pair):
        exchange, conn, client = open_exchange(tcp_pair, b"GET / HTTP/1.1\r\n\r\n")
        exchange.start_blocking()
        exchange.response_headers.put("Content-Length", "10")

        exchange.get_output_stream().write(b"abc")
        exchange.end_exchange()
        _, _, body = read_response(conn, client)

        assert exchange.persistent is False
        assert body == b"abc"

    @pytest.mark.parametrize("values", [["abc"], ["-1"], ["3", "4"]])
    def test_invalid_declared_length_falls_back_to_chunked(self, tcp_pair, values):
        exchange, conn, client = open_exchange(tcp_pair, b"GET / HTTP/1.1\r\n\r\n")
        exchange.start_blocking()
        exchange.response_headers.put_all("Content-Length", values)

        exchange.get_response_sender().send("hello")
        exchange.end_exchange()
        _, headers, body = read_response(conn, client)

        assert header_values(headers, "Content-Length") == []
        assert header_values(headers, "Transfer-Encoding") == ["chunked"]
        assert body == b"5\r\nhello\r\n0\r\n\r\n"
        assert exchange.persistent is True

    def test_empty_response_has_zero_length(self, tcp_pair):
        exchange, conn, client = open_exchange(tcp_pair, b"GET / HTTP/1.1\r\n\r\n")

        exchange.end_exchange()
        status_line, headers, body = read_response(conn, client)

        assert status_line == "HTTP/1.1 200 OK"
        assert header_values(headers, "Content-Length") == ["0"]
        assert body == b""

    def test_repeated_response_headers(self, tcp_pair):
        exchange, conn, client = open_exchange(tcp_pair, b"GET / HTTP/1.1\r\n\r\n")
        exchange.response_headers.put_all("X-Test", ["a", "b"])

        exchange.end_exchange()
        _, headers, _ = read_response(conn, client)

        assert header_values(headers, "X-Test") == ["a", "b"]

    def test_head_sends_no_body(self, tcp_pair):
        exchange, conn, client = open_exchange(tcp_pair, b"HEAD / HTTP/1.1\r\n\r\n")
        exchange.start_blocking()
        exchange.response_headers.put("Content-Length", "5")

        exchange.get_response_sender().send("hello")
        exchange.end_exchange()
        _, headers, body = read_response(conn, client)

        assert header_values(headers, "Content-Length") == ["5"]
        assert body == b""

    @pytest.mark.parametrize("status", [204, 304])
    def test_bodyless_statuses(self, tcp_pair, status):
        exchange, conn, client = open_exchange(tcp_pair, b"GET / HTTP/1.1\r\n\r\n")
        exchange.start_blocking()
        exchange.status_code = status

        exchange.get_response_sender().send("ignored")
        exchange.end_exchange()
        status_line, headers, body = read_response(conn, client)

        assert status_line.startswith(f"HTTP/1.1 {status} ")
        assert header_values(headers, "Content-Length") == []
        assert header_values(headers, "Transfer-Encoding") == []
        assert body == b""

    def test_http10_is_close_delimited(self, tcp_pair):
        exchange, conn, client = open_exchange(
            tcp_pair, b"GET / HTTP/1.0\r\nConnection: keep-alive\r\n\r\n"
        )
        exchange.start_blocking()

        exchange.get_response_sender().send("old client")
        exchange.end_exchange()
        _, headers, body = read_response(conn, client)

        assert exchange.persistent is False
        assert header_values(headers, "Connection") == ["close"]
        assert body == b"old client"

    def test_connection_close_requested(self, tcp_pair):
        exchange, conn, client = open_exchange(
            tcp_pair, b"GET / HTTP/1.1\r\nConnection: close\r\n\r\n"
        )

        exchange.end_exchange()
        _, headers, _ = read_response(conn, client)

        assert header_values(headers, "Connection") == ["close"]

    def test_status_frozen_after_commit(self, tcp_pair):
        exchange, _, _ = open_exchange(tcp_pair, b"GET / HTTP/1.1\r\n\r\n")
        exchange.start_blocking()
        exchange.get_output_stream().write(b"x")

        assert exchange.is_response_started
        with pytest.raises(RuntimeError):
            exchange.status_code = 500

    def test_end_exchange_drains_unread_body(self, tcp_pair):
        exchange, conn, _ = open_exchange(
            tcp_pair,
            b"POST / HTTP/1.1\r\nContent-Length: 4\r\nConnection: keep-alive\r\n\r\n"
            b"dataGET /second HTTP/1.1\r\n\r\n",
        )

        exchange.end_exchange()

        assert exchange.is_complete
        assert exchange.persistent
        assert conn.read_head() == b"GET /second HTTP/1.1\r\n\r\n"

    def test_end_exchange_is_idempotent(self, tcp_pair):
        exchange, conn, client = open_exchange(tcp_pair, b"GET / HTTP/1.1\r\n\r\n")

        exchange.end_exchange()
        exchange.end_exchange()
        _, _, body = read_response(conn, client)

        assert body == b""
