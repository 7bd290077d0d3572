"""
Unit tests for Response → exchange application.
"""

import io

import pytest

from httpbridge.adapter import (
    InvalidExchangeError,
    Response,
    UnrecognizedBodyError,
    apply_response,
)


class TrackingStream(io.BytesIO):
    """BytesIO that counts close() calls and can fail mid-read."""

    def __init__(self, data: bytes, fail_on_read: int = None):
        super().__init__(data)
        self.close_count = 0
        self.fail_on_read = fail_on_read
        self.reads = 0

    def read(self, size=-1):
        self.reads += 1
        if self.fail_on_read is not None and self.reads >= self.fail_on_read:
            raise OSError("disk went away")
        return super().read(size)

    def close(self):
        self.close_count += 1
        super().close()


class TestPreconditions:

    def test_none_exchange_raises(self):
        with pytest.raises(InvalidExchangeError, match="Null exchange given."):
            apply_response(None, Response(status=200))

    def test_none_exchange_checked_before_none_response(self):
        with pytest.raises(InvalidExchangeError):
            apply_response(None, None)

    def test_none_response_is_a_no_op(self, exchange):
        apply_response(exchange, None)

        assert exchange.calls == []

    def test_empty_response_performs_zero_mutations(self, exchange):
        apply_response(exchange, Response())

        assert exchange.calls == []
        assert exchange.status_code == 200

    def test_empty_mapping_performs_zero_mutations(self, exchange):
        apply_response(exchange, {})

        assert exchange.calls == []

    def test_unsupported_response_type(self, exchange):
        with pytest.raises(TypeError):
            apply_response(exchange, "hello")


class TestStatusAndHeaders:

    def test_status_set_before_body(self, exchange):
        apply_response(exchange, Response(status=200, body="hello"))

        assert exchange.calls == [("status", 200), ("write", b"hello")]

    def test_status_absent_keeps_default(self, exchange):
        apply_response(exchange, Response(body="x"))

        assert ("status", 200) not in exchange.calls
        assert exchange.status_code == 200

    def test_string_header_uses_put(self, exchange):
        apply_response(exchange, Response(headers={"Content-Type": "text/plain"}))

        assert exchange.calls == [("put", "Content-Type", "text/plain")]

    def test_sequence_header_written_as_separate_values(self, exchange):
        apply_response(exchange, Response(headers={"X-Test": ["a", "b"]}))

        assert exchange.calls == [("put_all", "X-Test", ["a", "b"])]
        assert exchange.response_headers.get("X-Test") == ["a", "b"]

    def test_tuple_header(self, exchange):
        apply_response(exchange, Response(headers={"Set-Cookie": ("a=1", "b=2")}))

        assert exchange.response_headers.get("Set-Cookie") == ["a=1", "b=2"]

    def test_non_string_scalar_header_is_stringified(self, exchange):
        apply_response(exchange, Response(headers={"Content-Length": 5}))

        assert exchange.calls == [("put", "Content-Length", "5")]

    def test_ordering_status_headers_body(self, exchange):
        apply_response(exchange, {
            "status": 201,
            "headers": {"X-A": "1", "X-B": ["2", "3"]},
            "body": "done",
        })

        assert exchange.calls == [
            ("status", 201),
            ("put", "X-A", "1"),
            ("put_all", "X-B", ["2", "3"]),
            ("write", b"done"),
        ]


class TestBodies:

    def test_text_is_one_utf8_write(self, exchange):
        apply_response(exchange, Response(body="héllo ✓"))

        assert exchange.writes == ["héllo ✓".encode("utf-8")]

    def test_empty_text_is_still_one_write(self, exchange):
        apply_response(exchange, Response(body=""))

        assert exchange.writes == [b""]

    def test_chunk_tuple_is_one_write_per_chunk(self, exchange):
        apply_response(exchange, Response(body=("a", "b", "c")))

        assert exchange.writes == [b"a", b"b", b"c"]

    def test_chunk_list(self, exchange):
        apply_response(exchange, Response(body=["é", "", "z"]))

        assert exchange.writes == ["é".encode("utf-8"), b"", b"z"]

    def test_chunk_generator(self, exchange):
        def numbers():
            for i in range(3):
                yield f"{i}\n"

        apply_response(exchange, Response(body=numbers()))

        assert exchange.writes == [b"0\n", b"1\n", b"2\n"]

    def test_non_string_chunk_raises_after_earlier_writes(self, exchange):
        with pytest.raises(UnrecognizedBodyError) as exc_info:
            apply_response(exchange, Response(body=["a", 7, "c"]))

        assert exc_info.value.body == 7
        assert exchange.writes == [b"a"]

    def test_stream_is_copied_and_closed(self, exchange):
        stream = TrackingStream(b"stream bytes \x00\xff")

        apply_response(exchange, Response(body=stream))

        assert b"".join(exchange.writes) == b"stream bytes \x00\xff"
        assert stream.close_count == 1

    def test_stream_closed_when_copy_fails(self, exchange):
        stream = TrackingStream(b"x" * 10, fail_on_read=1)

        with pytest.raises(OSError, match="disk went away"):
            apply_response(exchange, Response(body=stream))

        assert stream.close_count == 1

    def test_stream_closed_when_output_fails(self, make_exchange):
        exchange = make_exchange(fail_output_after=0)
        stream = TrackingStream(b"data")

        with pytest.raises(OSError, match="connection reset"):
            apply_response(exchange, Response(body=stream))

        assert stream.close_count == 1

    def test_file_is_copied(self, exchange, tmp_path):
        path = tmp_path / "page.html"
        path.write_bytes(b"<h1>file</h1>")

        apply_response(exchange, Response(status=200, body=path))

        assert exchange.calls[0] == ("status", 200)
        assert b"".join(exchange.writes) == b"<h1>file</h1>"

    def test_file_handle_closed_when_copy_fails(self, make_exchange, tmp_path, monkeypatch):
        path = tmp_path / "big.bin"
        path.write_bytes(b"0123456789")
        opened = []

        real_open = open

        def tracking_open(*args, **kwargs):
            handle = real_open(*args, **kwargs)
            opened.append(handle)
            return handle

        monkeypatch.setattr("builtins.open", tracking_open)
        exchange = make_exchange(fail_output_after=0)

        with pytest.raises(OSError):
            apply_response(exchange, Response(body=path))

        assert len(opened) == 1
        assert opened[0].closed

    def test_missing_file_raises(self, exchange, tmp_path):
        with pytest.raises(FileNotFoundError):
            apply_response(exchange, Response(body=tmp_path / "nope.txt"))

    def test_absent_body_writes_nothing(self, exchange):
        apply_response(exchange, Response(status=204))

        assert exchange.writes == []

    def test_unrecognized_body(self, exchange):
        with pytest.raises(UnrecognizedBodyError) as exc_info:
            apply_response(exchange, Response(status=200, headers={"X-A": "1"}, body=42))

        assert exc_info.value.body == 42
        assert "42" in str(exc_info.value)
        # Status and headers are not reverted
        assert exchange.calls == [("status", 200), ("put", "X-A", "1")]

    def test_unrecognized_body_is_a_type_error(self, exchange):
        with pytest.raises(TypeError):
            apply_response(exchange, Response(body={"json": "no"}))

    def test_bytes_are_not_a_body_shape(self, exchange):
        with pytest.raises(UnrecognizedBodyError):
            apply_response(exchange, Response(body=b"raw"))
