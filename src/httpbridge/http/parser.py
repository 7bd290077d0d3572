"""
=============================================================================
REQUEST HEAD PARSING
=============================================================================

Turns the raw request head (everything before the blank line) into a
RequestHead. The body is NOT parsed here: it stays on the socket and is
exposed later as a stream, so a handler can read it lazily (or not at all).

    GET /search?q=a%20b HTTP/1.1\r\n         ← request line
    Host: example.com\r\n                     ┐
    Accept: text/html\r\n                     ├ header block
    X-Forwarded-For: 1.1.1.1\r\n              │
    X-Forwarded-For: 2.2.2.2\r\n              ┘
    \r\n                                      ← end of head

=============================================================================
REQUEST LINE
=============================================================================

    METHOD SP REQUEST-TARGET SP HTTP-VERSION

The target is split at the first "?" into a raw path and a raw query
string. Neither is percent-decoded: that decision belongs to whoever
consumes the request.

Unknown methods are NOT rejected. The method token only has to be a valid
token; the application decides what it supports.

=============================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from .headers import HeaderMap


class HTTPParseError(Exception):
    """
    Raised when a request head cannot be parsed.

    Carries the status code to answer with:

        400 Bad Request                      - malformed syntax
        431 Request Header Fields Too Large  - head exceeds the limit
        505 HTTP Version Not Supported       - not HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class RequestHead:
    """
    Parsed request line and headers.

    Attributes:
        method:       Method token as sent ("GET", "PROPFIND", ...).
        target:       Raw request target ("/search?q=a%20b").
        path:         Target without the query ("/search").
        query_string: Raw query ("q=a%20b"), None when there is no "?".
        version:      "HTTP/1.0" or "HTTP/1.1".
        headers:      Every header line, repeated names kept separately.
    """

    method: str
    target: str
    path: str
    query_string: Optional[str] = None
    version: str = "HTTP/1.1"
    headers: HeaderMap = field(default_factory=HeaderMap)

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client asked to keep the connection open.

        HTTP/1.1 keeps alive unless "Connection: close".
        HTTP/1.0 closes unless "Connection: keep-alive".
        """
        tokens = {
            token.strip().lower()
            for value in self.headers.get("Connection")
            for token in value.split(",")
        }
        if self.version == "HTTP/1.1":
            return "close" not in tokens
        return "keep-alive" in tokens


class RequestHeadParser:
    """
    Parses raw head bytes into RequestHead objects.

    Usage:
        parser = RequestHeadParser(max_header_size=64 * 1024)
        head = parser.parse(b"GET / HTTP/1.1\\r\\nHost: x\\r\\n\\r\\n")
    """

    # Method is an RFC 7230 token, target is anything without spaces
    REQUEST_LINE_PATTERN = re.compile(
        r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+) ([^ ]+) (HTTP/\d\.\d)$"
    )
    HEADER_PATTERN = re.compile(r"^([^:\s]+):\s*(.*?)\s*$")
    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    def __init__(self, max_header_size: int = 64 * 1024):
        self.max_header_size = max_header_size

    def parse(self, data: bytes) -> RequestHead:
        """
        Parse a request head.

        Args:
            data: Head bytes, with or without the trailing blank line.

        Returns:
            Parsed RequestHead.

        Raises:
            HTTPParseError: If the head is malformed or too large.
        """
        if len(data) > self.max_header_size:
            raise HTTPParseError(
                f"Request head too large: {len(data)} bytes",
                status_code=431,
            )

        # Header bytes are ISO-8859-1 on the wire; this never fails to decode
        text = data.decode("iso-8859-1")
        if text.endswith("\r\n\r\n"):
            text = text[:-4]

        lines = text.split("\r\n")
        # Tolerate stray empty lines before the request line (RFC 7230 3.5)
        while lines and not lines[0]:
            lines.pop(0)
        if not lines:
            raise HTTPParseError("Empty request")

        method, target, version = self._parse_request_line(lines[0])
        path, _, query = target.partition("?")
        query_string = query if "?" in target else None

        return RequestHead(
            method=method,
            target=target,
            path=path,
            query_string=query_string,
            version=version,
            headers=self._parse_headers(lines[1:]),
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()

        if version not in self.SUPPORTED_VERSIONS:
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        return method, target, version

    def _parse_headers(self, lines: list[str]) -> HeaderMap:
        """
        Parse header lines into a HeaderMap.

        Repeated names are kept as separate values, in order. Obsolete line
        folding (a line starting with whitespace) continues the previous
        value, joined by a single space.
        """
        headers = HeaderMap()
        last_name: Optional[str] = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if last_name is None:
                    raise HTTPParseError("Header continuation without a header")
                values = headers.get(last_name)
                values[-1] = f"{values[-1]} {line.strip()}"
                self._store(headers.put_all, last_name, values)
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                raise HTTPParseError(f"Invalid header line: {line!r}")

            name, value = match.groups()
            self._store(headers.add, name, value)
            last_name = name

        return headers

    @staticmethod
    def _store(method, name: str, value) -> None:
        try:
            method(name, value)
        except ValueError as e:
            raise HTTPParseError(str(e)) from e
