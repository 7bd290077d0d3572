"""
=============================================================================
ACCESS LOG
=============================================================================

One line per finished exchange, on its own logger so it can be routed
separately from the server's diagnostic logs:

    logging.getLogger("httpbridge.access").addHandler(file_handler)

Two formats:

    text   127.0.0.1 - - [18/Oct/2026:11:32:07 +0000] "GET /a?b=1 HTTP/1.1" 200 5 0.84ms
    json   {"connection_id": "3f2a9c1e", "method": "GET", "path": "/a", ...}

The text form is Apache common log format plus a duration, readable by any
regex-based log analyser. JSON is for log aggregators.

=============================================================================
"""

import json
import logging
import time
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .exchange import HttpExchange


logger = logging.getLogger("httpbridge.access")


@dataclass
class AccessLogEntry:
    """Structured record of one exchange."""

    connection_id: str
    client_ip: str
    method: str
    path: str
    query: str
    protocol: str
    status_code: int
    request_bytes: int
    response_bytes: int
    user_agent: str
    duration_ms: float
    timestamp: str

    @classmethod
    def from_exchange(cls, exchange: "HttpExchange") -> "AccessLogEntry":
        return cls(
            connection_id=exchange.connection.id,
            client_ip=exchange.get_source_address()[0],
            method=exchange.request_method,
            path=exchange.request_uri,
            query=exchange.query_string or "",
            protocol=exchange.protocol,
            status_code=exchange.status_code,
            request_bytes=exchange.request_bytes,
            response_bytes=exchange.response_bytes,
            user_agent=exchange.request_headers.get_first("User-Agent") or "-",
            duration_ms=(time.time() - exchange.started_at) * 1000,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        target = f"{self.path}?{self.query}" if self.query else self.path
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {target} {self.protocol}" {self.status_code} '
            f'{self.response_bytes} {self.duration_ms:.2f}ms'
        )


def log_exchange(exchange: "HttpExchange", log_format: str = "text") -> None:
    """Emit the access log line for a finished exchange."""
    if not logger.isEnabledFor(logging.INFO):
        return

    entry = AccessLogEntry.from_exchange(exchange)
    if log_format == "json":
        logger.info(json.dumps(entry.to_dict()))
    else:
        logger.info(entry.to_text())
