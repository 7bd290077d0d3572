"""
HTTP protocol pieces of the embedded server.

    headers.py       HeaderMap (multi-valued) and header parameter parsing
    parser.py        Request line + header block parsing
    status_codes.py  Status codes and reason phrases
    mime_types.py    File extension → Content-Type
    dates.py         HTTP-date formatting
"""

from .headers import HeaderMap, HeaderValues, extract_token
from .parser import HTTPParseError, RequestHead, RequestHeadParser
from .status_codes import HTTPStatus, body_allowed, reason_phrase
from .mime_types import get_content_type, get_mime_type
from .dates import format_http_date

__all__ = [
    "HeaderMap",
    "HeaderValues",
    "extract_token",
    "HTTPParseError",
    "RequestHead",
    "RequestHeadParser",
    "HTTPStatus",
    "body_allowed",
    "reason_phrase",
    "get_content_type",
    "get_mime_type",
    "format_http_date",
]
