"""
Small constructors for common Response values.

    return not_found("no such user")
    return content_type(response("<h1>hi</h1>"), "text/html; charset=utf-8")
    return file_response("static/logo.png") or not_found()

Every helper returns a new Response; nothing is mutated.
"""

import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional, Union

from ..http.mime_types import get_content_type
from ..http.status_codes import HTTPStatus
from .response import HeaderValue, Response


def response(body: Any = None) -> Response:
    """200 OK with ``body`` and no headers."""
    return Response(status=HTTPStatus.OK, headers={}, body=body)


def status(resp: Response, code: int) -> Response:
    return replace(resp, status=code)


def header(resp: Response, name: str, value: HeaderValue) -> Response:
    """Add or replace one header."""
    headers = dict(resp.headers or {})
    headers[name] = value
    return replace(resp, headers=headers)


def content_type(resp: Response, ctype: str) -> Response:
    return header(resp, "Content-Type", ctype)


def file_response(path: Union[str, os.PathLike]) -> Optional[Response]:
    """
    200 OK streaming a file, with Content-Type and Content-Length from the
    file itself. None if ``path`` is not a regular file.
    """
    path = Path(path)
    if not path.is_file():
        return None
    return Response(
        status=HTTPStatus.OK,
        headers={
            "Content-Type": get_content_type(path),
            "Content-Length": str(path.stat().st_size),
        },
        body=path,
    )


def not_found(body: Any = "Not Found") -> Response:
    return Response(
        status=HTTPStatus.NOT_FOUND,
        headers={"Content-Type": "text/plain; charset=utf-8"},
        body=body,
    )


def redirect(url: str, status: int = HTTPStatus.FOUND) -> Response:
    return Response(status=status, headers={"Location": url}, body="")
