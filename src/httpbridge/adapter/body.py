"""
=============================================================================
RESPONSE BODY SHAPES
=============================================================================

A handler may return its body as any of these Python values. Each one is
classified into exactly one variant before anything is written:

    ┌──────────────────────────────────┬──────────────┬──────────────────────┐
    │ handler returns                  │ variant      │ written as           │
    ├──────────────────────────────────┼──────────────┼──────────────────────┤
    │ None                             │ (absent)     │ nothing              │
    │ "hello"                          │ TextBody     │ one UTF-8 write      │
    │ ["a", "b"], ("a",), generator    │ ChunkedBody  │ one write per chunk  │
    │ open("x", "rb"), io.BytesIO(...) │ StreamBody   │ copied, then closed  │
    │ pathlib.Path("x")                │ FileBody     │ opened, copied,      │
    │                                  │              │ closed               │
    │ anything else (42, b"..", {})    │ error        │ UnrecognizedBodyError│
    └──────────────────────────────────┴──────────────┴──────────────────────┘

Raw bytes are deliberately not a shape: wrap them in io.BytesIO.

File objects are iterators too, so streams are recognised before chunk
sequences.

=============================================================================
"""

import os
from collections.abc import Iterator
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Union

from .errors import UnrecognizedBodyError


@dataclass(frozen=True)
class TextBody:
    text: str


@dataclass(frozen=True)
class ChunkedBody:
    chunks: Iterable[str]


@dataclass(frozen=True)
class StreamBody:
    stream: BinaryIO


@dataclass(frozen=True)
class FileBody:
    path: Union[str, os.PathLike]


Body = Union[None, TextBody, ChunkedBody, StreamBody, FileBody]

BODY_VARIANTS = (TextBody, ChunkedBody, StreamBody, FileBody)


def classify_body(body) -> Body:
    """
    Map a handler's body value to its variant.

    Already-classified variants are returned unchanged.

    Raises:
        UnrecognizedBodyError: For any other shape.
    """
    if body is None or isinstance(body, BODY_VARIANTS):
        return body
    if isinstance(body, str):
        return TextBody(body)
    if isinstance(body, os.PathLike):
        return FileBody(body)
    if callable(getattr(body, "read", None)):
        return StreamBody(body)
    if isinstance(body, (list, tuple, Iterator)):
        return ChunkedBody(body)
    raise UnrecognizedBodyError(body)
