"""
=============================================================================
MULTI-VALUED HEADER MAP
=============================================================================

HTTP allows the same header name to appear more than once:

    Accept: text/html
    X-Forwarded-For: 1.1.1.1
    X-Forwarded-For: 2.2.2.2

A plain dict loses that information. HeaderMap keeps every value, in the
order it arrived, under a case-insensitive name.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         HeaderMap layout                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   key (lowercase)     HeaderValues                                   │
    │   ────────────────    ───────────────────────────────────────        │
    │   "accept"         →  name="Accept"          values=["text/html"]    │
    │   "x-forwarded-for" → name="X-Forwarded-For" values=["1.1.1.1",      │
    │                                                       "2.2.2.2"]     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The first spelling seen for a name is the one written back on the wire.

=============================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional


_ILLEGAL_CHARS = re.compile(r"[\r\n\0]")


def check_header(name: str, value: str) -> str:
    """
    Return ``value`` as a string, refusing CR, LF and NUL in either part.

    A line break inside a value would start a new header line on the wire.

    Raises:
        ValueError: If the name or value contains CR, LF or NUL.
    """
    value = str(value)
    if _ILLEGAL_CHARS.search(name) or _ILLEGAL_CHARS.search(value):
        raise ValueError(f"Illegal character in header {name!r}: {value!r}")
    return value


@dataclass
class HeaderValues:
    """All values of one header name, in arrival order."""

    name: str
    values: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def first(self) -> Optional[str]:
        return self.values[0] if self.values else None


class HeaderMap:
    """
    Ordered, case-insensitive, multi-valued header collection.

    Usage:
        headers = HeaderMap()
        headers.add("Set-Cookie", "a=1")
        headers.add("set-cookie", "b=2")
        headers.get("SET-COOKIE")        # ["a=1", "b=2"]
        headers.put("Content-Type", "text/plain")   # replaces
    """

    def __init__(self, items: Optional[Iterable[tuple[str, str]]] = None):
        self._entries: dict[str, HeaderValues] = {}
        if items:
            for name, value in items:
                self.add(name, value)

    # =========================================================================
    # MUTATION
    # =========================================================================

    def add(self, name: str, value: str) -> "HeaderMap":
        """Append a value, keeping any existing ones."""
        value = check_header(name, value)
        key = name.lower()
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = HeaderValues(name)
        entry.values.append(value)
        return self

    def put(self, name: str, value: str) -> "HeaderMap":
        """Replace every value of ``name`` with a single value."""
        self._entries[name.lower()] = HeaderValues(name, [check_header(name, value)])
        return self

    def put_all(self, name: str, values: Iterable[str]) -> "HeaderMap":
        """
        Replace every value of ``name`` with ``values`` (order preserved).

        Each value becomes its own header line when serialized.
        """
        self._entries[name.lower()] = HeaderValues(name, [check_header(name, v) for v in values])
        return self

    def remove(self, name: str) -> Optional[HeaderValues]:
        return self._entries.pop(name.lower(), None)

    def clear(self) -> None:
        self._entries.clear()

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def get(self, name: str) -> list[str]:
        """All values for ``name`` (empty list when absent)."""
        entry = self._entries.get(name.lower())
        return list(entry.values) if entry else []

    def get_first(self, name: str) -> Optional[str]:
        entry = self._entries.get(name.lower())
        return entry.first() if entry else None

    def get_last(self, name: str) -> Optional[str]:
        entry = self._entries.get(name.lower())
        return entry.values[-1] if entry and entry.values else None

    def contains(self, name: str) -> bool:
        return name.lower() in self._entries

    __contains__ = contains

    def names(self) -> list[str]:
        return [entry.name for entry in self._entries.values()]

    def items(self) -> Iterator[tuple[str, str]]:
        """Flatten to ``(name, value)`` pairs, one per header line."""
        for entry in self._entries.values():
            for value in entry.values:
                yield entry.name, value

    def __iter__(self) -> Iterator[HeaderValues]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"HeaderMap({list(self.items())!r})"


# =============================================================================
# HEADER PARAMETERS
# =============================================================================
#
# Many headers carry "key=value" parameters after the main value:
#
#     Content-Type: text/html; charset=UTF-8
#                              ─────┬─────
#                                   └── token "charset", value "UTF-8"
#
# Values may be quoted:  charset="utf-8"
# =============================================================================

def extract_token(header: Optional[str], key: str) -> Optional[str]:
    """
    Extract the value of a ``key=value`` parameter from a header value.

    The key is matched case-insensitively and must start the header or
    follow whitespace, ``;`` or ``,``. Surrounding quotes are stripped.

    Returns:
        The parameter value, or None if the header or the key is absent.

    Examples:
        >>> extract_token("text/html; charset=utf-8", "charset")
        'utf-8'
        >>> extract_token('text/plain;charset="ISO-8859-5"', "charset")
        'ISO-8859-5'
        >>> extract_token("text/plain", "charset") is None
        True
    """
    if not header:
        return None

    pattern = re.compile(
        r'(?:^|[\s;,])' + re.escape(key) + r'\s*=\s*("([^"]*)"|[^\s;,]*)',
        re.IGNORECASE,
    )
    match = pattern.search(header)
    if not match:
        return None

    if match.group(2) is not None:
        return match.group(2)
    return match.group(1) or None
