# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Case-insensitive HTTP headers with multi-value support.

Purpose
=======
HTTP header names are case-insensitive per RFC 7230. The same header can
appear multiple times (e.g., Set-Cookie, Accept). The bridge needs two
flavours of header storage:

- ``Headers``: immutable, used by the HTTP message value objects. Stored as
  a tuple of ``(name, value)`` pairs, so sharing one instance between two
  messages can never leak a mutation. Original name case is preserved,
  lookups are case-insensitive.
- ``HeaderCollection``: mutable, used by the native request/response owned
  by the framework. Names are exposed in Title-Case-with-hyphens.

Processing Schema::

    Message headers (immutable, case-preserving):
    (("content-type", "text/html"), ("X-Custom", "a"), ("x-custom", "b"))
                        ↓
                Case-insensitive lookup
                        ↓
    headers.getlist("X-CUSTOM") → ["a", "b"]
    headers.as_dict()           → {"content-type": [...], "X-Custom": ["a", "b"]}

    Native collection (mutable, Title-Case externally):
    collection.add("x-forwarded-for", "1.2.3.4")
    collection.items()          → [("X-Forwarded-For", "1.2.3.4")]

Definition::

    def normalize_header_name(name: str) -> str

    class Headers:
        def __init__(self, raw: Iterable[tuple[str, str]] = ()) -> None
        def get(self, key, default=None) -> str | None
        def getlist(self, key) -> list[str]
        def get_line(self, key) -> str
        def with_header / with_added_header / without_header -> Headers
        def as_dict(self) -> dict[str, list[str]]

    class HeaderCollection:
        def set / add / get / get_all / has / remove / remove_all
        def items(self) -> list[tuple[str, str]]
        def to_dict(self) -> dict[str, list[str]]

    def headers_from_scope(scope: Mapping[str, Any]) -> Headers

Example::

    from genro_bridge.datastructures import Headers, HeaderCollection

    headers = Headers([("Content-Type", "application/json")])
    headers.get("content-type")          # "application/json"

    native = HeaderCollection()
    native.add("set-cookie", "a=1")
    native.add("Set-Cookie", "b=2")
    native.get_all("SET-COOKIE")         # ["a=1", "b=2"]

Design Notes
============
- Uses ``__slots__`` for memory efficiency
- ``Headers`` never mutates: every ``with_*`` method returns a new instance
- Values are preserved as-is, only names are normalized

References
==========
- HTTP Headers (RFC 7230): https://tools.ietf.org/html/rfc7230#section-3.2
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Iterator

__all__ = ["Headers", "HeaderCollection", "headers_from_scope", "normalize_header_name"]


def normalize_header_name(name: str) -> str:
    """Return ``name`` in Title-Case-with-hyphens (``x-forwarded-for`` → ``X-Forwarded-For``)."""
    return "-".join(part.capitalize() for part in name.strip().lower().split("-"))


class Headers:
    """
    Immutable, case-insensitive HTTP headers with multi-value support.

    Example:
        >>> headers = Headers([("Set-Cookie", "a=1"), ("set-cookie", "b=2")])
        >>> headers.getlist("SET-COOKIE")
        ['a=1', 'b=2']
        >>> headers.with_header("Set-Cookie", "c=3").getlist("set-cookie")
        ['c=3']
        >>> headers.getlist("set-cookie")  # original untouched
        ['a=1', 'b=2']
    """

    __slots__ = ("_headers",)

    def __init__(self, raw: Iterable[tuple[str, str]] = ()) -> None:
        self._headers: tuple[tuple[str, str], ...] = tuple(
            (str(name), str(value)) for name, value in raw
        )

    def get(self, key: str, default: str | None = None) -> str | None:
        """Get the first value for a header (case-insensitive)."""
        key_lower = key.lower()
        for name, value in self._headers:
            if name.lower() == key_lower:
                return value
        return default

    def getlist(self, key: str) -> list[str]:
        """Get all values for a header (case-insensitive), in insertion order."""
        key_lower = key.lower()
        return [value for name, value in self._headers if name.lower() == key_lower]

    def get_line(self, key: str) -> str:
        """All values for a header joined by ``", "``; empty string if absent."""
        return ", ".join(self.getlist(key))

    def with_header(self, key: str, value: str | Iterable[str]) -> Headers:
        """Return a copy where ``key`` is replaced by ``value`` (one or more values)."""
        values = [value] if isinstance(value, str) else list(value)
        key_lower = key.lower()
        kept = [(name, v) for name, v in self._headers if name.lower() != key_lower]
        return Headers(kept + [(key, v) for v in values])

    def with_added_header(self, key: str, value: str | Iterable[str]) -> Headers:
        """Return a copy with ``value`` appended to ``key``, keeping existing values."""
        values = [value] if isinstance(value, str) else list(value)
        existing = next((name for name, _ in self._headers if name.lower() == key.lower()), key)
        return Headers(list(self._headers) + [(existing, v) for v in values])

    def without_header(self, key: str) -> Headers:
        """Return a copy without any value for ``key``."""
        key_lower = key.lower()
        return Headers((name, v) for name, v in self._headers if name.lower() != key_lower)

    def keys(self) -> list[str]:
        """Unique header names (case of first occurrence), in order."""
        seen: set[str] = set()
        result: list[str] = []
        for name, _ in self._headers:
            if name.lower() not in seen:
                seen.add(name.lower())
                result.append(name)
        return result

    def values(self) -> list[str]:
        return [value for _, value in self._headers]

    def items(self) -> list[tuple[str, str]]:
        """All (name, value) pairs, including duplicates."""
        return list(self._headers)

    def as_dict(self) -> dict[str, list[str]]:
        """Map first-seen name to all of its values."""
        return {name: self.getlist(name) for name in self.keys()}

    def __getitem__(self, key: str) -> str:
        value = self.get(key)
        if value is None:
            raise KeyError(key)
        return value

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        return self.get(key) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        """Total number of header entries (including duplicates)."""
        return len(self._headers)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return self._headers == other._headers

    def __hash__(self) -> int:
        return hash(self._headers)

    def __repr__(self) -> str:
        return f"Headers({list(self._headers)!r})"


class HeaderCollection:
    """
    Mutable, case-insensitive header collection for native request/response.

    Internally keyed by lowercase name; names are reported in
    Title-Case-with-hyphens by ``items()``, ``keys()`` and ``to_dict()``.
    """

    __slots__ = ("_headers",)

    def __init__(self, headers: Mapping[str, str | list[str]] | None = None) -> None:
        self._headers: dict[str, list[str]] = {}
        for name, value in (headers or {}).items():
            self.set(name, value)

    def set(self, name: str, value: str | list[str]) -> HeaderCollection:
        """Replace every value of ``name``."""
        values = [value] if isinstance(value, str) else [str(v) for v in value]
        self._headers[name.lower()] = values
        return self

    def add(self, name: str, value: str) -> HeaderCollection:
        """Append a value to ``name`` keeping the existing ones."""
        self._headers.setdefault(name.lower(), []).append(value)
        return self

    def set_default(self, name: str, value: str) -> HeaderCollection:
        """Set ``name`` only if it has no value yet."""
        if not self.has(name):
            self.set(name, value)
        return self

    def get(self, name: str, default: str | None = None) -> str | None:
        values = self._headers.get(name.lower())
        return values[0] if values else default

    def get_all(self, name: str) -> list[str]:
        return list(self._headers.get(name.lower(), []))

    def has(self, name: str) -> bool:
        return name.lower() in self._headers

    def remove(self, name: str) -> list[str] | None:
        """Remove ``name`` returning its values (``None`` if absent)."""
        return self._headers.pop(name.lower(), None)

    def remove_all(self) -> None:
        self._headers.clear()

    def keys(self) -> list[str]:
        return [normalize_header_name(name) for name in self._headers]

    def items(self) -> list[tuple[str, str]]:
        return [
            (normalize_header_name(name), value)
            for name, values in self._headers.items()
            for value in values
        ]

    def to_dict(self) -> dict[str, list[str]]:
        return {normalize_header_name(name): list(values) for name, values in self._headers.items()}

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        """Number of distinct header names."""
        return len(self._headers)

    def __repr__(self) -> str:
        return f"HeaderCollection({self.to_dict()!r})"


def headers_from_scope(scope: Mapping[str, Any]) -> Headers:
    """
    Create Headers from an ASGI scope.

    ASGI provides ``list[tuple[bytes, bytes]]`` encoded as Latin-1.

    Example:
        >>> scope = {"type": "http", "headers": [(b"host", b"example.com")]}
        >>> headers_from_scope(scope).get("Host")
        'example.com'
    """
    return Headers(
        (name.decode("latin-1"), value.decode("latin-1"))
        for name, value in scope.get("headers", [])
    )
