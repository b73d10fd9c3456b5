# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Content-Range header value for partial content responses.

Format (RFC 7233, section 4.2)::

    Content-Range: <unit> <first>-<last>/<length>
    Content-Range: bytes 0-499/1234
    Content-Range: bytes 42-1233/*

Only the ``bytes`` unit is supported. Parsing is total: malformed input,
an unsupported unit or ``first > last`` all yield ``None``. Header parsing
failures are routine and must never abort a request.

Example::

    from genro_bridge.emitter import ContentRange

    content_range = ContentRange.parse("bytes 0-499/1234")
    content_range.first, content_range.last   # (0, 499)
    str(content_range)                        # "bytes 0-499/1234"
    ContentRange.parse("bytes 9-1/10")        # None
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

__all__ = ["ContentRange", "ContentRangeUnit"]

_CONTENT_RANGE_RE = re.compile(
    r"\s*(?P<unit>\w+)\s+(?P<first>\d+)-(?P<last>\d+)/(?P<length>\d+|\*)\s*",
    re.ASCII,
)

UNKNOWN_LENGTH = "*"


class ContentRangeUnit(str, Enum):
    """Supported range units."""

    BYTES = "bytes"


@dataclass(frozen=True)
class ContentRange:
    """Parsed ``Content-Range`` value.

    Attributes:
        unit: Range unit, always ``ContentRangeUnit.BYTES``.
        first: First byte position (inclusive).
        last: Last byte position (inclusive).
        length: Total resource length, or ``"*"`` when unknown.
    """

    unit: ContentRangeUnit
    first: int
    last: int
    length: int | str

    @classmethod
    def parse(cls, header: str | None) -> ContentRange | None:
        """Parse a header value, returning ``None`` when it is not usable."""
        if not header:
            return None
        match = _CONTENT_RANGE_RE.fullmatch(header)
        if match is None:
            return None
        first = int(match["first"])
        last = int(match["last"])
        if first > last:
            return None
        if match["unit"] != ContentRangeUnit.BYTES.value:
            return None
        length: int | str = UNKNOWN_LENGTH if match["length"] == UNKNOWN_LENGTH else int(match["length"])
        return cls(ContentRangeUnit.BYTES, first, last, length)

    @classmethod
    def for_slice(cls, first: int, last: int, length: int | str = UNKNOWN_LENGTH) -> ContentRange:
        """Build a bytes range for an outgoing partial response."""
        return cls(ContentRangeUnit.BYTES, first, last, length)

    @property
    def size(self) -> int:
        """Number of bytes covered by the range."""
        return self.last - self.first + 1

    def format(self) -> str:
        return f"{self.unit.value} {self.first}-{self.last}/{self.length}"

    def __str__(self) -> str:
        return self.format()
