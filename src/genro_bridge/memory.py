# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Memory watchdog for long-running workers.

After each request the worker asks the watchdog whether the process is
close to its memory limit. The watchdog only signals; recycling the
process is the host's decision.

Decision::

    gc.collect()
    usage >= limit * threshold      (exact decimal comparison)

The limit comes from, in order: the explicit ``limit`` argument (bytes or
a string such as ``"512M"``), the process address space limit
(``RLIMIT_AS``) when one is set, total physical memory. Usage is the
process resident set size reported by psutil.

Example::

    watchdog = MemoryWatchdog(threshold=0.9, limit="512M")
    if watchdog.should_recycle():
        ...  # let the host restart this worker
"""

from __future__ import annotations

import gc
import logging
import re
import sys
from decimal import Decimal
from typing import Callable

import psutil

try:
    import resource
except ImportError:  # pragma: no cover - not available on Windows
    resource = None  # type: ignore[assignment]

__all__ = ["MemoryWatchdog", "parse_memory_limit"]

logger = logging.getLogger("genro_bridge.memory")

_LIMIT_RE = re.compile(r"\s*(\d+)\s*([A-Za-z]?)", re.ASCII)
_MULTIPLIERS = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3}


def parse_memory_limit(limit: int | str) -> int:
    """Parse ``"128M"``-style limits into bytes.

    ``"-1"`` (no limit) returns ``sys.maxsize``. Unknown suffixes count as
    bytes; unparseable values return 0.
    """
    if isinstance(limit, int):
        return sys.maxsize if limit < 0 else limit
    text = limit.strip()
    if text == "-1":
        return sys.maxsize
    match = _LIMIT_RE.match(text)
    if match is None:
        return 0
    number, suffix = match.groups()
    return int(number) * _MULTIPLIERS.get(suffix.upper(), 1)


def _system_memory_limit() -> int:
    if resource is not None:
        soft, _hard = resource.getrlimit(resource.RLIMIT_AS)
        if soft not in (resource.RLIM_INFINITY, -1) and soft > 0:
            return int(soft)
    return int(psutil.virtual_memory().total)


def _process_memory_usage() -> int:
    return int(psutil.Process().memory_info().rss)


class MemoryWatchdog:
    """Signal when memory usage reaches a fraction of the limit.

    Args:
        threshold: Fraction of the limit that triggers recycling.
        limit: Limit in bytes or as a string; ``None`` or a non-positive
            value detects it from the system on first use.
        usage_provider: Returns current usage in bytes; defaults to RSS.
    """

    __slots__ = ("threshold", "_limit", "usage_provider", "last_usage")

    def __init__(
        self,
        threshold: float = 0.9,
        limit: int | str | None = None,
        usage_provider: Callable[[], int] | None = None,
    ) -> None:
        self.threshold = threshold
        self._limit: int | None = None
        self.usage_provider = usage_provider or _process_memory_usage
        self.last_usage: int | None = None
        self.set_limit(limit)

    @property
    def limit(self) -> int:
        if self._limit is None:
            self._limit = _system_memory_limit()
        return self._limit

    def set_limit(self, limit: int | str | None) -> None:
        """Set the limit; ``None`` or ``<= 0`` recalculates it lazily."""
        parsed = parse_memory_limit(limit) if limit is not None else 0
        self._limit = parsed if parsed > 0 else None

    def should_recycle(self) -> bool:
        gc.collect()
        usage = self.usage_provider()
        self.last_usage = usage
        bound = Decimal(self.limit) * Decimal(str(self.threshold))
        if Decimal(usage) >= bound:
            logger.warning(
                "Memory usage %d bytes reached %s of limit %d bytes; worker should be recycled",
                usage,
                self.threshold,
                self.limit,
            )
            return True
        return False
