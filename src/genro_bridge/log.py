# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Per-request logging helpers.

All genro-bridge loggers are children of ``genro_bridge``. A worker that
wants request-scoped log batching attaches a ``RequestLogBuffer`` to that
logger; records accumulate in memory and reach the real handler when the
worker calls ``flush_logs()`` at the end of the request (or earlier, when
the buffer is full or an ERROR arrives).

Example::

    import logging
    from genro_bridge.log import ElapsedTimeFilter, RequestLogBuffer

    target = logging.StreamHandler()
    target.setFormatter(logging.Formatter("%(elapsed).3fs %(name)s %(message)s"))
    buffer = RequestLogBuffer(target=target)
    buffer.addFilter(ElapsedTimeFilter())
    logging.getLogger("genro_bridge").addHandler(buffer)
"""

from __future__ import annotations

import logging
import time
from logging.handlers import MemoryHandler

__all__ = ["ElapsedTimeFilter", "RequestLogBuffer", "flush_logs", "logger", "mark_request_start"]

logger = logging.getLogger("genro_bridge")

_request_started_at: float = time.perf_counter()


def mark_request_start() -> None:
    """Reset the clock used by ``ElapsedTimeFilter``."""
    global _request_started_at
    _request_started_at = time.perf_counter()


class ElapsedTimeFilter(logging.Filter):
    """Stamp ``record.elapsed`` with seconds since the current request started."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.elapsed = time.perf_counter() - _request_started_at
        return True


class RequestLogBuffer(MemoryHandler):
    """Memory handler flushed at request boundaries.

    Args:
        capacity: Records kept before an automatic flush.
        flush_level: Records at or above this level flush immediately.
        target: Handler receiving the buffered records.
    """

    def __init__(
        self,
        capacity: int = 1000,
        flush_level: int = logging.ERROR,
        target: logging.Handler | None = None,
    ) -> None:
        super().__init__(capacity, flushLevel=flush_level, target=target, flushOnClose=True)


def flush_logs(target: logging.Logger | None = None) -> int:
    """Flush every ``RequestLogBuffer`` attached to ``target``.

    Returns:
        Number of buffer handlers flushed.
    """
    target = target or logger
    flushed = 0
    for handler in target.handlers:
        if isinstance(handler, RequestLogBuffer):
            handler.flush()
            flushed += 1
    return flushed
