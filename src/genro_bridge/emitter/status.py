# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""HTTP status codes whose responses must not carry a message body (RFC 7231)."""

from __future__ import annotations

from enum import IntEnum

__all__ = ["HttpNoBodyStatus"]


class HttpNoBodyStatus(IntEnum):
    """Status codes that forbid a response body.

    The table is fixed: informational codes, 204, 205 and 304.
    """

    CONTINUE = 100
    SWITCHING_PROTOCOLS = 101
    PROCESSING = 102
    EARLY_HINTS = 103
    NO_CONTENT = 204
    RESET_CONTENT = 205
    NOT_MODIFIED = 304

    @classmethod
    def forbids_body(cls, status_code: int) -> bool:
        """True when a response with ``status_code`` must be sent without body."""
        return status_code in _NO_BODY_CODES


_NO_BODY_CODES = frozenset(status.value for status in HttpNoBodyStatus)
