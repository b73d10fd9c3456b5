# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Adapters between immutable messages and native request/response objects.

Public Exports
==============
::

    from genro_bridge.adapters import (
        RequestAdapter,      # ServerRequest -> native request data
        RequestContext,      # per-request query/post/cookies/files/server tables
        ResponseAdapter,     # native Response -> messages.Response
        format_cookie_header,
    )
"""

from .request_adapter import RequestAdapter, RequestContext
from .response_adapter import ResponseAdapter, format_cookie_header

__all__ = [
    "RequestAdapter",
    "RequestContext",
    "ResponseAdapter",
    "format_cookie_header",
]
