# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Response emission.

Public Exports
==============
::

    from genro_bridge.emitter import (
        BufferedOutput,
        ContentRange,
        ContentRangeUnit,
        HttpNoBodyStatus,
        OutputChannel,
        ResponseEmitter,
    )
"""

from .content_range import ContentRange, ContentRangeUnit
from .emitter import ResponseEmitter
from .output import BufferedOutput, OutputChannel
from .status import HttpNoBodyStatus

__all__ = [
    "BufferedOutput",
    "ContentRange",
    "ContentRangeUnit",
    "HttpNoBodyStatus",
    "OutputChannel",
    "ResponseEmitter",
]
