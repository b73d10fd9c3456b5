# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Data structures shared by messages and native objects.

Public Exports
==============
::

    from genro_bridge.datastructures import (
        Headers,
        HeaderCollection,
        headers_from_scope,
        normalize_header_name,
    )

Modules
=======
- ``headers``: immutable message headers and mutable native header collection
"""

from .headers import HeaderCollection, Headers, headers_from_scope, normalize_header_name

__all__ = [
    "Headers",
    "HeaderCollection",
    "headers_from_scope",
    "normalize_header_name",
]
