# Copyright 2025 Softwell S.r.l.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Exception classes for genro-bridge.

Two families live here:

1. Bridge errors, raised by the adapters, the emitter and the worker
   lifecycle. They are fatal to the current request step and are never
   caught inside genro-bridge: retry and recycling belong to the host.
2. HTTP exceptions, raised by dispatchers (application code) and rendered
   into a native response by the error handler component.

Module Structure
----------------
::

    BridgeError
    ├── ConfigurationError          missing key, bad parser, bad buffer length
    ├── StructuralError
    │   ├── StreamFormatError       descriptor is not (handle, begin, end)
    │   ├── StreamHandleError       handle is closed or not a readable file
    │   ├── StreamRangeError        begin < 0 or end < begin
    │   ├── NestingDepthError       upload tree deeper than allowed
    │   └── FileSpecError           malformed upload specification
    ├── StreamReadError             underlying read failed
    ├── ProtocolStateError
    │   ├── HeadersAlreadySentError
    │   └── OutputAlreadySentError
    └── BodyParseError              wraps the parser failure

    HTTPException
    ├── HTTPBadRequest / HTTPUnauthorized / HTTPForbidden
    ├── HTTPNotFound / HTTPServiceUnavailable
    └── Redirect

Routine-but-malformed input (an unparseable Content-Range header, a missing
CSRF header) is not an error: those lookups return ``None``.

Example:
    >>> raise StreamRangeError(10, 2)
    Traceback (most recent call last):
    ...
    StreamRangeError: Response stream range values must be valid: ...
"""

from __future__ import annotations

__all__ = [
    "BridgeError",
    "ConfigurationError",
    "StructuralError",
    "StreamFormatError",
    "StreamHandleError",
    "StreamRangeError",
    "NestingDepthError",
    "FileSpecError",
    "StreamReadError",
    "ProtocolStateError",
    "HeadersAlreadySentError",
    "OutputAlreadySentError",
    "BodyParseError",
    "HTTPException",
    "HTTPBadRequest",
    "HTTPUnauthorized",
    "HTTPForbidden",
    "HTTPNotFound",
    "HTTPServiceUnavailable",
    "Redirect",
]


class BridgeError(Exception):
    """Base class for every error raised by genro-bridge itself."""


class ConfigurationError(BridgeError):
    """The bridge or one of its components is configured incorrectly."""


class StructuralError(BridgeError):
    """A value handed to the bridge does not have the expected shape."""


class StreamFormatError(StructuralError):
    """Response stream descriptor is not a ``(handle, begin, end)`` triple."""

    def __init__(self, detail: str = "") -> None:
        message = (
            "Response stream must be a sequence with exactly 3 elements: "
            "(handle, begin, end)."
        )
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)


class StreamHandleError(StructuralError):
    """Response stream handle is not an open, readable, seekable file."""

    def __init__(self) -> None:
        super().__init__("Stream handle must be an open, readable and seekable file object.")


class StreamRangeError(StructuralError):
    """Response stream range is invalid.

    Attributes:
        begin: First byte offset received.
        end: Last byte offset received.
    """

    def __init__(self, begin: int, end: int) -> None:
        self.begin = begin
        self.end = end
        super().__init__(
            "Response stream range values must be valid: "
            f"(begin >= 0 and end >= begin). Received: (begin={begin}, end={end})."
        )

    def __repr__(self) -> str:
        return f"StreamRangeError(begin={self.begin}, end={self.end})"


class NestingDepthError(StructuralError):
    """Uploaded files tree is nested deeper than the allowed limit."""

    def __init__(self, depth: int) -> None:
        self.depth = depth
        super().__init__(f"Maximum nesting depth exceeded for file uploads (limit: {depth}).")


class FileSpecError(StructuralError):
    """Upload specification mapping is malformed."""


class StreamReadError(BridgeError):
    """Reading from an underlying stream failed."""


class ProtocolStateError(BridgeError):
    """The output channel is not in a state that allows emitting a response."""


class HeadersAlreadySentError(ProtocolStateError):
    def __init__(self) -> None:
        super().__init__("Unable to emit response; headers already sent.")


class OutputAlreadySentError(ProtocolStateError):
    def __init__(self) -> None:
        super().__init__("Unable to emit response; output has been emitted previously.")


class BodyParseError(BridgeError):
    """Request body could not be parsed.

    The original exception is chained as ``__cause__`` by the raiser.
    """

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Unable to parse request body; {detail}")


class HTTPException(Exception):
    """
    HTTP exception with status code and detail.

    Raise this in dispatchers to produce an HTTP error response.
    The error handler component catches it and renders a native response
    with the given status code, detail, and headers.

    Attributes:
        status_code: HTTP status code (expected 4xx or 5xx, not validated)
        detail: Error detail message
        headers: Response headers as list of tuples (supports duplicate names)

    Example:
        >>> raise HTTPException(404, detail="User not found")
        >>> raise HTTPException(401, headers={"WWW-Authenticate": "Bearer"})
    """

    def __init__(
        self,
        status_code: int,
        detail: str = "",
        headers: dict[str, str] | list[tuple[str, str]] | None = None,
    ) -> None:
        self.status_code = status_code
        self.detail = detail
        if headers is None:
            self.headers: list[tuple[str, str]] | None = None
        elif isinstance(headers, dict):
            self.headers = list(headers.items())
        else:
            self.headers = list(headers)
        super().__init__(detail)

    def __repr__(self) -> str:
        return f"HTTPException(status_code={self.status_code}, detail={self.detail!r})"


class Redirect(HTTPException):
    """HTTP redirect exception. Raises 302 redirect by default."""

    def __init__(self, url: str, status_code: int = 302) -> None:
        super().__init__(status_code, headers={"Location": url})
        self.url = url

    def __repr__(self) -> str:
        return f"Redirect(url={self.url!r}, status_code={self.status_code})"


class HTTPBadRequest(HTTPException):
    """HTTP 400 Bad Request exception."""

    def __init__(self, detail: str = "Bad request") -> None:
        super().__init__(400, detail=detail)


class HTTPUnauthorized(HTTPException):
    """HTTP 401 Unauthorized exception."""

    def __init__(self, detail: str = "Unauthorized") -> None:
        super().__init__(401, detail=detail)


class HTTPForbidden(HTTPException):
    """HTTP 403 Forbidden exception."""

    def __init__(self, detail: str = "Forbidden") -> None:
        super().__init__(403, detail=detail)


class HTTPNotFound(HTTPException):
    """HTTP 404 Not Found exception."""

    def __init__(self, detail: str = "Not found") -> None:
        super().__init__(404, detail=detail)


class HTTPServiceUnavailable(HTTPException):
    """HTTP 503 Service Unavailable exception."""

    def __init__(self, detail: str = "Service unavailable") -> None:
        super().__init__(503, detail=detail)
