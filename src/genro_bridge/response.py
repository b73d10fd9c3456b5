# Copyright 2025 Softwell S.r.l.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Native mutable response.

Application code fills a ``Response`` during a request; at the end the
worker converts it into an immutable ``messages.Response`` with
``to_message()``.

Main Pattern
============
::

    response.set_status_code(201)
    response.headers.set("X-Custom", "1")
    response.cookies.add(Cookie("theme", "dark", expire=time.time() + 3600))
    response.set_result({"ok": True})
    message = response.to_message(factory)

Body sources
============
content
    ``str`` (encoded with ``charset``), ``bytes`` or ``None`` (empty body).
stream
    ``(handle, begin, end)`` descriptor over a seekable binary file. When
    set, it wins over ``content``. ``send_stream()`` sets it together with
    status 206 and ``Content-Range`` for partial content.

set_result(result, mime_type=None)
    Set content from a handler result with content type auto-detection:

    - dict/list: JSON
    - Path: file bytes with guessed media type
    - bytes: application/octet-stream
    - str: text/plain
    - None: empty body
    - other: str() as text/plain
"""

from __future__ import annotations

import json
import mimetypes
from http import HTTPStatus
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any

from .adapters.response_adapter import ResponseAdapter
from .cookies import Cookie, CookieCollection
from .datastructures import HeaderCollection
from .emitter.content_range import ContentRange

if TYPE_CHECKING:
    from .messages import MessageFactory
    from .messages import Response as MessageResponse
    from .session import Session

__all__ = ["Response"]

_SESSION_COOKIE_PARAMS = {
    "domain": "domain",
    "httponly": "http_only",
    "path": "path",
    "samesite": "same_site",
    "secure": "secure",
}


class Response:
    """Mutable response owned by application code.

    Attributes:
        status_code: HTTP status code.
        status_text: Reason phrase; set from the standard phrase by
            ``set_status_code()`` when not given.
        headers: Response headers.
        cookies: Cookies to send.
        content: Body content.
        stream: Stream descriptor ``(handle, begin, end)``, or ``None``.
        charset: Encoding for ``str`` content.
        enable_cookie_validation: Sign outgoing cookie values.
        cookie_validation_key: Signing key; required when validation is on.
    """

    def __init__(
        self,
        charset: str = "utf-8",
        enable_cookie_validation: bool = False,
        cookie_validation_key: str = "",
    ) -> None:
        self.charset = charset
        self.enable_cookie_validation = enable_cookie_validation
        self.cookie_validation_key = cookie_validation_key
        self.status_code = 200
        self.status_text = "OK"
        self.headers = HeaderCollection()
        self.cookies = CookieCollection()
        self.content: bytes | str | None = None
        self.stream: tuple[IO[bytes], int, int] | None = None
        self.is_sent = False

    def set_status_code(self, status_code: int, text: str | None = None) -> Response:
        self.status_code = status_code
        if text is None:
            try:
                text = HTTPStatus(status_code).phrase
            except ValueError:
                text = ""
        self.status_text = text
        return self

    @property
    def is_successful(self) -> bool:
        return 200 <= self.status_code < 300

    def set_header(self, name: str, value: str) -> None:
        self.headers.add(name, value)

    # ------------------------------------------------------------------ body

    def set_result(self, result: Any, mime_type: str | None = None) -> None:
        """Set content from a handler result, updating ``Content-Type``."""
        if isinstance(result, (dict, list)):
            self.content = json.dumps(result, ensure_ascii=False).encode(self.charset)
            media_type = mime_type or "application/json"
        elif isinstance(result, Path):
            guessed, _ = mimetypes.guess_type(str(result))
            self.content = result.read_bytes()
            media_type = mime_type or guessed or "application/octet-stream"
        elif isinstance(result, bytes):
            self.content = result
            media_type = mime_type or "application/octet-stream"
        elif result is None:
            self.content = b""
            media_type = mime_type or "text/plain"
        else:
            self.content = str(result)
            media_type = mime_type or "text/plain"
        if media_type.startswith("text/") or media_type == "application/json":
            media_type = f"{media_type}; charset={self.charset}"
        self.headers.set("Content-Type", media_type)

    def send_stream(
        self,
        handle: IO[bytes],
        begin: int = 0,
        end: int | None = None,
        length: int | None = None,
        mime_type: str = "application/octet-stream",
    ) -> Response:
        """Send ``handle`` bytes ``begin..end`` (inclusive).

        A partial range (``begin > 0`` or ``end`` before the last byte)
        sets status 206 and ``Content-Range``.
        """
        if length is None:
            position = handle.tell()
            length = handle.seek(0, 2)
            handle.seek(position)
        if end is None:
            end = max(0, length - 1)
        self.stream = (handle, begin, end)
        self.headers.set("Content-Type", mime_type)
        self.headers.set("Accept-Ranges", "bytes")
        self.headers.set("Content-Length", str(end - begin + 1))
        if begin > 0 or end < length - 1:
            self.set_status_code(206)
            self.headers.set("Content-Range", ContentRange.for_slice(begin, end, length).format())
        return self

    def clear(self) -> None:
        """Reset everything except configuration."""
        self.headers = HeaderCollection()
        self.cookies = CookieCollection()
        self.status_code = 200
        self.status_text = "OK"
        self.content = None
        self.stream = None
        self.is_sent = False

    # ------------------------------------------------------------ conversion

    def add_session_cookie(self, session: Session) -> None:
        """Add the session id cookie and close an active session."""
        if not session.is_active:
            return
        cookie = Cookie(name=session.name, value=session.id)
        for param, attribute in _SESSION_COOKIE_PARAMS.items():
            if session.cookie_params.get(param) is not None:
                setattr(cookie, attribute, session.cookie_params[param])
        self.cookies.add(cookie)
        session.close()

    def to_message(self, factory: MessageFactory | None = None, session: Session | None = None) -> MessageResponse:
        """Convert into an immutable message; see ``ResponseAdapter``."""
        if session is not None:
            self.add_session_cookie(session)
        message = ResponseAdapter(self, factory).to_message()
        self.is_sent = True
        return message

    def __repr__(self) -> str:
        return f"Response(status_code={self.status_code}, status_text={self.status_text!r})"
