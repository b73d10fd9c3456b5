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
Outbound adapter: native ``Response`` -> immutable ``messages.Response``.

Conversion steps::

    status code + status text ──► create_response(code, reason)
    native headers            ──► with_header(name, values)   multiplicity kept
    native cookies            ──► with_added_header("Set-Cookie", line) per cookie
    stream descriptor/content ──► with_body(stream)

Set-Cookie line
===============
::

    name=value; Expires=<RFC 1123>; Max-Age=<n>; Path=/; Domain=d; Secure; HttpOnly; SameSite=Lax

- cookies with an empty or ``None`` value are skipped
- name and value are form-url-encoded
- ``Expires``/``Max-Age`` only for non-session expiries; ``Max-Age`` is
  ``max(0, expiry - now)`` so an expired cookie gets ``Max-Age=0``
- ``SameSite=None`` forces ``Secure``
- with validation on, the value is signed unless the expiry is the
  no-validate sentinel (see ``genro_bridge.cookies``)

Body
====
A stream descriptor ``(handle, begin, end)`` wins over ``content``. It is
validated in this order: format, range, handle. Exactly
``end - begin + 1`` bytes are read from ``begin`` and the handle is closed
afterwards whether the read succeeds or not.
"""

from __future__ import annotations

import io
import logging
import time
from email.utils import formatdate
from typing import TYPE_CHECKING, Any, Callable
from urllib.parse import quote_plus

from ..cookies import Cookie, ExpiresAt, NoValidateExpiry, sign_cookie_value
from ..exceptions import (
    ConfigurationError,
    StreamFormatError,
    StreamHandleError,
    StreamRangeError,
    StreamReadError,
)
from ..messages import MessageFactory, Response, Stream

if TYPE_CHECKING:
    from ..response import Response as NativeResponse

__all__ = ["ResponseAdapter", "format_cookie_header"]

logger = logging.getLogger("genro_bridge.adapters")


def format_cookie_header(
    cookie: Cookie,
    now: float,
    validation_key: str | None = None,
) -> str:
    """Build one ``Set-Cookie`` value.

    Args:
        cookie: Cookie to format. Its value must be non-empty.
        now: Current unix time, used for ``Max-Age``.
        validation_key: Sign the value with this key. ``None`` or empty
            emits the raw value.
    """
    expiry = cookie.expiry
    value = cookie.value or ""
    if validation_key and not isinstance(expiry, NoValidateExpiry):
        value = sign_cookie_value(cookie.name, value, validation_key)

    parts = [f"{quote_plus(cookie.name)}={quote_plus(value)}"]

    if isinstance(expiry, (ExpiresAt, NoValidateExpiry)):
        parts.append(f"Expires={formatdate(expiry.timestamp, usegmt=True)}")
        parts.append(f"Max-Age={max(0, expiry.timestamp - int(now))}")

    secure = cookie.secure or cookie.same_site == "None"
    if cookie.path:
        parts.append(f"Path={cookie.path}")
    if cookie.domain:
        parts.append(f"Domain={cookie.domain}")
    if secure:
        parts.append("Secure")
    if cookie.http_only:
        parts.append("HttpOnly")
    if cookie.same_site:
        parts.append(f"SameSite={cookie.same_site}")
    return "; ".join(parts)


class ResponseAdapter:
    """Convert a native response into an outbound message.

    Args:
        response: Native response to convert. It is only read.
        factory: Message factory.
        clock: Returns the current unix time; injectable for tests.
    """

    __slots__ = ("response", "factory", "clock")

    def __init__(
        self,
        response: NativeResponse,
        factory: MessageFactory | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.response = response
        self.factory = factory or MessageFactory()
        self.clock = clock

    def to_message(self) -> Response:
        native = self.response
        message = self.factory.create_response(native.status_code, native.status_text)

        for name, values in native.headers.to_dict().items():
            message = message.with_header(name, values)

        for line in self.build_cookie_headers():
            message = message.with_added_header("Set-Cookie", line)

        return message.with_body(self.create_body_stream())

    # --------------------------------------------------------------- cookies

    def build_cookie_headers(self) -> list[str]:
        native = self.response
        key: str | None = None
        if native.enable_cookie_validation:
            if not native.cookie_validation_key:
                raise ConfigurationError(
                    "Response.cookie_validation_key must be configured with a secret key "
                    "when cookie validation is enabled."
                )
            key = native.cookie_validation_key

        now = self.clock()
        return [
            format_cookie_header(cookie, now, key)
            for cookie in native.cookies
            if cookie.value not in (None, "")
        ]

    # ------------------------------------------------------------------ body

    def create_body_stream(self) -> Stream:
        native = self.response
        if native.stream is not None:
            return self.factory.create_stream(self._read_descriptor(native.stream))

        content = native.content
        if content is None:
            return self.factory.create_stream(b"")
        if isinstance(content, str):
            content = content.encode(native.charset or "utf-8")
        return self.factory.create_stream(content)

    def _read_descriptor(self, descriptor: Any) -> bytes:
        handle, begin, end = _validate_descriptor(descriptor)
        try:
            try:
                handle.seek(begin)
                content = handle.read(end - begin + 1)
            except (OSError, ValueError) as exc:
                raise StreamReadError("Unable to read from response stream.") from exc
            if content is None:
                raise StreamReadError("Unable to read from response stream.")
            if len(content) != end - begin + 1:
                raise StreamReadError(
                    f"Response stream ended early; read {len(content)} of {end - begin + 1} bytes from offset {begin}."
                )
        finally:
            handle.close()
        logger.debug("Read %d bytes from response stream range %d-%d", len(content), begin, end)
        return bytes(content)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_descriptor(descriptor: Any) -> tuple[Any, int, int]:
    if not isinstance(descriptor, (tuple, list)) or len(descriptor) != 3:
        raise StreamFormatError()
    handle, begin, end = descriptor
    if handle is None or not _is_int(begin) or not _is_int(end):
        raise StreamFormatError()
    if begin < 0 or end < begin:
        raise StreamRangeError(begin, end)
    if isinstance(handle, io.TextIOBase) or not all(
        hasattr(handle, attr) for attr in ("read", "seek", "readable", "seekable", "close", "closed")
    ):
        raise StreamHandleError()
    try:
        usable = not handle.closed and handle.readable() and handle.seekable()
    except (OSError, ValueError):
        usable = False
    if not usable:
        raise StreamHandleError()
    return handle, begin, end
