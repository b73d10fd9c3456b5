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
Cookies for native request/response objects.

Cookie expiry
=============
Framework code sets ``Cookie.expire`` to whatever it has at hand: ``None``,
an integer timestamp, a numeric or date string, a ``datetime``. Two values
are special and are normalized to a tagged variant by ``parse_expiry()``:

=================  ======================  ===========================================
``expire``         variant                 meaning
=================  ======================  ===========================================
``None``, ``0``    ``SessionExpiry``       session cookie, no Expires/Max-Age
``1``, ``"1"``     ``NoValidateExpiry``    value is emitted raw, never signed
anything else      ``ExpiresAt(ts)``       absolute expiry at unix time ``ts``
=================  ======================  ===========================================

Signing
=======
When cookie validation is enabled the emitted value is::

    hex(hmac_sha256(key, data)) + data      with data = json([name, value])

Including the name makes equal values under different names produce
different signed values. ``unsign_cookie_value()`` is the inverse used when
reading request cookies; tampered data or a mismatching name yield ``None``.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Iterable, Iterator, Mapping, Union

__all__ = [
    "Cookie",
    "CookieCollection",
    "CookieExpiry",
    "ExpiresAt",
    "NO_VALIDATE",
    "NoValidateExpiry",
    "SESSION",
    "SessionExpiry",
    "hash_data",
    "parse_expiry",
    "sign_cookie_value",
    "unsign_cookie_value",
    "validate_data",
]

logger = logging.getLogger("genro_bridge.cookies")

_NUMBER_RE = re.compile(r"[+-]?\d+(?:\.\d*)?", re.ASCII)
_HASH_LENGTH = hashlib.sha256().digest_size * 2


@dataclass(frozen=True)
class SessionExpiry:
    """Cookie lives until the browser session ends."""


@dataclass(frozen=True)
class NoValidateExpiry:
    """Sentinel expiry ``1``: the cookie opts out of signing."""

    timestamp: int = 1


@dataclass(frozen=True)
class ExpiresAt:
    """Absolute expiry at unix time ``timestamp``."""

    timestamp: int


CookieExpiry = Union[SessionExpiry, NoValidateExpiry, ExpiresAt]

SESSION = SessionExpiry()
NO_VALIDATE = NoValidateExpiry()


def parse_expiry(value: Any) -> CookieExpiry:
    """Normalize a raw ``expire`` value into a ``CookieExpiry`` variant."""
    if isinstance(value, (SessionExpiry, NoValidateExpiry, ExpiresAt)):
        return value
    if value is None or isinstance(value, bool):
        return SESSION
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return _from_timestamp(int(value.timestamp()))
    if isinstance(value, (int, float)):
        return _from_timestamp(int(value))
    if isinstance(value, str):
        text = value.strip()
        if _NUMBER_RE.fullmatch(text):
            return _from_timestamp(int(float(text)))
        parsed = _parse_date(text)
        if parsed is None:
            logger.debug("Unparseable cookie expire %r treated as session cookie", value)
            return SESSION
        return parse_expiry(parsed)
    raise TypeError(f"Unsupported cookie expire value: {value!r}")


def _from_timestamp(timestamp: int) -> CookieExpiry:
    if timestamp == 0:
        return SESSION
    if timestamp == 1:
        return NO_VALIDATE
    return ExpiresAt(timestamp)


def _parse_date(text: str) -> datetime | None:
    if not text:
        return None
    try:
        return parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        pass
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def hash_data(data: str, key: str) -> str:
    """Prefix ``data`` with its HMAC-SHA256 hex digest."""
    digest = hmac.new(key.encode("utf-8"), data.encode("utf-8"), hashlib.sha256).hexdigest()
    return digest + data


def validate_data(data: str, key: str) -> str | None:
    """Return the payload of a ``hash_data()`` string, ``None`` if tampered."""
    if len(data) < _HASH_LENGTH:
        return None
    digest, payload = data[:_HASH_LENGTH], data[_HASH_LENGTH:]
    expected = hmac.new(key.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()
    if hmac.compare_digest(digest, expected):
        return payload
    return None


def _serialize(name: str, value: str) -> str:
    return json.dumps([name, value], separators=(",", ":"), ensure_ascii=False)


def sign_cookie_value(name: str, value: str, key: str) -> str:
    return hash_data(_serialize(name, value), key)


def unsign_cookie_value(name: str, signed: str, key: str) -> str | None:
    payload = validate_data(signed, key)
    if payload is None:
        return None
    try:
        data = json.loads(payload)
    except ValueError:
        return None
    if isinstance(data, list) and len(data) == 2 and data[0] == name and isinstance(data[1], str):
        return data[1]
    return None


@dataclass
class Cookie:
    """A cookie as seen by framework code.

    Attributes:
        name: Cookie name.
        value: Cookie value. Empty or ``None`` values are never emitted.
        expire: Raw expiry, see ``parse_expiry()``.
        path: Cookie path, omitted from the header when empty.
        domain: Cookie domain, omitted from the header when empty.
        secure: Only sent over HTTPS.
        http_only: Not accessible from JavaScript.
        same_site: ``"Lax"``, ``"Strict"``, ``"None"`` or ``None`` to omit.
    """

    name: str
    value: str | None = ""
    expire: Any = None
    path: str = "/"
    domain: str = ""
    secure: bool = False
    http_only: bool = True
    same_site: str | None = "Lax"

    @property
    def expiry(self) -> CookieExpiry:
        return parse_expiry(self.expire)


class CookieCollection:
    """Ordered cookies keyed by name.

    Request cookies are exposed through a read-only collection; the
    response collection is mutable.
    """

    __slots__ = ("_cookies", "read_only")

    def __init__(
        self,
        cookies: Iterable[Cookie] | Mapping[str, Cookie] | None = None,
        read_only: bool = False,
    ) -> None:
        items = cookies.values() if isinstance(cookies, Mapping) else (cookies or ())
        self._cookies: dict[str, Cookie] = {cookie.name: cookie for cookie in items}
        self.read_only = read_only

    def _check_writable(self) -> None:
        if self.read_only:
            raise RuntimeError("The cookie collection is read only.")

    def add(self, cookie: Cookie) -> None:
        self._check_writable()
        self._cookies[cookie.name] = cookie

    def get(self, name: str) -> Cookie | None:
        return self._cookies.get(name)

    def get_value(self, name: str, default: str | None = None) -> str | None:
        cookie = self._cookies.get(name)
        return cookie.value if cookie is not None else default

    def has(self, name: str) -> bool:
        """True when ``name`` is present with a non-empty value."""
        cookie = self._cookies.get(name)
        return cookie is not None and bool(cookie.value)

    def remove(self, name: str) -> Cookie | None:
        self._check_writable()
        return self._cookies.pop(name, None)

    def remove_all(self) -> None:
        self._check_writable()
        self._cookies.clear()

    def to_dict(self) -> dict[str, Cookie]:
        return dict(self._cookies)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    def __iter__(self) -> Iterator[Cookie]:
        return iter(list(self._cookies.values()))

    def __len__(self) -> int:
        return len(self._cookies)

    def __repr__(self) -> str:
        return f"CookieCollection({list(self._cookies)!r}, read_only={self.read_only})"
