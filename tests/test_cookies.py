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

"""Tests for cookie expiry parsing, signing and the cookie collection."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from genro_bridge.cookies import (
    NO_VALIDATE,
    SESSION,
    Cookie,
    CookieCollection,
    ExpiresAt,
    hash_data,
    parse_expiry,
    sign_cookie_value,
    unsign_cookie_value,
    validate_data,
)

KEY = "secret-key"


class TestParseExpiry:
    """Tests for parse_expiry."""

    @pytest.mark.parametrize("value", [None, 0, "0", False, True, "", "not a date"])
    def test_session(self, value: object) -> None:
        """Absent, zero, boolean and unparseable values are session cookies."""
        assert parse_expiry(value) is SESSION

    @pytest.mark.parametrize("value", [1, "1", 1.0])
    def test_no_validate_sentinel(self, value: object) -> None:
        """Timestamp 1 is the no-validate sentinel."""
        assert parse_expiry(value) is NO_VALIDATE

    def test_timestamp(self) -> None:
        """Integers and integer strings are unix timestamps."""
        assert parse_expiry(1_700_000_000) == ExpiresAt(1_700_000_000)
        assert parse_expiry(" 1700000000 ") == ExpiresAt(1_700_000_000)

    @pytest.mark.parametrize("value", [1_700_000_000.5, "1700000000.5", "1700000000."])
    def test_decimal_timestamp(self, value: object) -> None:
        """Decimal strings are timestamps, like floats."""
        assert parse_expiry(value) == ExpiresAt(1_700_000_000)

    def test_decimal_sentinel(self) -> None:
        """"1.0" is the no-validate sentinel."""
        assert parse_expiry("1.0") is NO_VALIDATE

    def test_naive_datetime_is_utc(self) -> None:
        """Naive datetimes are taken as UTC."""
        value = datetime(2030, 1, 1, 0, 0, 0)
        expected = int(datetime(2030, 1, 1, tzinfo=timezone.utc).timestamp())
        assert parse_expiry(value) == ExpiresAt(expected)

    def test_http_date_string(self) -> None:
        """RFC 1123 date strings are parsed."""
        expected = int(datetime(2030, 1, 1, tzinfo=timezone.utc).timestamp())
        assert parse_expiry("Tue, 01 Jan 2030 00:00:00 GMT") == ExpiresAt(expected)

    def test_iso_string(self) -> None:
        """ISO 8601 strings are parsed."""
        expected = int(datetime(2030, 1, 1, tzinfo=timezone.utc).timestamp())
        assert parse_expiry("2030-01-01T00:00:00+00:00") == ExpiresAt(expected)

    def test_variant_passthrough(self) -> None:
        """Expiry variants are returned unchanged."""
        assert parse_expiry(NO_VALIDATE) is NO_VALIDATE

    def test_unsupported_type(self) -> None:
        """Other types raise TypeError."""
        with pytest.raises(TypeError):
            parse_expiry([1])


class TestSigning:
    """Tests for HMAC signing helpers."""

    def test_hash_and_validate(self) -> None:
        """validate_data returns the payload of a hashed string."""
        signed = hash_data("payload", KEY)
        assert len(signed) == 64 + len("payload")
        assert validate_data(signed, KEY) == "payload"

    def test_tampered_data(self) -> None:
        """Changed payloads, wrong keys and short strings fail validation."""
        signed = hash_data("payload", KEY)
        assert validate_data(signed[:-1] + "X", KEY) is None
        assert validate_data(signed, "other-key") is None
        assert validate_data("short", KEY) is None

    def test_sign_and_unsign(self) -> None:
        """A signed cookie value round-trips under its own name."""
        signed = sign_cookie_value("theme", "dark", KEY)
        assert unsign_cookie_value("theme", signed, KEY) == "dark"

    def test_value_bound_to_name(self) -> None:
        """Equal values under different names sign differently and do not cross over."""
        first = sign_cookie_value("a", "same", KEY)
        second = sign_cookie_value("b", "same", KEY)
        assert first != second
        assert unsign_cookie_value("b", first, KEY) is None

    def test_unsign_garbage(self) -> None:
        """Unsigned or malformed values yield None."""
        assert unsign_cookie_value("a", "plain", KEY) is None
        assert unsign_cookie_value("a", hash_data("not json", KEY), KEY) is None
        assert unsign_cookie_value("a", hash_data('["a"]', KEY), KEY) is None


class TestCookieCollection:
    """Tests for CookieCollection."""

    def test_add_get_has(self) -> None:
        """has() requires a non-empty value."""
        cookies = CookieCollection()
        cookies.add(Cookie("a", "1"))
        cookies.add(Cookie("empty", ""))
        assert cookies.get_value("a") == "1"
        assert cookies.get_value("missing", "default") == "default"
        assert cookies.has("a")
        assert not cookies.has("empty")
        assert "empty" not in cookies
        assert len(cookies) == 2

    def test_add_replaces_by_name(self) -> None:
        """Adding a cookie with an existing name replaces it."""
        cookies = CookieCollection([Cookie("a", "1")])
        cookies.add(Cookie("a", "2"))
        assert [cookie.value for cookie in cookies] == ["2"]

    def test_read_only(self) -> None:
        """A read-only collection rejects writes."""
        cookies = CookieCollection({"a": Cookie("a", "1")}, read_only=True)
        with pytest.raises(RuntimeError):
            cookies.add(Cookie("b", "2"))
        with pytest.raises(RuntimeError):
            cookies.remove("a")
        with pytest.raises(RuntimeError):
            cookies.remove_all()
        assert cookies.get_value("a") == "1"

    def test_cookie_expiry_property(self) -> None:
        """Cookie.expiry parses the raw expire value."""
        assert Cookie("a", "1").expiry is SESSION
        assert Cookie("a", "1", expire=1).expiry is NO_VALIDATE
