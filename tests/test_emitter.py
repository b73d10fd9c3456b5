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

"""Tests for ContentRange, HttpNoBodyStatus, BufferedOutput and ResponseEmitter."""

from __future__ import annotations

import pytest

from genro_bridge.emitter import (
    BufferedOutput,
    ContentRange,
    ContentRangeUnit,
    HttpNoBodyStatus,
    ResponseEmitter,
)
from genro_bridge.exceptions import (
    ConfigurationError,
    HeadersAlreadySentError,
    OutputAlreadySentError,
)
from genro_bridge.messages import MessageFactory, Response

factory = MessageFactory()


def make_response(status: int = 200, body: bytes = b"hello", **headers: str) -> Response:
    response = factory.create_response(status).with_body(factory.create_stream(body))
    for name, value in headers.items():
        response = response.with_header(name.replace("_", "-"), value)
    return response


# =============================================================================
# ContentRange
# =============================================================================


class TestContentRange:
    """Tests for ContentRange.parse and format."""

    def test_parse_basic(self) -> None:
        """Header is parsed into unit, first, last and length."""
        content_range = ContentRange.parse("bytes 0-499/1234")
        assert content_range is not None
        assert content_range.unit is ContentRangeUnit.BYTES
        assert (content_range.first, content_range.last, content_range.length) == (0, 499, 1234)

    def test_parse_unknown_length(self) -> None:
        """Literal * is kept as unknown length."""
        content_range = ContentRange.parse("bytes 10-20/*")
        assert content_range is not None
        assert content_range.length == "*"

    @pytest.mark.parametrize(
        "header",
        ["bytes 0-499/1234", "bytes 5-5/6", "bytes 10-20/*", "bytes 0-0/1"],
    )
    def test_round_trip(self, header: str) -> None:
        """format() is the exact inverse of parse()."""
        content_range = ContentRange.parse(header)
        assert content_range is not None
        assert content_range.format() == header
        assert ContentRange.parse(content_range.format()) == content_range

    @pytest.mark.parametrize(
        "header",
        [None, "", "bytes 9-1/10", "items 0-1/10", "bytes a-1/10", "bytes 0-1", "garbage"],
    )
    def test_malformed_is_absent(self, header: str | None) -> None:
        """Malformed headers yield None instead of raising."""
        assert ContentRange.parse(header) is None

    def test_for_slice_and_size(self) -> None:
        """for_slice builds a bytes range; size counts both ends."""
        content_range = ContentRange.for_slice(2, 5, 10)
        assert str(content_range) == "bytes 2-5/10"
        assert content_range.size == 4


# =============================================================================
# HttpNoBodyStatus
# =============================================================================


class TestHttpNoBodyStatus:
    """Tests for the body-forbidding status table."""

    @pytest.mark.parametrize("status", [100, 101, 102, 103, 204, 205, 304])
    def test_forbids_body(self, status: int) -> None:
        """Informational codes, 204, 205 and 304 forbid a body."""
        assert HttpNoBodyStatus.forbids_body(status)

    @pytest.mark.parametrize("status", [200, 201, 206, 301, 404, 500])
    def test_allows_body(self, status: int) -> None:
        """Every other status allows a body."""
        assert not HttpNoBodyStatus.forbids_body(status)


# =============================================================================
# ResponseEmitter
# =============================================================================


class TestEmitterPreconditions:
    """Tests for emitter validation."""

    def test_buffer_length_must_be_positive(self) -> None:
        """buffer_length below 1 is a configuration error."""
        with pytest.raises(ConfigurationError):
            ResponseEmitter(BufferedOutput(), buffer_length=0)

    def test_headers_already_sent(self) -> None:
        """Emitting after headers were sent fails before writing anything."""
        output = BufferedOutput()
        output.flush()
        with pytest.raises(HeadersAlreadySentError):
            ResponseEmitter(output).emit(make_response())
        assert output.header_lines == []

    def test_output_already_emitted(self) -> None:
        """Pending output blocks emission."""
        output = BufferedOutput()
        output.write(b"stray")
        with pytest.raises(OutputAlreadySentError):
            ResponseEmitter(output).emit(make_response())
        assert output.status_line is None


class TestEmitterHeaders:
    """Tests for status line and header emission."""

    def test_status_line(self) -> None:
        """Status line carries protocol, code and reason phrase."""
        output = BufferedOutput()
        ResponseEmitter(output).emit(make_response(201))
        assert output.status_line == "HTTP/1.1 201 Created"
        assert output.status_code == 201

    def test_set_cookie_lines_not_joined(self) -> None:
        """Each Set-Cookie value gets its own header line."""
        response = make_response().with_added_header("Set-Cookie", "a=1").with_added_header("Set-Cookie", "b=2")
        output = BufferedOutput()
        ResponseEmitter(output).emit(response)
        assert output.get_header("Set-Cookie") == ["a=1", "b=2"]

    def test_other_headers_comma_joined(self) -> None:
        """Multi-valued headers other than Set-Cookie share one line."""
        response = make_response().with_header("Vary", ["Accept", "Cookie"])
        output = BufferedOutput()
        ResponseEmitter(output).emit(response)
        assert output.get_header("Vary") == ["Accept, Cookie"]


class TestEmitterBody:
    """Tests for body strategies."""

    def test_atomic_body(self) -> None:
        """Without buffer_length the body is written at once."""
        output = BufferedOutput()
        ResponseEmitter(output).emit(make_response(body=b"hello world"))
        assert output.body == b"hello world"

    @pytest.mark.parametrize("status", [204, 304])
    def test_no_body_status(self, status: int) -> None:
        """Statuses forbidding a body emit no body."""
        output = BufferedOutput()
        ResponseEmitter(output).emit(make_response(status, body=b"ignored"))
        assert output.body == b""

    def test_head_request(self) -> None:
        """body=False suppresses the body but keeps headers."""
        output = BufferedOutput()
        ResponseEmitter(output).emit(make_response(Content_Type="text/plain"), body=False)
        assert output.body == b""
        assert output.get_header("Content-Type") == ["text/plain"]

    def test_chunked_body(self) -> None:
        """Buffered emission streams the whole body in chunks."""
        output = BufferedOutput()
        ResponseEmitter(output, buffer_length=3).emit(make_response(body=b"abcdefgh"))
        assert output.headers_sent
        assert output.body == b"abcdefgh"

    def test_range_over_full_body(self) -> None:
        """A Content-Range over the full resource streams exactly that slice."""
        response = make_response(206, body=b"0123456789", Content_Range="bytes 2-5/10")
        output = BufferedOutput()
        ResponseEmitter(output, buffer_length=3).emit(response)
        assert output.body == b"2345"

    def test_range_over_sliced_body(self) -> None:
        """A body already holding just the range is streamed from its start."""
        response = make_response(206, body=b"2345", Content_Range="bytes 2-5/10")
        output = BufferedOutput()
        ResponseEmitter(output, buffer_length=3).emit(response)
        assert output.body == b"2345"

    def test_range_last_byte(self) -> None:
        """Ranges ending on the last byte are emitted whole."""
        response = make_response(206, body=b"0123456789", Content_Range="bytes 9-9/10")
        output = BufferedOutput()
        ResponseEmitter(output, buffer_length=4).emit(response)
        assert output.body == b"9"
