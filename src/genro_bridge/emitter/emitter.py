# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Response emitter: writes an outbound message to an output channel.

State machine::

    Validate ──► EmitHeaders ──► EmitStatusLine ──► [EmitBody] ──► Emitted
       │
       └──► Failed (HeadersAlreadySentError / OutputAlreadySentError),
            raised before any header is written

Body strategies:

- ``buffer_length is None``: the whole body is written in one call.
- buffered, ``Content-Range: bytes first-last/len`` present: seek to
  ``first`` and stream ``last - first + 1`` bytes in chunks.
  Exception: a body whose size is exactly ``last - first + 1`` is streamed
  from offset 0, not from ``first``. ``ResponseAdapter`` slices stream
  descriptors before emission, so seeking to ``first`` in such a body would
  run past its end. A full-size body still seeks to ``first``.
- buffered, no range: rewind when seekable, stream chunks until EOF.

Bodies are suppressed for the status codes in ``HttpNoBodyStatus`` and
when the body stream is not readable. ``Set-Cookie`` values are emitted
one line each; every other multi-valued header is comma-joined.

Example::

    output = BufferedOutput()
    ResponseEmitter(output, buffer_length=8192).emit(response)
    output.status_line   # "HTTP/1.1 200 OK"
"""

from __future__ import annotations

import logging

from ..datastructures import normalize_header_name
from ..exceptions import ConfigurationError, HeadersAlreadySentError, OutputAlreadySentError
from ..messages import Response, Stream
from .content_range import ContentRange, ContentRangeUnit
from .output import OutputChannel
from .status import HttpNoBodyStatus

__all__ = ["ResponseEmitter"]

logger = logging.getLogger("genro_bridge.emitter")


class ResponseEmitter:
    """Emit outbound messages through an ``OutputChannel``.

    Args:
        output: Channel receiving status line, headers and body.
        buffer_length: Chunk size for streamed bodies. ``None`` writes the
            body atomically.

    Raises:
        ConfigurationError: If ``buffer_length`` is smaller than 1.
    """

    __slots__ = ("output", "buffer_length")

    def __init__(self, output: OutputChannel, buffer_length: int | None = None) -> None:
        if buffer_length is not None and buffer_length < 1:
            raise ConfigurationError(
                f"Buffer length for '{type(self).__name__}' must be greater than zero; "
                f"received '{buffer_length}'."
            )
        self.output = output
        self.buffer_length = buffer_length

    def emit(self, response: Response, body: bool = True) -> None:
        """Emit ``response``; pass ``body=False`` for HEAD requests."""
        self._validate_output()
        self._emit_headers(response)
        self._emit_status_line(response)

        if (
            body
            and not HttpNoBodyStatus.forbids_body(response.status_code)
            and response.body.is_readable()
        ):
            self._emit_body(response)
        logger.debug("Emitted %s %s", response.status_code, response.reason_phrase)

    def _validate_output(self) -> None:
        if self.output.headers_sent:
            raise HeadersAlreadySentError()
        if self.output.buffered_length() > 0:
            raise OutputAlreadySentError()

    def _emit_headers(self, response: Response) -> None:
        for name, values in response.headers.as_dict().items():
            name = normalize_header_name(name)
            if name == "Set-Cookie":
                for value in values:
                    self.output.header(f"{name}: {value}", replace=False)
            else:
                self.output.header(f"{name}: {', '.join(values)}")

    def _emit_status_line(self, response: Response) -> None:
        status_code = response.status_code
        line = f"HTTP/{response.protocol_version} {status_code} {response.reason_phrase}"
        self.output.header(line.rstrip(), replace=True, status_code=status_code)

    def _emit_body(self, response: Response) -> None:
        if self.buffer_length is None:
            self.output.write(response.body.to_bytes())
            return

        self.output.flush()
        body = response.body
        content_range = ContentRange.parse(response.get_header_line("Content-Range"))

        if content_range is not None and content_range.unit is ContentRangeUnit.BYTES:
            self._emit_body_range(body, content_range.first, content_range.last)
            return

        if body.is_seekable():
            body.rewind()

        while not body.eof():
            chunk = body.read(self.buffer_length)
            if not chunk:
                break
            self.output.write(chunk)

    def _emit_body_range(self, body: Stream, first: int, last: int) -> None:
        assert self.buffer_length is not None
        remaining = last - first + 1

        if body.is_seekable():
            # a body holding exactly the range was sliced by the outbound adapter
            body.seek(0 if body.size == remaining else first)

        while not body.eof():
            read_length = min(self.buffer_length, remaining)
            if read_length <= 0:
                return
            chunk = body.read(read_length)
            if not chunk:
                return
            remaining -= len(chunk)
            self.output.write(chunk)
