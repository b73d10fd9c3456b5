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
Inbound adapter: immutable ``ServerRequest`` -> native request data.

The native request never reads the inbound message directly; it asks a
``RequestAdapter``. The adapter owns the per-request tables (query, post,
cookies, files, server) in a ``RequestContext`` that is filled lazily and
thrown away by ``clear()`` when the worker detaches the request. Nothing
here is process-wide: a new adapter is built for every message.

Body parsing
============
::

    Content-Type ──► media type ──► ParserRegistry.resolve()
                                        │
                        exact match ◄───┤───► "*" wildcard
                                        │
                                      None ──► {} (unparsed)

The parsed result is installed into the adapter's message with
``with_parsed_body()`` so the raw stream is read once per request.
Parser failures are re-raised as ``BodyParseError`` chained to the cause.

Uploaded files
==============
The message upload tree (``UploadedFile`` leaves inside dicts and lists)
is converted into the same shape made of native ``uploads.UploadedFile``
objects. Trees deeper than ``MAX_NESTING_DEPTH`` raise ``NestingDepthError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from ..cookies import Cookie, unsign_cookie_value
from ..datastructures import HeaderCollection
from ..exceptions import BodyParseError, BridgeError, ConfigurationError, NestingDepthError
from ..messages import ServerRequest
from ..messages import UploadedFile as MessageUploadedFile
from ..parsers import ParserRegistry, parse_query
from ..uploads import MAX_NESTING_DEPTH, UploadedFile

__all__ = ["RequestAdapter", "RequestContext"]

logger = logging.getLogger("genro_bridge.adapters")

_SAFE_OVERRIDE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


@dataclass
class RequestContext:
    """Per-request input tables. ``None`` means "not loaded yet"."""

    query: dict[str, Any] | None = None
    post: dict[str, Any] | None = None
    cookies: dict[str, Cookie] | None = None
    files: dict[str, Any] | None = None
    server: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def clear(self) -> None:
        self.query = None
        self.post = None
        self.cookies = None
        self.files = None
        self.server = None
        self.extra.clear()


class RequestAdapter:
    """Read native request data out of an inbound ``ServerRequest``.

    Args:
        message: The inbound message. Replaced internally once the body
            has been parsed.
        parsers: Body parsers; ``None`` leaves bodies unparsed.
    """

    __slots__ = ("message", "parsers", "context")

    def __init__(self, message: ServerRequest, parsers: ParserRegistry | None = None) -> None:
        self.message = message
        self.parsers = parsers
        self.context = RequestContext()

    # ------------------------------------------------------------------ body

    def get_parsed_body(self) -> Any:
        """Structured body, parsing the raw stream on first access."""
        if self.message.parsed_body is None:
            self._parse_body()
        return self.message.parsed_body

    def _parse_body(self) -> None:
        content_type = self.message.get_header_line("Content-Type")
        parser = self.parsers.resolve(content_type) if self.parsers is not None else None
        if parser is None:
            return
        raw_body = self.get_raw_body()
        try:
            parsed = parser.parse(raw_body, content_type)
        except BridgeError:
            raise
        except Exception as exc:
            raise BodyParseError(str(exc)) from exc
        logger.debug("Parsed %d byte body as %r", len(raw_body), content_type)
        self.message = self.message.with_parsed_body(parsed)

    def get_body_params(self, method_param: str = "_method") -> dict[str, Any]:
        """Parsed body without the method override parameter."""
        if self.context.post is None:
            parsed = self.get_parsed_body()
            if isinstance(parsed, Mapping):
                params = dict(parsed)
                params.pop(method_param, None)
            elif parsed is None:
                params = {}
            else:
                params = parsed
            self.context.post = params
        return self.context.post

    def get_raw_body(self) -> bytes:
        body = self.message.body
        if body.is_seekable():
            body.rewind()
        return body.get_contents()

    # ---------------------------------------------------------------- method

    def get_method(self, method_param: str = "_method") -> str:
        """Request method honoring body and header overrides.

        A ``_method`` body field wins unless it names a safe method, then
        the ``X-Http-Method-Override`` header, then the message method.
        """
        parsed = self.get_parsed_body()
        if isinstance(parsed, Mapping):
            override = parsed.get(method_param)
            if isinstance(override, str):
                override = override.upper()
                if override not in _SAFE_OVERRIDE_METHODS:
                    return override
        header = self.message.headers.get("X-Http-Method-Override")
        if header:
            return header.upper()
        return self.message.method

    # --------------------------------------------------------------- headers

    def get_headers(self) -> HeaderCollection:
        collection = HeaderCollection()
        for name, values in self.message.headers.as_dict().items():
            collection.set(name, ", ".join(values))
        return collection

    # --------------------------------------------------------------- cookies

    def get_cookie_params(self) -> dict[str, str]:
        return dict(self.message.cookie_params)

    def get_cookies(self, enable_validation: bool = False, validation_key: str = "") -> dict[str, Cookie]:
        """Native cookies; signed values are verified when validation is on.

        Tampered values and values signed for another cookie name are
        dropped silently, as are empty values.

        Raises:
            ConfigurationError: Validation enabled with an empty key.
        """
        if enable_validation and not validation_key:
            raise ConfigurationError("Cookie validation key must be provided.")

        cookies: dict[str, Cookie] = {}
        for name, value in self.message.cookie_params.items():
            if not isinstance(value, str) or value == "":
                continue
            if enable_validation:
                unsigned = unsign_cookie_value(name, value, validation_key)
                if unsigned is None:
                    logger.debug("Discarded cookie %r with invalid signature", name)
                    continue
                value = unsigned
            cookies[name] = Cookie(name=name, value=value, expire=None)
        self.context.cookies = cookies
        return cookies

    # ----------------------------------------------------------- query / url

    def get_query_params(self) -> dict[str, Any]:
        if self.context.query is None:
            params = self.message.query_params
            if not params and self.message.query_string:
                self.context.query = parse_query(self.message.query_string)
            else:
                self.context.query = dict(params)
        return self.context.query

    def get_query_string(self) -> str:
        return self.message.query_string

    def get_script_url(self) -> str:
        """``SCRIPT_NAME`` when the host provides one, else ``""``.

        Worker runtimes have no script file; an empty script URL keeps the
        framework from prefixing it to every generated route.
        """
        script_name = self.message.server_params.get("SCRIPT_NAME")
        return script_name if isinstance(script_name, str) else ""

    def get_server_params(self) -> dict[str, Any]:
        if self.context.server is None:
            self.context.server = dict(self.message.server_params)
        return self.context.server

    def get_url(self) -> str:
        url = self.message.path
        query = self.message.query_string
        if query:
            url += "?" + query
        return url

    # ----------------------------------------------------------------- files

    def get_uploaded_files(self) -> dict[str, Any]:
        """Native ``UploadedFile`` tree mirroring the message upload tree."""
        if self.context.files is None:
            self.context.files = {
                name: self._convert_files(value, 1)
                for name, value in self.message.uploaded_files.items()
                if isinstance(value, (MessageUploadedFile, Mapping, list, tuple))
            }
        return self.context.files

    def _convert_files(self, value: Any, depth: int) -> Any:
        if depth > MAX_NESTING_DEPTH:
            raise NestingDepthError(MAX_NESTING_DEPTH)
        if isinstance(value, MessageUploadedFile):
            return UploadedFile.from_message(value)
        if isinstance(value, Mapping):
            return {
                key: self._convert_files(item, depth + 1)
                for key, item in value.items()
                if isinstance(item, (MessageUploadedFile, Mapping, list, tuple))
            }
        return [
            self._convert_files(item, depth + 1)
            for item in value
            if isinstance(item, (MessageUploadedFile, Mapping, list, tuple))
        ]

    # ------------------------------------------------------------- lifecycle

    def clear(self) -> None:
        """Discard every per-request table."""
        self.context.clear()
