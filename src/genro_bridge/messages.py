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
Immutable HTTP message value objects and their factory.

These are the objects exchanged with wire-level servers and worker
runtimes. They never change after construction: every ``with_*`` method
returns a new instance, mapping fields are frozen behind
``MappingProxyType`` and headers are stored in an immutable ``Headers``.

The only mutable part is the body ``Stream``, a handle over a binary file
object (cursor position included), as for any stream-backed message.

Classes
=======
Stream
    Binary stream handle: read/seek/eof, size, uri.
UploadedFile
    One uploaded file part: stream, size, error code, client name and type.
ServerRequest
    Inbound message: method, uri, headers, body, server/cookie/query params,
    parsed body, uploaded files tree, attributes.
Response
    Outbound message: status code, reason phrase, headers, body.
MessageFactory
    Construction interface used by adapters and creators. Components never
    instantiate messages directly so a host can plug its own factory.

Example::

    factory = MessageFactory()
    response = (
        factory.create_response(201, "Created")
        .with_header("X-Custom", "1")
        .with_body(factory.create_stream(b"ok"))
    )
    response.body.to_bytes()  # b"ok"
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field, replace
from http import HTTPStatus
from pathlib import Path
from types import MappingProxyType
from typing import IO, Any, Iterable, Mapping
from urllib.parse import urlsplit

from .datastructures import Headers
from .exceptions import StreamReadError

__all__ = [
    "MessageFactory",
    "Response",
    "ServerRequest",
    "Stream",
    "UploadedFile",
    "UPLOAD_ERR_OK",
    "UPLOAD_ERR_NO_FILE",
]

UPLOAD_ERR_OK = 0
UPLOAD_ERR_NO_FILE = 4


class Stream:
    """
    Binary stream over a file object.

    Wraps ``io.BytesIO`` for in-memory content or a real file opened in
    binary mode. ``eof()`` is position based for seekable files and becomes
    true after a short read otherwise.
    """

    __slots__ = ("_file", "_uri", "_eof")

    def __init__(self, file: IO[bytes] | None, uri: str | None = None) -> None:
        self._file = file
        self._uri = uri
        self._eof = False

    @property
    def uri(self) -> str | None:
        """Filesystem path backing the stream, ``None`` for in-memory streams."""
        if self._uri is not None:
            return self._uri
        name = getattr(self._file, "name", None)
        return name if isinstance(name, str) else None

    @property
    def closed(self) -> bool:
        return self._file is None or bool(getattr(self._file, "closed", False))

    def is_readable(self) -> bool:
        if self.closed:
            return False
        readable = getattr(self._file, "readable", None)
        return bool(readable()) if readable is not None else hasattr(self._file, "read")

    def is_seekable(self) -> bool:
        if self.closed:
            return False
        seekable = getattr(self._file, "seekable", None)
        return bool(seekable()) if seekable is not None else False

    @property
    def size(self) -> int | None:
        """Total size in bytes, ``None`` when it cannot be determined."""
        if not self.is_seekable():
            return None
        assert self._file is not None
        position = self._file.tell()
        end = self._file.seek(0, io.SEEK_END)
        self._file.seek(position)
        return end

    def tell(self) -> int:
        if self._file is None:
            raise StreamReadError("Stream is detached.")
        return self._file.tell()

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> None:
        if not self.is_seekable():
            raise StreamReadError("Stream is not seekable.")
        assert self._file is not None
        self._file.seek(offset, whence)
        self._eof = False

    def rewind(self) -> None:
        self.seek(0)

    def eof(self) -> bool:
        if self.closed:
            return True
        size = self.size
        if size is not None:
            return self.tell() >= size
        return self._eof

    def read(self, length: int) -> bytes:
        """Read up to ``length`` bytes."""
        if not self.is_readable():
            raise StreamReadError("Stream is not readable.")
        assert self._file is not None
        try:
            data = self._file.read(length)
        except (OSError, ValueError) as exc:
            raise StreamReadError(f"Unable to read from stream: {exc}") from exc
        if data is None:
            raise StreamReadError("Unable to read from stream: no data available.")
        if len(data) < length:
            self._eof = True
        return data

    def get_contents(self) -> bytes:
        """Read everything from the current position to the end."""
        if not self.is_readable():
            raise StreamReadError("Stream is not readable.")
        assert self._file is not None
        try:
            data = self._file.read()
        except (OSError, ValueError) as exc:
            raise StreamReadError(f"Unable to read from stream: {exc}") from exc
        if data is None:
            raise StreamReadError("Unable to read from stream: no data available.")
        self._eof = True
        return data

    def to_bytes(self) -> bytes:
        """Whole content, rewinding first when possible."""
        if self.closed:
            return b""
        if self.is_seekable():
            self.rewind()
        return self.get_contents()

    def detach(self) -> IO[bytes] | None:
        """Separate and return the underlying file; the stream becomes unusable."""
        file, self._file = self._file, None
        return file

    def close(self) -> None:
        file = self.detach()
        if file is not None:
            file.close()

    def __repr__(self) -> str:
        return f"Stream(uri={self.uri!r}, closed={self.closed})"


def _frozen(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class UploadedFile:
    """One uploaded file as carried by an inbound message."""

    stream: Stream
    size: int | None = None
    error: int = UPLOAD_ERR_OK
    client_filename: str | None = None
    client_media_type: str | None = None


class _HeadersMixin:
    """Header accessors shared by request and response messages."""

    headers: Headers

    def get_header(self, name: str) -> list[str]:
        return self.headers.getlist(name)

    def get_header_line(self, name: str) -> str:
        return self.headers.get_line(name)

    def has_header(self, name: str) -> bool:
        return name in self.headers

    def with_header(self, name: str, value: str | Iterable[str]) -> Any:
        return replace(self, headers=self.headers.with_header(name, value))  # type: ignore[type-var]

    def with_added_header(self, name: str, value: str | Iterable[str]) -> Any:
        return replace(self, headers=self.headers.with_added_header(name, value))  # type: ignore[type-var]

    def without_header(self, name: str) -> Any:
        return replace(self, headers=self.headers.without_header(name))  # type: ignore[type-var]

    def with_body(self, body: Stream) -> Any:
        return replace(self, body=body)  # type: ignore[type-var]


@dataclass(frozen=True)
class ServerRequest(_HeadersMixin):
    """Immutable inbound HTTP request."""

    method: str = "GET"
    uri: str = "/"
    protocol_version: str = "1.1"
    headers: Headers = field(default_factory=Headers)
    body: Stream = field(default_factory=lambda: Stream(io.BytesIO()))
    server_params: Mapping[str, Any] = field(default_factory=dict)
    cookie_params: Mapping[str, str] = field(default_factory=dict)
    query_params: Mapping[str, Any] = field(default_factory=dict)
    parsed_body: Any = None
    uploaded_files: Mapping[str, Any] = field(default_factory=dict)
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        for name in ("server_params", "cookie_params", "query_params", "uploaded_files", "attributes"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))

    @property
    def path(self) -> str:
        return urlsplit(self.uri).path or "/"

    @property
    def query_string(self) -> str:
        return urlsplit(self.uri).query

    def with_method(self, method: str) -> ServerRequest:
        return replace(self, method=method)

    def with_uri(self, uri: str) -> ServerRequest:
        return replace(self, uri=uri)

    def with_parsed_body(self, data: Any) -> ServerRequest:
        return replace(self, parsed_body=data)

    def with_cookie_params(self, cookies: Mapping[str, str]) -> ServerRequest:
        return replace(self, cookie_params=cookies)

    def with_query_params(self, query: Mapping[str, Any]) -> ServerRequest:
        return replace(self, query_params=query)

    def with_uploaded_files(self, files: Mapping[str, Any]) -> ServerRequest:
        return replace(self, uploaded_files=files)

    def with_attribute(self, name: str, value: Any) -> ServerRequest:
        return replace(self, attributes={**self.attributes, name: value})


@dataclass(frozen=True)
class Response(_HeadersMixin):
    """Immutable outbound HTTP response."""

    status_code: int = 200
    reason_phrase: str = ""
    protocol_version: str = "1.1"
    headers: Headers = field(default_factory=Headers)
    body: Stream = field(default_factory=lambda: Stream(io.BytesIO()))

    def with_status(self, status_code: int, reason_phrase: str = "") -> Response:
        return replace(self, status_code=status_code, reason_phrase=reason_phrase)


def _default_reason(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return ""


class MessageFactory:
    """Default construction interface for messages, streams and uploads."""

    __slots__ = ()

    def create_request(
        self,
        method: str,
        uri: str,
        server_params: Mapping[str, Any] | None = None,
    ) -> ServerRequest:
        return ServerRequest(method=method, uri=uri, server_params=server_params or {})

    def create_response(self, status_code: int = 200, reason_phrase: str = "") -> Response:
        return Response(status_code=status_code, reason_phrase=reason_phrase or _default_reason(status_code))

    def create_stream(self, content: bytes | str = b"") -> Stream:
        if isinstance(content, str):
            content = content.encode("utf-8")
        return Stream(io.BytesIO(content))

    def create_stream_from_file(self, filename: str | Path, mode: str = "rb") -> Stream:
        try:
            file = open(filename, mode)  # noqa: SIM115 - owned by the stream
        except OSError as exc:
            raise StreamReadError(f"Failed to create stream from file '{filename}'.") from exc
        return Stream(file, uri=str(filename))

    def create_stream_from_resource(self, handle: IO[bytes]) -> Stream:
        return Stream(handle)

    def create_uploaded_file(
        self,
        stream: Stream,
        size: int | None = None,
        error: int = UPLOAD_ERR_OK,
        client_filename: str | None = None,
        client_media_type: str | None = None,
    ) -> UploadedFile:
        return UploadedFile(
            stream=stream,
            size=size if size is not None else stream.size,
            error=error,
            client_filename=client_filename,
            client_media_type=client_media_type,
        )
