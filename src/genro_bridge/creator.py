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
Build inbound messages from host request data.

ServerRequestCreator
====================
``from_environ(environ, files)``
    Classic per-request execution: a WSGI/CGI environ becomes a
    ``ServerRequest``. ``HTTP_*`` keys and ``CONTENT_TYPE``/``CONTENT_LENGTH``
    become headers, ``HTTP_COOKIE`` the cookie params, ``QUERY_STRING`` the
    query params, ``wsgi.input`` the body.

``from_scope(scope, body)``
    ASGI: the scope and the already received body. Server params carry the
    legacy variables framework code expects::

        REQUEST_METHOD  REQUEST_URI  QUERY_STRING  SERVER_PROTOCOL
        REMOTE_ADDR  REMOTE_PORT  SERVER_NAME  SERVER_PORT  HTTPS
        REQUEST_TIME  REQUEST_TIME_FLOAT

UploadedFileCreator
===================
Turns file specifications into message ``UploadedFile`` objects. A spec is
``{"tmp_name", "size", "error", "name"?, "type"?}``. Multi-file fields use
parallel containers, the classic form-upload layout::

    {
        "tmp_name": ["/tmp/a", "/tmp/b"],
        "size": [10, 20],
        "error": [0, 0],
        "name": ["a.txt", "b.txt"],
    }
    # -> [UploadedFile(a.txt), UploadedFile(b.txt)]

Shapes must match at every level and trees deeper than
``MAX_NESTING_DEPTH`` are rejected.
"""

from __future__ import annotations

import io
import logging
import time
from dataclasses import replace
from typing import Any, Iterable, Iterator, Mapping
from urllib.parse import unquote_plus

from .datastructures import headers_from_scope, normalize_header_name
from .exceptions import FileSpecError, NestingDepthError
from .messages import UPLOAD_ERR_OK, MessageFactory, ServerRequest, Stream, UploadedFile
from .parsers import FormParser, media_type, parse_query
from .uploads import MAX_NESTING_DEPTH

__all__ = ["ServerRequestCreator", "UploadedFileCreator", "parse_cookie_header"]

logger = logging.getLogger("genro_bridge.creator")

_REQUIRED_KEYS = ("tmp_name", "size", "error")
_OPTIONAL_KEYS = ("name", "type")
_FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"


def parse_cookie_header(header: str | None) -> dict[str, str]:
    """``"a=1; b=x%20y"`` -> ``{"a": "1", "b": "x y"}``. First occurrence wins."""
    cookies: dict[str, str] = {}
    if not header:
        return cookies
    for chunk in header.split(";"):
        name, sep, value = chunk.partition("=")
        name = name.strip()
        if not sep or not name:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        cookies.setdefault(unquote_plus(name), unquote_plus(value))
    return cookies


def _items(container: Any) -> Iterator[tuple[Any, Any]]:
    if isinstance(container, Mapping):
        return iter(container.items())
    return enumerate(container)


def _get(container: Any, key: Any) -> Any:
    if isinstance(container, Mapping):
        return container.get(key)
    if isinstance(container, (list, tuple)) and isinstance(key, int) and 0 <= key < len(container):
        return container[key]
    return None


def _is_container(value: Any) -> bool:
    return isinstance(value, (Mapping, list, tuple))


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class UploadedFileCreator:
    """Create message uploaded files from file specifications."""

    __slots__ = ("factory",)

    def __init__(self, factory: MessageFactory | None = None) -> None:
        self.factory = factory or MessageFactory()

    def create_from_array(self, spec: Mapping[str, Any]) -> UploadedFile:
        """One file from a single-file spec.

        Raises:
            FileSpecError: Missing key or wrong value type.
            StreamReadError: The temporary file cannot be opened.
        """
        self._validate_file_spec(spec)
        return self._create_file(spec["tmp_name"], spec["size"], spec["error"], spec.get("name"), spec.get("type"))

    def create_from_globals(self, files: Mapping[str, Any]) -> dict[str, Any]:
        """Upload tree for every field of ``files``."""
        return {name: self._process_input(value) for name, value in files.items()}

    def _process_input(self, value: Any) -> Any:
        if isinstance(value, UploadedFile):
            return value
        if not isinstance(value, Mapping):
            raise FileSpecError(f"Invalid file specification of type {type(value).__name__}.")
        if not all(key in value for key in _REQUIRED_KEYS):
            return self.create_from_globals(value)
        if _is_container(value["tmp_name"]):
            return self._create_multiple(value)
        return self.create_from_array(value)

    def _create_multiple(self, spec: Mapping[str, Any]) -> Any:
        for key in _REQUIRED_KEYS:
            if not _is_container(spec.get(key)):
                raise FileSpecError(f"Multi-file spec '{key}' must be a list or mapping.")
        for key in _OPTIONAL_KEYS:
            if spec.get(key) is not None and not _is_container(spec[key]):
                raise FileSpecError(f"Multi-file spec '{key}' must be a list, mapping or None.")
        return self.build_file_tree(
            spec["tmp_name"],
            spec["size"],
            spec["error"],
            spec.get("name") or {},
            spec.get("type") or {},
        )

    def build_file_tree(
        self,
        tmp_names: Any,
        sizes: Any,
        errors: Any,
        names: Any = None,
        types: Any = None,
        depth: int = 0,
    ) -> Any:
        """Walk parallel containers building a tree of the same shape."""
        if depth > MAX_NESTING_DEPTH:
            raise NestingDepthError(MAX_NESTING_DEPTH)
        names = names if names is not None else {}
        types = types if types is not None else {}

        tree: dict[Any, Any] = {}
        for key, tmp_name in _items(tmp_names):
            size = _get(sizes, key)
            error = _get(errors, key)
            name = _get(names, key)
            type_ = _get(types, key)
            if _is_container(tmp_name):
                if not _is_container(size):
                    raise FileSpecError(f"Mismatched array structure for sizes at key '{key}'.")
                if not _is_container(error):
                    raise FileSpecError(f"Mismatched array structure for errors at key '{key}'.")
                tree[key] = self.build_file_tree(
                    tmp_name,
                    size,
                    error,
                    name if _is_container(name) else {},
                    type_ if _is_container(type_) else {},
                    depth + 1,
                )
            else:
                if not _is_int(size):
                    raise FileSpecError(f"File size at key '{key}' must be an integer.")
                if not _is_int(error):
                    raise FileSpecError(f"File error at key '{key}' must be an integer.")
                tree[key] = self._create_file(
                    tmp_name,
                    size,
                    error,
                    name if isinstance(name, str) else None,
                    type_ if isinstance(type_, str) else None,
                )
        if isinstance(tmp_names, (list, tuple)):
            return [tree[key] for key in sorted(tree)]
        return tree

    def _create_file(self, tmp_name: str, size: int, error: int, name: str | None, type_: str | None) -> UploadedFile:
        if error != UPLOAD_ERR_OK and not tmp_name:
            stream = self.factory.create_stream(b"")
        else:
            stream = self.factory.create_stream_from_file(tmp_name)
        return self.factory.create_uploaded_file(stream, size, error, name, type_)

    @staticmethod
    def _validate_file_spec(spec: Mapping[str, Any]) -> None:
        for key in _REQUIRED_KEYS:
            if key not in spec:
                raise FileSpecError(f"Missing required key '{key}' in file spec.")
        if not isinstance(spec["tmp_name"], str):
            raise FileSpecError("File spec 'tmp_name' must be a string.")
        if not _is_int(spec["size"]):
            raise FileSpecError("File spec 'size' must be an integer.")
        if not _is_int(spec["error"]):
            raise FileSpecError("File spec 'error' must be an integer.")
        for key in _OPTIONAL_KEYS:
            if spec.get(key) is not None and not isinstance(spec[key], str):
                raise FileSpecError(f"File spec '{key}' must be a string or None.")


class ServerRequestCreator:
    """Create ``ServerRequest`` messages from WSGI environs or ASGI scopes."""

    __slots__ = ("factory",)

    def __init__(self, factory: MessageFactory | None = None) -> None:
        self.factory = factory or MessageFactory()

    def from_environ(
        self,
        environ: Mapping[str, Any],
        files: Mapping[str, Any] | None = None,
    ) -> ServerRequest:
        method = environ.get("REQUEST_METHOD") or "GET"
        uri = environ.get("REQUEST_URI")
        if not isinstance(uri, str) or not uri:
            uri = (environ.get("SCRIPT_NAME") or "") + (environ.get("PATH_INFO") or "/")
            if environ.get("QUERY_STRING"):
                uri += "?" + environ["QUERY_STRING"]

        server_params = {key: value for key, value in environ.items() if isinstance(value, (str, int, float))}
        request = self.factory.create_request(method, uri, server_params)
        request = self._with_headers(request, self._extract_headers(environ))

        body = self._read_input(environ)
        request = request.with_body(body)
        request = request.with_cookie_params(parse_cookie_header(environ.get("HTTP_COOKIE")))
        request = request.with_query_params(parse_query(environ.get("QUERY_STRING") or ""))

        content_type = environ.get("CONTENT_TYPE") or ""
        if media_type(content_type) == _FORM_MEDIA_TYPE:
            request = request.with_parsed_body(FormParser().parse(body.to_bytes(), content_type))
            body.rewind()

        if files:
            uploads = UploadedFileCreator(self.factory).create_from_globals(files)
            request = request.with_uploaded_files(uploads)
        return request

    def from_scope(self, scope: Mapping[str, Any], body: bytes = b"") -> ServerRequest:
        method = scope.get("method", "GET")
        path = scope.get("root_path", "") + scope.get("path", "/")
        query_string = scope.get("query_string", b"")
        if isinstance(query_string, bytes):
            query_string = query_string.decode("latin-1")
        uri = f"{path}?{query_string}" if query_string else path
        protocol = scope.get("http_version", "1.1")

        now = time.time()
        server_params: dict[str, Any] = {
            "REQUEST_METHOD": method,
            "REQUEST_URI": uri,
            "QUERY_STRING": query_string,
            "SERVER_PROTOCOL": f"HTTP/{protocol}",
            "REQUEST_TIME": int(now),
            "REQUEST_TIME_FLOAT": now,
        }
        client = scope.get("client")
        if client:
            server_params["REMOTE_ADDR"] = client[0]
            server_params["REMOTE_PORT"] = client[1]
        server = scope.get("server")
        if server:
            server_params["SERVER_NAME"] = server[0]
            if server[1] is not None:
                server_params["SERVER_PORT"] = server[1]
        if scope.get("scheme") in ("https", "wss"):
            server_params["HTTPS"] = "on"

        pairs = headers_from_scope(scope).items()
        request = self.factory.create_request(method, uri, server_params)
        request = self._with_headers(request, pairs)
        request = replace(request, protocol_version=protocol)
        request = request.with_body(self.factory.create_stream(body))
        cookie_header = "; ".join(value for name, value in pairs if name.lower() == "cookie")
        request = request.with_cookie_params(parse_cookie_header(cookie_header))
        return request.with_query_params(parse_query(query_string))

    @staticmethod
    def _with_headers(request: ServerRequest, pairs: Iterable[tuple[str, str]]) -> ServerRequest:
        for name, value in pairs:
            request = request.with_added_header(name, value)
        return request

    @staticmethod
    def _extract_headers(environ: Mapping[str, Any]) -> list[tuple[str, str]]:
        headers = []
        for key, value in environ.items():
            if not isinstance(key, str) or not isinstance(value, str):
                continue
            if key.startswith("HTTP_"):
                headers.append((normalize_header_name(key[5:].replace("_", "-")), value))
            elif key in ("CONTENT_TYPE", "CONTENT_LENGTH") and value:
                headers.append((normalize_header_name(key.replace("_", "-")), value))
        return headers

    def _read_input(self, environ: Mapping[str, Any]) -> Stream:
        stream = environ.get("wsgi.input")
        if stream is None:
            return self.factory.create_stream(b"")
        try:
            length = int(environ.get("CONTENT_LENGTH") or 0)
        except ValueError:
            length = 0
        data = stream.read(length) if length > 0 else b""
        return self.factory.create_stream_from_resource(io.BytesIO(data))

