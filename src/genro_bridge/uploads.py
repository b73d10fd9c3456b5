# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Native uploaded files.

``UploadedFile`` is what framework code sees for a file form field. Besides
the instance API (``save_as``, ``base_name``, ``extension``) the class keeps
a registry of the current request's files keyed by their form names::

    avatar                  single file
    docs[0], docs[1]        multi-file field
    profile[photo][front]   nested field

The registry is loaded lazily from the request adapter installed with
``set_adapter()``, which also empties it, so every request starts without
the previous request's files. ``reset()`` closes open streams and empties
the registry; the worker calls it at the end of every request unless
``reset_uploaded_files`` is disabled, in which case the last request's files
stay registered with open streams after it ends. The next attach drops
them from the registry without closing their streams.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar, Mapping

from .messages import UPLOAD_ERR_NO_FILE, UPLOAD_ERR_OK, Stream
from .messages import UploadedFile as MessageUploadedFile

if TYPE_CHECKING:
    from .adapters.request_adapter import RequestAdapter

__all__ = ["MAX_NESTING_DEPTH", "UploadedFile"]

MAX_NESTING_DEPTH = 10


class UploadedFile:
    """One uploaded file as seen by application code.

    Attributes:
        name: Client file name.
        temp_name: Path of the temporary file, ``""`` for in-memory uploads.
        type: Client media type.
        size: Size in bytes.
        error: Upload error code (``0`` means success).
        stream: Content stream, ``None`` for failed uploads.
    """

    __slots__ = ("name", "temp_name", "type", "size", "error", "full_path", "stream")

    _files: ClassVar[dict[str, UploadedFile]] = {}
    _adapter: ClassVar[RequestAdapter | None] = None

    def __init__(
        self,
        name: str = "",
        temp_name: str = "",
        type: str = "",
        size: int = 0,
        error: int = UPLOAD_ERR_OK,
        full_path: str | None = None,
        stream: Stream | None = None,
    ) -> None:
        self.name = name
        self.temp_name = temp_name
        self.type = type
        self.size = size
        self.error = error
        self.full_path = full_path
        self.stream = stream

    @classmethod
    def from_message(cls, file: MessageUploadedFile) -> UploadedFile:
        if file.error != UPLOAD_ERR_OK:
            return cls(
                name=file.client_filename or "",
                type=file.client_media_type or "",
                size=int(file.size or 0),
                error=file.error,
            )
        return cls(
            name=file.client_filename or "",
            temp_name=file.stream.uri or "",
            type=file.client_media_type or "",
            size=int(file.size or 0),
            error=file.error,
            stream=file.stream,
        )

    # ----------------------------------------------------------- instance api

    @property
    def has_error(self) -> bool:
        return self.error != UPLOAD_ERR_OK

    @property
    def base_name(self) -> str:
        """File name without directory and extension."""
        return Path(self.name.replace("\\", "/")).stem

    @property
    def extension(self) -> str:
        """Lowercase extension without the dot."""
        return Path(self.name).suffix.lstrip(".").lower()

    def save_as(self, file: str | os.PathLike[str], delete_temp_file: bool = True) -> bool:
        """Write the upload to ``file``. Returns ``False`` for failed uploads."""
        if self.has_error:
            return False
        target = Path(file)
        if self.stream is not None and not self.stream.closed:
            with target.open("wb") as out:
                out.write(self.stream.to_bytes())
        elif self.temp_name:
            shutil.copyfile(self.temp_name, target)
        else:
            return False
        if delete_temp_file and self.temp_name and os.path.isfile(self.temp_name):
            os.unlink(self.temp_name)
        return True

    def __repr__(self) -> str:
        return f"UploadedFile(name={self.name!r}, size={self.size}, error={self.error})"

    # ----------------------------------------------------------- registry api

    @classmethod
    def set_adapter(cls, adapter: RequestAdapter) -> None:
        cls._adapter = adapter
        cls._files = {}

    @classmethod
    def reset(cls) -> None:
        """Close registered streams and forget the current request's files."""
        for upload in cls._files.values():
            if upload.stream is not None:
                upload.stream.close()
        cls._files = {}
        cls._adapter = None

    @classmethod
    def get_instance_by_name(cls, name: str) -> UploadedFile | None:
        return cls._load_files().get(name)

    @classmethod
    def get_instances_by_name(cls, name: str) -> list[UploadedFile]:
        """Files registered under ``name`` or any ``name[...]`` sub-key."""
        files = cls._load_files()
        if name.endswith("[]"):
            name = name[:-2]
        if name in files:
            return [files[name]]
        prefix = f"{name}["
        return [upload for key, upload in files.items() if key.startswith(prefix)]

    @classmethod
    def _load_files(cls) -> dict[str, UploadedFile]:
        if not cls._files and cls._adapter is not None:
            files: dict[str, UploadedFile] = {}
            for name, value in cls._adapter.get_uploaded_files().items():
                _flatten(name, value, files)
            cls._files = files
        return cls._files


def _flatten(name: str, value: Any, out: dict[str, UploadedFile]) -> None:
    if isinstance(value, UploadedFile):
        if value.error != UPLOAD_ERR_NO_FILE:
            out[name] = value
        return
    items = value.items() if isinstance(value, Mapping) else enumerate(value)
    for key, item in items:
        _flatten(f"{name}[{key}]", item, out)
