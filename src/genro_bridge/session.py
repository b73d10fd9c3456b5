# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Session component.

A ``Session`` is request-scoped: the worker builds a fresh one for every
request, opens it with the id found in the request cookie and closes it
when the response is converted. Session data lives in a ``SessionStore``
that outlives requests; the default ``MemorySessionStore`` keeps it in the
worker process, which is enough for a single worker and for tests.

Lifecycle within one request::

    open(id) ──► get/set ──► close()      data written back to the store
                      └──► destroy()      data and id dropped
"""

from __future__ import annotations

import secrets
from typing import Any, Protocol, runtime_checkable

__all__ = ["MemorySessionStore", "Session", "SessionStore"]


@runtime_checkable
class SessionStore(Protocol):
    """Persistence interface for session data.

    Any object with these methods can back a ``Session``.
    """

    def read(self, session_id: str) -> dict[str, Any] | None:
        """Stored data for ``session_id``, or None when unknown."""
        ...

    def write(self, session_id: str, data: dict[str, Any]) -> None:
        """Store a copy of ``data`` under ``session_id``."""
        ...

    def delete(self, session_id: str) -> None:
        """Forget ``session_id``; unknown ids are ignored."""
        ...


class MemorySessionStore:
    """In-process store."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Any]] = {}

    def read(self, session_id: str) -> dict[str, Any] | None:
        data = self._data.get(session_id)
        return dict(data) if data is not None else None

    def write(self, session_id: str, data: dict[str, Any]) -> None:
        self._data[session_id] = dict(data)

    def delete(self, session_id: str) -> None:
        self._data.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._data)


_default_store = MemorySessionStore()


class Session:
    """Server side session bound to one request.

    Args:
        name: Cookie name carrying the session id.
        store: Data store; defaults to a process-wide ``MemorySessionStore``.
        cookie_params: ``path``, ``domain``, ``secure``, ``httponly`` and
            ``samesite`` for the session cookie.
    """

    def __init__(
        self,
        name: str = "GENROSESSID",
        store: SessionStore | None = None,
        cookie_params: dict[str, Any] | None = None,
    ) -> None:
        self.name = name
        self.store = store if store is not None else _default_store
        self.cookie_params: dict[str, Any] = {"path": "/", "httponly": True, "samesite": "Lax"}
        self.cookie_params.update(cookie_params or {})
        self._id = ""
        self._data: dict[str, Any] = {}
        self._active = False

    @property
    def id(self) -> str:
        return self._id

    @id.setter
    def id(self, value: str) -> None:
        self._id = value or ""

    @property
    def is_active(self) -> bool:
        return self._active

    def open(self, session_id: str | None = None) -> None:
        """Activate the session, loading ``session_id`` or starting a new one."""
        if self._active:
            return
        if session_id:
            self._id = session_id
        stored = self.store.read(self._id) if self._id else None
        if stored is None:
            if not self._id:
                self._id = secrets.token_urlsafe(24)
            stored = {}
        self._data = stored
        self._active = True

    def close(self) -> None:
        """Write data back and deactivate."""
        if self._active:
            self.store.write(self._id, self._data)
            self._active = False

    def destroy(self) -> None:
        """Drop data and id."""
        if self._id:
            self.store.delete(self._id)
        self._data = {}
        self._id = ""
        self._active = False

    def regenerate_id(self) -> str:
        old_id = self._id
        self._id = secrets.token_urlsafe(24)
        if old_id:
            self.store.delete(old_id)
        return self._id

    def get(self, key: str, default: Any = None) -> Any:
        self.open()
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.open()
        self._data[key] = value

    def remove(self, key: str) -> Any:
        self.open()
        return self._data.pop(key, None)

    def has(self, key: str) -> bool:
        self.open()
        return key in self._data

    def __repr__(self) -> str:
        return f"Session(name={self.name!r}, active={self._active})"
