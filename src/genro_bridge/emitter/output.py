# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Output channel written by the response emitter.

The emitter never touches sockets: it talks to an ``OutputChannel``, the
in-process equivalent of a server API output layer. The channel receives
a status line, header lines and body chunks; how they reach the wire is
the host's business.

``BufferedOutput`` is the channel shipped with genro-bridge. It records
everything in memory and is used by the ASGI entry point and by tests.
Written chunks stay pending until ``flush()``; the first flush sends the
headers, after which no header can be added.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ..exceptions import HeadersAlreadySentError

__all__ = ["BufferedOutput", "OutputChannel"]


@runtime_checkable
class OutputChannel(Protocol):
    """Minimal surface the emitter needs from an output layer."""

    @property
    def headers_sent(self) -> bool: ...

    def buffered_length(self) -> int: ...

    def header(self, line: str, replace: bool = True, status_code: int | None = None) -> None: ...

    def write(self, data: bytes) -> None: ...

    def flush(self) -> None: ...


class BufferedOutput:
    """In-memory output channel.

    Attributes:
        status_line: Last status line received (``"HTTP/1.1 200 OK"``).
        status_code: Status code passed with the status line.
        header_lines: ``(name, value)`` pairs in emission order.
        chunks: Body chunks in write order.
    """

    __slots__ = ("status_line", "status_code", "header_lines", "chunks", "_headers_sent", "_pending")

    def __init__(self) -> None:
        self.status_line: str | None = None
        self.status_code: int | None = None
        self.header_lines: list[tuple[str, str]] = []
        self.chunks: list[bytes] = []
        self._headers_sent = False
        self._pending: list[bytes] = []

    @property
    def headers_sent(self) -> bool:
        return self._headers_sent

    def buffered_length(self) -> int:
        """Bytes written but not yet flushed."""
        return sum(len(chunk) for chunk in self._pending)

    def header(self, line: str, replace: bool = True, status_code: int | None = None) -> None:
        if self._headers_sent:
            raise HeadersAlreadySentError()
        if line.startswith("HTTP/"):
            self.status_line = line
            self.status_code = status_code
            return
        name, _, value = line.partition(":")
        name = name.strip()
        if replace:
            self.header_lines = [(n, v) for n, v in self.header_lines if n.lower() != name.lower()]
        self.header_lines.append((name, value.strip()))
        if status_code is not None:
            self.status_code = status_code

    def write(self, data: bytes) -> None:
        if data:
            self._pending.append(data)

    def flush(self) -> None:
        self._headers_sent = True
        self.chunks.extend(self._pending)
        self._pending.clear()

    @property
    def body(self) -> bytes:
        """Everything written so far, flushed or not."""
        return b"".join(self.chunks) + b"".join(self._pending)

    def get_header(self, name: str) -> list[str]:
        return [value for n, value in self.header_lines if n.lower() == name.lower()]
