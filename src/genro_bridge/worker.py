# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Worker loop driving an ``Application`` for a persistent worker runtime.

The runtime supplies inbound messages and drains outbound ones; the loop
stops when the runtime has no more messages or when the worker should be
recycled, and reports why through a ``ServerExitCode``::

    loop = WorkerLoop(app, max_requests=1000)
    exit_code = loop.run(runtime.wait_request, runtime.respond)
    sys.exit(exit_code)
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from .application import Application
    from .messages import Response, ServerRequest

__all__ = ["ServerExitCode", "WorkerLoop"]

logger = logging.getLogger("genro_bridge.worker")


class ServerExitCode(IntEnum):
    """Process exit codes understood by worker managers."""

    OK = 0
    REQUEST_LIMIT = 1
    SHUTDOWN = 2


class WorkerLoop:
    """Pull, handle and respond until told to stop.

    Args:
        app: The application serving each message.
        max_requests: Recycle after this many requests; ``None`` is unlimited.
    """

    __slots__ = ("app", "max_requests", "_stopping")

    def __init__(self, app: Application, max_requests: int | None = None) -> None:
        self.app = app
        self.max_requests = max_requests
        self._stopping = False

    def stop(self) -> None:
        """Finish the current request, then return ``ServerExitCode.OK``."""
        self._stopping = True

    def run(
        self,
        next_message: Callable[[], ServerRequest | None],
        respond: Callable[[Response], None],
    ) -> ServerExitCode:
        while not self._stopping:
            message = next_message()
            if message is None:
                logger.info("No more requests after %d; shutting down", self.app.state.request_count)
                return ServerExitCode.SHUTDOWN

            respond(self.app.handle(message))

            if self.app.state.should_recycle:
                return ServerExitCode.REQUEST_LIMIT
            if self.max_requests is not None and self.app.state.request_count >= self.max_requests:
                logger.info("Request limit %d reached", self.max_requests)
                return ServerExitCode.REQUEST_LIMIT
        return ServerExitCode.OK
