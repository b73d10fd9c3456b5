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
ASGI worker entry point.

Purpose
=======
``BridgeAsgiApp`` runs an ``Application`` behind any ASGI server. The
server owns the process; the bridge turns each ``http`` connection into a
``ServerRequest``, hands it to the application and emits the outbound
message through a ``BufferedOutput``.

Requests are serialized: the application serves one request at a time,
so concurrent connections wait on a lock. The synchronous
``Application.handle`` runs through ``smartasync`` off the event loop.

Example::

    from genro_bridge import Application, BridgeAsgiApp, BridgeConfig

    def dispatcher(request, response):
        return {"path": request.get_url()}

    config = BridgeConfig()
    app = BridgeAsgiApp(Application(dispatcher, config), buffer_length=config.buffer_length)
    # uvicorn module:app

Lifespan
========
``lifespan.startup`` and ``lifespan.shutdown`` are acknowledged. When the
memory watchdog asks for recycling, the flag stays on
``app.application.state.should_recycle`` for the process manager to read.
"""

from __future__ import annotations

import asyncio
import logging

from smartasync import smartasync

from .application import Application
from .creator import ServerRequestCreator
from .emitter import BufferedOutput, ResponseEmitter
from .messages import Response
from .types import Receive, Scope, Send

__all__ = ["BridgeAsgiApp"]

logger = logging.getLogger("genro_bridge.asgi")


class BridgeAsgiApp:
    """ASGI application wrapping a long-lived ``Application``.

    Args:
        application: The worker application.
        creator: Builds inbound messages from the scope.
        buffer_length: Chunk size for streamed bodies; ``None`` is atomic.
    """

    __slots__ = ("application", "creator", "buffer_length", "_lock")

    def __init__(
        self,
        application: Application,
        creator: ServerRequestCreator | None = None,
        buffer_length: int | None = None,
    ) -> None:
        self.application = application
        self.creator = creator or ServerRequestCreator(application.factory)
        self.buffer_length = buffer_length
        self._lock = asyncio.Lock()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        scope_type = scope["type"]
        if scope_type == "lifespan":
            await self.lifespan(scope, receive, send)
        elif scope_type == "http":
            await self.http(scope, receive, send)
        else:
            logger.warning("Unsupported scope type '%s'", scope_type)

    async def lifespan(self, scope: Scope, receive: Receive, send: Send) -> None:  # noqa: ARG002
        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                logger.info("Bridge worker started")
                await send({"type": "lifespan.startup.complete"})
            elif msg_type == "lifespan.shutdown":
                logger.info(
                    "Bridge worker stopping after %d requests",
                    self.application.state.request_count,
                )
                await send({"type": "lifespan.shutdown.complete"})
                return

    async def http(self, scope: Scope, receive: Receive, send: Send) -> None:
        body = await self._read_body(receive)
        message = self.creator.from_scope(scope, body)
        async with self._lock:
            response: Response = await smartasync(self.application.handle)(message)

        output = BufferedOutput()
        ResponseEmitter(output, self.buffer_length).emit(response, body=message.method != "HEAD")

        await send({
            "type": "http.response.start",
            "status": output.status_code or response.status_code,
            "headers": [
                (name.lower().encode("latin-1"), value.encode("latin-1"))
                for name, value in output.header_lines
            ],
        })
        await send({"type": "http.response.body", "body": output.body})

    @staticmethod
    async def _read_body(receive: Receive) -> bytes:
        chunks: list[bytes] = []
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                break
            chunks.append(message.get("body", b""))
            more_body = message.get("more_body", False)
        return b"".join(chunks)
