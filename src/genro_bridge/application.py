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
Worker lifecycle manager.

One ``Application`` lives for the whole worker process and serves an
unbounded sequence of requests, one at a time. Its job is to make every
request start from a clean slate while keeping expensive components alive.

State machine::

    IDLE ──► ATTACHING ──► HANDLING ──► DETACHING ──► IDLE
                 │              │             ▲
                 └──────────────┴─────────────┘   (errors: DETACHING always runs)

ATTACHING
    Drop request-scoped component instances, reset routing state, attach
    the inbound message to the request, wire the error handler to the new
    response, copy cookie validation settings from request to response,
    bind the session to the id found in the request cookie.
HANDLING
    ``before_request`` handlers, the dispatcher, ``after_request`` handlers.
    Dispatcher exceptions are rendered by the error handler component;
    bridge errors (``BridgeError``) propagate to the host.
DETACHING
    Remove event handlers registered during the request, flush buffered
    logs, clear the request context, reset the upload registry, close and
    discard an active session, drop request-scoped instances, evaluate the
    memory watchdog.

Components
==========
Components are declared by name. A definition is a class, a factory
callable, a ``"module:Class"`` path or a ``{"class": ..., **kwargs}``
dict. Names listed in ``request_scoped_components`` are rebuilt for every
request; every other component is built once and kept.

Example::

    def dispatcher(request, response):
        return {"hello": request.get_query_param("name", "world")}

    app = Application(dispatcher, BridgeConfig(memory_limit="512M"))
    message = app.handle(server_request)
    if app.state.should_recycle:
        ...  # ask the host for a fresh worker
"""

from __future__ import annotations

import importlib
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from .config import BridgeConfig
from .errorhandler import ErrorHandler
from .exceptions import BridgeError, ConfigurationError
from .log import flush_logs, mark_request_start
from .memory import MemoryWatchdog
from .messages import MessageFactory, ServerRequest
from .messages import Response as MessageResponse
from .request import Request
from .response import Response
from .session import Session
from .uploads import UploadedFile

__all__ = [
    "Application",
    "Dispatcher",
    "EVENT_AFTER_REQUEST",
    "EVENT_BEFORE_REQUEST",
    "WorkerPhase",
    "WorkerState",
]

logger = logging.getLogger("genro_bridge.application")

EVENT_BEFORE_REQUEST = "before_request"
EVENT_AFTER_REQUEST = "after_request"

Dispatcher = Callable[[Request, Response], Any]
EventHandler = Callable[["Application"], Any]


class WorkerPhase(str, Enum):
    IDLE = "idle"
    ATTACHING = "attaching"
    HANDLING = "handling"
    DETACHING = "detaching"


@dataclass
class WorkerState:
    """Counters and timestamps kept across requests."""

    phase: WorkerPhase = WorkerPhase.IDLE
    request_count: int = 0
    started_at: float = field(default_factory=time.time)
    request_started_at: float | None = None
    last_memory_usage: int | None = None
    should_recycle: bool = False


def _import_string(path: str) -> Any:
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"Invalid component path '{path}'; expected 'module:Class'.")
    module = importlib.import_module(module_name)
    return getattr(module, attr)


class Application:
    """Long-lived application serving one request at a time.

    Args:
        dispatcher: Called as ``dispatcher(request, response)`` for every
            request. A returned native ``Response`` replaces the current
            one; any other non-``None`` value goes to ``set_result()``.
        config: Bridge configuration; defaults are used when omitted.
        components: Extra or replacement component definitions.
        factory: Message factory used for outbound messages.
        watchdog: Memory watchdog; built from the config when omitted.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        config: BridgeConfig | None = None,
        components: dict[str, Any] | None = None,
        factory: MessageFactory | None = None,
        watchdog: MemoryWatchdog | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.config = config or BridgeConfig()
        self.factory = factory or MessageFactory()
        self.watchdog = watchdog or MemoryWatchdog(self.config.memory_threshold, self.config.memory_limit)
        self.state = WorkerState()
        self.request_scoped = frozenset(self.config.request_scoped_components)
        self.requested_route = ""
        self.requested_params: dict[str, Any] = {}

        self._definitions: dict[str, Any] = {
            **self.core_components(),
            **self.config.components,
            **(components or {}),
        }
        self._instances: dict[str, Any] = {}
        self._handlers: dict[str, list[EventHandler]] = {}
        self._request_handlers: list[tuple[str, EventHandler]] = []

    def core_components(self) -> dict[str, Any]:
        config = self.config
        request: dict[str, Any] = {
            "class": Request,
            "parsers": config.parsers,
            "enable_cookie_validation": config.enable_cookie_validation,
            "cookie_validation_key": config.cookie_validation_key,
            "trusted_hosts": config.trusted_hosts,
            "csrf_header": config.csrf_header,
        }
        if config.secure_headers is not None:
            request["secure_headers"] = config.secure_headers
        components: dict[str, Any] = {
            "request": request,
            "response": {"class": Response},
            "error_handler": {"class": ErrorHandler},
        }
        if config.use_session:
            components["session"] = {"class": Session}
        return components

    # ------------------------------------------------------------ components

    def has(self, name: str) -> bool:
        return name in self._definitions

    def set(self, name: str, definition: Any) -> None:
        """Register or replace a component definition, dropping its instance."""
        self._definitions[name] = definition
        self._instances.pop(name, None)

    def get(self, name: str) -> Any:
        if name not in self._instances:
            if name not in self._definitions:
                raise ConfigurationError(f"Unknown component '{name}'.")
            self._instances[name] = self._build(name, self._definitions[name])
        return self._instances[name]

    def _build(self, name: str, definition: Any) -> Any:
        kwargs: dict[str, Any] = {}
        if isinstance(definition, dict):
            kwargs = {k: v for k, v in definition.items() if k != "class"}
            definition = definition.get("class")
            if definition is None:
                raise ConfigurationError(f"Component '{name}' definition has no 'class'.")
        if isinstance(definition, str):
            definition = _import_string(definition)
        if callable(definition):
            return definition(**kwargs)
        if kwargs:
            raise ConfigurationError(f"Component '{name}' is an instance; it cannot take options.")
        return definition

    def is_request_scoped(self, name: str) -> bool:
        return name in self.request_scoped

    @property
    def request(self) -> Request:
        result: Request = self.get("request")
        return result

    @property
    def response(self) -> Response:
        result: Response = self.get("response")
        return result

    @property
    def error_handler(self) -> ErrorHandler:
        result: ErrorHandler = self.get("error_handler")
        return result

    @property
    def session(self) -> Session | None:
        return self.get("session") if self.has("session") else None

    # ---------------------------------------------------------------- events

    def on(self, event: str, handler: EventHandler) -> None:
        """Register ``handler``; handlers added while a request is active are
        removed when it detaches."""
        self._handlers.setdefault(event, []).append(handler)
        if self.state.phase is not WorkerPhase.IDLE:
            self._request_handlers.append((event, handler))

    def off(self, event: str, handler: EventHandler | None = None) -> bool:
        handlers = self._handlers.get(event)
        if not handlers:
            return False
        if handler is None:
            del self._handlers[event]
            return True
        try:
            handlers.remove(handler)
        except ValueError:
            return False
        if not handlers:
            del self._handlers[event]
        return True

    def trigger(self, event: str) -> None:
        for handler in list(self._handlers.get(event, ())):
            handler(self)

    # --------------------------------------------------------------- request

    def handle(self, message: ServerRequest) -> MessageResponse:
        """Serve one inbound message and return the outbound message."""
        try:
            self.prepare_for_request(message)
            self.state.phase = WorkerPhase.HANDLING
            response = self.handle_request()
            return response.to_message(self.factory, session=self._active_session())
        finally:
            self.terminate()

    def prepare_for_request(self, message: ServerRequest) -> None:
        state = self.state
        state.phase = WorkerPhase.ATTACHING
        state.request_count += 1
        state.request_started_at = time.time()
        mark_request_start()

        for name in self.request_scoped:
            self._instances.pop(name, None)
        if self.config.reset_uploaded_files:
            UploadedFile.reset()
        self.requested_route = ""
        self.requested_params = {}

        request = self.request
        request.set_message(message)
        response = self.response
        response.enable_cookie_validation = request.enable_cookie_validation
        response.cookie_validation_key = request.cookie_validation_key
        self.error_handler.set_response(response)
        UploadedFile.set_adapter(request.adapter)

        session = self.session
        if session is not None:
            # bound lazily: the session opens on first access with this id
            session.close()
            session.id = request.get_cookies().get_value(session.name, "") or ""
        logger.debug("Attached %s %s (request #%d)", message.method, message.uri, state.request_count)

    def handle_request(self) -> Response:
        response = self.response
        try:
            self.trigger(EVENT_BEFORE_REQUEST)
            result = self.dispatcher(self.request, response)
            if isinstance(result, Response):
                response = result
            elif result is not None:
                response.set_result(result)
            self.trigger(EVENT_AFTER_REQUEST)
        except BridgeError:
            raise
        except Exception as exc:
            response = self.error_handler.handle_exception(exc)
            self.trigger(EVENT_AFTER_REQUEST)
        return response

    def _active_session(self) -> Session | None:
        if "session" not in self._instances:
            return None
        session: Session = self._instances["session"]
        return session if session.is_active else None

    def terminate(self) -> None:
        """Detach the current request. Safe to call after a failed attach."""
        state = self.state
        state.phase = WorkerPhase.DETACHING
        try:
            for event, handler in reversed(self._request_handlers):
                self.off(event, handler)
            self._request_handlers.clear()

            if self.config.flush_logger:
                flush_logs()

            request = self._instances.get("request")
            if request is not None:
                request.reset()
            if self.config.reset_uploaded_files:
                UploadedFile.reset()

            session = self._instances.get("session")
            if session is not None and session.is_active:
                session.close()
            for name in self.request_scoped:
                self._instances.pop(name, None)

            state.should_recycle = self.clean()
        finally:
            state.phase = WorkerPhase.IDLE
            state.request_started_at = None

    def clean(self) -> bool:
        """Run the memory watchdog; ``True`` means the worker should be recycled."""
        recycle = self.watchdog.should_recycle()
        self.state.last_memory_usage = self.watchdog.last_usage
        return recycle

    def __repr__(self) -> str:
        return f"Application(phase={self.state.phase.value}, requests={self.state.request_count})"
