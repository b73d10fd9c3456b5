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

"""genro-bridge - run request/response framework code in persistent workers.

Main components:
    Application: Long-lived worker serving one request at a time
    Request, Response: Mutable native objects used by application code
    RequestAdapter, ResponseAdapter: Native objects <-> immutable messages
    ResponseEmitter: Writes outbound messages to an output channel
    ServerRequestCreator: Builds inbound messages from WSGI/ASGI data

Runtimes:
    BridgeAsgiApp: ASGI entry point
    WorkerLoop: Pull-based loop for custom worker runtimes

Message types (``ServerRequest``, ``Stream``, the outbound message
``Response``) live in ``genro_bridge.messages``.

Usage:
    from genro_bridge import Application, BridgeAsgiApp

    def dispatcher(request, response):
        return {"hello": request.get_query_param("name", "world")}

    app = BridgeAsgiApp(Application(dispatcher))
"""

__version__ = "0.1.0"

from .adapters import RequestAdapter, RequestContext, ResponseAdapter, format_cookie_header
from .application import (
    EVENT_AFTER_REQUEST,
    EVENT_BEFORE_REQUEST,
    Application,
    WorkerPhase,
    WorkerState,
)
from .asgi import BridgeAsgiApp
from .config import BridgeConfig
from .cookies import NO_VALIDATE, SESSION, Cookie, CookieCollection, ExpiresAt, parse_expiry
from .creator import ServerRequestCreator, UploadedFileCreator
from .datastructures import HeaderCollection, Headers
from .emitter import BufferedOutput, ContentRange, HttpNoBodyStatus, ResponseEmitter
from .errorhandler import ErrorHandler
from .exceptions import (
    BodyParseError,
    BridgeError,
    ConfigurationError,
    HTTPException,
    HTTPNotFound,
    Redirect,
    StructuralError,
)
from .memory import MemoryWatchdog
from .messages import MessageFactory, ServerRequest, Stream
from .parsers import FormParser, JsonParser, ParserRegistry
from .request import Request
from .response import Response
from .session import MemorySessionStore, Session
from .uploads import UploadedFile
from .worker import ServerExitCode, WorkerLoop

__all__ = [
    "__version__",
    # Worker
    "Application",
    "BridgeAsgiApp",
    "BridgeConfig",
    "EVENT_AFTER_REQUEST",
    "EVENT_BEFORE_REQUEST",
    "MemoryWatchdog",
    "ServerExitCode",
    "WorkerLoop",
    "WorkerPhase",
    "WorkerState",
    # Native objects
    "Cookie",
    "CookieCollection",
    "ErrorHandler",
    "HeaderCollection",
    "MemorySessionStore",
    "Request",
    "Response",
    "Session",
    "UploadedFile",
    # Bridge
    "BufferedOutput",
    "ContentRange",
    "FormParser",
    "Headers",
    "HttpNoBodyStatus",
    "JsonParser",
    "MessageFactory",
    "ParserRegistry",
    "RequestAdapter",
    "RequestContext",
    "ResponseAdapter",
    "ResponseEmitter",
    "ServerRequest",
    "ServerRequestCreator",
    "Stream",
    "UploadedFileCreator",
    "format_cookie_header",
    # Cookie expiry
    "ExpiresAt",
    "NO_VALIDATE",
    "SESSION",
    "parse_expiry",
    # Exceptions
    "BodyParseError",
    "BridgeError",
    "ConfigurationError",
    "HTTPException",
    "HTTPNotFound",
    "Redirect",
    "StructuralError",
]
