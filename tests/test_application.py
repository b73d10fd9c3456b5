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

"""Tests for the worker lifecycle manager and the worker loop."""

from __future__ import annotations

import json
from collections import OrderedDict
from typing import Any, Callable

import pytest

from genro_bridge.application import (
    EVENT_AFTER_REQUEST,
    EVENT_BEFORE_REQUEST,
    Application,
    WorkerPhase,
)
from genro_bridge.config import BridgeConfig
from genro_bridge.cookies import Cookie
from genro_bridge.errorhandler import ErrorHandler
from genro_bridge.exceptions import BodyParseError, ConfigurationError, HTTPNotFound, Redirect
from genro_bridge.memory import MemoryWatchdog
from genro_bridge.messages import MessageFactory, ServerRequest
from genro_bridge.request import Request
from genro_bridge.response import Response
from genro_bridge.session import MemorySessionStore, Session
from genro_bridge.uploads import UploadedFile
from genro_bridge.worker import ServerExitCode, WorkerLoop

factory = MessageFactory()


# =============================================================================
# Helpers
# =============================================================================


def make_message(
    method: str = "GET",
    uri: str = "/",
    body: bytes = b"",
    headers: dict[str, str] | None = None,
    cookies: dict[str, str] | None = None,
) -> ServerRequest:
    message = factory.create_request(method, uri)
    for name, value in (headers or {}).items():
        message = message.with_header(name, value)
    return message.with_body(factory.create_stream(body)).with_cookie_params(cookies or {})


def quiet_watchdog(usage: int = 0, limit: int = 1000) -> MemoryWatchdog:
    return MemoryWatchdog(threshold=0.9, limit=limit, usage_provider=lambda: usage)


def make_app(dispatcher: Callable[[Request, Response], Any], **kwargs: Any) -> Application:
    kwargs.setdefault("watchdog", quiet_watchdog())
    return Application(dispatcher, **kwargs)


def body_json(message: Any) -> Any:
    return json.loads(message.body.to_bytes())


# =============================================================================
# Request isolation
# =============================================================================


class TestIsolation:
    """Consecutive requests must not see each other's state."""

    def test_request_b_does_not_see_request_a(self) -> None:
        """Cookies, headers and query of request A never reach request B."""
        seen: list[dict[str, Any]] = []

        def dispatcher(request: Request, response: Response) -> str:
            seen.append(dict(request.get_query_params()))
            if request.get_query_param("login"):
                response.cookies.add(Cookie("token", "abc"))
                response.headers.set("X-User", "a")
            return "ok"

        app = make_app(dispatcher)
        first = app.handle(make_message(uri="/?login=1"))
        second = app.handle(make_message(uri="/"))

        assert first.get_header("Set-Cookie")[0].startswith("token=abc")
        assert first.get_header_line("X-User") == "a"
        assert second.get_header("Set-Cookie") == []
        assert not second.has_header("X-User")
        assert seen == [{"login": "1"}, {}]

    def test_request_b_sees_no_inbound_data_of_request_a(self) -> None:
        """Post data, inbound cookies and files of request A are gone in request B."""
        seen: list[tuple[dict[str, Any], list[str], dict[str, Any]]] = []

        def dispatcher(request: Request, response: Response) -> None:
            cookies = [cookie.name for cookie in request.get_cookies()]
            seen.append((dict(request.get_body_params()), cookies, dict(request.get_uploaded_files())))

        upload = factory.create_uploaded_file(factory.create_stream(b"abc"), 3, 0, "a.txt")
        first = make_message(
            "POST",
            body=b"a=1&b=2",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            cookies={"c": "v"},
        ).with_uploaded_files({"doc": upload})

        app = make_app(dispatcher)
        app.handle(first)
        app.handle(make_message("POST"))

        body_a, cookies_a, files_a = seen[0]
        assert body_a == {"a": "1", "b": "2"}
        assert cookies_a == ["c"]
        assert list(files_a) == ["doc"]
        assert seen[1] == ({}, [], {})
        assert UploadedFile.get_instance_by_name("doc") is None

    def test_request_scoped_components_rebuilt(self) -> None:
        """Request-scoped components are fresh per request; others are kept."""
        users: list[Any] = []
        registries: list[Any] = []

        def dispatcher(request: Request, response: Response) -> None:
            users.append(app.get("user"))
            registries.append(app.get("registry"))

        app = make_app(dispatcher, components={"user": dict, "registry": "collections:OrderedDict"})
        app.handle(make_message())
        app.handle(make_message())

        assert users[0] is not users[1]
        assert registries[0] is registries[1]
        assert isinstance(registries[0], OrderedDict)

    def test_uploaded_files_registry_reset(self) -> None:
        """The upload registry is empty after a request."""
        upload = factory.create_uploaded_file(factory.create_stream(b"abc"), 3, 0, "a.txt")

        def dispatcher(request: Request, response: Response) -> str:
            found = UploadedFile.get_instance_by_name("doc")
            return found.name if found is not None else ""

        app = make_app(dispatcher)
        message = app.handle(make_message().with_uploaded_files({"doc": upload}))
        assert message.body.to_bytes() == b"a.txt"
        assert UploadedFile.get_instance_by_name("doc") is None

    def test_uploaded_files_kept_without_reset(self) -> None:
        """With reset disabled, files outlive their request but not the next attach."""
        upload = factory.create_uploaded_file(factory.create_stream(b"abc"), 3, 0, "a.txt")
        found: list[UploadedFile | None] = []

        def dispatcher(request: Request, response: Response) -> None:
            found.append(UploadedFile.get_instance_by_name("doc"))

        app = make_app(dispatcher, config=BridgeConfig(reset_uploaded_files=False))
        try:
            app.handle(make_message().with_uploaded_files({"doc": upload}))
            kept = UploadedFile.get_instance_by_name("doc")
            assert kept is found[0]
            assert kept is not None and kept.stream is not None and not kept.stream.closed

            app.handle(make_message())
            assert found[1] is None
            assert not kept.stream.closed
        finally:
            UploadedFile.reset()

    def test_phase_and_counters(self) -> None:
        """The worker returns to IDLE and counts requests."""
        phases: list[WorkerPhase] = []
        app = make_app(lambda request, response: phases.append(app.state.phase))
        app.handle(make_message())
        assert phases == [WorkerPhase.HANDLING]
        assert app.state.phase is WorkerPhase.IDLE
        assert app.state.request_count == 1
        assert app.state.request_started_at is None


# =============================================================================
# Results and errors
# =============================================================================


class TestResults:
    """Tests for dispatcher results."""

    def test_dict_result(self) -> None:
        """Dict results become JSON bodies."""
        app = make_app(lambda request, response: {"path": request.get_url()})
        message = app.handle(make_message(uri="/items?x=1"))
        assert message.status_code == 200
        assert body_json(message) == {"path": "/items?x=1"}

    def test_returned_response_replaces_current(self) -> None:
        """A native Response returned by the dispatcher is sent."""

        def dispatcher(request: Request, response: Response) -> Response:
            other = Response().set_status_code(202)
            other.set_result("queued")
            return other

        message = make_app(dispatcher).handle(make_message())
        assert message.status_code == 202
        assert message.body.to_bytes() == b"queued"

    def test_http_exception(self) -> None:
        """HTTP exceptions are rendered with their status and detail."""

        def dispatcher(request: Request, response: Response) -> None:
            raise HTTPNotFound("no such item")

        message = make_app(dispatcher).handle(make_message())
        assert message.status_code == 404
        assert body_json(message) == {"error": "no such item"}

    def test_mapped_exception(self) -> None:
        """Exceptions in the error map get their mapped status."""

        def dispatcher(request: Request, response: Response) -> None:
            raise ValueError("bad input")

        message = make_app(dispatcher).handle(make_message())
        assert message.status_code == 400
        assert body_json(message) == {"error": "bad input"}

    def test_unhandled_exception(self) -> None:
        """Other exceptions are 500 errors."""

        def dispatcher(request: Request, response: Response) -> None:
            raise RuntimeError("boom")

        message = make_app(dispatcher).handle(make_message())
        assert message.status_code == 500
        assert body_json(message) == {"error": "boom"}

    def test_redirect(self) -> None:
        """Redirects carry Location and an empty body."""

        def dispatcher(request: Request, response: Response) -> None:
            raise Redirect("/login")

        message = make_app(dispatcher).handle(make_message())
        assert message.status_code == 302
        assert message.get_header_line("Location") == "/login"
        assert message.body.to_bytes() == b""

    def test_bridge_error_propagates(self) -> None:
        """Bridge errors reach the host and the request is still detached."""

        def dispatcher(request: Request, response: Response) -> Any:
            return request.get_parsed_body()

        app = make_app(dispatcher)
        with pytest.raises(BodyParseError):
            app.handle(make_message("POST", body=b"{oops", headers={"Content-Type": "application/json"}))
        assert app.state.phase is WorkerPhase.IDLE
        assert "request" not in app._instances


class TestErrorHandler:
    """Tests for ErrorHandler used on its own."""

    def test_hidden_details(self) -> None:
        """expose_details=False hides 500 messages."""
        response = ErrorHandler(expose_details=False).handle_exception(RuntimeError("secret"))
        assert response.status_code == 500
        assert json.loads(response.content) == {"error": "An internal server error occurred."}

    def test_clears_template_response(self) -> None:
        """The wired response is cleared before rendering."""
        handler = ErrorHandler()
        response = Response()
        response.headers.set("X-Old", "1")
        handler.set_response(response)
        result = handler.handle_exception(HTTPNotFound())
        assert result is response
        assert not result.headers.has("X-Old")


# =============================================================================
# Events and components
# =============================================================================


class TestEvents:
    """Tests for request events."""

    def test_request_handlers_removed_on_detach(self) -> None:
        """Handlers registered during a request live only for that request."""
        calls: list[str] = []

        def dispatcher(request: Request, response: Response) -> None:
            if app.state.request_count == 1:
                app.on(EVENT_AFTER_REQUEST, lambda a: calls.append("temporary"))

        app = make_app(dispatcher)
        app.on(EVENT_BEFORE_REQUEST, lambda a: calls.append("permanent"))
        app.handle(make_message())
        app.handle(make_message())
        assert calls == ["permanent", "temporary", "permanent"]

    def test_after_request_runs_on_error(self) -> None:
        """after_request handlers also run when the dispatcher fails."""
        calls: list[int] = []

        def dispatcher(request: Request, response: Response) -> None:
            raise RuntimeError("boom")

        app = make_app(dispatcher)
        app.on(EVENT_AFTER_REQUEST, lambda a: calls.append(a.response.status_code))
        app.handle(make_message())
        assert calls == [500]

    def test_off(self) -> None:
        """off() removes one handler or all of them."""
        app = make_app(lambda request, response: None)
        handler = lambda a: None  # noqa: E731
        app.on("custom", handler)
        assert app.off("custom", handler)
        assert not app.off("custom", handler)
        app.on("custom", handler)
        assert app.off("custom")


class TestComponents:
    """Tests for component definitions."""

    def test_unknown_component(self) -> None:
        """Unknown names are configuration errors."""
        with pytest.raises(ConfigurationError):
            make_app(lambda request, response: None).get("missing")

    def test_instance_with_options(self) -> None:
        """An instance definition cannot take options."""
        app = make_app(lambda request, response: None)
        app.set("bad", {"class": 5, "option": 1})
        with pytest.raises(ConfigurationError):
            app.get("bad")

    def test_config_wires_request(self) -> None:
        """Request options come from the configuration."""
        config = BridgeConfig(csrf_header="X-Token", trusted_hosts=["10.0.0.0/8"])
        app = make_app(lambda request, response: None, config=config)
        assert app.request.csrf_header == "X-Token"
        assert app.request.trusted_hosts == ["10.0.0.0/8"]

    def test_session_disabled(self) -> None:
        """use_session=False removes the session component."""
        app = make_app(lambda request, response: None, config=BridgeConfig(use_session=False))
        assert app.session is None


# =============================================================================
# Session
# =============================================================================


class TestSession:
    """Tests for session binding across requests."""

    def test_session_round_trip(self) -> None:
        """A session started in one request is found by the next through its cookie."""
        store = MemorySessionStore()

        def dispatcher(request: Request, response: Response) -> Any:
            session = app.session
            assert session is not None
            if request.get_query_param("login"):
                session.set("user", "bob")
                return "stored"
            return session.get("user", "anonymous")

        app = make_app(dispatcher, components={"session": {"class": Session, "store": store}})
        first = app.handle(make_message(uri="/?login=1"))
        cookie_line = first.get_header_line("Set-Cookie")
        assert cookie_line.startswith("GENROSESSID=")
        session_id = cookie_line.split(";")[0].split("=", 1)[1]
        assert len(store) == 1

        second = app.handle(make_message(cookies={"GENROSESSID": session_id}))
        assert second.body.to_bytes() == b"bob"

        third = app.handle(make_message())
        assert third.body.to_bytes() == b"anonymous"

    def test_untouched_session_sends_no_cookie(self) -> None:
        """A session never accessed is not opened."""
        store = MemorySessionStore()
        app = make_app(lambda request, response: "ok", components={"session": {"class": Session, "store": store}})
        message = app.handle(make_message())
        assert message.get_header("Set-Cookie") == []
        assert len(store) == 0


# =============================================================================
# Memory watchdog and worker loop
# =============================================================================


class TestRecycling:
    """Tests for the recycle signal."""

    def test_should_recycle(self) -> None:
        """High memory usage flags the worker for recycling."""
        app = make_app(lambda request, response: None, watchdog=quiet_watchdog(usage=950))
        app.handle(make_message())
        assert app.state.should_recycle
        assert app.state.last_memory_usage == 950

    def test_not_recycled(self) -> None:
        """Low memory usage keeps the worker."""
        app = make_app(lambda request, response: None, watchdog=quiet_watchdog(usage=10))
        app.handle(make_message())
        assert not app.state.should_recycle


class TestWorkerLoop:
    """Tests for WorkerLoop exit codes."""

    @staticmethod
    def feed(count: int) -> Callable[[], ServerRequest | None]:
        messages = [make_message() for _ in range(count)]
        return lambda: messages.pop(0) if messages else None

    def test_shutdown_when_exhausted(self) -> None:
        """No more messages returns SHUTDOWN after responding to each."""
        responses: list[Any] = []
        app = make_app(lambda request, response: "ok")
        code = WorkerLoop(app).run(self.feed(3), responses.append)
        assert code is ServerExitCode.SHUTDOWN
        assert len(responses) == 3

    def test_request_limit(self) -> None:
        """max_requests ends the loop with REQUEST_LIMIT."""
        responses: list[Any] = []
        app = make_app(lambda request, response: "ok")
        code = WorkerLoop(app, max_requests=2).run(self.feed(5), responses.append)
        assert code is ServerExitCode.REQUEST_LIMIT
        assert len(responses) == 2

    def test_memory_recycle(self) -> None:
        """A recycle signal ends the loop with REQUEST_LIMIT."""
        app = make_app(lambda request, response: "ok", watchdog=quiet_watchdog(usage=999))
        assert WorkerLoop(app).run(self.feed(5), lambda message: None) is ServerExitCode.REQUEST_LIMIT
        assert app.state.request_count == 1

    def test_stop(self) -> None:
        """stop() finishes the current request and returns OK."""
        app = make_app(lambda request, response: "ok")
        loop = WorkerLoop(app)
        assert loop.run(self.feed(5), lambda message: loop.stop()) is ServerExitCode.OK
        assert app.state.request_count == 1
