# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Error handler component: renders dispatcher exceptions into the native response.

The worker wires the handler to the fresh response of every request with
``set_response()``; ``handle_exception()`` clears that response and fills
it with a JSON error body. ``HTTPException`` carries its own status code
and headers; other exceptions are mapped by class name through
``ERROR_MAP`` and default to 500, in which case the traceback is logged.
"""

from __future__ import annotations

import logging

from .exceptions import HTTPException, Redirect
from .response import Response

__all__ = ["ErrorHandler"]

logger = logging.getLogger("genro_bridge.errorhandler")


class ErrorHandler:
    """Turn exceptions into error responses."""

    ERROR_MAP: dict[str, int] = {
        "NotFound": 404,
        "NotAuthorized": 403,
        "ValueError": 400,
        "TypeError": 400,
        "PermissionError": 403,
        "FileNotFoundError": 404,
    }

    def __init__(self, charset: str = "utf-8", expose_details: bool = True) -> None:
        self.charset = charset
        self.expose_details = expose_details
        self.exception: BaseException | None = None
        self._response: Response | None = None

    def set_response(self, response: Response) -> None:
        self._response = response

    def _create_error_response(self) -> Response:
        response = self._response if self._response is not None else Response(charset=self.charset)
        response.clear()
        return response

    def status_for(self, exc: BaseException) -> int:
        if isinstance(exc, HTTPException):
            return exc.status_code
        return self.ERROR_MAP.get(type(exc).__name__, 500)

    def handle_exception(self, exc: BaseException) -> Response:
        self.exception = exc
        try:
            response = self.render_exception(exc)
        except Exception as render_error:
            logger.exception("Error while rendering %r", exc)
            response = self._create_error_response().set_status_code(500)
            response.set_result({"error": "An internal server error occurred."})
            self.exception = render_error
            return response
        self.exception = None
        return response

    def render_exception(self, exc: BaseException) -> Response:
        response = self._create_error_response()
        status_code = self.status_for(exc)
        response.set_status_code(status_code)

        if isinstance(exc, HTTPException) and exc.headers:
            for name, value in exc.headers:
                response.headers.add(name, value)

        if isinstance(exc, Redirect):
            response.set_result(None)
            return response

        if status_code >= 500:
            logger.exception("Unhandled %s: %s", type(exc).__name__, exc, exc_info=exc)
            detail = str(exc) if self.expose_details else "An internal server error occurred."
        else:
            logger.info("%s %s: %s", status_code, type(exc).__name__, exc)
            detail = exc.detail if isinstance(exc, HTTPException) else str(exc)
        response.set_result({"error": detail})
        return response
