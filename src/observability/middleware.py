# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""
FastAPI middleware for request-scoped diagnostic context.

Provides:
- requestId generation and request-derived context fields
  (userId, sessionId, clientIp, userAgent)
- Request start/end logging with timing
- Unconditional teardown of the context when the request finishes
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.constants import (
    ANONYMOUS_USER,
    CLIENT_IP,
    FORWARDED_FOR_HEADER,
    REAL_IP_HEADER,
    REQUEST_ID,
    REQUEST_ID_HEADER,
    SESSION_COOKIE,
    SESSION_ID,
    TRUNCATION_MARKER,
    UNKNOWN_VALUE,
    USER_AGENT,
    USER_AGENT_HEADER,
    USER_AGENT_MAX_LENGTH,
    USER_ID,
    USER_ID_HEADER,
)
from src.observability.context import DiagnosticContextManager
from src.observability.events import LogLevel, create_service_event
from src.observability.logger import get_logger

logger = get_logger(__name__)


def resolve_client_ip(request: Request) -> str:
    """Resolve the client address, honoring proxy headers.

    First match wins: the first ``X-Forwarded-For`` entry (trimmed), then
    ``X-Real-IP`` verbatim, then the transport-level peer address.

    :param request: Incoming request
    :type request: Request
    :returns: Client IP address, or "unknown" when no peer is exposed
    :rtype: str
    """
    forwarded_for = request.headers.get(FORWARDED_FOR_HEADER)
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get(REAL_IP_HEADER)
    if real_ip:
        return real_ip
    if request.client:
        return request.client.host

    return UNKNOWN_VALUE


def truncate_user_agent(user_agent: Optional[str]) -> str:
    """Cap a User-Agent value for inclusion in the context.

    :param user_agent: Raw header value, if any
    :type user_agent: Optional[str]
    :returns: At most 50 characters plus "...", or "unknown" when absent
    :rtype: str
    """
    if user_agent is None:
        return UNKNOWN_VALUE
    if len(user_agent) > USER_AGENT_MAX_LENGTH:
        return user_agent[:USER_AGENT_MAX_LENGTH] + TRUNCATION_MARKER
    return user_agent


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware establishing the diagnostic context of a request.

    Handles:
    1. requestId generation (never taken from the caller)
    2. userId, sessionId, clientIp and userAgent extraction
    3. Request start/end logging with the context attached
    4. Clearing the context on every exit path, including exceptions

    Exceptions raised downstream are not caught here; they propagate after
    the teardown has run.

    Usage:
        from fastapi import FastAPI
        from src.observability.middleware import RequestContextMiddleware

        app = FastAPI()
        app.add_middleware(RequestContextMiddleware)
    """

    def __init__(self, app: Any, secure_session_cookie: bool = False) -> None:
        super().__init__(app)
        self.secure_session_cookie = secure_session_cookie
        self._context = DiagnosticContextManager.instance()

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process request within a fresh diagnostic context.

        :param request: Incoming request
        :type request: Request
        :param call_next: Next handler in chain
        :type call_next: RequestResponseEndpoint
        :returns: Response
        :rtype: Response
        """
        try:
            self._context.clear()
            request_id = str(uuid.uuid4())
            session_id, new_session = self._resolve_session(request)
            self._populate(request, request_id, session_id)

            start_time = time.perf_counter()
            self._log_request_start(request)
            response: Optional[Response] = None
            error: Optional[BaseException] = None
            try:
                response = await call_next(request)
            except BaseException as exc:
                error = exc
                raise
            finally:
                duration_ms = int((time.perf_counter() - start_time) * 1000)
                self._log_request_end(
                    request=request,
                    response=response,
                    error=error,
                    duration_ms=duration_ms,
                )

            response.headers[REQUEST_ID_HEADER] = request_id
            if new_session:
                response.set_cookie(
                    SESSION_COOKIE,
                    session_id,
                    httponly=True,
                    samesite="lax",
                    secure=self.secure_session_cookie,
                )
            return response
        finally:
            self._context.clear()

    def _populate(self, request: Request, request_id: str, session_id: str) -> None:
        self._context.put(REQUEST_ID, request_id)
        self._context.put(USER_ID, request.headers.get(USER_ID_HEADER) or ANONYMOUS_USER)
        self._context.put(SESSION_ID, session_id)
        self._context.put(CLIENT_IP, resolve_client_ip(request))
        self._context.put(USER_AGENT, truncate_user_agent(request.headers.get(USER_AGENT_HEADER)))

    @staticmethod
    def _resolve_session(request: Request) -> tuple[str, bool]:
        """Read the session id cookie, creating a new session if absent.

        :param request: Incoming request
        :returns: Session id and whether it was newly created
        :rtype: tuple[str, bool]
        """
        session_id = request.cookies.get(SESSION_COOKIE)
        if session_id:
            return session_id, False
        return uuid.uuid4().hex, True

    def _log_request_start(self, request: Request) -> None:
        event = create_service_event(
            event="request_start",
            level=LogLevel.INFO,
            http_method=request.method,
            http_path=str(request.url.path),
        )
        logger.event(event)

    def _log_request_end(
        self,
        request: Request,
        response: Optional[Response],
        error: Optional[BaseException],
        duration_ms: int,
    ) -> None:
        """Log request end event.

        :param request: Incoming request
        :param response: Response (if successful)
        :param error: Error (if failed)
        :param duration_ms: Request duration in milliseconds
        """
        status_code = response.status_code if response is not None else 500
        status = "success" if status_code < 400 else "error"
        level = LogLevel.INFO if status_code < 400 else LogLevel.ERROR

        event = create_service_event(
            event="request_end",
            level=level,
            status=status,
            http_method=request.method,
            http_path=str(request.url.path),
            http_status_code=status_code,
            duration_ms=duration_ms,
            error=repr(error) if error is not None else None,
        )
        logger.event(event)


def add_request_context_middleware(app: Any, secure_session_cookie: bool = False) -> None:
    """
    Add the request context middleware to a FastAPI app.

    :param app: FastAPI application instance
    :type app: FastAPI
    :param secure_session_cookie: Mark the session cookie Secure
    :type secure_session_cookie: bool
    """
    app.add_middleware(RequestContextMiddleware, secure_session_cookie=secure_session_cookie)
