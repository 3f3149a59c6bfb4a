# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""
Unit tests for the request context middleware.
"""

import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.requests import Request
from starlette.responses import PlainTextResponse

from src.constants import (
    CLIENT_IP,
    REQUEST_ID,
    REQUEST_ID_HEADER,
    REQUEST_SCOPED_KEYS,
    SESSION_COOKIE,
    SESSION_ID,
    USER_AGENT,
    USER_ID,
)
from src.observability.context import DiagnosticContextManager
from src.observability.middleware import (
    RequestContextMiddleware,
    resolve_client_ip,
    truncate_user_agent,
)


async def _noop_app(scope, receive, send):
    """ASGI app placeholder; dispatch is called directly in these tests."""


def _make_request(headers=None, client=("10.0.0.1", 5000)):
    raw_headers = [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in (headers or {}).items()
    ]
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": "/inspect",
        "raw_path": b"/inspect",
        "root_path": "",
        "query_string": b"",
        "headers": raw_headers,
        "client": client,
        "server": ("testserver", 80),
    }
    return Request(scope)


@pytest.fixture
def context_client():
    """
    Provide a TestClient for an app with only the context middleware.

    :return: TestClient whose endpoints echo the current context
    :rtype: TestClient
    """
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)
    manager = DiagnosticContextManager.instance()

    @app.get("/context")
    async def context():
        return manager.get_all()

    @app.get("/dirty")
    async def dirty():
        manager.put("leftover", "x")
        manager.set_operation("dirtyOperation")
        return manager.get_all()

    @app.get("/boom")
    async def boom():
        manager.put("leftover", "x")
        raise RuntimeError("downstream failure")

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


class TestClientIpResolution:
    """
    Test class for client IP resolution.
    """

    def test_forwarded_for_first_entry_trimmed(self):
        """
        The first X-Forwarded-For entry wins, without surrounding whitespace.
        """
        request = _make_request({"X-Forwarded-For": " 1.2.3.4 , 5.6.7.8"})
        assert resolve_client_ip(request) == "1.2.3.4"

    def test_forwarded_for_beats_real_ip(self):
        """
        X-Forwarded-For takes precedence over X-Real-IP.
        """
        request = _make_request({"X-Forwarded-For": "1.2.3.4, 5.6.7.8", "X-Real-IP": "9.9.9.9"})
        assert resolve_client_ip(request) == "1.2.3.4"

    def test_real_ip_used_verbatim(self):
        """
        X-Real-IP is used when X-Forwarded-For is absent.
        """
        request = _make_request({"X-Real-IP": "9.9.9.9"})
        assert resolve_client_ip(request) == "9.9.9.9"

    def test_empty_forwarded_for_falls_through(self):
        """
        An empty X-Forwarded-For header is ignored.
        """
        request = _make_request({"X-Forwarded-For": "", "X-Real-IP": "9.9.9.9"})
        assert resolve_client_ip(request) == "9.9.9.9"

    def test_falls_back_to_peer_address(self):
        """
        Without proxy headers the transport peer is used.
        """
        assert resolve_client_ip(_make_request()) == "10.0.0.1"

    def test_unknown_without_peer(self):
        """
        A transport that exposes no peer yields "unknown".
        """
        assert resolve_client_ip(_make_request(client=None)) == "unknown"


class TestUserAgentTruncation:
    """
    Test class for User-Agent truncation.
    """

    def test_long_user_agent_is_truncated(self):
        """
        An 80-character value becomes the first 50 characters plus "...".
        """
        user_agent = "A" * 30 + "B" * 50
        truncated = truncate_user_agent(user_agent)
        assert len(truncated) == 53
        assert truncated.startswith(user_agent[:50])
        assert truncated.endswith("...")

    def test_exactly_fifty_characters_is_kept(self):
        """
        A value of exactly 50 characters is not truncated.
        """
        assert truncate_user_agent("x" * 50) == "x" * 50

    def test_absent_user_agent(self):
        """
        A missing header yields "unknown".
        """
        assert truncate_user_agent(None) == "unknown"


class TestRequestContextMiddleware:
    """
    Test class for context population and teardown.
    """

    def test_anonymous_user_without_header(self, context_client):
        """
        Requests without X-User-Id are attributed to "anonymous".
        """
        context = context_client.get("/context").json()
        assert context[USER_ID] == "anonymous"

    def test_user_id_from_header(self, context_client):
        """
        X-User-Id populates userId.
        """
        context = context_client.get("/context", headers={"X-User-Id": "jane.smith"}).json()
        assert context[USER_ID] == "jane.smith"

    def test_request_fields_populated(self, context_client):
        """
        Every request-scoped field is present.
        """
        response = context_client.get(
            "/context",
            headers={"X-Forwarded-For": "1.2.3.4, 5.6.7.8", "User-Agent": "U" * 80},
        )
        context = response.json()
        assert context[CLIENT_IP] == "1.2.3.4"
        assert context[USER_AGENT] == "U" * 50 + "..."
        assert context[SESSION_ID]
        assert context[REQUEST_ID] == response.headers[REQUEST_ID_HEADER]

    def test_request_ids_are_unique(self, context_client):
        """
        Each request gets its own non-empty request ID.
        """
        ids = [context_client.get("/context").json()[REQUEST_ID] for _ in range(10)]
        assert all(ids)
        assert len(set(ids)) == 10

    def test_session_cookie_reused(self, context_client):
        """
        A new session is created once and reused by later requests.
        """
        first = context_client.get("/context")
        assert SESSION_COOKIE in first.cookies
        second = context_client.get("/context")
        assert second.json()[SESSION_ID] == first.json()[SESSION_ID]
        assert SESSION_COOKIE not in second.cookies

    def test_no_residue_after_successful_request(self, context_client):
        """
        Values written during one request are absent from the next.
        """
        first = context_client.get("/dirty").json()
        assert first["leftover"] == "x"
        second = context_client.get("/context").json()
        assert "leftover" not in second
        assert "operation" not in second
        assert second[REQUEST_ID] != first[REQUEST_ID]

    def test_no_residue_after_failed_request(self, context_client):
        """
        A request that raises still leaves nothing behind.
        """
        assert context_client.get("/boom").status_code == 500
        context = context_client.get("/context").json()
        assert "leftover" not in context

    def test_dispatch_clears_context_after_success(self):
        """
        The context is empty once dispatch returns.
        """
        manager = DiagnosticContextManager.instance()
        middleware = RequestContextMiddleware(_noop_app)
        seen = {}

        async def call_next(request):
            seen.update(manager.get_all())
            return PlainTextResponse("ok")

        async def scenario():
            response = await middleware.dispatch(_make_request({"X-User-Id": "bob"}), call_next)
            return response, manager.snapshot()

        response, remaining = asyncio.run(scenario())
        assert remaining is None
        assert seen[USER_ID] == "bob"
        assert response.headers[REQUEST_ID_HEADER] == seen[REQUEST_ID]
        assert SESSION_COOKIE in response.headers["set-cookie"]

    def test_dispatch_clears_context_when_downstream_raises(self):
        """
        The exception propagates and the context is still cleared.
        """
        manager = DiagnosticContextManager.instance()
        middleware = RequestContextMiddleware(_noop_app)
        seen = {}

        async def call_next(request):
            seen.update(manager.get_all())
            raise RuntimeError("boom")

        async def scenario():
            with pytest.raises(RuntimeError, match="boom"):
                await middleware.dispatch(_make_request(), call_next)
            return manager.snapshot()

        assert asyncio.run(scenario()) is None
        assert seen[USER_ID] == "anonymous"

    def test_dispatch_starts_from_empty_context(self):
        """
        Residue on the handling thread is discarded before population.
        """
        manager = DiagnosticContextManager.instance()
        middleware = RequestContextMiddleware(_noop_app)
        seen = {}

        async def call_next(request):
            seen.update(manager.get_all())
            return PlainTextResponse("ok")

        async def scenario():
            manager.put("stale", "from-previous-request")
            await middleware.dispatch(_make_request(), call_next)

        asyncio.run(scenario())
        assert "stale" not in seen
        assert set(seen) == set(REQUEST_SCOPED_KEYS)
