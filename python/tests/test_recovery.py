"""Tests for panic containment.

RecoveryMiddleware is exercised directly as an ASGI app so the "response
already started" path can be driven precisely.
"""

import json

import pytest
from structlog.testing import capture_logs

from stencil.logging import bind_trace_id
from stencil.middleware.recovery import RecoveryMiddleware
from tests.helpers import find_logs

HTTP_SCOPE = {
    "type": "http",
    "method": "GET",
    "path": "/explode",
    "raw_path": b"/explode",
    "query_string": b"",
    "headers": [],
}


async def no_body():
    return {"type": "http.request", "body": b"", "more_body": False}


async def run(app) -> list[dict]:
    sent = []

    async def send(message):
        sent.append(message)

    await app(dict(HTTP_SCOPE), no_body, send)
    return sent


class TestRecoveryMiddleware:
    @pytest.mark.asyncio
    async def test_panic_before_response_sends_500(self):
        """A panic before any output yields the generic 500 envelope."""

        async def exploding_app(scope, receive, send):
            raise ValueError("bad state")

        with capture_logs() as logs:
            sent = await run(RecoveryMiddleware(exploding_app))

        assert sent[0]["type"] == "http.response.start"
        assert sent[0]["status"] == 500
        body = b"".join(m.get("body", b"") for m in sent if m["type"] == "http.response.body")
        assert json.loads(body) == {"error": "internal server error"}

        panics = find_logs(logs, "panic_recovered")
        assert len(panics) == 1
        assert panics[0]["response_started"] is False
        assert panics[0]["path"] == "/explode"

    @pytest.mark.asyncio
    async def test_panic_after_response_started_only_logs(self):
        """Headers already went out: log, but don't start a second response."""

        async def half_done_app(scope, receive, send):
            await send({"type": "http.response.start", "status": 200, "headers": []})
            raise RuntimeError("mid-body")

        with capture_logs() as logs:
            sent = await run(RecoveryMiddleware(half_done_app))

        starts = [m for m in sent if m["type"] == "http.response.start"]
        assert len(starts) == 1
        assert starts[0]["status"] == 200

        panics = find_logs(logs, "panic_recovered")
        assert len(panics) == 1
        assert panics[0]["response_started"] is True

    @pytest.mark.asyncio
    async def test_500_carries_bound_trace_id(self):
        async def exploding_app(scope, receive, send):
            bind_trace_id("4bf92f3577b34da6a3ce929d0e0e4736")
            raise ValueError("bad state")

        try:
            sent = await run(RecoveryMiddleware(exploding_app))
        finally:
            bind_trace_id(None)

        headers = dict(sent[0]["headers"])
        assert headers[b"x-trace-id"] == b"4bf92f3577b34da6a3ce929d0e0e4736"

    @pytest.mark.asyncio
    async def test_successful_request_passes_through(self):
        async def ok_app(scope, receive, send):
            await send({"type": "http.response.start", "status": 204, "headers": []})
            await send({"type": "http.response.body", "body": b""})

        sent = await run(RecoveryMiddleware(ok_app))

        assert [m["type"] for m in sent] == ["http.response.start", "http.response.body"]
        assert sent[0]["status"] == 204
