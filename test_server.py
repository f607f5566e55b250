"""
Tests for the HTTP surface: request validation, commitment, rate limiting.
"""

import asyncio
import contextlib
import json

import httpx
import pytest

from conftest import TEST_API_KEY, sse_event
from chat_relay.config import Configuration
from chat_relay.llm.classifier import MISSING_CREDENTIAL_MESSAGE, USER_MESSAGES, ErrorKind
from chat_relay.llm.rate_limiting import RateLimitConfig, SlidingWindowRateLimiter
from chat_relay.relay import ERROR_TRAILER_PREFIX
from chat_relay.server import create_app


@pytest.fixture
def configuration() -> Configuration:
    return Configuration()


def chat_scope(body: bytes) -> dict:
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": "/api/chat",
        "raw_path": b"/api/chat",
        "root_path": "",
        "query_string": b"",
        "headers": [
            (b"host", b"relay.test"),
            (b"content-type", b"application/json"),
            (b"content-length", str(len(body)).encode()),
        ],
        "client": ("127.0.0.1", 50000),
        "server": ("relay.test", 80),
    }


def make_client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://relay.test"
    )


@pytest.fixture
def app(configuration, upstream):
    return create_app(configuration, upstream=upstream)


class TestChatEndpoint:
    """POST /api/chat."""

    @pytest.mark.asyncio
    async def test_streams_plain_text_reply(self, app, provider):
        provider.chunks = [sse_event("Hi"), sse_event(" there"), b"data: [DONE]\n"]
        async with make_client(app) as client:
            response = await client.post("/api/chat", json={"message": "hello"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.headers["cache-control"] == "no-cache"
        assert response.text == "Hi there"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [{"message": ""}, {"message": "  \n"}, {}, {"message": None}, {"message": 3}, []],
    )
    async def test_invalid_message_is_400_json(self, app, provider, payload):
        async with make_client(app) as client:
            response = await client.post("/api/chat", json=payload)
        assert response.status_code == 400
        assert response.json()["error"] == "Message cannot be empty"
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_non_json_body_is_400(self, app, provider):
        async with make_client(app) as client:
            response = await client.post(
                "/api/chat",
                content=b"message=hello",
                headers={"content-type": "application/x-www-form-urlencoded"},
            )
        assert response.status_code == 400
        assert "error" in response.json()
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_upstream_rate_limit_is_429_json(self, app, provider):
        provider.status_code = 429
        provider.body = b'{"error": {"message": "Rate limit reached"}}'
        async with make_client(app) as client:
            response = await client.post("/api/chat", json={"message": "hello"})
        assert response.status_code == 429
        assert response.json() == {
            "error": "rate_limited",
            "message": USER_MESSAGES[ErrorKind.RATE_LIMITED],
        }

    @pytest.mark.asyncio
    async def test_upstream_server_error_is_json_not_stream(self, app, provider):
        provider.status_code = 503
        provider.body = b"{}"
        async with make_client(app) as client:
            response = await client.post("/api/chat", json={"message": "hello"})
        assert response.status_code == 502
        assert response.headers["content-type"] == "application/json"
        assert response.json()["error"] == "upstream_error"

    @pytest.mark.asyncio
    async def test_missing_credential_never_echoes_key(
        self, configuration, keyless_upstream, provider
    ):
        app = create_app(configuration, upstream=keyless_upstream)
        async with make_client(app) as client:
            response = await client.post("/api/chat", json={"message": "hello"})
        assert response.status_code == 401
        assert response.json() == {
            "error": "auth_failed",
            "message": MISSING_CREDENTIAL_MESSAGE,
        }
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_midstream_failure_is_in_band_text(self, app, provider):
        provider.chunks = [sse_event("Hel")]
        provider.error = httpx.ReadTimeout("upstream stalled")
        async with make_client(app) as client:
            response = await client.post("/api/chat", json={"message": "hello"})
        assert response.status_code == 200
        assert response.text == (
            "Hel" + ERROR_TRAILER_PREFIX + USER_MESSAGES[ErrorKind.NETWORK_ERROR]
        )
        assert TEST_API_KEY not in response.text


class TestRateLimiting:
    """Admission control in front of the chat endpoint."""

    @pytest.mark.asyncio
    async def test_limit_exceeded_returns_fixed_text(self, configuration, upstream):
        limiter = SlidingWindowRateLimiter(
            RateLimitConfig(max_requests=2, window_seconds=60)
        )
        app = create_app(configuration, upstream=upstream, limiter=limiter)
        async with make_client(app) as client:
            first = await client.post("/api/chat", json={"message": ""})
            second = await client.post("/api/chat", json={"message": ""})
            third = await client.post("/api/chat", json={"message": ""})

        assert first.status_code == second.status_code == 400
        assert first.headers["ratelimit-limit"] == "2"
        assert first.headers["ratelimit-remaining"] == "1"
        assert second.headers["ratelimit-remaining"] == "0"
        assert "x-ratelimit-limit" not in first.headers

        assert third.status_code == 429
        assert third.text == "Too many requests, please try again later"
        assert third.headers["ratelimit-remaining"] == "0"
        assert int(third.headers["retry-after"]) >= 1

    @pytest.mark.asyncio
    async def test_health_is_not_rate_limited(self, configuration, upstream):
        limiter = SlidingWindowRateLimiter(
            RateLimitConfig(max_requests=1, window_seconds=60)
        )
        app = create_app(configuration, upstream=upstream, limiter=limiter)
        async with make_client(app) as client:
            for _ in range(3):
                response = await client.get("/health")
                assert response.status_code == 200
        assert response.json()["credential_configured"] is True
        assert "ratelimit-limit" not in response.headers

    @pytest.mark.asyncio
    async def test_standard_headers_disabled_keeps_retry_after(
        self, configuration, upstream
    ):
        limiter = SlidingWindowRateLimiter(
            RateLimitConfig(max_requests=1, window_seconds=60, standard_headers=False)
        )
        app = create_app(configuration, upstream=upstream, limiter=limiter)
        async with make_client(app) as client:
            first = await client.post("/api/chat", json={"message": ""})
            second = await client.post("/api/chat", json={"message": ""})

        assert "ratelimit-limit" not in first.headers
        assert second.status_code == 429
        assert "ratelimit-limit" not in second.headers
        assert int(second.headers["retry-after"]) >= 1


class TestDisconnect:
    """Upstream release when the client goes away."""

    @pytest.mark.asyncio
    async def test_client_gone_before_headers_closes_upstream(self, app, provider):
        provider.chunks = [sse_event("never delivered")]
        body = json.dumps({"message": "hello"}).encode()
        delivered = False

        async def receive():
            nonlocal delivered
            if not delivered:
                delivered = True
                return {"type": "http.request", "body": body, "more_body": False}
            await asyncio.Event().wait()

        async def send(message):
            if message["type"] == "http.response.start":
                raise OSError("connection reset by client")

        with contextlib.suppress(Exception):
            await app(chat_scope(body), receive, send)

        assert len(provider.streams) == 1
        assert provider.streams[0].closed

    @pytest.mark.asyncio
    async def test_client_gone_mid_body_closes_upstream(self, app, provider):
        provider.chunks = [sse_event("a"), sse_event("b"), sse_event("c")]
        body = json.dumps({"message": "hello"}).encode()
        delivered = False

        async def receive():
            nonlocal delivered
            if not delivered:
                delivered = True
                return {"type": "http.request", "body": body, "more_body": False}
            await asyncio.Event().wait()

        async def send(message):
            if message["type"] == "http.response.body" and message.get("body"):
                raise OSError("broken pipe")

        with contextlib.suppress(Exception):
            await app(chat_scope(body), receive, send)

        assert provider.streams[0].closed
