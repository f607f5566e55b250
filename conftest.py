"""
Shared fixtures: a scripted fake provider behind httpx.MockTransport.
"""

import json
from dataclasses import dataclass, field

import httpx
import pytest

from chat_relay.llm.client import UpstreamClient
from chat_relay.llm.models import ProviderConfig, ProviderType

TEST_API_KEY = "sk-test-not-a-real-key"


def sse_event(content: str) -> bytes:
    payload = json.dumps({"choices": [{"delta": {"content": content}}]})
    return f"data: {payload}\n".encode()


class ScriptedStream(httpx.AsyncByteStream):
    """Yields scripted chunks, then optionally raises a transport error."""

    def __init__(self, chunks: list[bytes], error: Exception | None = None):
        self.chunks = chunks
        self.error = error
        self.closed = False
        self.yielded = 0

    async def __aiter__(self):
        for chunk in self.chunks:
            self.yielded += 1
            yield chunk
        if self.error is not None:
            raise self.error

    async def aclose(self) -> None:
        self.closed = True


@dataclass
class FakeProvider:
    """Records requests and answers each with the configured response."""
    status_code: int = 200
    chunks: list[bytes] = field(default_factory=list)
    error: Exception | None = None
    connect_error: Exception | None = None
    content_type: str | None = "text/event-stream"
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None
    requests: list[httpx.Request] = field(default_factory=list)
    streams: list[ScriptedStream] = field(default_factory=list)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.connect_error is not None:
            raise self.connect_error
        if self.body is not None:
            return httpx.Response(
                self.status_code,
                content=self.body,
                headers={"content-type": "application/json"},
            )
        stream = ScriptedStream(list(self.chunks), self.error)
        self.streams.append(stream)
        headers = dict(self.headers)
        if self.content_type is not None:
            headers["content-type"] = self.content_type
        return httpx.Response(
            self.status_code,
            headers=headers,
            stream=stream,
        )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def provider_config() -> ProviderConfig:
    return ProviderConfig(
        provider=ProviderType.OPENAI,
        base_url="https://api.test/v1",
        model="gpt-test",
        api_key=TEST_API_KEY,
    )


@pytest.fixture
def upstream(provider, provider_config) -> UpstreamClient:
    return UpstreamClient(provider_config, transport=httpx.MockTransport(provider))


@pytest.fixture
def keyless_upstream(provider, provider_config) -> UpstreamClient:
    config = ProviderConfig(
        provider=provider_config.provider,
        base_url=provider_config.base_url,
        model=provider_config.model,
        api_key=None,
    )
    return UpstreamClient(config, transport=httpx.MockTransport(provider))
