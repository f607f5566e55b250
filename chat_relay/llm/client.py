"""
HTTP client for the upstream chat-completions provider.
"""

from __future__ import annotations

import httpx

from ..logging_utils import operation_context
from .models import LLMMessage, LLMRequest, MessageRole, ProviderConfig

EVENT_STREAM_TYPE = "text/event-stream"


class UpstreamClient:
    """Opens streaming chat-completions requests against one provider."""

    def __init__(
        self,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=httpx.Timeout(
                connect=config.connect_timeout,
                read=config.read_timeout,
                write=config.write_timeout,
                pool=config.pool_timeout,
            ),
            limits=httpx.Limits(
                max_connections=config.max_connections,
                max_keepalive_connections=config.max_keepalive,
                keepalive_expiry=config.keepalive_expiry,
            ),
            transport=transport,
        )

    @property
    def has_credential(self) -> bool:
        return self.config.has_credential

    def build_request(self, message: str) -> httpx.Request:
        """Build the streaming POST for a single user message."""
        body = LLMRequest(
            model=self.config.model,
            messages=[LLMMessage(role=MessageRole.USER, content=message)],
            stream=True,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )
        return self.client.build_request(
            "POST",
            self.config.chat_path,
            json=body.to_payload(),
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Accept": "text/event-stream",
            },
        )

    async def open_stream(self, message: str) -> httpx.Response:
        """
        Send the request and return once the status line and headers arrive.

        The body is left unread; callers must close the response.

        Raises:
            httpx.TransportError: If the provider cannot be reached
        """
        request = self.build_request(message)
        context = {
            "provider": self.config.provider.value,
            "model": self.config.model,
            "url": str(request.url),
        }
        async with operation_context("open_upstream_stream", context=context) as log:
            response = await self.client.send(request, stream=True)
            log.debug("Upstream responded", status_code=response.status_code)
        return response

    @staticmethod
    def is_event_stream(response: httpx.Response) -> bool:
        """A missing content type is accepted; a declared one must be an event stream."""
        content_type = response.headers.get("content-type", "")
        if not content_type.strip():
            return True
        media_type = content_type.split(";", 1)[0].strip().lower()
        return media_type == EVENT_STREAM_TYPE

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> UpstreamClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
