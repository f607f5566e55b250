"""
HTTP surface for the relay.

POST {api_prefix}/chat accepts `{"message": str}` and answers either with a
JSON error (status per the classified outcome) or a 200 `text/plain` stream
of reply fragments.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError, field_validator
from starlette.types import Receive, Scope, Send

from chat_relay.config import Configuration
from chat_relay.llm.classifier import ErrorClassifier, ErrorKind
from chat_relay.llm.client import UpstreamClient
from chat_relay.llm.exceptions import ConfigurationError, ExchangeFailed
from chat_relay.llm.rate_limiting import RateLimitMiddleware, SlidingWindowRateLimiter
from chat_relay.logging_utils import configure_logging
from chat_relay.relay import StreamRelay

logger = structlog.get_logger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}
EMPTY_MESSAGE_ERROR = "Message cannot be empty"


class ChatRequest(BaseModel):
    """Inbound chat request body."""
    message: str

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError(EMPTY_MESSAGE_ERROR)
        return value


def resolve_api_key(configuration: Configuration) -> str | None:
    """Read the provider credential, logging (never echoing) when it is absent."""
    try:
        return configuration.llm_api_key
    except ConfigurationError as e:
        logger.error(
            "Upstream credential not configured; every exchange will fail",
            error_message=str(e),
        )
        return None


class RelayResponse(StreamingResponse):
    """Plain-text stream of one relay that releases the upstream on every exit."""

    def __init__(self, relay: StreamRelay):
        super().__init__(
            relay.stream(),
            media_type="text/plain; charset=utf-8",
            headers=STREAM_HEADERS,
        )
        self.relay = relay

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.relay.aclose()


def bad_request(detail: str) -> JSONResponse:
    outcome = ErrorClassifier.outcome(ErrorKind.BAD_REQUEST)
    return JSONResponse(
        status_code=outcome.http_status,
        content={"error": detail, "message": outcome.user_message},
    )


async def parse_chat_request(request: Request) -> ChatRequest | JSONResponse:
    try:
        body: Any = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return bad_request("Request body must be JSON")

    try:
        return ChatRequest.model_validate(body)
    except ValidationError:
        return bad_request(EMPTY_MESSAGE_ERROR)


def create_app(
    configuration: Configuration | None = None,
    *,
    upstream: UpstreamClient | None = None,
    limiter: SlidingWindowRateLimiter | None = None,
) -> FastAPI:
    """Build the relay application."""
    configuration = configuration or Configuration()
    server_config = configuration.get_server_config()
    api_prefix = server_config["api_prefix"]

    if upstream is None:
        upstream = UpstreamClient(
            configuration.get_provider_config(resolve_api_key(configuration))
        )
    if limiter is None:
        limiter = SlidingWindowRateLimiter(configuration.get_rate_limit_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Relay started",
            provider=upstream.config.provider.value,
            model=upstream.config.model,
            credential_configured=upstream.has_credential,
        )
        yield
        await upstream.close()
        logger.info("Relay shutdown complete")

    app = FastAPI(title="chat-relay", lifespan=lifespan)
    app.state.upstream = upstream
    app.state.limiter = limiter

    # Last added is outermost: CORS wraps the limiter, including its 429s
    app.add_middleware(RateLimitMiddleware, limiter=limiter)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=server_config["cors_origins"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post(f"{api_prefix}/chat")
    async def chat(request: Request):
        parsed = await parse_chat_request(request)
        if isinstance(parsed, JSONResponse):
            return parsed

        relay = StreamRelay(request.app.state.upstream)
        try:
            await relay.start(parsed.message)
        except ExchangeFailed as e:
            return JSONResponse(
                status_code=e.outcome.http_status, content=e.outcome.to_dict()
            )

        return RelayResponse(relay)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "credential_configured": app.state.upstream.has_credential,
            "rate_limit": app.state.limiter.get_statistics(),
        }

    return app


def main() -> None:
    """Run the relay under uvicorn."""
    configuration = Configuration()
    logging_config = configuration.get_logging_config()
    configure_logging(logging_config["level"])
    server_config = configuration.get_server_config()

    uvicorn.run(
        create_app(configuration),
        host=server_config["host"],
        port=server_config["port"],
        log_level=str(logging_config["level"]).lower(),
    )


if __name__ == "__main__":
    main()
