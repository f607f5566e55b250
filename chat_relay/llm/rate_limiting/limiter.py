"""
Sliding-window admission control for the chat endpoint.

The limiter counts admissions per client key inside a fixed-length window.
Each decision reads and updates the counter under one lock, so concurrent
requests from the same client cannot both take the last slot.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta

import structlog
from starlette.datastructures import Headers
from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .models import ClientWindow, RateLimitConfig, RateLimitResult

logger = structlog.get_logger(__name__)


class SlidingWindowRateLimiter:
    """
    Per-client sliding window limiter.

    Features:
    - Atomic check-and-record per admission
    - Standard rate limit header values
    - Statistics for monitoring
    """

    def __init__(
        self,
        config: RateLimitConfig,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self._clock = clock
        self._windows: dict[str, ClientWindow] = {}
        self._lock = asyncio.Lock()
        self._window = timedelta(seconds=config.window_seconds)
        self._last_sweep = clock()

    async def check(self, key: str) -> RateLimitResult:
        """
        Decide whether a request from `key` may proceed and record it if so.

        Args:
            key: Client identifier (remote address)

        Returns:
            RateLimitResult with the decision and header values
        """
        async with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self._window:
                self._drop_idle(now)
            window = self._windows.setdefault(key, ClientWindow())
            self._expire(window, now)

            limit = self.config.max_requests
            allowed = len(window.timestamps) < limit
            if allowed:
                window.timestamps.append(now)
            else:
                window.rejected += 1

            oldest = window.timestamps[0]
            reset_after = (oldest + self._window - now).total_seconds()

            return RateLimitResult(
                allowed=allowed,
                limit=limit,
                remaining=max(0, limit - len(window.timestamps)),
                reset_after=max(0.0, reset_after),
                key=key,
            )

    def _expire(self, window: ClientWindow, now: datetime) -> None:
        cutoff = now - self._window
        while window.timestamps and window.timestamps[0] <= cutoff:
            window.timestamps.popleft()

    def _drop_idle(self, now: datetime) -> int:
        stale = []
        for key, window in self._windows.items():
            self._expire(window, now)
            if not window.timestamps:
                stale.append(key)
        for key in stale:
            del self._windows[key]
        self._last_sweep = now
        if stale:
            logger.debug("Dropped idle rate limit windows", count=len(stale))
        return len(stale)

    async def prune(self) -> int:
        """Drop keys with no admissions left in the window. Returns the count."""
        async with self._lock:
            return self._drop_idle(self._clock())

    def get_statistics(self) -> dict[str, int | float]:
        """Get current rate limiting statistics."""
        return {
            "tracked_clients": len(self._windows),
            "admitted_in_window": sum(
                len(w.timestamps) for w in self._windows.values()
            ),
            "rejected_total": sum(w.rejected for w in self._windows.values()),
            "max_requests": self.config.max_requests,
            "window_seconds": self.config.window_seconds,
        }


def client_key(scope: Scope) -> str:
    """Identify the caller by remote address."""
    client = scope.get("client")
    if client:
        return str(client[0])
    return "unknown"


class RateLimitMiddleware:
    """ASGI middleware that gates requests under the configured path prefix."""

    def __init__(self, app: ASGIApp, limiter: SlidingWindowRateLimiter):
        self.app = app
        self.limiter = limiter

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        config = self.limiter.config
        if scope["type"] != "http" or not scope["path"].startswith(
            config.path_prefix
        ):
            await self.app(scope, receive, send)
            return

        # CORS preflight is not counted
        if scope["method"] == "OPTIONS" and "access-control-request-method" in Headers(
            scope=scope
        ):
            await self.app(scope, receive, send)
            return

        result = await self.limiter.check(client_key(scope))
        extra_headers = result.headers() if config.standard_headers else {}

        if not result.allowed:
            logger.warning(
                "Rate limit exceeded",
                client=result.key,
                limit=result.limit,
                retry_after=result.retry_after,
            )
            response = PlainTextResponse(
                config.message,
                status_code=429,
                headers={**extra_headers, "Retry-After": str(result.retry_after)},
            )
            await response(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start" and extra_headers:
                headers = list(message.get("headers", []))
                headers.extend(
                    (name.lower().encode("latin-1"), value.encode("latin-1"))
                    for name, value in extra_headers.items()
                )
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_headers)
