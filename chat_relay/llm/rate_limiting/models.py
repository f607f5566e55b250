"""
Rate limiting models and dataclasses for inbound chat requests.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime

DEFAULT_LIMIT_MESSAGE = "Too many requests, please try again later"


@dataclass(frozen=True)
class RateLimitConfig:
    """Configuration for inbound admission control."""
    max_requests: int = 100
    window_seconds: float = 15 * 60
    message: str = DEFAULT_LIMIT_MESSAGE
    path_prefix: str = "/api"
    standard_headers: bool = True

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("rate_limit.max_requests must be at least 1")
        if self.window_seconds <= 0:
            raise ValueError("rate_limit.window_seconds must be positive")


@dataclass
class ClientWindow:
    """Admission timestamps for one client key inside the current window."""
    timestamps: deque[datetime] = field(default_factory=deque)
    rejected: int = 0


@dataclass(frozen=True)
class RateLimitResult:
    """Result of one admission decision."""
    allowed: bool
    limit: int
    remaining: int
    reset_after: float  # seconds until the oldest admission leaves the window
    key: str = ""

    @property
    def retry_after(self) -> int:
        """Whole seconds a rejected client should wait."""
        return max(1, int(self.reset_after + 0.999))

    def headers(self) -> dict[str, str]:
        """Standard `RateLimit-*` response headers."""
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(max(0, int(self.reset_after + 0.999))),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers
