"""
Rate limiting for inbound chat requests.

This package contains:
- Per-client sliding window admission
- Standard rate limit response headers
- ASGI middleware for the chat endpoint
"""

from .limiter import RateLimitMiddleware, SlidingWindowRateLimiter
from .models import RateLimitConfig, RateLimitResult

__all__ = [
    "RateLimitConfig",
    "RateLimitMiddleware",
    "RateLimitResult",
    "SlidingWindowRateLimiter",
]
