"""
Error types for the relay pipeline.

This module provides the exceptions raised while relaying an exchange:
- Provider context (provider, model, upstream status, error body)
- Pre-commit failures carrying a classified outcome
- Streaming misuse
- Configuration problems
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .classifier import ErrorOutcome


class RelayError(Exception):
    """Base relay error with upstream context."""

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        model: str = "unknown",
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code
        self.response_data = response_data or {}


class ExchangeFailed(RelayError):
    """An exchange failed before any response bytes were committed."""

    def __init__(self, outcome: ErrorOutcome, **kwargs):
        super().__init__(outcome.user_message, **kwargs)
        self.outcome = outcome


class StreamingError(RelayError):
    """Streaming-specific errors."""
    pass


class ConfigurationError(ValueError):
    """Invalid or incomplete configuration."""
    pass
