"""
Upstream LLM integration for the streaming relay.

This package provides:
- Type-safe dataclass models for provider configuration and requests
- An httpx client that opens streaming chat-completions requests
- Incremental event-stream decoding
- Failure classification shared by server and client
- Inbound rate limiting
"""

from __future__ import annotations

from .classifier import ErrorClassifier, ErrorKind, ErrorOutcome
from .client import UpstreamClient
from .exceptions import ConfigurationError, ExchangeFailed, RelayError, StreamingError
from .models import LLMMessage, LLMRequest, MessageRole, ProviderConfig, ProviderType
from .streaming import FrameParser

__all__ = [
    "ConfigurationError",
    # Classification
    "ErrorClassifier",
    "ErrorKind",
    "ErrorOutcome",
    # Exceptions
    "ExchangeFailed",
    # Streaming
    "FrameParser",
    # Models
    "LLMMessage",
    "LLMRequest",
    "MessageRole",
    "ProviderConfig",
    "ProviderType",
    "RelayError",
    "StreamingError",
    # Client
    "UpstreamClient",
]
