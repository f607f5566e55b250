"""
Upstream provider dataclasses.

This module provides the typed shapes used to talk to an OpenAI-compatible
chat-completions endpoint:
- Provider configurations
- Message structures
- Streaming request payloads
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .exceptions import ConfigurationError


class ProviderType(Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    OPENROUTER = "openrouter"
    GROQ = "groq"

    @classmethod
    def detect(cls, base_url: str) -> ProviderType:
        """Detect provider type from base URL."""
        base_url_lower = base_url.lower()
        if "openrouter.ai" in base_url_lower:
            return cls.OPENROUTER
        if "groq.com" in base_url_lower:
            return cls.GROQ
        return cls.OPENAI


class MessageRole(Enum):
    """OpenAI-compatible message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class LLMMessage:
    """OpenAI-compatible message structure."""
    role: MessageRole
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class LLMRequest:
    """Chat-completions request body."""
    model: str
    messages: list[LLMMessage]
    stream: bool = True
    temperature: float | None = None
    max_tokens: int | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
            "stream": self.stream,
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        return payload


@dataclass(frozen=True)
class ProviderConfig:
    """Provider configuration."""
    provider: ProviderType
    base_url: str
    model: str
    api_key: str | None = field(default=None, repr=False)
    chat_path: str = "/chat/completions"
    temperature: float | None = None
    max_tokens: int | None = None

    # Connection settings
    max_connections: int = 100
    max_keepalive: int = 20
    keepalive_expiry: float = 5.0
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    write_timeout: float = 10.0
    pool_timeout: float = 10.0

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_config(
        cls,
        llm_config: dict[str, Any],
        http_config: dict[str, Any],
        api_key: str | None,
    ) -> ProviderConfig:
        """Build from the `llm.providers.<active>` and `http_client` sections."""
        for key in ("base_url", "model"):
            if key not in llm_config:
                raise ConfigurationError(
                    f"Required LLM configuration parameter '{key}' not found."
                )
        return cls(
            provider=ProviderType.detect(llm_config["base_url"]),
            base_url=llm_config["base_url"],
            model=llm_config["model"],
            api_key=api_key,
            chat_path=llm_config.get("chat_path", "/chat/completions"),
            temperature=llm_config.get("temperature"),
            max_tokens=llm_config.get("max_tokens"),
            **{
                key: http_config[key]
                for key in (
                    "max_connections", "max_keepalive", "keepalive_expiry",
                    "connect_timeout", "read_timeout", "write_timeout",
                    "pool_timeout",
                )
                if key in http_config
            },
        )
