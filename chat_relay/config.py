"""Configuration management for the chat relay."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

from chat_relay.llm.exceptions import ConfigurationError
from chat_relay.llm.models import ProviderConfig
from chat_relay.llm.rate_limiting.models import RateLimitConfig

CONFIG_PATH_ENV = "CHAT_RELAY_CONFIG"

# Map provider names to environment variable names
PROVIDER_KEY_MAP = {
    "openai": "OPENAI_API_KEY",
    "groq": "GROQ_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "azure": "AZURE_OPENAI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
}


class Configuration:
    """Manages configuration and environment variables for the relay."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for API keys
        self.config_path = (
            config_path
            or os.getenv(CONFIG_PATH_ENV)
            or os.path.join(os.path.dirname(__file__), "config.yaml")
        )
        self._config = self._load_yaml_config(self.config_path)

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    @staticmethod
    def _load_yaml_config(config_path: str) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ConfigurationError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def active_provider(self) -> str:
        return self._config.get("llm", {}).get("active", "openai")

    @property
    def llm_api_key(self) -> str:
        """Get the API key for the active LLM provider.

        Returns:
            The API key as a string.

        Raises:
            ConfigurationError: If the API key is not found in environment variables.
        """
        active_provider = self.active_provider
        env_key = self.get_llm_config().get("api_key_env") or PROVIDER_KEY_MAP.get(
            active_provider
        )
        if not env_key:
            raise ConfigurationError(
                f"Unknown provider '{active_provider}' - no API key mapping found"
            )

        api_key = os.getenv(env_key)
        if not api_key:
            raise ConfigurationError(
                f"API key '{env_key}' not found in environment variables "
                f"for provider '{active_provider}'"
            )

        return api_key

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary."""
        return self._config

    def get_llm_config(self) -> dict[str, Any]:
        """Get active LLM provider configuration from YAML.

        Returns:
            Active LLM provider configuration dictionary.
        """
        providers = self._config.get("llm", {}).get("providers", {})
        active_provider = self.active_provider

        if active_provider not in providers:
            raise ConfigurationError(
                f"Active provider '{active_provider}' not found in providers config"
            )

        return providers[active_provider]

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP client configuration for the active LLM provider.

        Raises:
            ConfigurationError: If timeouts are missing or not positive.
        """
        http_config = self.get_llm_config().get("http_client", {})

        required_keys = [
            "connect_timeout", "read_timeout", "write_timeout", "pool_timeout",
        ]
        for key in required_keys:
            if key not in http_config:
                raise ConfigurationError(
                    f"http_client.{key} must be explicitly configured "
                    f"for provider '{self.active_provider}' in config.yaml"
                )
            if http_config[key] <= 0:
                raise ConfigurationError(f"http_client.{key} must be positive")

        return http_config

    def get_provider_config(self, api_key: str | None) -> ProviderConfig:
        """Build the typed provider configuration; `api_key` may be None."""
        return ProviderConfig.from_config(
            self.get_llm_config(), self.get_http_client_config(), api_key
        )

    def get_server_config(self) -> dict[str, Any]:
        """Get HTTP server configuration.

        Returns:
            Server configuration with host, port, api_prefix and cors_origins.
        """
        server_config = self._config.get("server", {})
        for key in ("host", "port"):
            if key not in server_config:
                raise ConfigurationError(
                    f"server.{key} must be explicitly configured in config.yaml"
                )
        port = server_config["port"]
        if not isinstance(port, int) or not 0 < port < 65536:
            raise ConfigurationError(f"server.port must be a valid port, got {port!r}")

        return {
            "api_prefix": "/api",
            "cors_origins": ["*"],
            **server_config,
        }

    def get_rate_limit_config(self) -> RateLimitConfig:
        """Get rate limiting configuration for the chat endpoint."""
        rate_config = self._config.get("rate_limit", {})
        try:
            return RateLimitConfig(
                path_prefix=self.get_server_config()["api_prefix"],
                **rate_config,
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid rate_limit configuration: {e}") from e

    def get_client_config(self) -> dict[str, Any]:
        """Get terminal client configuration."""
        client_config = self._config.get("client", {})
        if "base_url" not in client_config:
            raise ConfigurationError(
                "client.base_url must be explicitly configured in config.yaml"
            )
        return {"timeout": 60.0, **client_config}

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration; level defaults to INFO."""
        return {"level": "INFO", **self._config.get("logging", {})}
