# Application settings.
# Created: 2026-10-19
#
# Values come from CHATRELAY_* environment variables (or a local .env file).
# Use get_settings() everywhere; it caches one Settings instance per process.

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "You are a supportive, careful assistant. Answer clearly and stay on the "
    "user's topic."
)

WEB_SEARCH_PROMPT = (
    "WEB SEARCH CAPABILITIES ACTIVE:\n"
    "You have access to a browser search tool. When the user asks for current "
    "information, research or resources, use it and relate the findings back "
    "to the user's question."
)


class Settings(BaseSettings):
    """Typed configuration for the chat relay service."""

    model_config = SettingsConfigDict(
        env_prefix="CHATRELAY_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    # Server
    host: str = "127.0.0.1"
    port: int = 8890
    log_level: str = "INFO"
    cors_allowed_origins: list[str] = Field(default_factory=list)

    # Request / response ceilings
    chat_input_max_bytes: int = Field(default=128 * 1024, gt=0)
    chat_response_max_chars: int = Field(default=100_000, gt=0)

    # Model routing
    default_model_id: str = "openai/gpt-oss-20b"
    analytical_model_id: str = "openai/gpt-oss-120b"
    extra_model_ids: list[str] = Field(default_factory=list)
    byok_model_id: str = "byok/openai"
    byok_upstream_model: str = "gpt-4o-mini"
    strict_model_selection: bool = False

    # Upstream endpoints (OpenAI-compatible chat completions)
    platform_base_url: str = "https://api.groq.com/openai/v1"
    platform_api_key: SecretStr | None = None
    byok_base_url: str = "https://api.openai.com/v1"
    model_timeout_seconds: float = 60.0

    # Prompts
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    web_search_prompt: str = WEB_SEARCH_PROMPT

    # Storage
    data_dir: Path | None = None
    message_cache_ttl_seconds: float = 300.0

    # Metadata retry queue
    metadata_flush_delay_ms: int = Field(default=60, ge=0)
    metadata_max_retries: int = Field(default=3, ge=1)

    @property
    def recognized_model_ids(self) -> frozenset[str]:
        """Model ids a caller may request by name."""
        return frozenset([self.default_model_id, self.analytical_model_id, *self.extra_model_ids])


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings (call ``get_settings.cache_clear()`` to reload)."""
    return Settings()
