"""Application settings using pydantic-settings.

Environment variables are read in exactly one place, `Settings`. The
planning core itself only ever sees a `PlannerConfig`, built explicitly
by `build_planner_config` and passed to the coordinator.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Callable, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from layr.llm.vendors import DEFAULT_PROVIDER_ORDER, VENDORS
from layr.schemas import ProviderConfig, RetryConfig


ProviderName = Literal["mistral", "deepseek", "openai"]

# Credential collaborator: returns the stored key for a provider, if any.
KeyLookup = Callable[[str], str | None]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Configuration loaded from environment variables (and `.env`)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # LLM Providers
    # ==========================================================================
    # Mistral
    mistral_api_key: str = Field(default="")
    mistral_base_url: str = VENDORS["mistral"].base_url
    mistral_model: str = VENDORS["mistral"].default_model

    # DeepSeek
    deepseek_api_key: str = Field(default="")
    deepseek_base_url: str = VENDORS["deepseek"].base_url
    deepseek_model: str = VENDORS["deepseek"].default_model

    # OpenAI
    openai_api_key: str = Field(default="")
    openai_base_url: str = VENDORS["openai"].base_url
    openai_model: str = VENDORS["openai"].default_model

    # Model Routing
    primary_provider: ProviderName | None = None

    # Request shape
    max_tokens: int = 4000
    temperature: float = 0.7
    request_timeout_seconds: float = 30.0

    # ==========================================================================
    # Retry / Fallback
    # ==========================================================================
    retry_max_retries: int = 5
    retry_base_delay: float = 2.0
    retry_max_delay: float = 30.0
    retry_backoff_factor: float = 2.0
    heuristic_fallback_enabled: bool = True

    # ==========================================================================
    # Logging
    # ==========================================================================
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class PlannerConfig(BaseModel):
    """Explicit description of which providers are active and how to call them."""

    model_config = ConfigDict(frozen=True)

    providers: tuple[ProviderConfig, ...] = ()
    default_provider: str | None = None
    retry: RetryConfig = Field(default_factory=RetryConfig)
    heuristic_fallback: bool = True

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in self.providers]

    def get_provider(self, name: str) -> ProviderConfig | None:
        for provider in self.providers:
            if provider.name == name:
                return provider
        return None


def build_planner_config(
    settings: Settings | None = None,
    key_lookup: KeyLookup | None = None,
) -> PlannerConfig:
    """Turn settings (plus an optional credential lookup) into a PlannerConfig.

    Args:
        settings: Settings to read; defaults to the cached environment settings
        key_lookup: Credential collaborator; a key it returns wins over the
            environment value for that provider

    Returns:
        PlannerConfig listing every provider that has a non-empty key
    """
    settings = settings or get_settings()

    providers: list[ProviderConfig] = []
    for name in DEFAULT_PROVIDER_ORDER:
        api_key = (key_lookup(name) if key_lookup else None) or getattr(settings, f"{name}_api_key")
        if not api_key:
            continue
        providers.append(
            ProviderConfig(
                name=name,
                api_key=api_key,
                base_url=getattr(settings, f"{name}_base_url"),
                model=getattr(settings, f"{name}_model"),
                max_tokens=settings.max_tokens,
                temperature=settings.temperature,
                timeout=settings.request_timeout_seconds,
            )
        )

    names = [p.name for p in providers]
    if settings.primary_provider in names:
        default_provider = settings.primary_provider
    else:
        default_provider = names[0] if names else None

    return PlannerConfig(
        providers=tuple(providers),
        default_provider=default_provider,
        retry=RetryConfig(
            max_retries=settings.retry_max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            backoff_factor=settings.retry_backoff_factor,
        ),
        heuristic_fallback=settings.heuristic_fallback_enabled,
    )


def configure_logging(level: str | int | None = None) -> None:
    """Apply the standard log format. Meant for application entry points."""
    if level is None:
        level = get_settings().log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(level=level, format=LOG_FORMAT)
