"""Application configuration dataclasses.

Frozen dataclasses with sensible defaults for each subsystem, overridable
at construction time. ``settings_from_env`` is the only place that reads
the process environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from dataclasses import field

FLASH_MODEL = "gemini-2.5-flash"
PRO_MODEL = "gemini-1.5-pro"


@dataclass(frozen=True)
class LLMConfig:
    """Generative backend settings used by the intent extractor."""

    provider: str = "gemini"
    default_model: str = FLASH_MODEL
    fallback_model: str = PRO_MODEL
    api_key: str | None = None
    # None keeps the adapter's own endpoint for the provider
    base_url: str | None = None
    temperature: float = 0.2
    top_p: float = 0.9
    max_tokens: int = 2048
    timeout_seconds: float = 30.0
    # Outputs shorter than this are treated as empty
    min_output_chars: int = 10

    @property
    def models(self) -> tuple[str, ...]:
        """Configured model variants, default first."""
        if self.fallback_model == self.default_model:
            return (self.default_model,)
        return (self.default_model, self.fallback_model)


@dataclass(frozen=True)
class BlobStoreConfig:
    """Remote blob store endpoints and limits."""

    publisher_url: str = "https://publisher.walrus-testnet.walrus.space"
    aggregator_url: str = "https://aggregator.walrus-testnet.walrus.space"
    timeout_seconds: float = 10.0
    default_epochs: int = 5


@dataclass(frozen=True)
class MemoryConfig:
    """Commit scheduling and backoff parameters for the memory manager."""

    debounce_seconds: float = 2.0
    fast_path_seconds: float = 0.1
    max_consecutive_failures: int = 3
    backoff_seconds: float = 30.0
    notice_throttle_seconds: float = 10.0
    redis_url: str | None = None


@dataclass(frozen=True)
class Settings:
    """Bundle of every subsystem config, as loaded from the environment."""

    llm: LLMConfig = field(default_factory=LLMConfig)
    blob_store: BlobStoreConfig = field(default_factory=BlobStoreConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)


def _env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def settings_from_env() -> Settings:
    """Build ``Settings`` from environment variables, keeping defaults."""
    llm_defaults = LLMConfig()
    blob_defaults = BlobStoreConfig()
    return Settings(
        llm=LLMConfig(
            provider=_env("INTENTVAULT_LLM_PROVIDER") or llm_defaults.provider,
            api_key=_env("GOOGLE_API_KEY"),
            base_url=_env("INTENTVAULT_LLM_BASE_URL"),
        ),
        blob_store=BlobStoreConfig(
            publisher_url=_env("WALRUS_PUBLISHER_URL") or blob_defaults.publisher_url,
            aggregator_url=_env("WALRUS_AGGREGATOR_URL")
            or blob_defaults.aggregator_url,
        ),
        memory=MemoryConfig(redis_url=_env("REDIS_URL")),
    )
