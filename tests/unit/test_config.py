"""Tests for configuration defaults and environment loading."""

from __future__ import annotations

import dataclasses

import pytest

from intentvault.config import BlobStoreConfig
from intentvault.config import FLASH_MODEL
from intentvault.config import LLMConfig
from intentvault.config import MemoryConfig
from intentvault.config import PRO_MODEL
from intentvault.config import settings_from_env


class TestDefaults:
    def test_llm_defaults(self):
        config = LLMConfig()
        assert config.provider == "gemini"
        assert config.default_model == FLASH_MODEL
        assert config.max_tokens == 2048
        assert config.temperature == 0.2
        assert config.top_p == 0.9
        assert config.min_output_chars == 10
        assert config.models == (FLASH_MODEL, PRO_MODEL)

    def test_models_deduplicated(self):
        config = LLMConfig(default_model=PRO_MODEL, fallback_model=PRO_MODEL)
        assert config.models == (PRO_MODEL,)

    def test_blob_store_defaults(self):
        config = BlobStoreConfig()
        assert config.timeout_seconds == 10.0
        assert config.default_epochs == 5

    def test_memory_defaults(self):
        config = MemoryConfig()
        assert config.debounce_seconds == 2.0
        assert config.fast_path_seconds == 0.1
        assert config.max_consecutive_failures == 3
        assert config.backoff_seconds == 30.0
        assert config.notice_throttle_seconds == 10.0

    def test_configs_are_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            MemoryConfig().debounce_seconds = 1.0  # type: ignore[misc]


class TestSettingsFromEnv:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "  key-123 ")
        monkeypatch.setenv("INTENTVAULT_LLM_PROVIDER", "openai")
        monkeypatch.setenv("INTENTVAULT_LLM_BASE_URL", "http://llm.test/v1")
        monkeypatch.setenv("WALRUS_PUBLISHER_URL", "http://publisher.test")
        monkeypatch.setenv("WALRUS_AGGREGATOR_URL", "http://aggregator.test")
        monkeypatch.setenv("REDIS_URL", "redis://cache.test:6379")

        settings = settings_from_env()
        assert settings.llm.api_key == "key-123"
        assert settings.llm.provider == "openai"
        assert settings.llm.base_url == "http://llm.test/v1"
        assert settings.blob_store.publisher_url == "http://publisher.test"
        assert settings.blob_store.aggregator_url == "http://aggregator.test"
        assert settings.memory.redis_url == "redis://cache.test:6379"

    def test_blank_values_keep_defaults(self, monkeypatch):
        for name in (
            "GOOGLE_API_KEY",
            "INTENTVAULT_LLM_PROVIDER",
            "INTENTVAULT_LLM_BASE_URL",
            "WALRUS_PUBLISHER_URL",
            "WALRUS_AGGREGATOR_URL",
            "REDIS_URL",
        ):
            monkeypatch.setenv(name, "   ")

        settings = settings_from_env()
        assert settings.llm.api_key is None
        assert settings.llm.provider == "gemini"
        assert settings.llm.base_url is None
        assert settings.blob_store == BlobStoreConfig()
        assert settings.memory.redis_url is None
