"""Tests for configuration validation."""

import pytest

from agentic_rag.core import config
from agentic_rag.core.errors import ConfigError


def test_defaults_are_valid() -> None:
    config.validate_config()


@pytest.mark.parametrize(
    "name, value, message",
    [
        ("RAG_MAX_RESULTS", 0, "RAG_MAX_RESULTS"),
        ("CONFIDENCE_THRESHOLD", 1.5, "CONFIDENCE_THRESHOLD"),
        ("STORE_RETRY_ATTEMPTS", 0, "STORE_RETRY_ATTEMPTS"),
        ("LOG_LEVEL", "VERBOSE", "LOG_LEVEL"),
    ],
)
def test_out_of_range(monkeypatch, name, value, message) -> None:
    monkeypatch.setattr(config, name, value)
    with pytest.raises(ConfigError, match=message):
        config.validate_config()


def test_env_int_rejects_garbage(monkeypatch) -> None:
    monkeypatch.setenv("RAG_MAX_RESULTS", "three")
    with pytest.raises(ConfigError, match="must be an integer"):
        config._env_int("RAG_MAX_RESULTS", 3)


def test_describe_config_has_no_secrets() -> None:
    described = config.describe_config()
    assert "tenant" in described
    assert not any("key" in k or "token" in k for k in described)


class TestStoreRetryBudget:
    """Tests for store_retry_budget()."""

    def test_counts_both_embedding_urls_and_backoff(self) -> None:
        # 3 attempts of (2 x 10s embed + 5s search), sleeping 1s then 2s in between
        assert config.store_retry_budget(attempts=3, store_timeout=5, embed_timeout=10, base_delay=1) == 78

    def test_single_attempt_has_no_backoff(self) -> None:
        assert config.store_retry_budget(attempts=1, store_timeout=5, embed_timeout=10, base_delay=1) == 25

    def test_defaults_fit_in_backend_timeout(self) -> None:
        assert config.store_retry_budget() < config.BACKEND_CALL_TIMEOUT

    def test_rejects_budget_over_backend_timeout(self, monkeypatch) -> None:
        monkeypatch.setattr(config, "BACKEND_CALL_TIMEOUT", 10.0)
        with pytest.raises(ConfigError, match="does not fit in BACKEND_CALL_TIMEOUT"):
            config.validate_config()
