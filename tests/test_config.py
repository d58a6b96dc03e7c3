"""AgentSettings / ReasoningSettings environment handling."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from workflow_copilot.config import AgentSettings
from workflow_copilot.reasoning import DEFAULT_MODEL, ReasoningSettings

_AGENT_VARS = (
    "COPILOT_CACHE_MAX_SIZE",
    "COPILOT_CACHE_TTL_SECONDS",
    "COPILOT_STAGE_TIMEOUT",
    "COPILOT_PARALLEL_EXECUTION",
    "COPILOT_BACKEND_FALLBACK",
    "COPILOT_LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for var in _AGENT_VARS + ("COPILOT_BACKEND", "COPILOT_MODEL", "COPILOT_PROXY_URL"):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


class TestAgentSettings:
    def test_defaults(self, clean_env):
        s = AgentSettings.from_env()
        assert s.cache_max_size == 100
        assert s.cache_ttl_seconds == 300
        assert s.stage_timeout_seconds == 30
        assert s.parallel_execution is False
        assert s.fallback_on_backend_error is True
        assert s.log_level == "WARNING"

    def test_env_overrides(self, clean_env):
        clean_env.setenv("COPILOT_CACHE_MAX_SIZE", "5")
        clean_env.setenv("COPILOT_PARALLEL_EXECUTION", "true")
        clean_env.setenv("COPILOT_LOG_LEVEL", "debug")
        s = AgentSettings.from_env()
        assert s.cache_max_size == 5
        assert s.parallel_execution is True
        assert s.log_level == "DEBUG"

    def test_cache_size_clamped_to_one(self, clean_env):
        assert AgentSettings(cache_max_size=0).cache_max_size == 1

    def test_non_positive_timeout_rejected(self, clean_env):
        with pytest.raises(ValidationError):
            AgentSettings(stage_timeout_seconds=0)


class TestReasoningSettings:
    def test_defaults(self, clean_env):
        s = ReasoningSettings.from_env()
        assert s.provider == "openai"
        assert s.model == DEFAULT_MODEL
        assert s.proxy_url is None

    def test_provider_lowercased_and_empty_proxy_is_none(self, clean_env):
        clean_env.setenv("COPILOT_BACKEND", "PROXY")
        clean_env.setenv("COPILOT_PROXY_URL", "")
        s = ReasoningSettings.from_env()
        assert s.provider == "proxy"
        assert s.proxy_url is None

    def test_api_key_not_in_repr(self, clean_env):
        s = ReasoningSettings(api_key="sk-very-secret")
        assert "sk-very-secret" not in repr(s)
