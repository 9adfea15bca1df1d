#!/usr/bin/env python3
"""Regression tests: engine configuration and YAML loading."""

import pytest
from nullaudit import HttpModelCaller, create_orchestrator
from nullaudit.config import DEFAULT_MODELS, EngineConfig, RateLimitConfig
from nullaudit.config_loader import ConfigLoader


# ============================================================================
# EngineConfig
# ============================================================================

def test_defaults():
    config = EngineConfig().validate()

    assert config.models == DEFAULT_MODELS
    assert config.confidence_threshold == 0.8
    assert config.max_retries == 3
    assert config.retry_delay_ms == 1000
    assert config.cache_ttl_ms == 3600000
    assert config.rate_limit is None
    assert config.reviewer_weights["gpt-4"] == 0.4


def test_from_env():
    config = EngineConfig.from_env({
        "NULLAUDIT_API_KEY": "secret",
        "NULLAUDIT_MODELS": "gpt-4, gemini-pro",
        "NULLAUDIT_ENABLE_HITL": "false",
        "NULLAUDIT_CONFIDENCE_THRESHOLD": "0.6",
        "NULLAUDIT_MAX_RETRIES": "1",
        "NULLAUDIT_ENABLE_CACHE": "false",
    })

    assert config.api_key == "secret"
    assert config.models == ["gpt-4", "gemini-pro"]
    assert config.enable_hitl is False
    assert config.enable_caching is False
    assert config.confidence_threshold == 0.6
    assert config.max_retries == 1
    assert config.rate_limit.requests == 100
    assert config.rate_limit.window_ms == 60000


def test_from_env_empty_uses_defaults():
    config = EngineConfig.from_env({})
    assert config.api_key == ""
    assert config.models == DEFAULT_MODELS
    assert config.enable_hitl is True


def test_from_dict():
    config = EngineConfig.from_dict({
        "models": ["a", "b"],
        "rate_limit": {"requests": 5, "window_ms": 1000},
        "reviewer_weights": {"a": 0.5},
        "unknown_key": "ignored",
    })

    assert config.models == ["a", "b"]
    assert config.rate_limit == RateLimitConfig(5, 1000)
    assert config.reviewer_weights == {"a": 0.5}


@pytest.mark.parametrize(
    "overrides",
    [
        {"models": []},
        {"confidence_threshold": 1.5},
        {"max_retries": -1},
        {"timeout_ms": 0},
        {"rate_limit": RateLimitConfig(0, 1000)},
        {"reviewer_weights": {"gpt-4": 0.0}},
    ],
)
def test_invalid_config_rejected(overrides):
    with pytest.raises(ValueError):
        EngineConfig(**overrides).validate()


# ============================================================================
# ConfigLoader
# ============================================================================

def test_load_yaml_resolves_env(tmp_path, monkeypatch):
    monkeypatch.setenv("NULLAUDIT_TEST_KEY", "from-env")
    config_file = tmp_path / "nullaudit.yaml"
    config_file.write_text(
        "engine:\n"
        "  api_key: ${NULLAUDIT_TEST_KEY}\n"
        "  models: [gpt-4]\n"
        "  confidence_threshold: 0.7\n"
        "  rate_limit:\n"
        "    requests: 10\n"
        "    window_ms: 1000\n",
        encoding="utf-8",
    )

    config = ConfigLoader.load_engine_config(config_file)

    assert config.api_key == "from-env"
    assert config.models == ["gpt-4"]
    assert config.confidence_threshold == 0.7
    assert config.rate_limit.requests == 10


def test_yaml_flags_from_environment(tmp_path, monkeypatch):
    """Resolved placeholders are strings; only 'false' turns a flag off."""
    monkeypatch.setenv("NULLAUDIT_ENABLE_CACHE", "false")
    monkeypatch.setenv("NULLAUDIT_ENABLE_HITL", "FALSE")
    monkeypatch.delenv("NULLAUDIT_UNSET_FLAG", raising=False)
    config_file = tmp_path / "flags.yaml"
    config_file.write_text(
        "engine:\n"
        "  enable_caching: ${NULLAUDIT_ENABLE_CACHE}\n"
        "  enable_hitl: ${NULLAUDIT_ENABLE_HITL}\n"
        "  enable_fallback: ${NULLAUDIT_UNSET_FLAG}\n",
        encoding="utf-8",
    )

    config = ConfigLoader.load_engine_config(config_file)

    assert config.enable_caching is False
    assert config.enable_hitl is False
    assert config.enable_fallback is True


def test_yaml_native_booleans():
    config = EngineConfig.from_dict({"enable_caching": False, "enable_hitl": True, "enable_fallback": "true"})
    assert config.enable_caching is False
    assert config.enable_hitl is True
    assert config.enable_fallback is True


def test_missing_env_var_resolves_empty(monkeypatch):
    monkeypatch.delenv("NULLAUDIT_MISSING_VAR", raising=False)
    assert ConfigLoader.resolve_env_vars({"key": ["${NULLAUDIT_MISSING_VAR}x"]}) == {"key": ["x"]}


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        ConfigLoader.load_yaml(tmp_path / "absent.yaml")


def test_no_path_reads_environment(monkeypatch):
    monkeypatch.setenv("NULLAUDIT_MODELS", "claude-3-opus")
    config = ConfigLoader.load_engine_config()
    assert config.models == ["claude-3-opus"]



def test_create_orchestrator_picks_caller():
    offline = create_orchestrator(EngineConfig(api_key=""))
    assert offline.invoker.caller is None

    online = create_orchestrator(EngineConfig(api_key="k", request_timeout_ms=5000))
    assert isinstance(online.invoker.caller, HttpModelCaller)
    assert online.invoker.caller.timeout == 5.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
