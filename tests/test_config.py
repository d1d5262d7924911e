"""Tests for settings parsing, the model catalog and the provider factory."""

from __future__ import annotations

import pytest

from canvasagent.ai.catalog import (
    get_provider_for_model,
    normalize_model_name,
    resolve_model_id,
    visible_models,
)
from canvasagent.ai.claude_provider import ClaudeProvider
from canvasagent.ai.factory import create_provider, get_provider_class
from canvasagent.ai.openai_compatible_provider import OpenAICompatibleProvider
from canvasagent.domain.config import DEFAULT_HISTORY_LIMIT, AgentSettings, ProviderConfig
from canvasagent.errors import ConfigError, UnknownProviderError


def test_provider_config_resolves_friendly_model_name():
    config = ProviderConfig.from_dict({"model": "claude-4.5-sonnet", "api_key": " sk-ant-test "})

    assert config.name == "claude"
    assert config.model_id == "claude-sonnet-4-5-20250929"
    assert config.credentials == "sk-ant-test"


def test_provider_config_requires_model():
    with pytest.raises(ConfigError, match="model"):
        ProviderConfig.from_dict({"name": "claude", "api_key": "sk"})


def test_provider_config_rejects_unknown_provider():
    with pytest.raises(UnknownProviderError):
        ProviderConfig.from_dict({"name": "mistral", "model": "large", "api_key": "sk"})


def test_provider_config_requires_key_except_for_compatible_endpoints():
    with pytest.raises(ConfigError, match="api_key"):
        ProviderConfig.from_dict({"name": "openai", "model": "gpt-4o"})

    config = ProviderConfig.from_dict(
        {"model": "llama3.1:8b", "endpoint": "http://localhost:11434/v1"}
    )
    assert config.name == "openai-compatible"
    assert config.credentials == ""
    assert config.endpoint_override == "http://localhost:11434/v1"


def test_provider_config_loads_key_from_env(monkeypatch):
    monkeypatch.setenv("CANVASAGENT_TEST_KEY", "sk-from-env")

    config = ProviderConfig.from_dict(
        {"model": "gpt-4o", "api_key": {"type": "env", "key": "CANVASAGENT_TEST_KEY"}}
    )

    assert config.name == "openai"
    assert config.credentials == "sk-from-env"


def test_provider_config_can_skip_credential_resolution():
    config = ProviderConfig.from_dict(
        {"model": "gpt-4o", "api_key": {"type": "env", "key": "CANVASAGENT_UNSET_KEY"}},
        resolve_credentials=False,
    )
    assert config.credentials == ""


@pytest.mark.parametrize(
    "field, value",
    [
        ("max_output_tokens", 0),
        ("max_output_tokens", 12.5),
        ("temperature", "hot"),
        ("timeout", -1),
        ("temperature", True),
    ],
)
def test_provider_config_validates_numbers(field, value):
    raw = {"name": "claude", "model": "claude-4.5-sonnet", "api_key": "sk", field: value}
    with pytest.raises(ConfigError):
        ProviderConfig.from_dict(raw)


def test_agent_settings_from_dict():
    settings = AgentSettings.from_dict(
        {
            "provider": {"model": "gpt-4o", "api_key": "sk", "max_output_tokens": 2048},
            "system_prompt": "Schema: {{JSON_SCHEMA}}",
            "json_schema": '{"type": "object"}',
            "history_limit": 10,
        }
    )

    assert settings.provider.max_output_tokens == 2048
    assert settings.system_prompt_template == "Schema: {{JSON_SCHEMA}}"
    assert settings.override_schema == '{"type": "object"}'
    assert settings.history_limit == 10


def test_agent_settings_defaults_and_validation():
    settings = AgentSettings.from_dict({"provider": {"model": "gpt-4o", "api_key": "sk"}})
    assert settings.history_limit == DEFAULT_HISTORY_LIMIT
    assert settings.system_prompt_template is None

    with pytest.raises(ConfigError, match="provider"):
        AgentSettings.from_dict({})
    with pytest.raises(ConfigError):
        AgentSettings.from_dict({"provider": {"model": "gpt-4o", "api_key": "sk"}, "history_limit": 0})


def test_catalog_lookups():
    assert get_provider_for_model("gemini-2.5-pro") == "gemini"
    assert get_provider_for_model("qwen2.5:14b") == "openai-compatible"
    assert normalize_model_name("gpt-5-2025-08-07") == "gpt-5"
    assert normalize_model_name("unknown") is None
    assert resolve_model_id("openai", "gpt-4.1") == "gpt-4.1-2025-04-14"
    assert resolve_model_id("openai-compatible", "gpt-4.1") == "gpt-4.1"
    assert all(not model.hidden for model in visible_models())


def test_factory_builds_configured_provider():
    provider = create_provider(
        ProviderConfig(name="claude", model_id="claude-sonnet-4-5-20250929", credentials="sk-ant-test", timeout=30)
    )
    assert isinstance(provider, ClaudeProvider)
    assert provider.timeout == 30

    compatible = create_provider(
        ProviderConfig(name="openai-compatible", model_id="llama3.1:8b", endpoint_override=" http://gpu:8000/v1 ")
    )
    assert isinstance(compatible, OpenAICompatibleProvider)
    assert compatible.endpoint == "http://gpu:8000/v1"


def test_factory_rejects_unknown_provider():
    with pytest.raises(UnknownProviderError, match="Available providers"):
        get_provider_class("mistral")
