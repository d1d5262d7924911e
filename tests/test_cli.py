"""Tests for the command line entry point."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest

from canvasagent import cli
from canvasagent.ai.types import ConnectionResult, FetchedModel
from canvasagent.errors import AgentErrorKind, ConfigError

from conftest import ScriptedProvider


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("canvasagent.cli.setup_logging") as mock_setup:
        yield mock_setup


@pytest.fixture
def settings_file(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps({"provider": {"model": "claude-4.5-sonnet", "api_key": "sk-ant-test"}}),
        encoding="utf-8",
    )
    return path


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_parser_rejects_unknown_provider():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["models", "--provider", "mistral"])


def test_load_settings_file_errors(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        cli.load_settings_file(str(tmp_path / "missing.json"))

    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid JSON"):
        cli.load_settings_file(str(broken))

    listed = tmp_path / "list.json"
    listed.write_text("[]", encoding="utf-8")
    with pytest.raises(ConfigError, match="JSON object"):
        cli.load_settings_file(str(listed))


def test_prompt_prints_applied_actions(settings_file, capsys):
    provider = ScriptedProvider(
        ['{"actions": [{"kind": "think", "text": "plan"},', ' {"kind": "message", "text": "Hello!"}]}']
    )

    with patch("canvasagent.cli.create_provider", return_value=provider):
        exit_code = cli.main(["prompt", "-c", str(settings_file), "Say hi"])

    assert exit_code == 0
    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    assert lines == [{"kind": "think", "text": "plan"}, {"kind": "message", "text": "Hello!"}]
    assert provider.requests[0].model_id == "claude-sonnet-4-5-20250929"


def test_prompt_reports_provider_errors(settings_file, capsys):
    from canvasagent.errors import AgentError

    provider = ScriptedProvider(
        ['{"actions": ['],
        error=AgentError(AgentErrorKind.RATE_LIMITED, "Rate limit exceeded.", retryable=True, provider="scripted"),
    )

    with patch("canvasagent.cli.create_provider", return_value=provider):
        exit_code = cli.main(["prompt", "-c", str(settings_file), "Say hi"])

    assert exit_code == 1
    assert "Error (rate_limited): Rate limit exceeded." in capsys.readouterr().err


def test_prompt_with_missing_config(tmp_path, capsys):
    exit_code = cli.main(["prompt", "-c", str(tmp_path / "nope.json"), "hi"])

    assert exit_code == 1
    assert "Config file not found" in capsys.readouterr().err


def test_models_requires_key_for_hosted_providers(capsys):
    assert cli.main(["models", "--provider", "claude"]) == 1
    assert "--key-env is required" in capsys.readouterr().err


def test_models_lists_ids_and_names(monkeypatch, capsys):
    monkeypatch.setenv("CANVASAGENT_TEST_KEY", "sk-ant-test")
    result = ConnectionResult(
        success=True,
        models=[
            FetchedModel(id="claude-sonnet-4-5-20250929", display_name="Claude Sonnet 4.5"),
            FetchedModel(id="custom", display_name="custom"),
        ],
    )

    with patch("canvasagent.ai.claude_provider.ClaudeProvider.test_connection", new=AsyncMock(return_value=result)):
        exit_code = cli.main(["models", "--provider", "claude", "--key-env", "CANVASAGENT_TEST_KEY"])

    assert exit_code == 0
    assert capsys.readouterr().out.splitlines() == [
        "claude-sonnet-4-5-20250929\tClaude Sonnet 4.5",
        "custom",
    ]


def test_models_reports_failed_connection(capsys):
    result = ConnectionResult(success=False, error="Cannot connect", error_kind=AgentErrorKind.NETWORK)

    with patch(
        "canvasagent.ai.openai_compatible_provider.OpenAICompatibleProvider.test_connection",
        new=AsyncMock(return_value=result),
    ):
        exit_code = cli.main(["models", "--provider", "openai-compatible"])

    assert exit_code == 1
    assert "Error: Cannot connect" in capsys.readouterr().err
