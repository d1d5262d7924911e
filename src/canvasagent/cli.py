"""Command line entry point for canvasagent."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import dataclasses
import json
import signal
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from pydantic import BaseModel

from .actions import MESSAGE_ACTION, THINK_ACTION
from .agent.registry import ActionRegistry
from .agent.runtime import AgentRuntime
from .ai.factory import PROVIDER_CLASSES, create_provider, get_provider_class
from .constants import APP_NAME, PROVIDER_OPENAI_COMPATIBLE
from .domain.actions import ActionContext, ApplyFn
from .domain.config import AgentSettings
from .errors import AgentError, CanvasAgentError, ConfigError
from .keys.backends import load_from_env
from .logging import sanitize_error_message, setup_logging

__all__ = ["main"]


def load_settings_file(path: str) -> AgentSettings:
    """Read a JSON settings file into ``AgentSettings``."""
    settings_path = Path(path).expanduser()
    if not settings_path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        raw = json.loads(settings_path.read_text(encoding="utf-8"))
    except ValueError as e:
        raise ConfigError(f"Invalid JSON in config file {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return AgentSettings.from_dict(raw)


def _printing(apply: ApplyFn) -> ApplyFn:
    def wrapped(action: BaseModel, context: ActionContext) -> Any:
        diff = apply(action, context)
        payload = action.model_dump(mode="json", by_alias=True, exclude_none=True)
        print(json.dumps(payload, ensure_ascii=False), flush=True)
        return diff

    return wrapped


def printing_registry() -> ActionRegistry:
    """Conversational actions that also print each applied action as a JSON line."""
    return ActionRegistry(
        [
            dataclasses.replace(definition, apply=_printing(definition.apply))
            for definition in (MESSAGE_ACTION, THINK_ACTION)
        ]
    )


async def run_models(provider_name: str, credentials: str, endpoint: Optional[str]) -> int:
    provider_class = get_provider_class(provider_name)
    provider = provider_class(credentials, endpoint_override=endpoint)
    result = await provider.test_connection(credentials, endpoint)
    if not result.success:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1
    for model in result.models:
        if model.display_name and model.display_name != model.id:
            print(f"{model.id}\t{model.display_name}")
        else:
            print(model.id)
    return 0


async def run_prompt(settings: AgentSettings, text: str) -> int:
    runtime = AgentRuntime(create_provider(settings.provider), printing_registry(), settings)

    # Ctrl-C cancels the generation instead of killing the process.
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, runtime.cancel)
    try:
        result = await runtime.prompt(text)
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)
        await runtime.aclose()

    if result.cancelled:
        print("Cancelled.", file=sys.stderr)
        return 130
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="canvasagent - stream structured canvas actions from LLM providers",
    )
    parser.add_argument("-l", "--log", help="Path to log file for structured logging (optional)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    models = subparsers.add_parser("models", help="Test provider credentials and list models")
    models.add_argument("--provider", required=True, choices=sorted(PROVIDER_CLASSES))
    models.add_argument("--key-env", help="Environment variable holding the API key")
    models.add_argument("--endpoint", help="Endpoint override (base URL)")

    prompt = subparsers.add_parser("prompt", help="Run one generation and print applied actions")
    prompt.add_argument("-c", "--config", required=True, help="Path to JSON settings file")
    prompt.add_argument("text", help="Prompt text")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the canvasagent CLI."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log)

    try:
        if args.command == "models":
            credentials = ""
            if args.key_env:
                credentials = load_from_env(args.key_env)
            elif args.provider != PROVIDER_OPENAI_COMPATIBLE:
                raise ConfigError("--key-env is required for this provider")
            return asyncio.run(run_models(args.provider, credentials, args.endpoint))

        settings = load_settings_file(args.config)
        return asyncio.run(run_prompt(settings, args.text))
    except AgentError as e:
        print(f"Error ({e.kind.value}): {sanitize_error_message(e.message)}", file=sys.stderr)
        return 1
    except CanvasAgentError as e:
        print(f"Error: {sanitize_error_message(str(e))}", file=sys.stderr)
        return 1
