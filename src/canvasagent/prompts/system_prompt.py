"""System prompt assembly with response-schema substitution."""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Optional

from ..constants import JSON_SCHEMA_PLACEHOLDER
from ..errors import ConfigError

DEFAULT_SYSTEM_PROMPT_TEMPLATE = f"""# System Prompt

You are an AI agent working on a shared canvas document.
Respond only with structured JSON matching the schema below.

Your response must be a single JSON object with an "actions" array.
Every action has a "kind" field naming its type. Actions are applied in
array order, one at a time, as soon as each is complete.

## JSON Schema

{JSON_SCHEMA_PLACEHOLDER}"""


def render_schema(schema: dict[str, Any]) -> str:
    return json.dumps(schema, indent=2, ensure_ascii=False)


def build_system_prompt(
    schema: Optional[dict[str, Any]],
    template: Optional[str] = None,
    snippets: Iterable[str] = (),
) -> str:
    """Fill the schema placeholder and append per-action prompt snippets.

    An empty or missing template falls back to the default one.
    """
    prompt = template if template and template.strip() else DEFAULT_SYSTEM_PROMPT_TEMPLATE
    if schema is not None and JSON_SCHEMA_PLACEHOLDER in prompt:
        prompt = prompt.replace(JSON_SCHEMA_PLACEHOLDER, render_schema(schema))

    extra = [snippet.strip() for snippet in snippets if snippet and snippet.strip()]
    if extra:
        prompt = "\n\n".join([prompt.rstrip(), *extra])
    return prompt


def load_prompt_template(prompt_path: str) -> str:
    """Load a prompt template file."""
    prompt_file = Path(prompt_path).expanduser()
    if not prompt_file.exists():
        raise ConfigError(f"Prompt file not found: {prompt_path}")
    return prompt_file.read_text(encoding="utf-8")
