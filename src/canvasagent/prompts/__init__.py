"""System prompt templates."""

from .system_prompt import (
    DEFAULT_SYSTEM_PROMPT_TEMPLATE,
    build_system_prompt,
    load_prompt_template,
)

__all__ = [
    "DEFAULT_SYSTEM_PROMPT_TEMPLATE",
    "build_system_prompt",
    "load_prompt_template",
]
