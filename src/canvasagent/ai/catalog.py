"""Model catalog: friendly model names and provider lookup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..constants import (
    PROVIDER_CLAUDE,
    PROVIDER_GEMINI,
    PROVIDER_OPENAI,
    PROVIDER_OPENAI_COMPATIBLE,
)


@dataclass(frozen=True, slots=True)
class ModelDefinition:
    name: str
    model_id: str
    provider: str
    hidden: bool = False


DEFAULT_MODEL_NAME = "claude-4.5-sonnet"

# Friendly name -> definition. Anything else is assumed to be served by an
# OpenAI-compatible endpoint (Ollama, LM Studio, ...).
MODEL_DEFINITIONS: dict[str, ModelDefinition] = {
    definition.name: definition
    for definition in (
        ModelDefinition("claude-4.5-sonnet", "claude-sonnet-4-5-20250929", PROVIDER_CLAUDE),
        ModelDefinition("claude-4-sonnet", "claude-sonnet-4-20250514", PROVIDER_CLAUDE),
        ModelDefinition("claude-3.7-sonnet", "claude-3-7-sonnet-20250219", PROVIDER_CLAUDE),
        ModelDefinition("gemini-2.5-flash", "gemini-2.5-flash", PROVIDER_GEMINI, hidden=True),
        ModelDefinition("gemini-2.5-pro", "gemini-2.5-pro", PROVIDER_GEMINI, hidden=True),
        ModelDefinition("gpt-5", "gpt-5-2025-08-07", PROVIDER_OPENAI),
        ModelDefinition("gpt-4.1", "gpt-4.1-2025-04-14", PROVIDER_OPENAI),
        ModelDefinition("gpt-4o", "gpt-4o", PROVIDER_OPENAI),
    )
}


def get_model_definition(name: str) -> ModelDefinition:
    """Return the catalog definition, or a dynamic openai-compatible one."""
    definition = MODEL_DEFINITIONS.get(name)
    if definition is not None:
        return definition
    return ModelDefinition(name=name, model_id=name, provider=PROVIDER_OPENAI_COMPATIBLE)


def get_provider_for_model(name: str) -> str:
    return get_model_definition(name).provider


def normalize_model_name(name_or_id: str) -> Optional[str]:
    """Map either a friendly name or an API model id back to the friendly name."""
    if name_or_id in MODEL_DEFINITIONS:
        return name_or_id
    for definition in MODEL_DEFINITIONS.values():
        if definition.model_id == name_or_id:
            return definition.name
    return None


def resolve_model_id(provider: str, name_or_id: str) -> str:
    """Resolve a configured model to the API id for ``provider``.

    Friendly names are only expanded when they belong to the same provider.
    """
    definition = MODEL_DEFINITIONS.get(name_or_id)
    if definition is not None and definition.provider == provider:
        return definition.model_id
    return name_or_id


def visible_models(provider: Optional[str] = None) -> list[ModelDefinition]:
    return [
        definition
        for definition in MODEL_DEFINITIONS.values()
        if not definition.hidden and (provider is None or definition.provider == provider)
    ]
