"""Typed provider and agent configuration used at config I/O boundaries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..ai.catalog import get_provider_for_model, resolve_model_id
from ..constants import (
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_TEMPERATURE,
    PROVIDER_NAMES,
    PROVIDER_OPENAI_COMPATIBLE,
)
from ..errors import ConfigError, UnknownProviderError
from ..keys.loader import load_api_key
from ..timeouts import DEFAULT_PROVIDER_TIMEOUT_SEC

DEFAULT_HISTORY_LIMIT = 50


def _optional_str(mapping: Mapping[str, Any], key: str) -> Optional[str]:
    value = mapping.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"'{key}' must be a string")
    return value


def _number(
    mapping: Mapping[str, Any], key: str, default: int | float, *, minimum: float = 0
) -> int | float:
    value = mapping.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' must be a number")
    if value < minimum:
        raise ConfigError(f"'{key}' must be >= {minimum:g}")
    return value


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Active provider, credentials and generation limits."""

    name: str
    model_id: str
    credentials: str = ""
    endpoint_override: Optional[str] = None
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    timeout: int | float = DEFAULT_PROVIDER_TIMEOUT_SEC

    @classmethod
    def from_dict(
        cls, raw: Mapping[str, Any], *, resolve_credentials: bool = True
    ) -> ProviderConfig:
        """Build a provider config from mapped data.

        ``api_key`` is either a plain string or a key config mapping
        (``env``/``json``/``keychain``/``direct``). When ``name`` is omitted
        the provider is looked up from the model catalog.
        """
        if not isinstance(raw, Mapping):
            raise ConfigError("'provider' must be a dictionary")

        model = _optional_str(raw, "model")
        if not model:
            raise ConfigError("Provider config missing required field: model")

        name = _optional_str(raw, "name") or get_provider_for_model(model)
        if name not in PROVIDER_NAMES:
            raise UnknownProviderError(name, list(PROVIDER_NAMES))

        credentials = ""
        api_key = raw.get("api_key")
        if isinstance(api_key, str):
            credentials = api_key.strip()
        elif isinstance(api_key, Mapping):
            if resolve_credentials:
                credentials = load_api_key(name, api_key)
        elif api_key is not None:
            raise ConfigError("'api_key' must be a string or a key config dictionary")
        elif name != PROVIDER_OPENAI_COMPATIBLE:
            raise ConfigError(f"Provider '{name}' requires an 'api_key'")

        max_output_tokens = _number(
            raw, "max_output_tokens", DEFAULT_MAX_OUTPUT_TOKENS, minimum=1
        )
        if not isinstance(max_output_tokens, int):
            raise ConfigError("'max_output_tokens' must be an integer")

        return cls(
            name=name,
            model_id=resolve_model_id(name, model),
            credentials=credentials,
            endpoint_override=_optional_str(raw, "endpoint") or None,
            max_output_tokens=max_output_tokens,
            temperature=float(_number(raw, "temperature", DEFAULT_TEMPERATURE)),
            timeout=_number(raw, "timeout", DEFAULT_PROVIDER_TIMEOUT_SEC),
        )


@dataclass(frozen=True, slots=True)
class AgentSettings:
    """Everything a runtime needs besides the provider instance and registry."""

    provider: ProviderConfig
    system_prompt_template: Optional[str] = None
    override_schema: Optional[str] = None
    history_limit: int = DEFAULT_HISTORY_LIMIT

    @classmethod
    def from_dict(
        cls, raw: Mapping[str, Any], *, resolve_credentials: bool = True
    ) -> AgentSettings:
        if not isinstance(raw, Mapping):
            raise ConfigError("Settings must be a dictionary-like mapping")
        if "provider" not in raw:
            raise ConfigError("Settings missing required field: provider")

        history_limit = _number(raw, "history_limit", DEFAULT_HISTORY_LIMIT, minimum=1)
        if not isinstance(history_limit, int):
            raise ConfigError("'history_limit' must be an integer")

        return cls(
            provider=ProviderConfig.from_dict(
                raw["provider"], resolve_credentials=resolve_credentials
            ),
            system_prompt_template=_optional_str(raw, "system_prompt"),
            override_schema=_optional_str(raw, "json_schema"),
            history_limit=history_limit,
        )
