"""API key configuration and dispatch to the credential sources."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Required, TypedDict

from ..constants import PROVIDER_OPENAI_COMPATIBLE
from ..errors import ConfigError
from . import backends

# Shortest plausible hosted-provider key; local servers accept anything.
MIN_API_KEY_LENGTH = 20


class KeyConfig(TypedDict, total=False):
    """Where to find a provider API key, selected by ``type``:

    - ``{"type": "direct", "value": "sk-..."}``
    - ``{"type": "env", "key": "ANTHROPIC_API_KEY"}``
    - ``{"type": "json", "path": "~/.secrets/keys.json", "key": "providers.gemini"}``
    - ``{"type": "keychain", "service": "canvasagent", "account": "claude"}``
      (``credential`` is an alias; both go through keyring)
    """

    type: Required[str]
    value: str
    key: str
    path: str
    service: str
    account: str


def _direct(value: str) -> str:
    return value.strip()


_SOURCES: dict[str, tuple[tuple[str, ...], Callable[..., str]]] = {
    "direct": (("value",), _direct),
    "env": (("key",), backends.load_from_env),
    "json": (("path", "key"), backends.load_from_json),
    "keychain": (("service", "account"), backends.load_from_keyring),
    "credential": (("service", "account"), backends.load_from_keyring),
}


def load_api_key(provider: str, config: KeyConfig | Mapping[str, Any]) -> str:
    """Resolve the API key described by ``config``.

    Raises:
        ConfigError: If the config is malformed or the source has no key
    """
    key_type = config.get("type")
    source = _SOURCES.get(key_type) if isinstance(key_type, str) else None
    if source is None:
        raise ConfigError(f"Unknown key type '{key_type}' for provider '{provider}'")

    fields, load = source
    missing = [name for name in fields if not isinstance(config.get(name), str)]
    if missing:
        raise ConfigError(f"Key config for provider '{provider}' is missing: {', '.join(missing)}")
    return load(*(config[name] for name in fields))


def validate_api_key(key: str, provider: str) -> bool:
    """Cheap plausibility check before any network call."""
    if provider == PROVIDER_OPENAI_COMPATIBLE:
        return True
    return len((key or "").strip()) >= MIN_API_KEY_LENGTH
