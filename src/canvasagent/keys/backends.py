"""Credential sources: environment variables, JSON secrets files and keyring."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import keyring
from keyring.errors import KeyringError

from ..errors import ConfigError


def load_from_env(var_name: str) -> str:
    """Read an API key from the environment variable ``var_name``."""
    value = (os.environ.get(var_name) or "").strip()
    if not value:
        raise ConfigError(
            f"API key environment variable {var_name} is unset or empty "
            f"(export {var_name}=<key>)"
        )
    return value


def load_from_json(file_path: str, key_name: str) -> str:
    """Read an API key from a JSON secrets file.

    ``key_name`` is a dotted path into nested objects, e.g.
    ``"providers.gemini"``.
    """
    path = Path(file_path).expanduser()
    if not path.is_file():
        raise ConfigError(f"API key file not found: {file_path}")
    try:
        node: Any = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as e:
        raise ConfigError(f"Invalid JSON in API key file {file_path}: {e}") from e

    for segment in key_name.split("."):
        if not isinstance(node, dict) or segment not in node:
            raise ConfigError(f"Key '{key_name}' not found in {file_path}")
        node = node[segment]

    if not isinstance(node, str):
        raise ConfigError(f"Key '{key_name}' in {file_path} is not a string")
    return node.strip()


def load_from_keyring(service: str, account: str) -> str:
    """Read an API key from the platform credential store via keyring."""
    backend = type(keyring.get_keyring()).__name__
    try:
        secret = keyring.get_password(service, account)
    except KeyringError as e:
        raise ConfigError(
            f"Failed to access credential store ({backend}) for {service}/{account}: {e}"
        ) from e
    if not secret:
        raise ConfigError(f"API key for {service}/{account} not found in credential store ({backend})")
    return secret.strip()
