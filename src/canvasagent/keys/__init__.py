"""Credential loading for provider API keys."""

from .loader import KeyConfig, load_api_key, validate_api_key

__all__ = ["KeyConfig", "load_api_key", "validate_api_key"]
