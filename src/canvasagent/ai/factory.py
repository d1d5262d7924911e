"""Provider adapter factory over the closed set of supported backends."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..constants import (
    PROVIDER_CLAUDE,
    PROVIDER_GEMINI,
    PROVIDER_OPENAI,
    PROVIDER_OPENAI_COMPATIBLE,
)
from ..errors import UnknownProviderError
from .base import AgentProvider
from .claude_provider import ClaudeProvider
from .gemini_provider import GeminiProvider
from .openai_compatible_provider import OpenAICompatibleProvider
from .openai_provider import OpenAIProvider

if TYPE_CHECKING:
    from ..domain.config import ProviderConfig

PROVIDER_CLASSES: dict[str, type] = {
    PROVIDER_CLAUDE: ClaudeProvider,
    PROVIDER_OPENAI: OpenAIProvider,
    PROVIDER_OPENAI_COMPATIBLE: OpenAICompatibleProvider,
    PROVIDER_GEMINI: GeminiProvider,
}


def get_provider_class(name: str) -> type:
    provider_class = PROVIDER_CLASSES.get(name)
    if provider_class is None:
        raise UnknownProviderError(name, list(PROVIDER_CLASSES))
    return provider_class


def create_provider(config: ProviderConfig) -> AgentProvider:
    """Instantiate the adapter for ``config.name``."""
    provider_class = get_provider_class(config.name)
    return provider_class(
        config.credentials,
        timeout=config.timeout,
        endpoint_override=config.endpoint_override,
    )
