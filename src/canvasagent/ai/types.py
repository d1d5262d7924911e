"""Shared typed contracts between the runtime and provider adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional, TypedDict, Union

from ..errors import AgentErrorKind


class TextBlock(TypedDict):
    type: Literal["text"]
    text: str


class ImageBlock(TypedDict):
    """Image content; ``image`` is a base64 data URL."""

    type: Literal["image"]
    image: str


ContentBlock = Union[TextBlock, ImageBlock]


class ProviderMessage(TypedDict):
    role: Literal["user", "assistant"]
    content: Union[str, list[ContentBlock]]


@dataclass(slots=True)
class ProviderSessionState:
    """Backend conversation state owned by one runtime; never persisted.

    ``response_id`` chains OpenAI Responses API calls through
    ``previous_response_id``. The token counters accumulate prompt-cache
    usage reported by the backend.
    """

    response_id: Optional[str] = None
    cache_created_tokens: int = 0
    cache_read_tokens: int = 0

    @property
    def cache_created(self) -> bool:
        return self.cache_created_tokens > 0

    def record_cache(self, *, created: int = 0, read: int = 0) -> None:
        self.cache_created_tokens += created
        self.cache_read_tokens += read

    def reset(self) -> None:
        self.response_id = None
        self.cache_created_tokens = 0
        self.cache_read_tokens = 0


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """One generation request.

    ``response_schema`` is a hint to the backend, not a contract; the parser
    still validates every action it extracts. ``session`` is updated in
    place by adapters that keep backend state between calls.
    """

    system_prompt: str
    messages: list[ProviderMessage]
    model_id: str
    max_output_tokens: int
    temperature: float = 0.0
    response_schema: Optional[dict[str, Any]] = None
    session: Optional[ProviderSessionState] = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class FetchedModel:
    id: str
    display_name: str


@dataclass(frozen=True, slots=True)
class ConnectionResult:
    success: bool
    models: list[FetchedModel] = field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[AgentErrorKind] = None
