"""Base interface for provider adapters.

This module defines the Protocol that all provider adapters implement.
"""

from __future__ import annotations

from typing import AsyncIterator, Optional, Protocol

from ..agent.cancellation import CancellationToken
from ..errors import AgentError
from .types import ConnectionResult, GenerationRequest


class AgentProvider(Protocol):
    """Protocol for provider adapter implementations."""

    name: str

    def stream(
        self,
        request: GenerationRequest,
        cancellation: Optional[CancellationToken] = None,
    ) -> AsyncIterator[str]:
        """Stream raw text deltas for ``request``.

        Cancelling ``cancellation`` ends the iteration without raising.

        Raises:
            AgentError: If the backend call fails (and was not cancelled)
        """
        ...

    async def get_full_response(self, request: GenerationRequest) -> str:
        """Non-streaming fallback returning the whole response text."""
        ...

    async def test_connection(
        self, credentials: str, endpoint_override: Optional[str] = None
    ) -> ConnectionResult:
        """Validate credentials and list available models."""
        ...

    def classify_error(self, error: BaseException) -> AgentError:
        """Map a raw SDK/transport exception to an ``AgentError``."""
        ...
