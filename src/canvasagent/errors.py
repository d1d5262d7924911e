"""Custom exception hierarchy for canvasagent."""

from __future__ import annotations

from enum import StrEnum


class AgentErrorKind(StrEnum):
    INVALID_CREDENTIALS = "invalid_credentials"
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    BACKEND_FAULT = "backend_fault"
    CONTEXT_EXCEEDED = "context_exceeded"
    UNKNOWN = "unknown"


class CanvasAgentError(Exception):
    """Base class for all canvasagent errors."""


class AgentError(CanvasAgentError):
    """Provider failure normalized into the shared error taxonomy.

    ``retryable`` is a hint for the caller only; nothing in the engine
    retries a generation on its own.
    """

    def __init__(
        self,
        kind: AgentErrorKind,
        message: str,
        *,
        retryable: bool,
        provider: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = AgentErrorKind(kind)
        self.message = message
        self.retryable = retryable
        self.provider = provider
        self.status_code = status_code
        self.retry_after = retry_after

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
            "provider": self.provider,
        }
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        if self.retry_after is not None:
            payload["retry_after"] = self.retry_after
        return payload

    def __repr__(self) -> str:
        return (
            f"AgentError(kind={self.kind.value!r}, provider={self.provider!r}, "
            f"retryable={self.retryable}, message={self.message!r})"
        )


class ConfigError(ValueError, CanvasAgentError):
    """Settings/configuration validation errors."""


class UnknownProviderError(ConfigError):
    def __init__(self, provider: str, available: list[str]) -> None:
        super().__init__(
            f"Unsupported provider: '{provider}'. "
            f"Available providers: {', '.join(available)}"
        )
        self.provider = provider


class RegistryError(ValueError, CanvasAgentError):
    """Invalid action definition or registration."""


class RegistryFrozenError(RegistryError):
    def __init__(self, kind: str) -> None:
        super().__init__(
            f"Cannot register action kind '{kind}': registry is frozen"
        )


class SchemaUnavailableError(CanvasAgentError):
    def __init__(self) -> None:
        super().__init__(
            "No response schema available: register at least two action kinds "
            "or configure an override schema"
        )


class GenerationInProgressError(CanvasAgentError):
    def __init__(self) -> None:
        super().__init__("A generation is already in progress; cancel it first")
