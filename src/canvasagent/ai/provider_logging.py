"""Shared provider log-message helpers."""

from __future__ import annotations

import logging

from ..errors import AgentError, AgentErrorKind
from ..logging import log_event


def log_provider_error(provider: str, message: str) -> None:
    """Emit a standardized provider error log event."""
    log_event(
        "provider_log",
        level=logging.ERROR,
        provider=provider,
        message=message,
    )


def log_provider_warning(provider: str, message: str) -> None:
    log_event(
        "provider_log",
        level=logging.WARNING,
        provider=provider,
        message=message,
    )


def failure_message(error: BaseException, classified: AgentError) -> str:
    """Build the provider log line for a classified failure."""
    status = f" ({classified.status_code})" if classified.status_code is not None else ""
    if classified.kind == AgentErrorKind.INVALID_CREDENTIALS:
        return f"Authentication failed{status}: {error}"
    if classified.kind == AgentErrorKind.RATE_LIMITED:
        return f"Rate limit exceeded{status}: {error}"
    if classified.kind == AgentErrorKind.BACKEND_FAULT:
        return f"Server error{status}: {error}"
    if classified.kind == AgentErrorKind.NETWORK:
        return f"Network error: {type(error).__name__}: {error}"
    if classified.kind == AgentErrorKind.CONTEXT_EXCEEDED:
        return f"Context length exceeded{status}: {error}"
    return f"Unexpected error: {type(error).__name__}: {error}"
