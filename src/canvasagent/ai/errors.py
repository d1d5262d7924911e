"""Mapping of raw provider failures into the shared ``AgentError`` taxonomy."""

from __future__ import annotations

import asyncio
from typing import Optional

import httpx

from ..errors import AgentError, AgentErrorKind
from ..logging import sanitize_error_message
from .rate_limit import extract_retry_delay, is_rate_limit_message, retry_after_from_headers

_CONTEXT_PATTERNS = (
    "context_length",
    "context length",
    "maximum context",
    "context window",
    "too many tokens",
    "prompt is too long",
    "token count exceeds",
)

_NETWORK_TYPES: tuple[type[BaseException], ...] = (
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)

_NETWORK_HINTS = ("network", "connection error", "connection refused", "timed out")

MESSAGES = {
    AgentErrorKind.INVALID_CREDENTIALS: "Invalid API key. Please check your API key in settings.",
    AgentErrorKind.RATE_LIMITED: "Rate limit exceeded. Please wait and try again.",
    AgentErrorKind.BACKEND_FAULT: "The {provider} service reported a server error. Please try again later.",
    AgentErrorKind.NETWORK: "Network error. Please check your connection and endpoint.",
    AgentErrorKind.CONTEXT_EXCEEDED: (
        "The conversation is too long. Please start a new conversation or clear some history."
    ),
}


def status_code_of(error: BaseException) -> Optional[int]:
    """Best-effort HTTP status from SDK errors (``status_code``/``code``/response)."""
    for attr in ("status_code", "code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool) and 100 <= value <= 599:
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def classify_error(
    provider: str,
    error: BaseException,
    *,
    status_code: Optional[int] = None,
    network_types: tuple[type[BaseException], ...] = (),
) -> AgentError:
    """Classify ``error`` for ``provider``.

    Adapters pass their SDK's connection/timeout exception types through
    ``network_types``; everything with an HTTP status is mapped by status
    first.
    """
    if isinstance(error, AgentError):
        return error

    detail = sanitize_error_message(str(error) or type(error).__name__)
    lowered = detail.lower()
    if status_code is None:
        status_code = status_code_of(error)

    def build(kind: AgentErrorKind, retryable: bool, retry_after: float | None = None) -> AgentError:
        message = MESSAGES[kind].format(provider=provider)
        if retry_after is not None:
            message += f" Retry in {retry_after:g}s."
        return AgentError(
            kind,
            message,
            retryable=retryable,
            provider=provider,
            status_code=status_code,
            retry_after=retry_after,
        )

    if status_code in (401, 403):
        return build(AgentErrorKind.INVALID_CREDENTIALS, False)
    if status_code == 429 or (status_code is None and is_rate_limit_message(detail)):
        response = getattr(error, "response", None)
        retry_after = retry_after_from_headers(getattr(response, "headers", None))
        if retry_after is None:
            retry_after = extract_retry_delay(detail)
        return build(AgentErrorKind.RATE_LIMITED, True, retry_after)
    if status_code is not None and status_code >= 500:
        return build(AgentErrorKind.BACKEND_FAULT, True)
    if any(pattern in lowered for pattern in _CONTEXT_PATTERNS):
        return build(AgentErrorKind.CONTEXT_EXCEEDED, False)
    if isinstance(error, _NETWORK_TYPES + network_types) or (
        status_code is None and any(hint in lowered for hint in _NETWORK_HINTS)
    ):
        return build(AgentErrorKind.NETWORK, True)

    return AgentError(
        AgentErrorKind.UNKNOWN,
        detail,
        retryable=False,
        provider=provider,
        status_code=status_code,
    )
