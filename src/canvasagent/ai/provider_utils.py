"""Shared helpers for provider implementations."""

from __future__ import annotations

import asyncio
import inspect
import re
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Optional

from ..agent.cancellation import (
    CancellationToken,
    absorb_cancellation,
    cancel_current_task_on_cancel,
)
from ..errors import AgentError
from ..logging import log_event
from .provider_logging import failure_message, log_provider_error
from .types import ContentBlock, FetchedModel, ProviderMessage

_DATA_URL = re.compile(r"^data:(?P<media>[\w/+.-]+);base64,(?P<data>.*)$", re.DOTALL)

# Prefill/caching helpers treat an image as substantial content.
IMAGE_CONTENT_WEIGHT = 100


def split_data_url(data_url: str) -> tuple[str, str]:
    """Split a base64 data URL into ``(media_type, base64_data)``.

    Non data-URL strings are treated as raw base64 PNG data.
    """
    match = _DATA_URL.match(data_url)
    if not match:
        return "image/png", data_url
    return match.group("media"), match.group("data")


def content_blocks(content: str | Sequence[ContentBlock]) -> list[ContentBlock]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    return list(content)


def content_text(content: str | Sequence[ContentBlock]) -> str:
    """Concatenate the text blocks of a message, dropping images."""
    if isinstance(content, str):
        return content
    return "\n".join(block["text"] for block in content if block.get("type") == "text")


def content_length(content: str | Sequence[ContentBlock]) -> int:
    if isinstance(content, str):
        return len(content)
    return sum(
        len(block["text"]) if block.get("type") == "text" else IMAGE_CONTENT_WEIGHT
        for block in content
    )


def has_images(messages: Sequence[ProviderMessage]) -> bool:
    return any(
        not isinstance(msg["content"], str)
        and any(block.get("type") == "image" for block in msg["content"])
        for msg in messages
    )


def sort_models(models: list[FetchedModel]) -> list[FetchedModel]:
    return sorted(models, key=lambda model: model.display_name.lower())


async def guarded_stream(
    provider: str,
    deltas: AsyncIterator[str],
    cancellation: Optional[CancellationToken],
    classify: Callable[[BaseException], AgentError],
) -> AsyncIterator[str]:
    """Wrap a provider's raw delta iterator with cancellation and error mapping.

    Cancelling the token cancels the consuming task; the resulting
    ``CancelledError`` is absorbed and iteration ends. Failures raised while
    the token is cancelled are discarded. Anything else is logged and
    re-raised as ``AgentError``.
    """
    if cancellation is not None and cancellation.cancelled:
        await close_stream(deltas)
        return

    unregister = cancel_current_task_on_cancel(cancellation)
    try:
        async for delta in deltas:
            if cancellation is not None and cancellation.cancelled:
                break
            if delta:
                yield delta
    except asyncio.CancelledError:
        if not absorb_cancellation(cancellation):
            raise
    except Exception as e:
        if cancellation is not None and cancellation.cancelled:
            absorb_cancellation(cancellation)
            return
        classified = classify(e)
        log_provider_error(provider, failure_message(e, classified))
        if classified is e:
            raise
        raise classified from e
    finally:
        unregister()
        await close_stream(deltas)


async def close_stream(stream: object) -> None:
    """Close an async iterator or SDK stream, logging (not raising) failures.

    Async generators expose ``aclose()``; SDK stream objects expose an
    awaitable ``close()``.
    """
    close = getattr(stream, "aclose", None) or getattr(stream, "close", None)
    if close is None:
        return
    try:
        result = close()
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        log_event("provider_log", provider="stream", message=f"Error closing stream: {e}")


JSON_RESPONSE_INSTRUCTIONS = (
    'IMPORTANT: You MUST respond with a single valid JSON object containing an "actions" '
    'array. Each action in the array must have a "kind" field naming the action type. '
    'Example format:\n{"actions": [{"kind": "message", "text": "Hello!"}]}'
)


def with_json_instructions(system_prompt: str) -> str:
    """Append the JSON-only response instructions used by JSON-mode backends."""
    if not system_prompt:
        return JSON_RESPONSE_INSTRUCTIONS
    return f"{system_prompt}\n\n{JSON_RESPONSE_INSTRUCTIONS}"
