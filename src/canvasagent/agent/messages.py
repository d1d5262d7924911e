"""Serialize chat history into provider messages."""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from ..ai.types import ContentBlock, ProviderMessage
from ..constants import ACTIONS_ENVELOPE_KEY
from ..domain.history import ActionItem, ChatHistoryItem, ContextRef, ContinuationItem, PromptItem

CONTINUATION_PREFIX = "[Continuation]"


def format_context_refs(refs: Sequence[ContextRef]) -> str:
    lines = ["Context:"]
    for ref in refs:
        line = f"- [{ref.ref_id}] {ref.label}"
        if ref.detail:
            line += f": {ref.detail}"
        lines.append(line)
    return "\n".join(lines)


def prompt_content(item: PromptItem) -> str | list[ContentBlock]:
    """User message content for a prompt; images become image blocks."""
    text = item.text
    if item.context_refs:
        text = f"{text}\n\n{format_context_refs(item.context_refs)}"
    images = [ref.image for ref in item.context_refs if ref.image]
    if not images:
        return text
    blocks: list[ContentBlock] = [{"type": "text", "text": text}]
    blocks.extend({"type": "image", "image": image} for image in images)
    return blocks


def actions_content(items: Sequence[ActionItem]) -> str:
    """Assistant message replaying recorded actions in the response envelope."""
    actions = [item.action.model_dump(mode="json", by_alias=True, exclude_none=True) for item in items]
    return json.dumps({ACTIONS_ENVELOPE_KEY: actions}, ensure_ascii=False)


def _merge(previous: ProviderMessage, content: str | list[ContentBlock]) -> None:
    def as_blocks(value: str | list[ContentBlock]) -> list[ContentBlock]:
        return [{"type": "text", "text": value}] if isinstance(value, str) else list(value)

    if isinstance(previous["content"], str) and isinstance(content, str):
        previous["content"] = f"{previous['content']}\n\n{content}"
    else:
        previous["content"] = as_blocks(previous["content"]) + as_blocks(content)


def history_to_messages(
    history: Sequence[ChatHistoryItem], *, limit: int | None = None
) -> list[ProviderMessage]:
    """Build alternating user/assistant messages from history.

    Consecutive action items collapse into one assistant message. Only the
    last ``limit`` items are used, and the result always starts with a user
    message.
    """
    items = list(history[-limit:] if limit else history)

    messages: list[ProviderMessage] = []
    pending_actions: list[ActionItem] = []

    def push(role: Any, content: str | list[ContentBlock]) -> None:
        if messages and messages[-1]["role"] == role:
            _merge(messages[-1], content)
        else:
            messages.append({"role": role, "content": content})

    def flush_actions() -> None:
        if pending_actions:
            push("assistant", actions_content(pending_actions))
            pending_actions.clear()

    for item in items:
        if isinstance(item, ActionItem):
            pending_actions.append(item)
        elif isinstance(item, PromptItem):
            flush_actions()
            push("user", prompt_content(item))
        elif isinstance(item, ContinuationItem):
            flush_actions()
            push("user", f"{CONTINUATION_PREFIX} {item.reason}")
    flush_actions()

    while messages and messages[0]["role"] != "user":
        messages.pop(0)
    return messages
