"""Conversational action kinds: ``message`` and ``think``."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from ..domain.actions import ActionContext, ActionDefinition, ActionInfo
from ..logging import summarize_text

PREVIEW_CHARS = 50


class MessageAction(BaseModel):
    kind: Literal["message"]
    text: str = Field(description="Message shown to the user")


class ThinkAction(BaseModel):
    kind: Literal["think"]
    text: str = Field(description="Short reasoning note about the next steps")


def _record_text(action: MessageAction | ThinkAction, context: ActionContext) -> dict[str, Any]:
    # Text actions do not touch the document; the diff is what the user sees.
    return {"text": action.text}


def _describe_message(action: MessageAction) -> ActionInfo:
    return ActionInfo(icon="message", description=summarize_text(action.text, PREVIEW_CHARS))


def _describe_think(action: ThinkAction) -> ActionInfo:
    return ActionInfo(icon="brain", description=summarize_text(action.text, PREVIEW_CHARS))


MESSAGE_ACTION = ActionDefinition(
    kind="message",
    validator=MessageAction,
    apply=_record_text,
    describe=_describe_message,
    prompt="Use the `message` action to talk to the user.",
)

THINK_ACTION = ActionDefinition(
    kind="think",
    validator=ThinkAction,
    apply=_record_text,
    describe=_describe_think,
    prompt="Use the `think` action before acting to plan briefly.",
)
