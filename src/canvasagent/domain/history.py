"""Chat history items recorded by the agent runtime."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional, Union

from pydantic import BaseModel

from ..time_utils import utc_now_iso


class Acceptance(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class ContextRef:
    """Context attached to a prompt, e.g. a selected shape or comment.

    ``image`` is an optional base64 data URL sent as an image content block.
    """

    ref_id: str
    label: str
    detail: Optional[str] = None
    image: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PromptItem:
    text: str
    context_refs: tuple[ContextRef, ...] = ()
    created_utc: str = field(default_factory=utc_now_iso)


@dataclass(frozen=True, slots=True)
class ActionItem:
    action: BaseModel
    diff: Any = None
    acceptance: Acceptance = Acceptance.PENDING
    created_utc: str = field(default_factory=utc_now_iso)

    @property
    def kind(self) -> str:
        return str(getattr(self.action, "kind", ""))


@dataclass(frozen=True, slots=True)
class ContinuationItem:
    reason: str
    created_utc: str = field(default_factory=utc_now_iso)


ChatHistoryItem = Union[PromptItem, ActionItem, ContinuationItem]
