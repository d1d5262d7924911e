"""Action-level domain models: streaming actions and action definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from pydantic import BaseModel


@dataclass(frozen=True, slots=True)
class StreamingAction:
    """One element of the streamed ``actions`` array.

    ``complete=False`` is a preview whose fields may still change on a later
    emission with the same ``index``. ``complete=True`` is terminal for that
    index and carries the validated ``model``.
    """

    index: int
    kind: str
    data: dict[str, Any]
    complete: bool
    arrival_time: float
    model: Optional[BaseModel] = None


@dataclass(frozen=True, slots=True)
class ActionInfo:
    icon: str
    description: str


@dataclass(slots=True)
class ActionContext:
    """Per-dispatch handle passed to ``ActionDefinition.apply``.

    ``document`` is the mutation target; ``helpers`` resolves cross-references
    (for example whether a referenced shape still exists). ``schedule``
    queues a follow-up request whose text reaches the model after the
    current generation completes; read-only actions report through it.
    """

    document: Any = None
    helpers: Any = None
    generation_id: Optional[str] = None
    schedule: Optional[Callable[[str], None]] = None
    extras: dict[str, Any] = field(default_factory=dict)


ApplyFn = Callable[[BaseModel, ActionContext], Any]
DescribeFn = Callable[[BaseModel], ActionInfo]


@dataclass(frozen=True, slots=True)
class ActionDefinition:
    """Registry entry for one action kind."""

    kind: str
    validator: type[BaseModel]
    apply: ApplyFn
    describe: Optional[DescribeFn] = None
    records_history: bool = True
    prompt: Optional[str] = None
