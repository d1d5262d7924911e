"""Incremental parser turning streamed text deltas into streaming actions."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from pydantic import ValidationError

from ..constants import ACTION_KIND_FIELD, ACTIONS_ENVELOPE_KEY
from ..domain.actions import StreamingAction
from ..logging import log_event
from .json_recovery import (
    NOT_PARSED,
    line_actions_envelope,
    parse_recovered,
    parse_strict,
    strip_code_fence,
)
from .registry import ActionRegistry

_MISSING = object()


def _actions_of(document: Any) -> Optional[list[Any]]:
    if document is NOT_PARSED or not isinstance(document, dict):
        return None
    actions = document.get(ACTIONS_ENVELOPE_KEY)
    if not isinstance(actions, list):
        return None
    return actions


class ActionStreamParser:
    """Recover the ``actions`` array from a growing, possibly truncated buffer.

    Each ``feed`` tries a strict parse of the whole buffer first and falls
    back to bracket completion of a scratch copy. Elements found only through
    bracket completion are previews. An element becomes complete when a
    strict parse shows a later sibling after it, or at ``flush``. A complete
    index is never emitted again.

    With ``line_actions`` a response written as one ``[ACTION]: {...}`` line
    per action is read as if it were the envelope.

    One parser serves one generation.
    """

    def __init__(
        self,
        registry: ActionRegistry,
        *,
        clock: Callable[[], float] = time.monotonic,
        line_actions: bool = False,
    ) -> None:
        self._registry = registry
        self._clock = clock
        self._line_actions = line_actions
        self._buffer = ""
        self._previous: list[Any] = []
        self._finished: set[int] = set()
        self._arrivals: dict[int, float] = {}
        self._flushed = False

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def flushed(self) -> bool:
        return self._flushed

    def feed(self, delta: str) -> list[StreamingAction]:
        if self._flushed:
            raise RuntimeError("Cannot feed a parser after flush()")
        if not delta:
            return []
        self._buffer += delta

        text = self._text()
        actions = _actions_of(parse_strict(text))
        if actions is not None:
            return self._diff(actions, strict=True, final=False)

        actions = _actions_of(parse_recovered(text))
        if actions is None:
            return []
        return self._diff(actions, strict=False, final=False)

    def flush(self) -> list[StreamingAction]:
        """Finalize the stream; every pending element of a strict parse completes.

        When the final buffer only parses through bracket completion, the
        trailing element is discarded and the ones before it complete.
        Calling ``flush`` again returns nothing.
        """
        if self._flushed:
            return []
        self._flushed = True

        text = self._text()
        actions = _actions_of(parse_strict(text))
        if actions is not None:
            return self._diff(actions, strict=True, final=True)

        recovered = _actions_of(parse_recovered(text))
        if recovered is None:
            recovered = self._previous
        if not recovered:
            return []

        trailing = len(recovered) - 1
        if trailing not in self._finished:
            element = recovered[trailing]
            kind = element.get(ACTION_KIND_FIELD) if isinstance(element, dict) else None
            log_event(
                "action_dropped",
                level=logging.WARNING,
                index=trailing,
                action_kind=kind,
                reason="truncated",
            )
            self._finished.add(trailing)
        return self._diff(recovered[:trailing], strict=True, final=True)

    def _text(self) -> str:
        text = strip_code_fence(self._buffer)
        if self._line_actions:
            return line_actions_envelope(text) or text
        return text

    def _diff(self, actions: list[Any], *, strict: bool, final: bool) -> list[StreamingAction]:
        emitted: list[StreamingAction] = []
        last = len(actions) - 1

        for index, element in enumerate(actions):
            if index in self._finished:
                continue
            complete = final or (strict and index < last)
            previous = self._previous[index] if index < len(self._previous) else _MISSING
            if not complete and element == previous:
                continue

            arrival = self._arrivals.get(index)
            if arrival is None:
                arrival = self._arrivals[index] = self._clock()
            action = self._build(index, element, complete, arrival)
            if action is not None:
                emitted.append(action)

        self._previous = list(actions)
        return emitted

    def _build(
        self, index: int, element: Any, complete: bool, arrival: float
    ) -> Optional[StreamingAction]:
        kind = element.get(ACTION_KIND_FIELD) if isinstance(element, dict) else None
        definition = self._registry.lookup(kind) if isinstance(kind, str) else None

        if definition is None:
            # A partial kind string may still be streaming in.
            if complete:
                self._drop(index, kind, "unknown kind" if isinstance(kind, str) else "missing kind")
            return None

        if not complete:
            return StreamingAction(
                index=index,
                kind=kind,
                data=dict(element),
                complete=False,
                arrival_time=arrival,
            )

        self._finished.add(index)
        try:
            model = self._registry.validate(element)
        except ValidationError as e:
            self._drop(index, kind, "invalid fields", error=str(e))
            return None
        return StreamingAction(
            index=index,
            kind=kind,
            data=dict(element),
            complete=True,
            arrival_time=arrival,
            model=model,
        )

    def _drop(self, index: int, kind: Any, reason: str, *, error: str | None = None) -> None:
        self._finished.add(index)
        log_event(
            "action_dropped",
            level=logging.WARNING,
            index=index,
            action_kind=kind,
            reason=reason,
            error=error,
        )
