"""Observable agent state for display and automation consumers."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from ..domain.actions import StreamingAction
from ..domain.history import ChatHistoryItem
from ..errors import AgentError

logger = logging.getLogger(__name__)

StateListener = Callable[["AgentState"], None]


class AgentState:
    """Reactive view of one conversation.

    Listeners are called with the state after every transition. A failing
    listener is logged and skipped.
    """

    def __init__(self, model_name: str) -> None:
        self._is_generating = False
        self._history: list[ChatHistoryItem] = []
        self._model_name = model_name
        self._preview: dict[int, StreamingAction] = {}
        self._last_error: Optional[AgentError] = None
        self._listeners: list[StateListener] = []

    @property
    def is_generating(self) -> bool:
        return self._is_generating

    @property
    def history(self) -> tuple[ChatHistoryItem, ...]:
        return tuple(self._history)

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def preview(self) -> tuple[StreamingAction, ...]:
        """In-progress actions of the current generation, by array index."""
        return tuple(self._preview[index] for index in sorted(self._preview))

    @property
    def last_error(self) -> Optional[AgentError]:
        return self._last_error

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def clear_listeners(self) -> None:
        self._listeners.clear()

    def set_generating(self, value: bool) -> None:
        self._is_generating = value
        self._notify()

    def set_model_name(self, name: str) -> None:
        self._model_name = name
        self._notify()

    def set_last_error(self, error: Optional[AgentError]) -> None:
        self._last_error = error
        self._notify()

    def append_history(self, item: ChatHistoryItem) -> int:
        self._history.append(item)
        self._notify()
        return len(self._history) - 1

    def replace_history(self, index: int, item: ChatHistoryItem) -> None:
        self._history[index] = item
        self._notify()

    def clear_history(self) -> None:
        self._history.clear()
        self._notify()

    def set_preview(self, action: StreamingAction) -> None:
        self._preview[action.index] = action
        self._notify()

    def drop_preview(self, index: int) -> None:
        if self._preview.pop(index, None) is not None:
            self._notify()

    def clear_preview(self) -> None:
        if self._preview:
            self._preview.clear()
            self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Agent state listener failed")
