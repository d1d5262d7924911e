"""Single-use cooperative cancellation signal."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)

CancelCallback = Callable[[], None]


class CancellationToken:
    """Propagates one cancellation intent from a caller to a transport.

    ``cancel()`` is idempotent. Callbacks registered with ``on_cancel`` fire
    at most once; registering after cancellation runs the callback
    immediately.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[CancelCallback] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._run(callback)

    def on_cancel(self, callback: CancelCallback) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        if self._cancelled:
            self._run(callback)
            return lambda: None

        self._callbacks.append(callback)

        def unregister() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

        return unregister

    @staticmethod
    def _run(callback: CancelCallback) -> None:
        try:
            callback()
        except Exception:
            logger.exception("Cancellation callback failed")

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"


def cancel_current_task_on_cancel(
    token: CancellationToken | None,
) -> Callable[[], None]:
    """Cancel the running asyncio task when ``token`` is cancelled.

    Returns the unregister function. Callers must absorb the resulting
    ``CancelledError`` with ``absorb_cancellation``.
    """
    if token is None:
        return lambda: None
    task = asyncio.current_task()
    if task is None:
        return lambda: None

    def _cancel_task() -> None:
        if not task.done():
            task.cancel()

    if token.cancelled:
        # Cancelled before the transport started; nothing to interrupt.
        return lambda: None
    return token.on_cancel(_cancel_task)


def absorb_cancellation(token: CancellationToken | None) -> bool:
    """Withdraw a task cancel request caused by ``token``.

    Returns True when the ``CancelledError`` being handled came from the
    token and was absorbed; False means it came from elsewhere and must
    propagate.
    """
    if token is None or not token.cancelled:
        return False
    task = asyncio.current_task()
    if task is not None and task.cancelling():
        task.uncancel()
    return True
