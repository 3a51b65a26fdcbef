"""Counting group for fan-out/fan-in over asynchronous units of work."""

from __future__ import annotations

import threading
from typing import Callable, List


class CompletionGroup:
    """Tracks outstanding units and fires callbacks once all have left.

    Usage mirrors a wait group: ``enter()`` before dispatching each unit,
    ``leave()`` exactly once when it finishes, then ``notify(callback)``.
    The callback runs on the thread that performs the last ``leave()``, or
    immediately if nothing is outstanding when ``notify`` is called.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._outstanding = 0
        self._callbacks: List[Callable[[], None]] = []

    @property
    def outstanding(self) -> int:
        with self._lock:
            return self._outstanding

    def enter(self) -> None:
        with self._lock:
            self._outstanding += 1

    def leave(self) -> None:
        with self._lock:
            if self._outstanding == 0:
                raise RuntimeError("leave() called more times than enter()")
            self._outstanding -= 1
            callbacks = self._take_callbacks_if_done()
        for callback in callbacks:
            callback()

    def notify(self, callback: Callable[[], None]) -> None:
        with self._lock:
            self._callbacks.append(callback)
            callbacks = self._take_callbacks_if_done()
        for cb in callbacks:
            cb()

    def _take_callbacks_if_done(self) -> List[Callable[[], None]]:
        if self._outstanding:
            return []
        callbacks, self._callbacks = self._callbacks, []
        return callbacks


__all__ = ["CompletionGroup"]
