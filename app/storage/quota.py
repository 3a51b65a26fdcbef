"""Time-windowed byte budget shared by all upload tasks."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Tuple

from app.storage.kv_store import KeyValueStore
from exceptions import QuotaExceededError

logger = logging.getLogger(__name__)

REMAINING_QUOTA_KEY = "recordingMemoryQuota"
LAST_RESET_TIME_KEY = "lastResetTime"


class QuotaLedger:
    """Persisted byte budget that replenishes once per refresh interval.

    Both counters live in a key/value store so a restart inside a window does
    not hand out a fresh budget. There is no timer: the window is checked
    lazily each time a reservation is attempted.

    Thread-Safety:
        ``reserve`` holds a lock across the read-modify-write, so concurrent
        upload tasks never overdraw the budget.
    """

    def __init__(
        self,
        store: KeyValueStore,
        total_budget_bytes: int,
        refresh_interval_s: float,
        clock: Callable[[], float] = time.time,
    ):
        if total_budget_bytes < 0:
            raise ValueError("total_budget_bytes must be non-negative")
        if refresh_interval_s <= 0:
            raise ValueError("refresh_interval_s must be positive")

        self._store = store
        self._total_budget = int(total_budget_bytes)
        self._refresh_interval = float(refresh_interval_s)
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def total_budget_bytes(self) -> int:
        return self._total_budget

    @property
    def refresh_interval_s(self) -> float:
        return self._refresh_interval

    @property
    def remaining_bytes(self) -> int:
        """Budget a reservation made now would see, without persisting a reset."""
        with self._lock:
            remaining, _, _ = self._current_window(self._clock())
            return remaining

    def reserve(self, amount: int) -> None:
        """Reserve amount bytes from the current window.

        Raises:
            QuotaExceededError: If the remaining budget is smaller than amount.
                The ledger is left unchanged.
        """
        if amount < 0:
            raise ValueError("amount must be non-negative")

        with self._lock:
            now = self._clock()
            remaining, last_reset, expired = self._current_window(now)

            if remaining < amount:
                if expired:
                    self._store.update({REMAINING_QUOTA_KEY: remaining, LAST_RESET_TIME_KEY: last_reset})
                raise QuotaExceededError(requested=amount, remaining=remaining)

            self._store.update({REMAINING_QUOTA_KEY: remaining - amount, LAST_RESET_TIME_KEY: last_reset})
            logger.debug(f"Reserved {amount} bytes, {remaining - amount} bytes left in window")

    def _current_window(self, now: float) -> Tuple[int, float, bool]:
        """Return (remaining, last_reset, window_expired) as of now."""
        last_reset = self._load_last_reset_time(now)
        if now - last_reset >= self._refresh_interval:
            logger.info("Quota window elapsed, budget replenished")
            return self._total_budget, now, True
        return self._load_remaining(), last_reset, False

    def _load_remaining(self) -> int:
        value = self._store.get(REMAINING_QUOTA_KEY)
        if value is None:
            value = self._total_budget
            self._store.set(REMAINING_QUOTA_KEY, value)
        # Budget may have shrunk since the value was persisted
        return max(0, min(int(value), self._total_budget))

    def _load_last_reset_time(self, now: float) -> float:
        value = self._store.get(LAST_RESET_TIME_KEY)
        if value is None:
            value = now
            self._store.set(LAST_RESET_TIME_KEY, value)
        return float(value)


__all__ = ["QuotaLedger", "REMAINING_QUOTA_KEY", "LAST_RESET_TIME_KEY"]
