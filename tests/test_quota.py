"""Unit tests for the time-windowed upload quota."""

import threading
import unittest

import pytest

from app.storage import InMemoryKeyValueStore, JsonFileKeyValueStore, QuotaLedger
from app.storage.quota import LAST_RESET_TIME_KEY, REMAINING_QUOTA_KEY
from contracts import MB
from exceptions import QuotaExceededError


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestQuotaLedger(unittest.TestCase):
    """Test QuotaLedger reservation and refresh."""

    def setUp(self):
        self.clock = FakeClock()
        self.store = InMemoryKeyValueStore()
        self.ledger = QuotaLedger(self.store, total_budget_bytes=10 * MB, refresh_interval_s=3600, clock=self.clock)

    def test_fresh_ledger_has_full_budget(self):
        self.assertEqual(self.ledger.remaining_bytes, 10 * MB)

    def test_reservations_decrease_remaining(self):
        """Test that each successful reservation is deducted."""
        self.ledger.reserve(3 * MB)
        self.ledger.reserve(2 * MB)

        self.assertEqual(self.ledger.remaining_bytes, 5 * MB)
        self.assertEqual(self.store.get(REMAINING_QUOTA_KEY), 5 * MB)

    def test_failed_reservation_leaves_ledger_unchanged(self):
        """Test that an over-budget reservation raises and changes nothing."""
        self.ledger.reserve(8 * MB)

        with self.assertRaises(QuotaExceededError) as context:
            self.ledger.reserve(3 * MB)

        self.assertEqual(context.exception.requested, 3 * MB)
        self.assertEqual(context.exception.remaining, 2 * MB)
        self.assertEqual(self.ledger.remaining_bytes, 2 * MB)

    def test_exact_remaining_can_be_reserved(self):
        self.ledger.reserve(10 * MB)
        self.assertEqual(self.ledger.remaining_bytes, 0)
        self.ledger.reserve(0)

    def test_window_resets_after_refresh_interval(self):
        """Test the 10 MB per hour scenario across a window boundary."""
        self.ledger.reserve(6 * MB)
        self.clock.advance(1800)
        self.ledger.reserve(4 * MB)

        with self.assertRaises(QuotaExceededError):
            self.ledger.reserve(1)

        self.clock.advance(1800)
        self.ledger.reserve(7 * MB)

        self.assertEqual(self.ledger.remaining_bytes, 3 * MB)
        self.assertEqual(self.store.get(LAST_RESET_TIME_KEY), self.clock.now)

    def test_reset_persisted_even_if_reservation_fails(self):
        """Test that an expired window is reset before an oversized request fails."""
        self.ledger.reserve(10 * MB)
        self.clock.advance(3600)

        with self.assertRaises(QuotaExceededError):
            self.ledger.reserve(11 * MB)

        self.assertEqual(self.store.get(REMAINING_QUOTA_KEY), 10 * MB)
        self.assertEqual(self.store.get(LAST_RESET_TIME_KEY), self.clock.now)

    def test_state_survives_new_ledger(self):
        """Test that a restarted process inside the window keeps the spent budget."""
        self.ledger.reserve(4 * MB)

        restarted = QuotaLedger(self.store, total_budget_bytes=10 * MB, refresh_interval_s=3600, clock=self.clock)

        self.assertEqual(restarted.remaining_bytes, 6 * MB)

    def test_persisted_value_clamped_to_smaller_budget(self):
        self.store.update({REMAINING_QUOTA_KEY: 50 * MB, LAST_RESET_TIME_KEY: self.clock.now})

        ledger = QuotaLedger(self.store, total_budget_bytes=1 * MB, refresh_interval_s=3600, clock=self.clock)

        self.assertEqual(ledger.remaining_bytes, 1 * MB)

    def test_concurrent_reservations_never_overdraw(self):
        """Test that parallel reservations respect the budget."""
        successes = []
        lock = threading.Lock()

        def worker():
            for _ in range(10):
                try:
                    self.ledger.reserve(MB // 4)
                except QuotaExceededError:
                    continue
                with lock:
                    successes.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(successes), 40)
        self.assertEqual(self.ledger.remaining_bytes, 0)


@pytest.mark.parametrize(
    "budget, interval",
    [(-1, 3600), (10, 0), (10, -5)],
)
def test_invalid_ledger_parameters(budget, interval):
    with pytest.raises(ValueError):
        QuotaLedger(InMemoryKeyValueStore(), total_budget_bytes=budget, refresh_interval_s=interval)


def test_negative_reservation_rejected():
    ledger = QuotaLedger(InMemoryKeyValueStore(), total_budget_bytes=10, refresh_interval_s=60)
    with pytest.raises(ValueError):
        ledger.reserve(-1)


def test_reservation_not_applied_when_state_cannot_be_written(tmp_path):
    state_path = tmp_path / "state.json"
    clock = FakeClock()
    ledger = QuotaLedger(JsonFileKeyValueStore(state_path), total_budget_bytes=1000, refresh_interval_s=3600, clock=clock)
    assert ledger.remaining_bytes == 1000
    state_path.with_name("state.json.tmp").mkdir()

    with pytest.raises(OSError):
        ledger.reserve(600)

    assert ledger.remaining_bytes == 1000


if __name__ == "__main__":
    unittest.main()
