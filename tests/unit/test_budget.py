"""Tests for RequestBudget: ceiling enforcement, persistence, monthly reset."""

import threading
from datetime import date, datetime

import pytest

from jobscout.core.config import BudgetConfig
from jobscout.core.schemas import BudgetState
from jobscout.core.store import MemoryStore
from jobscout.pipeline.budget import (
    REQUEST_COUNT_KEY,
    RequestBudget,
    next_reset_date,
    period_key,
)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 17, 12, 0))


def _budget(store: MemoryStore, clock: FakeClock, limit: int = 3) -> RequestBudget:
    return RequestBudget(store, monthly_limit=limit, clock=clock)


# ---------------------------------------------------------------------------
# Period helpers
# ---------------------------------------------------------------------------


class TestPeriodHelpers:
    def test_period_key(self) -> None:
        assert period_key(datetime(2026, 3, 9)) == "2026-03"

    def test_next_reset_mid_year(self) -> None:
        assert next_reset_date(datetime(2026, 10, 17)) == date(2026, 11, 1)

    def test_next_reset_december(self) -> None:
        assert next_reset_date(datetime(2026, 12, 31)) == date(2027, 1, 1)


# ---------------------------------------------------------------------------
# try_consume
# ---------------------------------------------------------------------------


class TestTryConsume:
    def test_first_consume_allowed(self, store: MemoryStore, clock: FakeClock) -> None:
        result = _budget(store, clock).try_consume()
        assert result.allowed is True
        assert result.remaining == 2

    def test_limit_from_config(self, store: MemoryStore, clock: FakeClock) -> None:
        budget = RequestBudget.from_config(store, BudgetConfig(monthly_limit=1), clock=clock)
        assert budget.try_consume().allowed is True
        assert budget.try_consume().allowed is False

    def test_refused_at_limit(self, store: MemoryStore, clock: FakeClock) -> None:
        budget = _budget(store, clock, limit=2)
        budget.try_consume()
        budget.try_consume()
        result = budget.try_consume()
        assert result.allowed is False
        assert result.remaining == 0

    def test_refusal_does_not_increment(self, store: MemoryStore, clock: FakeClock) -> None:
        budget = _budget(store, clock, limit=1)
        budget.try_consume()
        budget.try_consume()
        budget.try_consume()
        assert budget.state().used_count == 1

    def test_remaining_monotonic(self, store: MemoryStore, clock: FakeClock) -> None:
        budget = _budget(store, clock, limit=5)
        remaining = [budget.try_consume().remaining for _ in range(5)]
        assert remaining == [4, 3, 2, 1, 0]

    def test_persisted_to_store(self, store: MemoryStore, clock: FakeClock) -> None:
        _budget(store, clock).try_consume()
        state = BudgetState.model_validate_json(store.get(REQUEST_COUNT_KEY) or "")
        assert state == BudgetState(period_key="2026-10", used_count=1)

    def test_shared_across_instances(self, store: MemoryStore, clock: FakeClock) -> None:
        _budget(store, clock).try_consume()
        assert _budget(store, clock).state().used_count == 1

    def test_concurrent_consumers_never_exceed_limit(
        self, store: MemoryStore, clock: FakeClock,
    ) -> None:
        budget = _budget(store, clock, limit=50)
        allowed: list[bool] = []
        lock = threading.Lock()

        def worker() -> None:
            for _ in range(20):
                result = budget.try_consume()
                with lock:
                    allowed.append(result.allowed)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert allowed.count(True) == 50
        assert budget.state().used_count == 50

    def test_invalid_limit_rejected(self, store: MemoryStore) -> None:
        with pytest.raises(ValueError, match="monthly_limit"):
            RequestBudget(store, monthly_limit=0)


# ---------------------------------------------------------------------------
# Monthly reset
# ---------------------------------------------------------------------------


class TestMonthlyReset:
    def test_new_month_resets(self, store: MemoryStore, clock: FakeClock) -> None:
        budget = _budget(store, clock, limit=1)
        budget.try_consume()
        assert budget.try_consume().allowed is False

        clock.now = datetime(2026, 11, 1, 0, 0)
        result = budget.try_consume()
        assert result.allowed is True
        assert budget.state() == BudgetState(period_key="2026-11", used_count=1)

    def test_stale_period_reads_as_zero_without_writing(
        self, store: MemoryStore, clock: FakeClock,
    ) -> None:
        old = BudgetState(period_key="2026-09", used_count=3).model_dump_json()
        store.set(REQUEST_COUNT_KEY, old)

        stats = _budget(store, clock).stats()
        assert stats.used == 0
        assert stats.remaining == 3
        assert store.get(REQUEST_COUNT_KEY) == old

    def test_corrupt_state_treated_as_fresh(self, store: MemoryStore, clock: FakeClock) -> None:
        store.set(REQUEST_COUNT_KEY, "not json")
        result = _budget(store, clock).try_consume()
        assert result.allowed is True
        assert result.remaining == 2


class TestStats:
    def test_stats_after_consumes(self, store: MemoryStore, clock: FakeClock) -> None:
        budget = _budget(store, clock, limit=10)
        budget.try_consume()
        budget.try_consume()
        stats = budget.stats()
        assert stats.used == 2
        assert stats.remaining == 8
        assert stats.reset_date == date(2026, 11, 1)
