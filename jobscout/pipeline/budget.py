"""Request budget: monthly ceiling on upstream calls shared by the whole process.

Budget state lives in the key-value store under ``api_request_count``.
Auto-resets when the calendar month changes, so no explicit reset is needed.
"""

import logging
import threading
from collections.abc import Callable
from datetime import date, datetime
from typing import NamedTuple

from pydantic import ValidationError

from jobscout.core.config import BudgetConfig
from jobscout.core.schemas import BudgetState, BudgetStats
from jobscout.core.store import KeyValueStore

logger = logging.getLogger(__name__)

REQUEST_COUNT_KEY = "api_request_count"
DEFAULT_MONTHLY_LIMIT = 200


class ConsumeResult(NamedTuple):
    allowed: bool
    remaining: int


def period_key(moment: datetime | date) -> str:
    """Calendar-month identity, e.g. ``2026-10``."""
    return f"{moment.year:04d}-{moment.month:02d}"


def next_reset_date(moment: datetime | date) -> date:
    """First day of the month after ``moment``."""
    if moment.month == 12:
        return date(moment.year + 1, 1, 1)
    return date(moment.year, moment.month + 1, 1)


class RequestBudget:
    """Enforces the monthly upstream request ceiling.

    Usage::

        budget = RequestBudget(store, monthly_limit=200)
        result = budget.try_consume()
        if result.allowed:
            ...  # make one upstream request
    """

    def __init__(
        self,
        store: KeyValueStore,
        monthly_limit: int = DEFAULT_MONTHLY_LIMIT,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if monthly_limit < 1:
            msg = "monthly_limit must be at least 1"
            raise ValueError(msg)
        self._store = store
        self._limit = monthly_limit
        self._clock = clock
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        store: KeyValueStore,
        config: BudgetConfig,
        clock: Callable[[], datetime] = datetime.now,
    ) -> "RequestBudget":
        return cls(store, monthly_limit=config.monthly_limit, clock=clock)

    @property
    def monthly_limit(self) -> int:
        return self._limit

    def try_consume(self) -> ConsumeResult:
        """Atomically check the ceiling and count one request if allowed.

        A refusal is final: callers must not loop on it.
        """
        with self._lock:
            state = self._current_state()
            if state.used_count >= self._limit:
                logger.warning(
                    "Request budget exhausted: %d/%d used in %s",
                    state.used_count, self._limit, state.period_key,
                )
                return ConsumeResult(allowed=False, remaining=0)

            state = state.model_copy(update={"used_count": state.used_count + 1})
            self._store.set(REQUEST_COUNT_KEY, state.model_dump_json())
            remaining = self._limit - state.used_count
            logger.info("Upstream request counted: %d remaining this month", remaining)
            return ConsumeResult(allowed=True, remaining=remaining)

    def state(self) -> BudgetState:
        """Snapshot of the current period. Never writes."""
        with self._lock:
            return self._current_state()

    def stats(self) -> BudgetStats:
        """Used/remaining counts and the next reset date. Never writes."""
        state = self.state()
        return BudgetStats(
            used=state.used_count,
            remaining=max(0, self._limit - state.used_count),
            reset_date=next_reset_date(self._clock()),
        )

    def _current_state(self) -> BudgetState:
        """Load stored state, treating another month (or bad data) as a fresh period."""
        current = period_key(self._clock())
        raw = self._store.get(REQUEST_COUNT_KEY)
        if raw is None:
            return BudgetState(period_key=current)
        try:
            stored = BudgetState.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable budget state: %r", raw)
            return BudgetState(period_key=current)
        if stored.period_key != current:
            logger.debug("Budget period rolled over: %s -> %s", stored.period_key, current)
            return BudgetState(period_key=current)
        return stored
