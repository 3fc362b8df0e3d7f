"""Scheduler entrypoints: batch tick and manual single execution."""

import logging
from datetime import datetime
from typing import Callable

from dca_engine.domain.errors import DCAError, SkippedError
from dca_engine.domain.models import Purchase
from dca_engine.execution import ExecutionCoordinator
from dca_engine.strategy_store import StrategyStore
from dca_engine.utils import utc_now


class Scheduler:
    """Runs due strategies when triggered from outside (cron, CLI)."""

    def __init__(
        self,
        store: StrategyStore,
        coordinator: ExecutionCoordinator,
        logger: logging.Logger,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._coordinator = coordinator
        self._logger = logger
        self._clock = clock

    def tick(self, now: datetime | None = None) -> int:
        """
        Execute every due strategy once.

        Each strategy is rescheduled to ``now + interval`` whatever the
        outcome; only successful purchases count towards execution_count
        and the returned total. Per-strategy errors are logged, not raised.
        """
        now = now or self._clock()
        due = self._store.due_strategies(now)
        self._logger.info(f"Tick at {now.isoformat()}: {len(due)} due strategies")

        executed = 0
        for strategy in due:
            succeeded = False
            try:
                self._coordinator.run(strategy, now)
                succeeded = True
            except SkippedError as e:
                self._logger.info(f"Strategy {strategy.id}: {e}")
            except DCAError as e:
                self._logger.warning(f"Strategy {strategy.id} failed: {e}")
            except Exception as e:
                self._logger.exception(f"Strategy {strategy.id} unexpected error: {e}")

            if succeeded:
                executed += 1

            try:
                self._store.record_run(strategy.id, now, succeeded)
            except Exception as e:
                self._logger.exception(f"Strategy {strategy.id} reschedule failed: {e}")

        self._logger.info(f"Tick complete: {executed}/{len(due)} executed")
        return executed

    def trigger_execution(self, strategy_id: int, caller: str) -> Purchase:
        """Execute a strategy immediately, leaving its schedule untouched."""
        strategy = self._store.get_strategy(strategy_id, caller)
        self._logger.info(f"Manual execution of strategy {strategy_id} by {caller}")
        return self._coordinator.run(strategy, self._clock())
