"""Strategy records, ownership and schedule bookkeeping."""

import logging
from datetime import datetime
from typing import Callable

from dca_engine.domain.errors import AuthorizationError, NotFoundError, ValidationError
from dca_engine.domain.models import Account, Asset, Frequency, Strategy, TriggerCondition
from dca_engine.infrastructure.repositories import Repository
from dca_engine.utils import utc_now

MIN_BUDGET_CENTS = 100


class StrategyStore:
    """Owns strategy lifecycle: create, pause/resume/delete and rescheduling."""

    def __init__(
        self,
        repo: Repository,
        logger: logging.Logger,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._repo = repo
        self._logger = logger
        self._clock = clock

    def create_account(self, owner: str) -> Account:
        """Create an account for an owner. Raises ValidationError if it exists."""
        if self._repo.get_account(owner) is not None:
            raise ValidationError(f"Account already exists for {owner}")
        account = Account(owner=owner, created_at=self._clock())
        self._repo.add_account(account)
        self._logger.info(f"Account created: {owner}")
        return account

    def get_account(self, owner: str) -> Account:
        """Get the account of an owner. Raises NotFoundError if missing."""
        account = self._repo.get_account(owner)
        if account is None:
            raise NotFoundError("Account", owner)
        return account

    def create_strategy(
        self,
        owner: str,
        asset: Asset,
        amount_cents: int,
        frequency: Frequency,
        condition: TriggerCondition | None = None,
    ) -> Strategy:
        """Create an active strategy whose first run is one interval from now."""
        if amount_cents < MIN_BUDGET_CENTS:
            raise ValidationError(
                f"Amount {amount_cents} cents below minimum {MIN_BUDGET_CENTS} cents"
            )

        now = self._clock()
        if self._repo.get_account(owner) is None:
            self._repo.add_account(Account(owner=owner, created_at=now))
            self._logger.info(f"Account created: {owner}")

        strategy = Strategy(
            owner=owner,
            asset=asset,
            budget_cents=amount_cents,
            frequency=frequency,
            condition=condition or TriggerCondition.none(),
            next_execution_time=now + frequency.interval,
            created_at=now,
        )
        strategy.id = self._repo.add_strategy(strategy)
        self._logger.info(
            f"Strategy {strategy.id} created: {owner} buys {amount_cents} cents of "
            f"{asset.value} {frequency}, next at {strategy.next_execution_time.isoformat()}"
        )
        return strategy

    def get_strategy(self, strategy_id: int, caller: str) -> Strategy:
        """Get a strategy owned by ``caller``."""
        strategy = self._repo.get_strategy(strategy_id)
        if strategy is None:
            raise NotFoundError("Strategy", strategy_id)
        if strategy.owner != caller:
            raise AuthorizationError(strategy_id, caller)
        return strategy

    def get_strategies(self, caller: str) -> list[Strategy]:
        """List the strategies owned by ``caller``."""
        return self._repo.list_strategies(owner=caller)

    def pause_strategy(self, strategy_id: int, caller: str) -> Strategy:
        """Deactivate a strategy, keeping its schedule."""
        strategy = self.get_strategy(strategy_id, caller)
        strategy.active = False
        self._save(strategy)
        self._logger.info(f"Strategy {strategy_id} paused")
        return strategy

    def resume_strategy(self, strategy_id: int, caller: str) -> Strategy:
        """Reactivate a strategy. Missed slots are not replayed."""
        strategy = self.get_strategy(strategy_id, caller)
        strategy.active = True
        strategy.next_execution_time = self._clock() + strategy.frequency.interval
        self._save(strategy)
        self._logger.info(
            f"Strategy {strategy_id} resumed, next at {strategy.next_execution_time.isoformat()}"
        )
        return strategy

    def delete_strategy(self, strategy_id: int, caller: str) -> None:
        """Delete a strategy. Its purchases stay in the ledger."""
        self.get_strategy(strategy_id, caller)
        self._repo.delete_strategy(strategy_id)
        self._logger.info(f"Strategy {strategy_id} deleted")

    def due_strategies(self, now: datetime) -> list[Strategy]:
        """List active strategies whose next execution time has passed."""
        return self._repo.due_strategies(now)

    def record_run(self, strategy_id: int, now: datetime, succeeded: bool) -> Strategy | None:
        """Advance the schedule after a scheduled attempt.

        Re-reads the strategy by id; if it was deleted while the attempt was
        in flight the write-back is dropped and None is returned.
        """
        strategy = self._repo.get_strategy(strategy_id)
        if strategy is None:
            self._logger.debug(f"Strategy {strategy_id} gone, schedule not updated")
            return None

        next_time = now + strategy.frequency.interval
        if next_time > strategy.next_execution_time:
            strategy.next_execution_time = next_time
        if succeeded:
            strategy.execution_count += 1

        if not self._repo.update_strategy(strategy):
            self._logger.debug(f"Strategy {strategy_id} gone, schedule not updated")
            return None
        return strategy

    def count_strategies(self) -> int:
        return self._repo.count_strategies()

    def count_accounts(self) -> int:
        return self._repo.count_accounts()

    def _save(self, strategy: Strategy) -> None:
        if not self._repo.update_strategy(strategy):
            raise NotFoundError("Strategy", strategy.id)
