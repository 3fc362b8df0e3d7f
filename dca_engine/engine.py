"""DCA engine: the public operations, wired over injected collaborators."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Mapping

from dca_engine.chain_executor import ChainExecutorRegistry
from dca_engine.domain.errors import ValidationError
from dca_engine.domain.models import (
    Account,
    Asset,
    Frequency,
    Holding,
    PriceQuote,
    PriceSample,
    ProfitLoss,
    Purchase,
    Recommendation,
    Strategy,
    TriggerCondition,
)
from dca_engine.execution import ExecutionCoordinator
from dca_engine.infrastructure.repositories import Repository
from dca_engine.portfolio import PortfolioAggregator, PurchaseLedger
from dca_engine.price_history import PriceHistory
from dca_engine.price_oracle import DEFAULT_PRICES, PriceFeed, PriceOracle
from dca_engine.scheduler import Scheduler
from dca_engine.sizing import SizingEngine
from dca_engine.strategy_store import MIN_BUDGET_CENTS, StrategyStore
from dca_engine.utils import utc_now


class DCAEngine:
    """Strategy scheduler and execution engine.

    Holds no global state: everything lives in the repository, and the
    price oracle and chain executors are injected so they can be swapped
    for fakes.
    """

    def __init__(
        self,
        repo: Repository,
        oracle: PriceOracle,
        executors: ChainExecutorRegistry,
        logger: logging.Logger,
        clock: Callable[[], datetime] = utc_now,
        default_prices: Mapping[Asset, Decimal] = DEFAULT_PRICES,
    ):
        self._logger = logger
        self._clock = clock
        self.feed = PriceFeed(oracle, logger, defaults=default_prices, clock=clock)
        self.history = PriceHistory(repo)
        self.store = StrategyStore(repo, logger, clock=clock)
        self.ledger = PurchaseLedger(repo)
        self.sizing = SizingEngine(self.feed, self.history, logger, clock=clock)
        self.coordinator = ExecutionCoordinator(
            self.feed, self.history, self.sizing, executors, self.ledger, logger
        )
        self.scheduler = Scheduler(self.store, self.coordinator, logger, clock=clock)
        self.portfolio = PortfolioAggregator(self.feed)

    # Accounts

    def create_account(self, caller: str) -> Account:
        return self.store.create_account(caller)

    def get_account(self, caller: str) -> Account:
        return self.store.get_account(caller)

    # Strategies

    def create_strategy(
        self,
        owner: str,
        asset: Asset,
        amount_cents: int,
        frequency: Frequency,
        condition: TriggerCondition | None = None,
    ) -> Strategy:
        return self.store.create_strategy(owner, asset, amount_cents, frequency, condition)

    def pause_strategy(self, strategy_id: int, caller: str) -> Strategy:
        return self.store.pause_strategy(strategy_id, caller)

    def resume_strategy(self, strategy_id: int, caller: str) -> Strategy:
        return self.store.resume_strategy(strategy_id, caller)

    def delete_strategy(self, strategy_id: int, caller: str) -> None:
        self.store.delete_strategy(strategy_id, caller)

    def get_strategy(self, strategy_id: int, caller: str) -> Strategy:
        return self.store.get_strategy(strategy_id, caller)

    def get_strategies(self, caller: str) -> list[Strategy]:
        return self.store.get_strategies(caller)

    # Execution

    def tick(self, now: datetime | None = None) -> int:
        """Run all due strategies. Not caller-scoped."""
        return self.scheduler.tick(now)

    def trigger_execution(self, strategy_id: int, caller: str) -> Purchase:
        return self.scheduler.trigger_execution(strategy_id, caller)

    def execute_trade(self, caller: str, asset: Asset, amount_cents: int) -> Purchase:
        """Buy once at the live price, outside any strategy and its schedule."""
        if amount_cents < MIN_BUDGET_CENTS:
            raise ValidationError(
                f"Amount {amount_cents} cents below minimum {MIN_BUDGET_CENTS} cents"
            )
        return self.coordinator.trade(caller, asset, amount_cents, self._clock())

    # Ledger and analytics

    def get_purchase_history(self, strategy_id: int, caller: str) -> list[Purchase]:
        self.store.get_strategy(strategy_id, caller)
        return self.ledger.for_strategy(strategy_id)

    def get_all_purchases(self, caller: str) -> list[Purchase]:
        """Purchases of the caller's current strategies plus their one-off trades."""
        ids = [s.id for s in self.store.get_strategies(caller) if s.id is not None]
        purchases = self.ledger.for_strategies(ids) + self.ledger.trades(caller)
        return sorted(purchases, key=lambda p: p.id or 0)

    def get_portfolio(self, caller: str) -> list[Holding]:
        return self.portfolio.holdings(self.get_all_purchases(caller))

    def get_profit_loss(self, caller: str) -> ProfitLoss:
        return self.portfolio.profit_loss(self.get_portfolio(caller))

    # Prices and recommendations

    def fetch_price(self, asset: Asset) -> PriceQuote:
        return self.feed.latest(asset)

    def get_all_prices(self) -> list[tuple[Asset, Decimal]]:
        return self.feed.all_prices()

    def get_price_history(self, asset: Asset) -> list[PriceSample]:
        return self.history.samples(asset)

    def get_recommendation(self, asset: Asset, amount_cents: int) -> Recommendation:
        return self.sizing.recommend(asset, amount_cents)

    def get_last_recommendation(self) -> Recommendation | None:
        return self.sizing.last_recommendation

    def get_total_strategies(self) -> int:
        return self.store.count_strategies()

    def get_total_users(self) -> int:
        return self.store.count_accounts()
