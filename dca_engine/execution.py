"""Purchase execution: strategy runs (sizing, trigger check) and one-off trades."""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from dca_engine.chain_executor import ChainExecutorRegistry
from dca_engine.domain.errors import SkippedError
from dca_engine.domain.models import Action, Asset, Purchase, Strategy, TriggerCondition
from dca_engine.portfolio import PurchaseLedger
from dca_engine.price_history import PriceHistory
from dca_engine.price_oracle import PriceFeed
from dca_engine.sizing import SizingEngine
from dca_engine.triggers import describe, should_execute


@dataclass(frozen=True)
class StrategySnapshot:
    """Fields of a strategy captured when an attempt starts."""

    strategy_id: int
    owner: str
    asset: Asset
    budget_cents: int
    condition: TriggerCondition

    @classmethod
    def of(cls, strategy: Strategy) -> "StrategySnapshot":
        if strategy.id is None:
            raise ValueError("Cannot execute an unsaved strategy")
        return cls(
            strategy_id=strategy.id,
            owner=strategy.owner,
            asset=strategy.asset,
            budget_cents=strategy.budget_cents,
            condition=strategy.condition,
        )


class ExecutionCoordinator:
    """Runs one purchase attempt for a strategy."""

    def __init__(
        self,
        feed: PriceFeed,
        history: PriceHistory,
        sizing: SizingEngine,
        executors: ChainExecutorRegistry,
        ledger: PurchaseLedger,
        logger: logging.Logger,
    ):
        self._feed = feed
        self._history = history
        self._sizing = sizing
        self._executors = executors
        self._ledger = ledger
        self._logger = logger

    def run(self, strategy: Strategy, now: datetime) -> Purchase:
        """
        Execute a purchase for a strategy.

        Sizes the purchase from the price trend, re-checks the live price
        against the trigger condition, buys through the asset's executor and
        appends the purchase to the ledger. Raises SkippedError when the
        attempt is deliberately not made; OracleError and ExecutionError
        abort it without writing anything.
        """
        snapshot = StrategySnapshot.of(strategy)
        self._logger.info(
            f"Strategy {snapshot.strategy_id}: {snapshot.budget_cents} cents of {snapshot.asset.value}"
        )

        recommendation = self._sizing.recommend(snapshot.asset, snapshot.budget_cents)
        if recommendation.action is Action.WAIT:
            raise SkippedError(recommendation.reasoning)

        quote = self._feed.latest(snapshot.asset)
        price = quote.price_usd
        if quote.is_fallback:
            self._logger.warning(f"Strategy {snapshot.strategy_id}: using fallback price {price}")

        history = self._history.prices(snapshot.asset)
        if not should_execute(snapshot.condition, price, history):
            raise SkippedError(f"trigger condition not met: {describe(snapshot.condition)}")

        amount_cents = recommendation.adjusted_amount_cents
        return self._settle(snapshot.owner, snapshot.asset, amount_cents, price, now, snapshot.strategy_id)

    def trade(self, owner: str, asset: Asset, amount_cents: int, now: datetime) -> Purchase:
        """
        Buy a fixed USD amount once, outside any strategy.

        No sizing and no trigger: the full amount is spent at the live price.
        """
        self._logger.info(f"One-off trade for {owner}: {amount_cents} cents of {asset.value}")

        quote = self._feed.latest(asset)
        if quote.is_fallback:
            self._logger.warning(f"One-off trade for {owner}: using fallback price {quote.price_usd}")
        return self._settle(owner, asset, amount_cents, quote.price_usd, now, None)

    def _settle(
        self,
        owner: str,
        asset: Asset,
        amount_cents: int,
        price: Decimal,
        now: datetime,
        strategy_id: int | None,
    ) -> Purchase:
        """Buy through the asset's executor and append the purchase to the ledger."""
        asset_amount = self._calculate_asset_amount(amount_cents, price)

        tx_ref = self._executors.purchase(owner, asset, amount_cents, price)

        purchase = self._ledger.append(
            Purchase(
                strategy_id=strategy_id,
                owner=owner,
                asset=asset,
                usd_amount_cents=amount_cents,
                asset_amount=asset_amount,
                price=price,
                timestamp=now,
                tx_ref=tx_ref,
            )
        )
        self._log_purchase(purchase)
        return purchase

    def _calculate_asset_amount(self, amount_cents: int, price: Decimal) -> Decimal:
        """Calculate asset quantity from spend amount."""
        return Decimal(amount_cents) / 100 / price

    def _log_purchase(self, purchase: Purchase) -> None:
        self._logger.info(
            f"Purchase {purchase.id}: {purchase.asset_amount} {purchase.asset.value} "
            f"@ {purchase.price} = {purchase.usd_amount_cents} cents (tx {purchase.tx_ref})"
        )
