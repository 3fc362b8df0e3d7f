"""Purchase ledger and portfolio analytics."""

from collections import defaultdict
from dataclasses import replace
from decimal import Decimal
from typing import Iterable

from dca_engine.domain.models import Asset, Holding, ProfitLoss, Purchase
from dca_engine.infrastructure.repositories import Repository
from dca_engine.price_oracle import PriceFeed


class PurchaseLedger:
    """Append-only purchase history."""

    def __init__(self, repo: Repository):
        self._repo = repo

    def append(self, purchase: Purchase) -> Purchase:
        """Write a purchase and return it with its id."""
        purchase_id = self._repo.add_purchase(purchase)
        return replace(purchase, id=purchase_id)

    def for_strategy(self, strategy_id: int) -> list[Purchase]:
        """Purchases of one strategy, oldest first."""
        return self._repo.list_purchases([strategy_id])

    def for_strategies(self, strategy_ids: Iterable[int]) -> list[Purchase]:
        """Purchases of several strategies, oldest first."""
        return self._repo.list_purchases(strategy_ids)

    def trades(self, owner: str) -> list[Purchase]:
        """One-off trades of an owner, oldest first."""
        return self._repo.list_trades(owner)


class PortfolioAggregator:
    """Derives holdings and profit/loss from purchases and live prices."""

    def __init__(self, feed: PriceFeed):
        self._feed = feed

    def holdings(self, purchases: Iterable[Purchase]) -> list[Holding]:
        """Sum amount and cost per asset; assets with nothing held are left out."""
        amounts: dict[Asset, Decimal] = defaultdict(Decimal)
        costs: dict[Asset, Decimal] = defaultdict(Decimal)
        for purchase in purchases:
            amounts[purchase.asset] += purchase.asset_amount
            costs[purchase.asset] += Decimal(purchase.usd_amount_cents) / 100

        holdings = []
        for asset in Asset:
            amount = amounts.get(asset, Decimal(0))
            if amount == 0:
                continue
            cost_basis = costs[asset]
            holdings.append(
                Holding(
                    asset=asset,
                    amount=amount,
                    cost_basis=cost_basis,
                    average_price=cost_basis / amount,
                )
            )
        return holdings

    def profit_loss(self, holdings: Iterable[Holding]) -> ProfitLoss:
        """Value holdings at the latest prices against their cost basis."""
        total_cost = Decimal(0)
        total_value = Decimal(0)
        for holding in holdings:
            total_cost += holding.cost_basis
            total_value += holding.amount * self._feed.latest(holding.asset).price_usd

        profit_loss = total_value - total_cost
        percent = profit_loss / total_cost * 100 if total_cost > 0 else Decimal(0)
        return ProfitLoss(
            total_value=total_value,
            total_cost=total_cost,
            profit_loss=profit_loss,
            profit_loss_percent=percent,
        )
