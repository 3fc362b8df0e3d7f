"""Trend-adjusted purchase sizing."""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable

from dca_engine.domain.models import Action, Asset, Recommendation
from dca_engine.price_history import PriceHistory, simple_moving_average
from dca_engine.price_oracle import PriceFeed
from dca_engine.utils import utc_now

BUY_MORE_BELOW = Decimal("-0.05")
BUY_LESS_ABOVE = Decimal("0.08")
WAIT_ABOVE = Decimal("0.15")


@dataclass(frozen=True)
class Decision:
    action: Action
    confidence: float
    multiplier: Decimal
    reasoning: str


def compute_trend(live_price: Decimal, prices: list[Decimal]) -> Decimal:
    """Relative distance of the live price from the moving average."""
    if len(prices) < 2:
        return Decimal(0)
    sma = simple_moving_average(prices)
    if sma == 0:
        return Decimal(0)
    return (live_price - sma) / sma


def classify(trend: Decimal, samples: int) -> Decision:
    """Map a trend to a sizing decision. First matching rule wins."""
    if samples < 3:
        return Decision(Action.BUY_NOW, 0.6, Decimal("1.0"), "insufficient history")
    if trend < BUY_MORE_BELOW:
        return Decision(Action.BUY_MORE, 0.85, Decimal("1.25"), "price below average")
    if trend > BUY_LESS_ABOVE:
        return Decision(Action.BUY_LESS, 0.75, Decimal("0.75"), "price above average")
    # Never reached: any trend above WAIT_ABOVE already matched BUY_LESS.
    if trend > WAIT_ABOVE:
        return Decision(Action.WAIT, 0.7, Decimal("0"), "price far above average")
    return Decision(Action.BUY_NOW, 0.8, Decimal("1.0"), "price near average")


def adjust_amount(base_amount_cents: int, multiplier: Decimal) -> int:
    """Scale a budget by the multiplier, rounding half up to whole cents."""
    return int((base_amount_cents * multiplier).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class SizingEngine:
    """Records the live price and recommends how much of the budget to spend."""

    def __init__(
        self,
        feed: PriceFeed,
        history: PriceHistory,
        logger: logging.Logger,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._feed = feed
        self._history = history
        self._logger = logger
        self._clock = clock
        self.last_recommendation: Recommendation | None = None

    def recommend(self, asset: Asset, base_amount_cents: int) -> Recommendation:
        quote = self._feed.latest(asset)
        self._history.record(quote)

        prices = self._history.prices(asset)
        trend = compute_trend(quote.price_usd, prices)
        decision = classify(trend, len(prices))

        recommendation = Recommendation(
            action=decision.action,
            confidence=decision.confidence,
            multiplier=decision.multiplier,
            adjusted_amount_cents=adjust_amount(base_amount_cents, decision.multiplier),
            reasoning=decision.reasoning,
            timestamp=self._clock(),
        )
        self.last_recommendation = recommendation

        self._logger.info(
            f"{asset.value} @ {quote.price_usd} | samples={len(prices)} "
            f"trend={trend:.4f} -> {decision.action.value} x{decision.multiplier} "
            f"({base_amount_cents} -> {recommendation.adjusted_amount_cents} cents)"
        )
        return recommendation
