"""Bounded per-asset price history."""

from decimal import Decimal

from dca_engine.domain.models import Asset, PriceQuote, PriceSample
from dca_engine.infrastructure.repositories import Repository

MAX_SAMPLES = 24


def simple_moving_average(prices: list[Decimal]) -> Decimal:
    if not prices:
        return Decimal(0)
    return sum(prices, Decimal(0)) / len(prices)


class PriceHistory:
    """Keeps the newest MAX_SAMPLES prices per asset, evicting oldest first."""

    def __init__(self, repo: Repository, max_samples: int = MAX_SAMPLES):
        self._repo = repo
        self.max_samples = max_samples

    def record(self, quote: PriceQuote) -> None:
        self._repo.add_price_sample(
            PriceSample(asset=quote.asset, price=quote.price_usd, timestamp=quote.timestamp),
            self.max_samples,
        )

    def samples(self, asset: Asset) -> list[PriceSample]:
        return self._repo.get_price_history(asset)

    def prices(self, asset: Asset) -> list[Decimal]:
        return [s.price for s in self.samples(asset)]
