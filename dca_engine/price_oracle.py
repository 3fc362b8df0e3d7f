"""USD price oracle: CoinGecko client and fallback-aware price feed."""

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping

import requests

from dca_engine.domain.errors import OracleError
from dca_engine.domain.models import Asset, PriceQuote
from dca_engine.utils import utc_now

# Used when the oracle cannot be reached. Every supported asset has an entry.
DEFAULT_PRICES: Mapping[Asset, Decimal] = {
    Asset.BTC: Decimal("100000"),
    Asset.ETH: Decimal("3500"),
    Asset.ICP: Decimal("12"),
}

COINGECKO_IDS: Mapping[Asset, str] = {
    Asset.BTC: "bitcoin",
    Asset.ETH: "ethereum",
    Asset.ICP: "internet-computer",
}


class PriceOracle(ABC):
    """Source of the current USD price per unit of an asset."""

    @abstractmethod
    def fetch_price(self, asset: Asset) -> PriceQuote:
        """Fetch the current price. Raises OracleError on failure."""
        ...


class StaticPriceOracle(PriceOracle):
    """Oracle serving fixed prices, for offline runs and tests."""

    def __init__(
        self,
        prices: Mapping[Asset, Decimal] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._prices = dict(DEFAULT_PRICES if prices is None else prices)
        self._clock = clock

    def set_price(self, asset: Asset, price: Decimal) -> None:
        self._prices[asset] = Decimal(price)

    def fetch_price(self, asset: Asset) -> PriceQuote:
        if asset not in self._prices:
            raise OracleError(asset.value, "no static price configured")
        return PriceQuote(asset=asset, price_usd=self._prices[asset], timestamp=self._clock())


class CoinGeckoOracle(PriceOracle):
    """Client for the CoinGecko simple price endpoint."""

    def __init__(
        self,
        base_url: str = "https://api.coingecko.com",
        api_key: str | None = None,
        timeout: int = 30,
        logger: logging.Logger | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._logger = logger
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if api_key:
            self.session.headers.update({"x-cg-demo-api-key": api_key})

    def _log(self, level: int, msg: str) -> None:
        """Log a message if logger is configured."""
        if self._logger:
            self._logger.log(level, msg)

    def _request(self, asset: Asset, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        """Make a GET request and decode the JSON body with Decimal floats."""
        url = f"{self.base_url}{endpoint}"
        self._log(logging.DEBUG, f"Request: GET {endpoint} params={params}")

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            if response.status_code != 200:
                raise OracleError(asset.value, f"HTTP {response.status_code}: {response.text}")
            return response.json(parse_float=Decimal)
        except ValueError as e:
            raise OracleError(asset.value, f"Invalid JSON: {e}") from e
        except requests.RequestException as e:
            raise OracleError(asset.value, f"Network error: {e}") from e

    def fetch_price(self, asset: Asset) -> PriceQuote:
        """Fetch the current USD price of an asset."""
        coin_id = COINGECKO_IDS[asset]
        data = self._request(
            asset,
            "/api/v3/simple/price",
            {"ids": coin_id, "vs_currencies": "usd", "include_last_updated_at": "true"},
        )

        entry = data.get(coin_id) if isinstance(data, dict) else None
        if not isinstance(entry, dict):
            raise OracleError(asset.value, f"Unexpected response for {coin_id}: {data}")

        price = entry.get("usd")
        if price is None:
            raise OracleError(asset.value, f"No USD price in response for {coin_id}")
        return PriceQuote(
            asset=asset,
            price_usd=_parse_price(asset, price),
            timestamp=_parse_timestamp(asset, entry.get("last_updated_at")),
        )


def _parse_price(asset: Asset, raw: Any) -> Decimal:
    # bool is an int subclass; JSON true is not a price
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str, Decimal)):
        raise OracleError(asset.value, f"Invalid price {raw!r}")
    try:
        price = Decimal(str(raw))
    except (InvalidOperation, ValueError) as e:
        raise OracleError(asset.value, f"Invalid price {raw!r}") from e
    if not price.is_finite() or price <= 0:
        raise OracleError(asset.value, f"Invalid price {raw!r}")
    return price


def _parse_timestamp(asset: Asset, raw: Any) -> datetime:
    if not raw:
        return utc_now()
    try:
        return datetime.fromtimestamp(int(raw), UTC)
    except (ValueError, TypeError, OverflowError, OSError) as e:
        raise OracleError(asset.value, f"Invalid last_updated_at {raw!r}") from e


class PriceFeed:
    """Wraps an oracle and falls back to a default-price table on failure.

    The fallback is a returned value (a quote flagged ``is_fallback``), so
    callers never see an OracleError unless the table has no entry.
    """

    def __init__(
        self,
        oracle: PriceOracle,
        logger: logging.Logger,
        defaults: Mapping[Asset, Decimal] = DEFAULT_PRICES,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._oracle = oracle
        self._logger = logger
        self._defaults = defaults
        self._clock = clock

    def latest(self, asset: Asset) -> PriceQuote:
        """Current quote, or a fallback quote when the oracle fails or returns a non-positive price."""
        try:
            quote = self._oracle.fetch_price(asset)
            if quote.price_usd <= 0:
                raise OracleError(asset.value, f"Non-positive price {quote.price_usd}")
            return quote
        except OracleError as e:
            default = self._defaults.get(asset)
            if default is None or default <= 0:
                self._logger.error(f"{e}; no default price for {asset.value}")
                raise
            self._logger.warning(f"{e}; using default price {default}")
            return PriceQuote(
                asset=asset, price_usd=default, timestamp=self._clock(), is_fallback=True
            )

    def all_prices(self) -> list[tuple[Asset, Decimal]]:
        """Latest price of every supported asset."""
        return [(asset, self.latest(asset).price_usd) for asset in Asset]
