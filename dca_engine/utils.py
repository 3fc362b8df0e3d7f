import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import assert_never

from dca_engine.domain.models import Asset


def utc_now() -> datetime:
    return datetime.now(UTC)


def create_logger(name: str, level: str) -> logging.Logger:
    """Create and configure a logger instance."""
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level))

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(handler)

    return logger


def asset_name(asset: Asset) -> str:
    """Human readable asset name (e.g., BTC -> Bitcoin)."""
    match asset:
        case Asset.BTC:
            return "Bitcoin"
        case Asset.ETH:
            return "Ethereum"
        case Asset.ICP:
            return "Internet Computer"
        case _:
            assert_never(asset)


def format_usd(amount: Decimal | int, cents: bool = False) -> str:
    """
    Format a USD amount with thousands separators.

    Examples:
        format_usd(5000, cents=True) -> $50.00
        format_usd(Decimal("1234.5")) -> $1,234.50
    """
    value = Decimal(amount) / 100 if cents else Decimal(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_crypto(amount: Decimal, decimals: int = 6) -> str:
    """Format an asset quantity with a fixed number of decimals."""
    return f"{amount:.{decimals}f}"
