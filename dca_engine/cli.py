"""Command-line interface parsing and validation."""

import argparse
import os
from decimal import Decimal

from dca_engine.domain.models import Asset, Frequency, FrequencyUnit, TriggerCondition, TriggerKind

OWNER_COMMANDS = {
    "create",
    "pause",
    "resume",
    "delete",
    "trigger",
    "trade",
    "strategies",
    "purchases",
    "portfolio",
}

TRIGGER_CHOICES = {
    "none": TriggerKind.NONE,
    "price-below": TriggerKind.PRICE_BELOW,
    "price-above": TriggerKind.PRICE_ABOVE,
    "drop-percent": TriggerKind.PRICE_DROP_PERCENT,
    "below-average": TriggerKind.PRICE_BELOW_AVERAGE,
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Recurring crypto purchase (DCA) strategy engine",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL"),
        help="PostgreSQL connection URL (in-memory store when unset)",
    )

    parser.add_argument(
        "--price-api-url",
        default=os.environ.get("PRICE_API_URL", "https://api.coingecko.com"),
        help="CoinGecko API base URL",
    )

    parser.add_argument(
        "--price-api-key",
        default=os.environ.get("COINGECKO_API_KEY"),
        help="CoinGecko demo API key (optional)",
    )

    parser.add_argument(
        "--price-timeout",
        type=int,
        default=int(os.environ.get("PRICE_TIMEOUT", "30")),
        help="Price request timeout in seconds",
    )

    parser.add_argument(
        "--owner",
        default=os.environ.get("DCA_OWNER"),
        help="Identity of the caller for owner-scoped commands",
    )

    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("tick", help="Execute all due strategies once")

    create = commands.add_parser(
        "create",
        help="Create a strategy",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    create.add_argument("--asset", required=True, choices=[a.value for a in Asset])
    create.add_argument(
        "--amount-cents", type=int, required=True, help="Budget per purchase in USD cents"
    )
    create.add_argument(
        "--frequency",
        default="daily",
        choices=[u.value.lower() for u in FrequencyUnit],
        help="Recurrence unit",
    )
    create.add_argument(
        "--every",
        type=int,
        default=1,
        help="Multiplier for the seconds/minutes/hours units",
    )
    create.add_argument(
        "--trigger",
        default="none",
        choices=list(TRIGGER_CHOICES),
        help="Optional price condition",
    )
    create.add_argument(
        "--trigger-value",
        type=Decimal,
        help="Price (USD) or percentage for the trigger",
    )

    for name, help_text in (
        ("pause", "Pause a strategy"),
        ("resume", "Resume a paused strategy"),
        ("delete", "Delete a strategy"),
        ("trigger", "Execute a strategy now"),
    ):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("strategy_id", type=int)

    trade = commands.add_parser("trade", help="Buy once now, outside any strategy")
    trade.add_argument("--asset", required=True, choices=[a.value for a in Asset])
    trade.add_argument("--amount-cents", type=int, required=True, help="USD cents to spend")

    purchases = commands.add_parser("purchases", help="List purchases")
    purchases.add_argument("--strategy-id", type=int, help="Only this strategy")

    commands.add_parser("strategies", help="List your strategies")
    commands.add_parser("portfolio", help="Show holdings and profit/loss")
    commands.add_parser("prices", help="Show current prices")

    return parser.parse_args(argv)


def validate_args(args: argparse.Namespace) -> None:
    """Validate command line arguments. Raises ValueError on invalid input."""
    if args.command in OWNER_COMMANDS and not args.owner:
        raise ValueError(f"--owner (or DCA_OWNER) is required for '{args.command}'")

    if args.price_timeout <= 0:
        raise ValueError(f"--price-timeout must be positive, got {args.price_timeout}")

    if args.command == "create":
        if args.every < 1:
            raise ValueError(f"--every must be positive, got {args.every}")
        if args.every != 1 and args.frequency not in ("seconds", "minutes", "hours"):
            raise ValueError(f"--every only applies to seconds/minutes/hours, not {args.frequency}")

        kind = TRIGGER_CHOICES[args.trigger]
        if kind is TriggerKind.NONE and args.trigger_value is not None:
            raise ValueError("--trigger-value given without --trigger")
        if kind is not TriggerKind.NONE and args.trigger_value is None:
            raise ValueError(f"--trigger {args.trigger} requires --trigger-value")
        if args.trigger_value is not None and args.trigger_value <= 0:
            raise ValueError(f"--trigger-value must be positive, got {args.trigger_value}")


def frequency_from_args(args: argparse.Namespace) -> Frequency:
    """Build the recurrence of a 'create' command."""
    return Frequency(FrequencyUnit(args.frequency.upper()), args.every)


def condition_from_args(args: argparse.Namespace) -> TriggerCondition:
    """Build the trigger condition of a 'create' command."""
    kind = TRIGGER_CHOICES[args.trigger]
    if kind is TriggerKind.NONE:
        return TriggerCondition.none()
    return TriggerCondition(kind, args.trigger_value)
