"""Domain models for the DCA strategy engine."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import assert_never


class Asset(str, Enum):
    """Assets a strategy can accumulate."""

    BTC = "BTC"
    ETH = "ETH"
    ICP = "ICP"


class FrequencyUnit(str, Enum):
    SECONDS = "SECONDS"
    MINUTES = "MINUTES"
    HOURS = "HOURS"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"


@dataclass(frozen=True)
class Frequency:
    """Recurrence of a strategy.

    ``count`` only matters for the SECONDS, MINUTES and HOURS units; the
    calendar-like units always describe a single period.
    """

    unit: FrequencyUnit
    count: int = 1

    def __post_init__(self) -> None:
        if self.count < 1:
            raise ValueError(f"Frequency count must be positive, got {self.count}")

    @classmethod
    def seconds(cls, n: int) -> "Frequency":
        return cls(FrequencyUnit.SECONDS, n)

    @classmethod
    def minutes(cls, n: int) -> "Frequency":
        return cls(FrequencyUnit.MINUTES, n)

    @classmethod
    def hours(cls, n: int) -> "Frequency":
        return cls(FrequencyUnit.HOURS, n)

    @classmethod
    def daily(cls) -> "Frequency":
        return cls(FrequencyUnit.DAILY)

    @classmethod
    def weekly(cls) -> "Frequency":
        return cls(FrequencyUnit.WEEKLY)

    @classmethod
    def biweekly(cls) -> "Frequency":
        return cls(FrequencyUnit.BIWEEKLY)

    @classmethod
    def monthly(cls) -> "Frequency":
        return cls(FrequencyUnit.MONTHLY)

    @property
    def interval_seconds(self) -> int:
        match self.unit:
            case FrequencyUnit.SECONDS:
                return self.count
            case FrequencyUnit.MINUTES:
                return 60 * self.count
            case FrequencyUnit.HOURS:
                return 3600 * self.count
            case FrequencyUnit.DAILY:
                return 86400
            case FrequencyUnit.WEEKLY:
                return 604800
            case FrequencyUnit.BIWEEKLY:
                return 1209600
            case FrequencyUnit.MONTHLY:
                return 2592000
            case _:
                assert_never(self.unit)

    @property
    def interval(self) -> timedelta:
        return timedelta(seconds=self.interval_seconds)

    def __str__(self) -> str:
        if self.unit in (FrequencyUnit.SECONDS, FrequencyUnit.MINUTES, FrequencyUnit.HOURS):
            return f"every {self.count} {self.unit.value.lower()}"
        return self.unit.value.lower()


class TriggerKind(str, Enum):
    NONE = "NONE"
    PRICE_BELOW = "PRICE_BELOW"
    PRICE_ABOVE = "PRICE_ABOVE"
    PRICE_DROP_PERCENT = "PRICE_DROP_PERCENT"
    PRICE_BELOW_AVERAGE = "PRICE_BELOW_AVERAGE"


@dataclass(frozen=True)
class TriggerCondition:
    """Optional price gate evaluated before a due strategy executes.

    ``value`` is a USD price for PRICE_BELOW / PRICE_ABOVE and a percentage
    for PRICE_DROP_PERCENT / PRICE_BELOW_AVERAGE.
    """

    kind: TriggerKind = TriggerKind.NONE
    value: Decimal | None = None

    def __post_init__(self) -> None:
        if self.kind is TriggerKind.NONE:
            if self.value is not None:
                raise ValueError("TriggerKind.NONE takes no value")
        elif self.value is None:
            raise ValueError(f"{self.kind.value} requires a value")

    @classmethod
    def none(cls) -> "TriggerCondition":
        return cls()

    @classmethod
    def price_below(cls, threshold: Decimal) -> "TriggerCondition":
        return cls(TriggerKind.PRICE_BELOW, Decimal(threshold))

    @classmethod
    def price_above(cls, threshold: Decimal) -> "TriggerCondition":
        return cls(TriggerKind.PRICE_ABOVE, Decimal(threshold))

    @classmethod
    def price_drop_percent(cls, pct: Decimal) -> "TriggerCondition":
        return cls(TriggerKind.PRICE_DROP_PERCENT, Decimal(pct))

    @classmethod
    def price_below_average(cls, pct: Decimal) -> "TriggerCondition":
        return cls(TriggerKind.PRICE_BELOW_AVERAGE, Decimal(pct))


@dataclass
class Account:
    """Account entity, created on first use."""

    owner: str
    created_at: datetime


@dataclass
class Strategy:
    """Recurring purchase strategy entity."""

    owner: str
    asset: Asset
    budget_cents: int
    frequency: Frequency
    next_execution_time: datetime
    created_at: datetime
    condition: TriggerCondition = field(default_factory=TriggerCondition)
    active: bool = True
    execution_count: int = 0
    id: int | None = None

    @property
    def interval_seconds(self) -> int:
        return self.frequency.interval_seconds

    def is_due(self, now: datetime) -> bool:
        return self.active and self.next_execution_time <= now


@dataclass(frozen=True)
class PriceSample:
    asset: Asset
    price: Decimal
    timestamp: datetime


@dataclass(frozen=True)
class PriceQuote:
    """Price returned by the price feed."""

    asset: Asset
    price_usd: Decimal
    timestamp: datetime
    is_fallback: bool = False


@dataclass(frozen=True)
class Purchase:
    """Purchase ledger entry. Written once, never updated.

    ``strategy_id`` is None for one-off trades placed outside any strategy.
    """

    strategy_id: int | None
    owner: str
    asset: Asset
    usd_amount_cents: int
    asset_amount: Decimal
    price: Decimal
    timestamp: datetime
    tx_ref: str
    id: int | None = None


class Action(str, Enum):
    BUY_NOW = "BUY_NOW"
    BUY_MORE = "BUY_MORE"
    BUY_LESS = "BUY_LESS"
    WAIT = "WAIT"


@dataclass(frozen=True)
class Recommendation:
    """Trend-adjusted sizing decision for a single purchase."""

    action: Action
    confidence: float
    multiplier: Decimal
    adjusted_amount_cents: int
    reasoning: str
    timestamp: datetime


@dataclass(frozen=True)
class Holding:
    asset: Asset
    amount: Decimal
    cost_basis: Decimal
    average_price: Decimal


@dataclass(frozen=True)
class ProfitLoss:
    total_value: Decimal
    total_cost: Decimal
    profit_loss: Decimal
    profit_loss_percent: Decimal
