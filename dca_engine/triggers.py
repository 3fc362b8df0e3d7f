"""Price trigger evaluation for due strategies."""

from decimal import Decimal
from typing import Sequence, assert_never

from dca_engine.domain.models import TriggerCondition, TriggerKind
from dca_engine.price_history import simple_moving_average

# Average-based triggers need at least this many samples; below it they pass.
MIN_SAMPLES = 3


def should_execute(
    condition: TriggerCondition, live_price: Decimal, history: Sequence[Decimal]
) -> bool:
    """Decide whether the condition allows a purchase at ``live_price``."""
    match condition.kind:
        case TriggerKind.NONE:
            return True
        case TriggerKind.PRICE_BELOW:
            return live_price < condition.value
        case TriggerKind.PRICE_ABOVE:
            return live_price > condition.value
        case TriggerKind.PRICE_DROP_PERCENT:
            if len(history) < MIN_SAMPLES:
                return True
            sma = simple_moving_average(list(history))
            if sma == 0:
                return True
            return (sma - live_price) / sma * 100 >= condition.value
        case TriggerKind.PRICE_BELOW_AVERAGE:
            if len(history) < MIN_SAMPLES:
                return True
            sma = simple_moving_average(list(history))
            return live_price < sma * (1 - condition.value / 100)
        case _:
            assert_never(condition.kind)


def describe(condition: TriggerCondition) -> str:
    """Human-readable form of a trigger condition, e.g. "price below 90000"."""
    match condition.kind:
        case TriggerKind.NONE:
            return "none"
        case TriggerKind.PRICE_BELOW:
            return f"price below {condition.value}"
        case TriggerKind.PRICE_ABOVE:
            return f"price above {condition.value}"
        case TriggerKind.PRICE_DROP_PERCENT:
            return f"price {condition.value}% under average"
        case TriggerKind.PRICE_BELOW_AVERAGE:
            return f"price more than {condition.value}% below average"
        case _:
            assert_never(condition.kind)
