"""End-to-end tests of the engine: manual execution, scheduler ticks and portfolio."""

from datetime import timedelta
from decimal import Decimal

import pytest

from dca_engine.domain.errors import (
    AuthorizationError,
    ExecutionError,
    NotFoundError,
    OracleError,
    SkippedError,
    ValidationError,
)
from dca_engine.domain.models import Asset, Frequency, PriceSample, TriggerCondition
from dca_engine.price_oracle import StaticPriceOracle

from fakes import START, BrokenExecutor, FailingOracle, FlakyUpdateRepository, RecordingExecutor


def seed_history(repo, asset: Asset, price: str, count: int = 3) -> None:
    for i in range(count):
        repo.add_price_sample(
            PriceSample(asset, Decimal(price), START - timedelta(hours=count - i)), 24
        )


class TestTriggerExecution:
    def test_manual_execution_uses_adjusted_amount(self, engine, repo, executors):
        strategy = engine.create_strategy("alice", Asset.BTC, 5000, Frequency.daily())
        seed_history(repo, Asset.BTC, "120000")

        purchase = engine.trigger_execution(strategy.id, "alice")

        recommendation = engine.get_last_recommendation()
        assert purchase.usd_amount_cents == recommendation.adjusted_amount_cents == 6250
        assert purchase.price == Decimal("100000")
        assert purchase.asset_amount == Decimal(6250) / 100 / Decimal("100000")
        assert purchase.tx_ref == "tx-btc-1"
        assert executors[Asset.BTC].calls == [("alice", Asset.BTC, 6250, Decimal("100000"))]

        after = engine.get_strategy(strategy.id, "alice")
        assert after.execution_count == 0
        assert after.next_execution_time == strategy.next_execution_time

    def test_manual_execution_without_history_spends_budget(self, engine):
        strategy = engine.create_strategy("alice", Asset.BTC, 5000, Frequency.daily())

        purchase = engine.trigger_execution(strategy.id, "alice")

        assert purchase.usd_amount_cents == 5000
        assert purchase.asset_amount == Decimal("0.0005")
        assert engine.get_purchase_history(strategy.id, "alice") == [purchase]

    def test_requires_owner(self, engine):
        strategy = engine.create_strategy("alice", Asset.BTC, 5000, Frequency.daily())
        with pytest.raises(AuthorizationError):
            engine.trigger_execution(strategy.id, "mallory")
        with pytest.raises(NotFoundError):
            engine.trigger_execution(999, "alice")

    def test_paused_strategy_can_still_be_triggered(self, engine):
        strategy = engine.create_strategy("alice", Asset.ETH, 1000, Frequency.weekly())
        engine.pause_strategy(strategy.id, "alice")

        purchase = engine.trigger_execution(strategy.id, "alice")
        assert purchase.asset is Asset.ETH

    def test_executor_failure_writes_nothing(self, engine, executors):
        executors[Asset.BTC].fail = True
        strategy = engine.create_strategy("alice", Asset.BTC, 5000, Frequency.daily())

        with pytest.raises(ExecutionError):
            engine.trigger_execution(strategy.id, "alice")
        assert engine.get_all_purchases("alice") == []

    def test_trigger_condition_not_met_skips(self, engine, executors):
        strategy = engine.create_strategy(
            "alice",
            Asset.BTC,
            5000,
            Frequency.daily(),
            TriggerCondition.price_below(Decimal("90000")),
        )

        with pytest.raises(SkippedError, match="price below 90000"):
            engine.trigger_execution(strategy.id, "alice")
        assert executors[Asset.BTC].calls == []

    def test_trigger_condition_met_executes(self, engine, oracle):
        strategy = engine.create_strategy(
            "alice",
            Asset.BTC,
            5000,
            Frequency.daily(),
            TriggerCondition.price_above(Decimal("90000")),
        )
        assert engine.trigger_execution(strategy.id, "alice").price == Decimal("100000")


class TestOracleFallback:
    def test_falls_back_to_default_price(self, make_engine):
        oracle = FailingOracle()
        engine = make_engine(oracle=oracle)
        strategy = engine.create_strategy("alice", Asset.ETH, 3500, Frequency.daily())

        purchase = engine.trigger_execution(strategy.id, "alice")

        assert oracle.calls == 2
        assert purchase.price == Decimal("3500")
        assert purchase.asset_amount == Decimal("0.01")
        assert engine.fetch_price(Asset.ETH).is_fallback

    def test_missing_default_raises(self, make_engine):
        engine = make_engine(oracle=FailingOracle(), default_prices={Asset.BTC: Decimal("100000")})
        strategy = engine.create_strategy("alice", Asset.ICP, 500, Frequency.daily())

        with pytest.raises(OracleError):
            engine.trigger_execution(strategy.id, "alice")
        assert engine.get_all_purchases("alice") == []

    def test_zero_price_falls_back(self, make_engine, clock):
        engine = make_engine(oracle=StaticPriceOracle({Asset.BTC: Decimal("0")}, clock=clock))
        strategy = engine.create_strategy("alice", Asset.BTC, 5000, Frequency.daily())

        purchase = engine.trigger_execution(strategy.id, "alice")

        assert purchase.price == Decimal("100000")
        assert engine.fetch_price(Asset.BTC).is_fallback

    def test_zero_price_without_default_is_an_oracle_error(self, make_engine, clock):
        engine = make_engine(
            oracle=StaticPriceOracle({Asset.BTC: Decimal("0")}, clock=clock),
            default_prices={},
        )
        strategy = engine.create_strategy("alice", Asset.BTC, 5000, Frequency.daily())

        with pytest.raises(OracleError):
            engine.trigger_execution(strategy.id, "alice")
        assert engine.tick(clock.advance(days=1)) == 0
        assert engine.get_strategy(strategy.id, "alice").next_execution_time == clock.now + timedelta(days=1)


class TestTick:
    def test_failure_does_not_stop_scan(self, engine, executors, clock):
        btc = engine.create_strategy("alice", Asset.BTC, 5000, Frequency.daily())
        eth = engine.create_strategy("bob", Asset.ETH, 2000, Frequency.weekly())
        executors[Asset.BTC].fail = True

        now = clock.advance(days=8)
        assert engine.tick(now) == 1

        btc_after = engine.get_strategy(btc.id, "alice")
        eth_after = engine.get_strategy(eth.id, "bob")
        assert btc_after.next_execution_time == now + timedelta(seconds=86400)
        assert eth_after.next_execution_time == now + timedelta(seconds=604800)
        assert btc_after.execution_count == 0
        assert eth_after.execution_count == 1
        assert len(engine.get_all_purchases("bob")) == 1
        assert engine.get_all_purchases("alice") == []

    def test_only_due_active_strategies_run(self, engine, clock):
        hourly = engine.create_strategy("alice", Asset.BTC, 500, Frequency.hours(1))
        engine.create_strategy("alice", Asset.ETH, 500, Frequency.daily())
        paused = engine.create_strategy("alice", Asset.ICP, 500, Frequency.minutes(5))
        engine.pause_strategy(paused.id, "alice")

        now = clock.advance(hours=1)
        assert engine.tick() == 1
        assert [p.strategy_id for p in engine.get_all_purchases("alice")] == [hourly.id]
        assert engine.get_strategy(hourly.id, "alice").next_execution_time == now + timedelta(hours=1)

    def test_nothing_due(self, engine):
        engine.create_strategy("alice", Asset.BTC, 500, Frequency.daily())
        assert engine.tick() == 0

    def test_skipped_strategy_is_rescheduled(self, engine, clock, executors):
        strategy = engine.create_strategy(
            "alice",
            Asset.BTC,
            5000,
            Frequency.daily(),
            TriggerCondition.price_below(Decimal("1")),
        )

        now = clock.advance(days=1)
        assert engine.tick(now) == 0

        after = engine.get_strategy(strategy.id, "alice")
        assert after.next_execution_time == now + timedelta(days=1)
        assert after.execution_count == 0
        assert executors[Asset.BTC].calls == []

    def test_unexpected_error_is_absorbed(self, make_engine, executors, clock):
        engine = make_engine(executors={**executors, Asset.BTC: BrokenExecutor()})
        engine.create_strategy("alice", Asset.BTC, 500, Frequency.daily())
        engine.create_strategy("alice", Asset.ETH, 500, Frequency.daily())

        assert engine.tick(clock.advance(days=1)) == 1

    def test_reschedule_failure_does_not_stop_scan(self, make_engine, executors, clock):
        engine = make_engine(repo=FlakyUpdateRepository(failing_ids={1}))
        btc = engine.create_strategy("alice", Asset.BTC, 500, Frequency.daily())
        eth = engine.create_strategy("alice", Asset.ETH, 500, Frequency.daily())
        assert btc.id == 1

        now = clock.advance(days=1)
        assert engine.tick(now) == 2

        assert len(executors[Asset.ETH].calls) == 1
        eth_after = engine.get_strategy(eth.id, "alice")
        assert eth_after.next_execution_time == now + timedelta(days=1)
        assert eth_after.execution_count == 1
        assert engine.get_strategy(btc.id, "alice").next_execution_time == btc.next_execution_time

    def test_strategy_deleted_mid_execution(self, make_engine, executors, clock):
        class DeletingExecutor(RecordingExecutor):
            on_purchase = None

            def purchase(self, owner, asset, usd_amount_cents, price):
                self.on_purchase()
                return super().purchase(owner, asset, usd_amount_cents, price)

        deleting = DeletingExecutor()
        engine = make_engine(executors={**executors, Asset.BTC: deleting})
        strategy = engine.create_strategy("alice", Asset.BTC, 500, Frequency.daily())
        deleting.on_purchase = lambda: engine.delete_strategy(strategy.id, "alice")

        assert engine.tick(clock.advance(days=1)) == 1
        assert engine.get_total_strategies() == 0

    def test_repeated_ticks_count_executions(self, engine, clock):
        strategy = engine.create_strategy("alice", Asset.BTC, 500, Frequency.hours(1))

        for _ in range(3):
            engine.tick(clock.advance(hours=1))

        assert engine.get_strategy(strategy.id, "alice").execution_count == 3
        assert len(engine.get_price_history(Asset.BTC)) == 3


class TestOneOffTrade:
    def test_buys_full_amount_at_live_price(self, engine, repo, executors):
        seed_history(repo, Asset.BTC, "120000")

        purchase = engine.execute_trade("alice", Asset.BTC, 5000)

        assert purchase.strategy_id is None
        assert purchase.owner == "alice"
        assert purchase.usd_amount_cents == 5000
        assert purchase.asset_amount == Decimal("0.0005")
        assert executors[Asset.BTC].calls == [("alice", Asset.BTC, 5000, Decimal("100000"))]

    def test_has_no_schedule_effect(self, engine):
        strategy = engine.create_strategy("alice", Asset.BTC, 5000, Frequency.daily())

        engine.execute_trade("alice", Asset.BTC, 1000)

        after = engine.get_strategy(strategy.id, "alice")
        assert after.execution_count == 0
        assert after.next_execution_time == strategy.next_execution_time
        assert engine.get_purchase_history(strategy.id, "alice") == []

    def test_counts_in_portfolio_of_owner_only(self, engine):
        strategy = engine.create_strategy("alice", Asset.ETH, 4000, Frequency.daily())
        scheduled = engine.trigger_execution(strategy.id, "alice")
        trade = engine.execute_trade("alice", Asset.BTC, 5000)
        engine.execute_trade("bob", Asset.BTC, 5000)

        assert engine.get_all_purchases("alice") == [scheduled, trade]
        assert {h.asset for h in engine.get_portfolio("alice")} == {Asset.BTC, Asset.ETH}

    def test_rejects_amount_below_minimum(self, engine, executors):
        with pytest.raises(ValidationError):
            engine.execute_trade("alice", Asset.BTC, 99)
        assert executors[Asset.BTC].calls == []

    def test_executor_failure_writes_nothing(self, engine, executors):
        executors[Asset.ICP].fail = True

        with pytest.raises(ExecutionError):
            engine.execute_trade("alice", Asset.ICP, 500)
        assert engine.get_all_purchases("alice") == []


class TestPortfolio:
    def test_single_purchase_holding(self, engine):
        strategy = engine.create_strategy("alice", Asset.BTC, 5000, Frequency.daily())
        engine.trigger_execution(strategy.id, "alice")

        [holding] = engine.get_portfolio("alice")

        assert holding.asset is Asset.BTC
        assert holding.amount == Decimal("0.0005")
        assert holding.cost_basis == Decimal("50")
        assert holding.average_price == pytest.approx(Decimal("100000"))

    def test_profit_loss(self, engine, oracle):
        strategy = engine.create_strategy("alice", Asset.BTC, 5000, Frequency.daily())
        engine.trigger_execution(strategy.id, "alice")
        oracle.set_price(Asset.BTC, Decimal("110000"))

        pnl = engine.get_profit_loss("alice")

        assert pnl.total_cost == Decimal("50")
        assert pnl.total_value == Decimal("55")
        assert pnl.profit_loss == Decimal("5")
        assert pnl.profit_loss_percent == Decimal("10")

    def test_groups_by_asset_and_owner(self, engine):
        btc = engine.create_strategy("alice", Asset.BTC, 5000, Frequency.daily())
        eth = engine.create_strategy("alice", Asset.ETH, 4000, Frequency.daily())
        other = engine.create_strategy("bob", Asset.BTC, 5000, Frequency.daily())
        for strategy_id, owner in ((btc.id, "alice"), (eth.id, "alice"), (other.id, "bob")):
            engine.trigger_execution(strategy_id, owner)

        holdings = {h.asset: h for h in engine.get_portfolio("alice")}

        assert set(holdings) == {Asset.BTC, Asset.ETH}
        assert holdings[Asset.ETH].amount == Decimal("0.01")
        assert len(engine.get_all_purchases("alice")) == 2

    def test_empty_portfolio(self, engine):
        assert engine.get_portfolio("alice") == []
        pnl = engine.get_profit_loss("alice")
        assert pnl.total_cost == 0
        assert pnl.profit_loss_percent == 0

    def test_purchase_history_is_owner_checked(self, engine):
        strategy = engine.create_strategy("alice", Asset.BTC, 5000, Frequency.daily())
        with pytest.raises(AuthorizationError):
            engine.get_purchase_history(strategy.id, "bob")


class TestReadOperations:
    def test_prices_and_totals(self, engine):
        engine.create_strategy("alice", Asset.BTC, 5000, Frequency.daily())
        engine.create_strategy("bob", Asset.ETH, 5000, Frequency.daily())

        assert engine.get_all_prices() == [
            (Asset.BTC, Decimal("100000")),
            (Asset.ETH, Decimal("4000")),
            (Asset.ICP, Decimal("10")),
        ]
        assert engine.get_total_strategies() == 2
        assert engine.get_total_users() == 2

    def test_recommendation_records_sample(self, engine):
        assert engine.get_last_recommendation() is None

        recommendation = engine.get_recommendation(Asset.ICP, 1000)

        assert engine.get_last_recommendation() == recommendation
        assert [s.price for s in engine.get_price_history(Asset.ICP)] == [Decimal("10")]

    def test_accounts(self, engine):
        engine.create_account("dave")
        assert engine.get_account("dave").owner == "dave"
