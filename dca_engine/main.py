"""DCA Engine - Entry point."""

import argparse
import logging
import sys

from psycopg import Connection
from psycopg.rows import TupleRow
from psycopg_pool import ConnectionPool

from dca_engine.chain_executor import simulated_executors
from dca_engine.cli import condition_from_args, frequency_from_args, parse_args, validate_args
from dca_engine.domain.errors import DCAError
from dca_engine.domain.models import Asset, Purchase, Strategy
from dca_engine.engine import DCAEngine
from dca_engine.infrastructure.repositories import (
    InMemoryRepository,
    PostgresRepository,
    Repository,
)
from dca_engine.price_oracle import CoinGeckoOracle
from dca_engine.triggers import describe
from dca_engine.utils import asset_name, create_logger, format_crypto, format_usd


def _log_strategy(logger: logging.Logger, strategy: Strategy) -> None:
    state = "active" if strategy.active else "paused"
    logger.info(
        f"#{strategy.id} {asset_name(strategy.asset)} {format_usd(strategy.budget_cents, cents=True)} "
        f"{strategy.frequency} | trigger: {describe(strategy.condition)} | {state} | "
        f"runs: {strategy.execution_count} | next: {strategy.next_execution_time.isoformat()}"
    )


def _purchase_source(purchase: Purchase) -> str:
    if purchase.strategy_id is None:
        return "one-off trade"
    return f"strategy {purchase.strategy_id}"


def _log_purchase(logger: logging.Logger, purchase: Purchase) -> None:
    logger.info(
        f"#{purchase.id} {_purchase_source(purchase)} | "
        f"{format_crypto(purchase.asset_amount)} {purchase.asset.value} @ {format_usd(purchase.price)} | "
        f"{format_usd(purchase.usd_amount_cents, cents=True)} | tx {purchase.tx_ref}"
    )


def run_command(engine: DCAEngine, args: argparse.Namespace, logger: logging.Logger) -> int:
    """Dispatch a parsed command to the engine. Returns the process exit code."""
    owner = args.owner

    if args.command == "tick":
        executed = engine.tick()
        logger.info(f"Executed {executed} strategies")
    elif args.command == "create":
        strategy = engine.create_strategy(
            owner,
            Asset(args.asset),
            args.amount_cents,
            frequency_from_args(args),
            condition_from_args(args),
        )
        _log_strategy(logger, strategy)
    elif args.command == "pause":
        _log_strategy(logger, engine.pause_strategy(args.strategy_id, owner))
    elif args.command == "resume":
        _log_strategy(logger, engine.resume_strategy(args.strategy_id, owner))
    elif args.command == "delete":
        engine.delete_strategy(args.strategy_id, owner)
    elif args.command == "trigger":
        _log_purchase(logger, engine.trigger_execution(args.strategy_id, owner))
    elif args.command == "trade":
        _log_purchase(logger, engine.execute_trade(owner, Asset(args.asset), args.amount_cents))
    elif args.command == "strategies":
        for strategy in engine.get_strategies(owner):
            _log_strategy(logger, strategy)
    elif args.command == "purchases":
        if args.strategy_id is not None:
            purchases = engine.get_purchase_history(args.strategy_id, owner)
        else:
            purchases = engine.get_all_purchases(owner)
        for purchase in purchases:
            _log_purchase(logger, purchase)
    elif args.command == "portfolio":
        for holding in engine.get_portfolio(owner):
            logger.info(
                f"{asset_name(holding.asset)}: {format_crypto(holding.amount)} | "
                f"cost {format_usd(holding.cost_basis)} | avg {format_usd(holding.average_price)}"
            )
        pnl = engine.get_profit_loss(owner)
        logger.info(
            f"Value {format_usd(pnl.total_value)} | Cost {format_usd(pnl.total_cost)} | "
            f"P&L {format_usd(pnl.profit_loss)} ({pnl.profit_loss_percent:.2f}%)"
        )
    elif args.command == "prices":
        for asset, price in engine.get_all_prices():
            logger.info(f"{asset_name(asset)} ({asset.value}): {format_usd(price)}")
    else:
        raise ValueError(f"Unknown command: {args.command}")

    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logger = create_logger("dca-engine", args.log_level)

    try:
        validate_args(args)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    pool: ConnectionPool[Connection[TupleRow]] | None = None
    repo: Repository
    if args.database_url:
        pool = ConnectionPool(args.database_url)
        repo = PostgresRepository(pool)
    else:
        logger.warning("DATABASE_URL not set - using in-memory store, state is not kept")
        repo = InMemoryRepository()

    try:
        engine = DCAEngine(
            repo=repo,
            oracle=CoinGeckoOracle(
                base_url=args.price_api_url,
                api_key=args.price_api_key,
                timeout=args.price_timeout,
                logger=logger,
            ),
            executors=simulated_executors(logger),
            logger=logger,
        )
        return run_command(engine, args, logger)

    except DCAError as e:
        logger.error(f"FAILED: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1
    finally:
        if pool is not None:
            pool.close()


if __name__ == "__main__":
    sys.exit(main())
