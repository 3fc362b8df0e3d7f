"""Repository interfaces and implementations for persistence."""

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import replace
from datetime import datetime
from typing import Any, Iterable, Optional

from psycopg import Connection
from psycopg.rows import TupleRow
from psycopg_pool import ConnectionPool

from dca_engine.domain.models import (
    Account,
    Asset,
    Frequency,
    FrequencyUnit,
    PriceSample,
    Purchase,
    Strategy,
    TriggerCondition,
    TriggerKind,
)


class Repository(ABC):
    """Abstract repository interface."""

    @abstractmethod
    def add_account(self, account: Account) -> None:
        """Add a new account."""
        ...

    @abstractmethod
    def get_account(self, owner: str) -> Optional[Account]:
        """Get the account of an owner, if any."""
        ...

    @abstractmethod
    def count_accounts(self) -> int:
        """Count accounts."""
        ...

    @abstractmethod
    def add_strategy(self, strategy: Strategy) -> int:
        """Add a new strategy. Returns the generated strategy ID."""
        ...

    @abstractmethod
    def get_strategy(self, strategy_id: int) -> Optional[Strategy]:
        """Get a strategy by id, if it exists."""
        ...

    @abstractmethod
    def update_strategy(self, strategy: Strategy) -> bool:
        """Write back a strategy by id. Returns False if it no longer exists."""
        ...

    @abstractmethod
    def delete_strategy(self, strategy_id: int) -> bool:
        ...

    @abstractmethod
    def list_strategies(self, owner: str | None = None) -> list[Strategy]:
        """List strategies ordered by id, optionally restricted to one owner."""
        ...

    @abstractmethod
    def due_strategies(self, now: datetime) -> list[Strategy]:
        """List active strategies whose next execution time has passed."""
        ...

    @abstractmethod
    def count_strategies(self) -> int:
        """Count strategies."""
        ...

    @abstractmethod
    def add_purchase(self, purchase: Purchase) -> int:
        """Append a purchase. Returns the generated purchase ID."""
        ...

    @abstractmethod
    def list_purchases(self, strategy_ids: Iterable[int]) -> list[Purchase]:
        """List purchases of the given strategies ordered by id."""
        ...

    @abstractmethod
    def list_trades(self, owner: str) -> list[Purchase]:
        """List one-off trades (purchases without a strategy) of an owner ordered by id."""
        ...

    @abstractmethod
    def add_price_sample(self, sample: PriceSample, limit: int) -> None:
        """Record a price sample, keeping only the newest ``limit`` per asset."""
        ...

    @abstractmethod
    def get_price_history(self, asset: Asset) -> list[PriceSample]:
        """Get price samples for an asset, oldest first."""
        ...


class InMemoryRepository(Repository):
    """In-process implementation of the repository.

    Entities are copied on the way in and out so callers only ever hold
    snapshots; changes reach the store through ``update_strategy``.
    """

    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}
        self._strategies: dict[int, Strategy] = {}
        self._purchases: list[Purchase] = []
        self._prices: dict[Asset, deque[PriceSample]] = {}
        self._next_strategy_id = 1
        self._next_purchase_id = 1

    def add_account(self, account: Account) -> None:
        self._accounts[account.owner] = replace(account)

    def get_account(self, owner: str) -> Optional[Account]:
        account = self._accounts.get(owner)
        return replace(account) if account else None

    def count_accounts(self) -> int:
        return len(self._accounts)

    def add_strategy(self, strategy: Strategy) -> int:
        strategy_id = self._next_strategy_id
        self._next_strategy_id += 1
        self._strategies[strategy_id] = replace(strategy, id=strategy_id)
        return strategy_id

    def get_strategy(self, strategy_id: int) -> Optional[Strategy]:
        strategy = self._strategies.get(strategy_id)
        return replace(strategy) if strategy else None

    def update_strategy(self, strategy: Strategy) -> bool:
        if strategy.id not in self._strategies:
            return False
        self._strategies[strategy.id] = replace(strategy)
        return True

    def delete_strategy(self, strategy_id: int) -> bool:
        return self._strategies.pop(strategy_id, None) is not None

    def list_strategies(self, owner: str | None = None) -> list[Strategy]:
        return [
            replace(s)
            for _, s in sorted(self._strategies.items())
            if owner is None or s.owner == owner
        ]

    def due_strategies(self, now: datetime) -> list[Strategy]:
        return [replace(s) for _, s in sorted(self._strategies.items()) if s.is_due(now)]

    def count_strategies(self) -> int:
        return len(self._strategies)

    def add_purchase(self, purchase: Purchase) -> int:
        purchase_id = self._next_purchase_id
        self._next_purchase_id += 1
        self._purchases.append(replace(purchase, id=purchase_id))
        return purchase_id

    def list_purchases(self, strategy_ids: Iterable[int]) -> list[Purchase]:
        ids = set(strategy_ids)
        return [p for p in self._purchases if p.strategy_id in ids]

    def list_trades(self, owner: str) -> list[Purchase]:
        return [p for p in self._purchases if p.strategy_id is None and p.owner == owner]

    def add_price_sample(self, sample: PriceSample, limit: int) -> None:
        history = self._prices.get(sample.asset)
        if history is None or history.maxlen != limit:
            history = deque(history or (), maxlen=limit)
            self._prices[sample.asset] = history
        history.append(sample)

    def get_price_history(self, asset: Asset) -> list[PriceSample]:
        return list(self._prices.get(asset, ()))


_STRATEGY_COLUMNS = """
    id, owner, asset, budget_cents, frequency_unit, frequency_count,
    trigger_kind, trigger_value, next_execution_time, active,
    execution_count, created_at
"""


def _row_to_strategy(row: tuple[Any, ...]) -> Strategy:
    return Strategy(
        id=row[0],
        owner=row[1],
        asset=Asset(row[2]),
        budget_cents=row[3],
        frequency=Frequency(FrequencyUnit(row[4]), row[5]),
        condition=TriggerCondition(TriggerKind(row[6]), row[7]),
        next_execution_time=row[8],
        active=row[9],
        execution_count=row[10],
        created_at=row[11],
    )


_PURCHASE_COLUMNS = """
    id, strategy_id, owner, asset, usd_amount_cents, asset_amount,
    price, created_at, tx_ref
"""


def _row_to_purchase(row: tuple[Any, ...]) -> Purchase:
    return Purchase(
        id=row[0],
        strategy_id=row[1],
        owner=row[2],
        asset=Asset(row[3]),
        usd_amount_cents=row[4],
        asset_amount=row[5],
        price=row[6],
        timestamp=row[7],
        tx_ref=row[8],
    )


class PostgresRepository(Repository):
    """PostgreSQL implementation of the repository (see sql/schema.sql)."""

    def __init__(self, pool: ConnectionPool[Connection[TupleRow]]):
        self._pool = pool

    def add_account(self, account: Account) -> None:
        with self._pool.connection() as conn:
            conn.execute(
                """
                INSERT INTO dca_engine.accounts (owner, created_at)
                VALUES (%s, %s)
                ON CONFLICT (owner) DO NOTHING
                """,
                (account.owner, account.created_at),
            )

    def get_account(self, owner: str) -> Optional[Account]:
        with self._pool.connection() as conn:
            row = conn.execute(
                "SELECT owner, created_at FROM dca_engine.accounts WHERE owner = %s",
                (owner,),
            ).fetchone()
            if row is None:
                return None
            return Account(owner=row[0], created_at=row[1])

    def count_accounts(self) -> int:
        return self._count("SELECT count(*) FROM dca_engine.accounts")

    def add_strategy(self, strategy: Strategy) -> int:
        """Add a new strategy to the database. Returns the generated strategy ID."""
        with self._pool.connection() as conn:
            result = conn.execute(
                """
                INSERT INTO dca_engine.strategies
                (owner, asset, budget_cents, frequency_unit, frequency_count,
                 trigger_kind, trigger_value, next_execution_time, active,
                 execution_count, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (
                    strategy.owner,
                    strategy.asset.value,
                    strategy.budget_cents,
                    strategy.frequency.unit.value,
                    strategy.frequency.count,
                    strategy.condition.kind.value,
                    strategy.condition.value,
                    strategy.next_execution_time,
                    strategy.active,
                    strategy.execution_count,
                    strategy.created_at,
                ),
            )
            row = result.fetchone()
            if row is None:
                raise RuntimeError("Failed to insert strategy")
            return row[0]

    def get_strategy(self, strategy_id: int) -> Optional[Strategy]:
        with self._pool.connection() as conn:
            row = conn.execute(
                f"SELECT {_STRATEGY_COLUMNS} FROM dca_engine.strategies WHERE id = %s",
                (strategy_id,),
            ).fetchone()
            return _row_to_strategy(row) if row else None

    def update_strategy(self, strategy: Strategy) -> bool:
        # Owner, asset and creation time are immutable and never written back.
        with self._pool.connection() as conn:
            result = conn.execute(
                """
                UPDATE dca_engine.strategies
                SET next_execution_time = %s, active = %s, execution_count = %s
                WHERE id = %s
                """,
                (
                    strategy.next_execution_time,
                    strategy.active,
                    strategy.execution_count,
                    strategy.id,
                ),
            )
            return result.rowcount > 0

    def delete_strategy(self, strategy_id: int) -> bool:
        with self._pool.connection() as conn:
            result = conn.execute(
                "DELETE FROM dca_engine.strategies WHERE id = %s", (strategy_id,)
            )
            return result.rowcount > 0

    def list_strategies(self, owner: str | None = None) -> list[Strategy]:
        with self._pool.connection() as conn:
            if owner is None:
                rows = conn.execute(
                    f"SELECT {_STRATEGY_COLUMNS} FROM dca_engine.strategies ORDER BY id"
                ).fetchall()
            else:
                rows = conn.execute(
                    f"""
                    SELECT {_STRATEGY_COLUMNS} FROM dca_engine.strategies
                    WHERE owner = %s ORDER BY id
                    """,
                    (owner,),
                ).fetchall()
            return [_row_to_strategy(row) for row in rows]

    def due_strategies(self, now: datetime) -> list[Strategy]:
        with self._pool.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {_STRATEGY_COLUMNS} FROM dca_engine.strategies
                WHERE active AND next_execution_time <= %s
                ORDER BY id
                """,
                (now,),
            ).fetchall()
            return [_row_to_strategy(row) for row in rows]

    def count_strategies(self) -> int:
        return self._count("SELECT count(*) FROM dca_engine.strategies")

    def add_purchase(self, purchase: Purchase) -> int:
        """Append a purchase to the ledger. Returns the generated purchase ID."""
        with self._pool.connection() as conn:
            result = conn.execute(
                """
                INSERT INTO dca_engine.purchases
                (strategy_id, owner, asset, usd_amount_cents, asset_amount, price, created_at, tx_ref)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (
                    purchase.strategy_id,
                    purchase.owner,
                    purchase.asset.value,
                    purchase.usd_amount_cents,
                    purchase.asset_amount,
                    purchase.price,
                    purchase.timestamp,
                    purchase.tx_ref,
                ),
            )
            row = result.fetchone()
            if row is None:
                raise RuntimeError("Failed to insert purchase")
            return row[0]

    def list_purchases(self, strategy_ids: Iterable[int]) -> list[Purchase]:
        ids = list(strategy_ids)
        if not ids:
            return []
        with self._pool.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {_PURCHASE_COLUMNS} FROM dca_engine.purchases
                WHERE strategy_id = ANY(%s)
                ORDER BY id
                """,
                (ids,),
            ).fetchall()
            return [_row_to_purchase(row) for row in rows]

    def list_trades(self, owner: str) -> list[Purchase]:
        with self._pool.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {_PURCHASE_COLUMNS} FROM dca_engine.purchases
                WHERE strategy_id IS NULL AND owner = %s
                ORDER BY id
                """,
                (owner,),
            ).fetchall()
            return [_row_to_purchase(row) for row in rows]

    def add_price_sample(self, sample: PriceSample, limit: int) -> None:
        with self._pool.connection() as conn:
            conn.execute(
                """
                INSERT INTO dca_engine.price_samples (asset, price, created_at)
                VALUES (%s, %s, %s)
                """,
                (sample.asset.value, sample.price, sample.timestamp),
            )
            conn.execute(
                """
                DELETE FROM dca_engine.price_samples
                WHERE asset = %s AND id NOT IN (
                    SELECT id FROM dca_engine.price_samples
                    WHERE asset = %s ORDER BY id DESC LIMIT %s
                )
                """,
                (sample.asset.value, sample.asset.value, limit),
            )

    def get_price_history(self, asset: Asset) -> list[PriceSample]:
        with self._pool.connection() as conn:
            rows = conn.execute(
                """
                SELECT asset, price, created_at FROM dca_engine.price_samples
                WHERE asset = %s ORDER BY id
                """,
                (asset.value,),
            ).fetchall()
            return [
                PriceSample(asset=Asset(row[0]), price=row[1], timestamp=row[2])
                for row in rows
            ]

    def _count(self, query: str) -> int:
        with self._pool.connection() as conn:
            row = conn.execute(query).fetchone()
            return row[0] if row else 0
