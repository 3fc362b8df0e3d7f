import logging
from decimal import Decimal

import pytest

from dca_engine.chain_executor import ChainExecutorRegistry, SimulatedChainExecutor
from dca_engine.domain.models import Asset
from dca_engine.engine import DCAEngine
from dca_engine.infrastructure.repositories import InMemoryRepository
from dca_engine.price_oracle import DEFAULT_PRICES, StaticPriceOracle

from fakes import FakeClock, RecordingExecutor


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("dca-engine-test")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def oracle(clock) -> StaticPriceOracle:
    return StaticPriceOracle(
        {Asset.BTC: Decimal("100000"), Asset.ETH: Decimal("4000"), Asset.ICP: Decimal("10")},
        clock=clock,
    )


@pytest.fixture
def executors() -> dict[Asset, RecordingExecutor]:
    return {asset: RecordingExecutor() for asset in Asset}


@pytest.fixture
def make_engine(repo, oracle, executors, logger, clock):
    """Build an engine, overriding any collaborator of the default fixtures."""

    def factory(**overrides) -> DCAEngine:
        return DCAEngine(
            repo=overrides.get("repo", repo),
            oracle=overrides.get("oracle", oracle),
            executors=ChainExecutorRegistry(overrides.get("executors", executors)),
            logger=logger,
            clock=clock,
            default_prices=overrides.get("default_prices", DEFAULT_PRICES),
        )

    return factory


@pytest.fixture
def engine(make_engine) -> DCAEngine:
    return make_engine()


@pytest.fixture
def simulated_registry(logger) -> ChainExecutorRegistry:
    return ChainExecutorRegistry({asset: SimulatedChainExecutor(asset, logger) for asset in Asset})
