"""Chain executors: per-asset purchase channels and their dispatch."""

import hashlib
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from itertools import count
from typing import Mapping, assert_never

from dca_engine.domain.errors import ExecutionError
from dca_engine.domain.models import Asset


class ChainExecutor(ABC):
    """Performs the acquisition of an asset on its network."""

    @abstractmethod
    def purchase(
        self, owner: str, asset: Asset, usd_amount_cents: int, price: Decimal
    ) -> str:
        """Buy ``usd_amount_cents`` worth of ``asset``. Returns a transaction reference.

        Raises ExecutionError on failure.
        """
        ...


class SimulatedChainExecutor(ChainExecutor):
    """Executor that settles nothing and returns network-shaped tx references."""

    def __init__(self, asset: Asset, logger: logging.Logger | None = None):
        self.asset = asset
        self._logger = logger
        self._sequence = count(1)

    def purchase(
        self, owner: str, asset: Asset, usd_amount_cents: int, price: Decimal
    ) -> str:
        if asset is not self.asset:
            raise ExecutionError(f"{self.asset.value} executor cannot buy {asset.value}")
        if usd_amount_cents <= 0:
            raise ExecutionError(f"Invalid amount: {usd_amount_cents} cents")

        seq = next(self._sequence)
        digest = hashlib.sha256(
            f"{owner}:{asset.value}:{usd_amount_cents}:{price}:{seq}".encode("utf-8")
        ).hexdigest()

        match asset:
            case Asset.BTC:
                tx_ref = digest
            case Asset.ETH:
                tx_ref = f"0x{digest}"
            case Asset.ICP:
                tx_ref = f"block:{int(digest[:12], 16)}"
            case _:
                assert_never(asset)

        if self._logger:
            self._logger.debug(
                f"Simulated {asset.value} purchase for {owner}: "
                f"{usd_amount_cents} cents @ {price} -> {tx_ref}"
            )
        return tx_ref


class ChainExecutorRegistry:
    """Dispatches purchases to the executor registered for the asset.

    Construction fails if any supported asset lacks an executor, so adding an
    Asset member without wiring an executor is caught at startup.
    """

    def __init__(self, executors: Mapping[Asset, ChainExecutor]):
        missing = [asset.value for asset in Asset if asset not in executors]
        if missing:
            raise ValueError(f"No chain executor for: {', '.join(missing)}")
        self._executors = dict(executors)

    def purchase(
        self, owner: str, asset: Asset, usd_amount_cents: int, price: Decimal
    ) -> str:
        executor = self._executors[asset]
        try:
            return executor.purchase(owner, asset, usd_amount_cents, price)
        except ExecutionError:
            raise
        except Exception as e:
            raise ExecutionError(f"{asset.value} executor failed: {e}") from e


def simulated_executors(logger: logging.Logger | None = None) -> ChainExecutorRegistry:
    return ChainExecutorRegistry(
        {asset: SimulatedChainExecutor(asset, logger) for asset in Asset}
    )
