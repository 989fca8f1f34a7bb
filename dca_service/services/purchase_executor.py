"""Purchase executor - the side effect the scheduler triggers for due subscriptions.

The real swap (wallet signing, DEX routing, pricing) lives outside this
service; the scheduler only depends on the PurchaseExecutor contract. The
SimulatedPurchaseExecutor stands in for it in local runs and tests.
"""

import asyncio
import random
from abc import ABC, abstractmethod
from typing import Optional

from dca_service.logging_config import get_logger
from dca_service.models.purchase import PurchaseResult
from dca_service.models.settings import ExecutorSettings
from dca_service.models.subscription import Subscription
from dca_service.utils.identifiers import generate_tx_hash

logger = get_logger(__name__)


class PurchaseExecutionError(Exception):
    """Raised when a purchase attempt fails."""

    def __init__(self, message: str, schedule_id: Optional[str] = None):
        super().__init__(message)
        self.schedule_id = schedule_id


class PurchaseExecutor(ABC):
    """Performs one purchase attempt for a subscription.

    Implementations may take noticeable wall-clock time and may fail
    transiently. They must tolerate being called again for a subscription whose
    previous call is still completing after a shutdown; duplicate ledger writes
    are rejected by tx_hash, not by the executor.
    """

    @abstractmethod
    async def execute(self, subscription: Subscription) -> PurchaseResult:
        """Run one purchase.

        Returns:
            PurchaseResult on success

        Raises:
            PurchaseExecutionError: If the purchase did not happen
        """

    async def close(self) -> None:
        """Release clients or connections held by the executor."""


class SimulatedPurchaseExecutor(PurchaseExecutor):
    """Executor that fakes swaps with configurable latency and failure rate."""

    def __init__(self, settings: Optional[ExecutorSettings] = None, rng: Optional[random.Random] = None):
        self._settings = settings or ExecutorSettings()
        self._rng = rng or random.Random()
        self.attempts = 0
        self.failures = 0
        self.closed = False

        logger.info(
            "simulated_executor_initialized",
            symbol=self._settings.symbol,
            latency_seconds=self._settings.latency_seconds,
            simulate_failures=self._settings.simulate_failures,
            failure_rate=self._settings.failure_rate,
        )

    async def execute(self, subscription: Subscription) -> PurchaseResult:
        self.attempts += 1

        if self._settings.latency_seconds:
            await asyncio.sleep(self._settings.latency_seconds)

        if self._settings.simulate_failures and self._rng.random() < self._settings.failure_rate:
            self.failures += 1
            raise PurchaseExecutionError(
                f"Simulated swap failure for wallet {subscription.wallet_address}",
                schedule_id=subscription.schedule_id,
            )

        result = PurchaseResult(
            symbol=self._settings.symbol,
            amount=subscription.purchase_amount,
            price_at_purchase=self._settings.price,
            tx_hash=generate_tx_hash(),
            coin_address=self._settings.coin_address,
        )
        logger.debug(
            "simulated_swap_executed",
            schedule_id=subscription.schedule_id,
            symbol=result.symbol,
            amount=result.amount,
            tx_hash=result.tx_hash,
        )
        return result

    async def close(self) -> None:
        self.closed = True
        logger.info("simulated_executor_closed", attempts=self.attempts, failures=self.failures)


# Global executor instance
_executor_instance: Optional[PurchaseExecutor] = None


def get_purchase_executor() -> PurchaseExecutor:
    """Get global purchase executor (simulated executor built from config)."""
    global _executor_instance
    if _executor_instance is None:
        from dca_service.config import get_config

        _executor_instance = SimulatedPurchaseExecutor(get_config().executor_settings)
    return _executor_instance
