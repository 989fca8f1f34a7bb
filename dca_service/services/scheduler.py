"""Due-purchase scheduler.

Responsibilities:
- Decide per subscription whether a DCA purchase is due
- Run one tick: list active subscriptions, execute due purchases
  concurrently, append successful results to the purchase ledger
- Track in-flight purchases so shutdown can drain them

Retry policy: a failed purchase writes nothing to the ledger. The missing
record is the retry signal; the subscription is simply due again on the next
tick. Missed intervals are never backfilled.
"""

import asyncio
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional, Set

from dca_service.logging_config import bind_context, bound_context, get_logger
from dca_service.models.purchase import PurchaseRecord
from dca_service.models.subscription import Subscription
from dca_service.repositories.purchase_ledger import (
    DuplicateTxHashError,
    PurchaseLedger,
    get_purchase_ledger,
)
from dca_service.repositories.subscription_store import (
    SubscriptionStore,
    get_subscription_store,
)
from dca_service.services.clock import Clock, SystemClock
from dca_service.services.purchase_executor import (
    PurchaseExecutionError,
    PurchaseExecutor,
    get_purchase_executor,
)
from dca_service.state_logger import log_purchase_recorded

logger = get_logger(__name__)


class Outcome(str, Enum):
    """Result of processing one subscription within a tick."""

    NOT_DUE = "not_due"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # still in flight, or its tick was abandoned before the swap


@dataclass
class TickReport:
    """Summary of one tick.

    abandoned counts purchases the tick stopped waiting for after abandon();
    they keep running and are not part of due.
    """

    started_at: datetime
    candidates: int = 0
    due: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    abandoned: int = 0
    store_failed: bool = False
    duration_seconds: float = 0.0

    def record(self, outcome: Outcome) -> None:
        if outcome is Outcome.NOT_DUE:
            return
        self.due += 1
        if outcome is Outcome.SUCCEEDED:
            self.succeeded += 1
        elif outcome is Outcome.FAILED:
            self.failed += 1
        else:
            self.skipped += 1

    def to_dict(self) -> dict:
        return asdict(self)


def elapsed_seconds(
    subscription: Subscription,
    last_purchase: Optional[PurchaseRecord],
    now: datetime,
) -> float:
    """Seconds since the last purchase, or since registration if there is none."""
    reference = last_purchase.purchased_at if last_purchase else subscription.registered_at
    return (now - reference).total_seconds()


def is_due(
    subscription: Subscription,
    last_purchase: Optional[PurchaseRecord],
    now: datetime,
) -> bool:
    """Threshold check: due once the purchase interval has fully elapsed.

    Args:
        subscription: Subscription to check
        last_purchase: Most recent ledger entry for it, if any
        now: Tick start time

    Returns:
        True if a purchase should be attempted this tick
    """
    return elapsed_seconds(subscription, last_purchase, now) >= subscription.purchase_interval_seconds


def seconds_until_due(
    subscription: Subscription,
    last_purchase: Optional[PurchaseRecord],
    now: datetime,
) -> float:
    remaining = subscription.purchase_interval_seconds - elapsed_seconds(subscription, last_purchase, now)
    return max(0.0, remaining)


class DuePurchaseScheduler:
    """Runs ticks over the subscription store.

    Ticks are serialized: concurrent tick() calls queue on a lock, so a tick
    always sees the ledger writes of the one before it. Within a tick every
    active subscription is processed in its own task and the tick finishes
    when all of them have.

    Every purchase recorded by a tick carries the tick start time as
    purchased_at, so executor latency never pushes the next due time later.

    abandon() lets the running tick return (and release the lock) while its
    executor calls carry on; later ticks skip those subscriptions until the
    calls finish.
    """

    def __init__(
        self,
        store: Optional[SubscriptionStore] = None,
        ledger: Optional[PurchaseLedger] = None,
        executor: Optional[PurchaseExecutor] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize the scheduler.

        Args:
            store: Subscription store (defaults to global instance)
            ledger: Purchase ledger (defaults to global instance)
            executor: Purchase executor (defaults to global instance)
            clock: Time source for due-ness checks (defaults to SystemClock)
        """
        self.store = store or get_subscription_store()
        self.ledger = ledger or get_purchase_ledger()
        self.executor = executor or get_purchase_executor()
        self.clock = clock or SystemClock()

        self._tick_lock = asyncio.Lock()
        self._tick_tasks: Set[asyncio.Task] = set()
        self._tick_released: Optional[asyncio.Event] = None
        self._in_flight: Dict[str, asyncio.Task] = {}
        self.tick_count = 0
        self.last_report: Optional[TickReport] = None

    @property
    def in_flight(self) -> FrozenSet[str]:
        """Schedule ids with an executor call currently running."""
        return frozenset(self._in_flight)

    @property
    def in_flight_tasks(self) -> Set[asyncio.Task]:
        return {task for task in self._in_flight.values() if not task.done()}

    @property
    def is_ticking(self) -> bool:
        return self._tick_lock.locked()

    async def tick(self) -> TickReport:
        """Run one due-check-and-execute cycle.

        Never raises for per-subscription or store failures; those are logged
        and reflected in the returned report.
        """
        async with self._tick_lock:
            self.tick_count += 1
            # Purchase tasks copy the context, so their log lines carry the tick number
            with bound_context(tick=self.tick_count):
                return await self._run_tick()

    async def _run_tick(self) -> TickReport:
        now = self.clock.now()
        started = time.monotonic()
        report = TickReport(started_at=now)

        logger.debug("tick_started", now=now.isoformat())

        try:
            subscriptions = await asyncio.to_thread(self.store.list_active)
        except Exception as e:
            # Fail closed: no purchases this tick, the next tick tries again
            report.store_failed = True
            report.duration_seconds = time.monotonic() - started
            self.last_report = report
            logger.error(
                "tick_store_unavailable",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return report

        report.candidates = len(subscriptions)

        released = asyncio.Event()
        tasks = [
            asyncio.create_task(
                self._process_subscription(subscription, now, released),
                name=f"dca-purchase-{subscription.schedule_id}",
            )
            for subscription in subscriptions
        ]
        self._tick_tasks = set(tasks)
        self._tick_released = released
        # Neither abandon() nor cancelling this tick cancels the purchase tasks
        all_done = asyncio.gather(*tasks, return_exceptions=True)
        release_wait = asyncio.create_task(released.wait())
        try:
            await asyncio.wait({all_done, release_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            release_wait.cancel()
            self._tick_tasks = set()
            self._tick_released = None

        for subscription, task in zip(subscriptions, tasks):
            if not task.done():
                report.abandoned += 1
            elif task.cancelled() or task.exception() is not None:
                error = "cancelled" if task.cancelled() else task.exception()
                logger.error(
                    "subscription_processing_crashed",
                    schedule_id=subscription.schedule_id,
                    error=str(error),
                )
                report.record(Outcome.FAILED)
            else:
                report.record(task.result())

        report.duration_seconds = time.monotonic() - started
        self.last_report = report

        if report.due or report.abandoned:
            logger.info(
                "tick_completed",
                candidates=report.candidates,
                due=report.due,
                succeeded=report.succeeded,
                failed=report.failed,
                skipped=report.skipped,
                abandoned=report.abandoned,
                duration_seconds=round(report.duration_seconds, 3),
            )
        else:
            logger.debug("tick_completed", candidates=report.candidates)
        return report

    async def _process_subscription(
        self, subscription: Subscription, now: datetime, released: asyncio.Event
    ) -> Outcome:
        schedule_id = subscription.schedule_id
        bind_context(schedule_id=schedule_id, wallet_address=subscription.wallet_address)

        try:
            last_purchase = await asyncio.to_thread(self.ledger.find_latest, schedule_id)
        except Exception as e:
            logger.error(
                "last_purchase_lookup_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return Outcome.FAILED

        if not is_due(subscription, last_purchase, now):
            logger.debug(
                "purchase_not_due",
                first_purchase=last_purchase is None,
                seconds_until_due=round(seconds_until_due(subscription, last_purchase, now), 3),
            )
            return Outcome.NOT_DUE

        if schedule_id in self._in_flight:
            logger.warning("purchase_still_in_flight")
            return Outcome.SKIPPED

        if released.is_set():
            logger.info("purchase_not_started", reason="tick abandoned")
            return Outcome.SKIPPED

        self._in_flight[schedule_id] = asyncio.current_task()
        try:
            logger.info(
                "purchase_due",
                first_purchase=last_purchase is None,
                elapsed_seconds=round(elapsed_seconds(subscription, last_purchase, now), 3),
                interval_seconds=subscription.purchase_interval_seconds,
                amount=subscription.purchase_amount,
            )
            try:
                result = await self.executor.execute(subscription)
                if result is None:
                    raise PurchaseExecutionError("Executor returned no result", schedule_id=schedule_id)
            except Exception as e:
                logger.warning(
                    "purchase_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    retry="next_tick",
                )
                return Outcome.FAILED

            record = PurchaseRecord.from_result(subscription, result, purchased_at=now)
            try:
                await asyncio.to_thread(self.ledger.append, record)
            except DuplicateTxHashError:
                logger.warning("purchase_already_recorded", tx_hash=record.tx_hash)
                return Outcome.SUCCEEDED
            except Exception as e:
                logger.error(
                    "purchase_record_failed",
                    tx_hash=record.tx_hash,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                return Outcome.FAILED

            log_purchase_recorded(
                schedule_id=schedule_id,
                tx_hash=record.tx_hash,
                purchased_at=record.purchased_at,
                previous_purchase_at=last_purchase.purchased_at if last_purchase else None,
                symbol=record.symbol,
                amount=record.amount,
            )
            return Outcome.SUCCEEDED
        finally:
            self._in_flight.pop(schedule_id, None)

    async def drain(self, timeout: Optional[float]) -> bool:
        """Wait for the current tick's tasks and in-flight purchases.

        Tasks are never cancelled; whatever is still running when the timeout
        elapses is left to finish on its own.

        Args:
            timeout: Seconds to wait (None waits indefinitely)

        Returns:
            True if nothing is left running
        """
        tasks = {task for task in self._tick_tasks if not task.done()} | self.in_flight_tasks
        if not tasks:
            return True
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        return not pending

    def abandon(self) -> bool:
        """Stop the running tick from waiting on its purchases.

        The tick returns and releases the lock; executor calls already under
        way keep running, purchases not yet started are skipped.

        Returns:
            True if a tick was running and has been released
        """
        released = self._tick_released
        if released is None or released.is_set():
            return False
        released.set()
        logger.warning("tick_abandoned", in_flight=sorted(self._in_flight))
        return True

    async def close(self) -> None:
        """Release the executor."""
        await self.executor.close()

    def __repr__(self) -> str:
        return f"DuePurchaseScheduler(ticks={self.tick_count}, in_flight={len(self._in_flight)})"
