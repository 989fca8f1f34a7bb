"""Unit tests for the due-purchase scheduler."""

import asyncio
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from dca_service.models.purchase import PurchaseRecord, PurchaseResult
from dca_service.models.subscription import Subscription
from dca_service.repositories.purchase_ledger import PurchaseLedger
from dca_service.repositories.subscription_store import SubscriptionStore
from dca_service.services.clock import VirtualClock
from dca_service.services.purchase_executor import (
    PurchaseExecutionError,
    PurchaseExecutor,
)
from dca_service.services.scheduler import (
    DuePurchaseScheduler,
    Outcome,
    TickReport,
    is_due,
    seconds_until_due,
)
from dca_service.utils import generate_tx_hash

T0 = datetime(2024, 3, 13, 12, 0, tzinfo=timezone.utc)
WALLET_A = "0x" + "a" * 40
WALLET_B = "0x" + "b" * 40


class FakeExecutor(PurchaseExecutor):
    """Records calls; can fail, hang or return a fixed tx hash."""

    def __init__(self, fail_for=(), delay=0.0, tx_hash=None, release=None):
        self.calls = []
        self.fail_for = set(fail_for)
        self.delay = delay
        self.tx_hash = tx_hash
        self.release = release
        self.closed = False

    async def execute(self, subscription):
        self.calls.append(subscription.schedule_id)
        if self.release is not None:
            await self.release.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if subscription.schedule_id in self.fail_for:
            raise PurchaseExecutionError("swap reverted", schedule_id=subscription.schedule_id)
        return PurchaseResult(
            symbol="WETH",
            amount=subscription.purchase_amount,
            price_at_purchase="3500.0",
            tx_hash=self.tx_hash or generate_tx_hash(),
        )

    async def close(self):
        self.closed = True


def make_subscription(schedule_id="a" * 24, wallet=WALLET_A, interval=60, registered_at=T0):
    return Subscription(
        schedule_id=schedule_id,
        wallet_address=wallet,
        purchase_interval_seconds=interval,
        purchase_amount="0.0001",
        registered_at=registered_at,
    )


def make_record(subscription, purchased_at):
    return PurchaseRecord(
        subscription_id=subscription.schedule_id,
        wallet_address=subscription.wallet_address,
        purchased_at=purchased_at,
        symbol="WETH",
        amount="0.0001",
        price_at_purchase="3500.0",
        tx_hash=generate_tx_hash(),
    )


@pytest.fixture
def store():
    return SubscriptionStore()


@pytest.fixture
def ledger():
    return PurchaseLedger()


@pytest.fixture
def clock():
    return VirtualClock(T0)


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def scheduler(store, ledger, executor, clock):
    return DuePurchaseScheduler(store=store, ledger=ledger, executor=executor, clock=clock)


class TestDueness:
    """Threshold check against registration or last purchase."""

    def test_not_due_before_interval(self):
        subscription = make_subscription()
        assert not is_due(subscription, None, T0 + timedelta(seconds=59))

    def test_due_exactly_at_interval(self):
        subscription = make_subscription()
        assert is_due(subscription, None, T0 + timedelta(seconds=60))

    def test_due_long_after_interval(self):
        subscription = make_subscription()
        assert is_due(subscription, None, T0 + timedelta(days=3))

    def test_last_purchase_resets_reference(self):
        subscription = make_subscription()
        last = make_record(subscription, T0 + timedelta(seconds=60))
        assert not is_due(subscription, last, T0 + timedelta(seconds=119))
        assert is_due(subscription, last, T0 + timedelta(seconds=120))

    def test_seconds_until_due(self):
        subscription = make_subscription()
        assert seconds_until_due(subscription, None, T0 + timedelta(seconds=45)) == 15
        assert seconds_until_due(subscription, None, T0 + timedelta(seconds=90)) == 0


class TestTickReport:
    def test_record_outcomes(self):
        report = TickReport(started_at=T0)
        for outcome in (Outcome.NOT_DUE, Outcome.SUCCEEDED, Outcome.FAILED, Outcome.SKIPPED):
            report.record(outcome)
        assert (report.due, report.succeeded, report.failed, report.skipped) == (3, 1, 1, 1)
        assert report.to_dict()["started_at"] == T0


class TestTick:
    """Behaviour of a single tick."""

    def test_nothing_due_before_interval(self, scheduler, store, ledger, executor, clock):
        store.add(make_subscription())
        clock.advance(seconds=30)

        report = asyncio.run(scheduler.tick())

        assert report.candidates == 1
        assert report.due == 0
        assert executor.calls == []
        assert ledger.count() == 0

    def test_due_subscription_is_purchased(self, scheduler, store, ledger, executor, clock):
        subscription = make_subscription()
        store.add(subscription)
        clock.advance(seconds=60)

        report = asyncio.run(scheduler.tick())

        assert report.succeeded == 1
        assert executor.calls == [subscription.schedule_id]
        record = ledger.find_latest(subscription.schedule_id)
        assert record.purchased_at == T0 + timedelta(seconds=60)
        assert record.wallet_address == WALLET_A
        assert record.amount == "0.0001"
        assert scheduler.tick_count == 1
        assert scheduler.last_report is report

    def test_purchase_resets_due_time(self, scheduler, store, ledger, clock):
        store.add(make_subscription())

        async def scenario():
            clock.advance(seconds=60)
            await scheduler.tick()
            await scheduler.tick()
            clock.advance(seconds=59)
            await scheduler.tick()
            clock.advance(seconds=1)
            await scheduler.tick()

        asyncio.run(scenario())

        purchased = sorted(r.purchased_at for r in ledger.get_all())
        assert purchased == [T0 + timedelta(seconds=60), T0 + timedelta(seconds=120)]

    def test_missed_intervals_are_not_backfilled(self, scheduler, store, ledger, clock):
        store.add(make_subscription())
        clock.advance(seconds=600)

        asyncio.run(scheduler.tick())

        assert ledger.count() == 1

    def test_inactive_subscription_excluded(self, scheduler, store, ledger, executor, clock):
        subscription = make_subscription()
        store.add(subscription)

        async def scenario():
            clock.advance(seconds=60)
            await scheduler.tick()
            store.set_active(subscription.schedule_id, False)
            clock.advance(seconds=600)
            return await scheduler.tick()

        report = asyncio.run(scenario())

        assert report.candidates == 0
        assert executor.calls == [subscription.schedule_id]
        # History stays queryable after deactivation
        assert len(ledger.get_by_wallet(WALLET_A)) == 1


class TestConcurrentTicks:
    """Overlapping tick requests are serialized."""

    def test_concurrent_ticks_produce_one_purchase(self, store, ledger, clock):
        executor = FakeExecutor(delay=0.05)
        scheduler = DuePurchaseScheduler(store=store, ledger=ledger, executor=executor, clock=clock)
        store.add(make_subscription())
        clock.advance(seconds=60)

        async def scenario():
            return await asyncio.gather(scheduler.tick(), scheduler.tick(), scheduler.tick())

        reports = asyncio.run(scenario())

        assert ledger.count() == 1
        assert len(executor.calls) == 1
        assert sum(r.succeeded for r in reports) == 1
        assert scheduler.tick_count == 3

    def test_subscriptions_run_concurrently_within_tick(self, store, ledger, clock):
        executor = FakeExecutor(delay=0.2)
        scheduler = DuePurchaseScheduler(store=store, ledger=ledger, executor=executor, clock=clock)
        for i in range(5):
            store.add(make_subscription(schedule_id=f"{i:024x}", wallet="0x" + f"{i:040x}"))
        clock.advance(seconds=60)

        report = asyncio.run(scheduler.tick())

        assert report.succeeded == 5
        # Sequential execution would take at least 1 second
        assert report.duration_seconds < 0.9


class TestFailureHandling:
    """Failures are isolated per subscription and retried on the next tick."""

    def test_failure_isolated_and_retried(self, store, ledger, clock):
        failing = make_subscription(schedule_id="f" * 24, wallet=WALLET_B)
        healthy = make_subscription()
        store.add(failing)
        store.add(healthy)
        executor = FakeExecutor(fail_for={failing.schedule_id})
        scheduler = DuePurchaseScheduler(store=store, ledger=ledger, executor=executor, clock=clock)

        async def scenario():
            clock.advance(seconds=60)
            first = await scheduler.tick()
            executor.fail_for.clear()
            clock.advance(seconds=1)
            second = await scheduler.tick()
            return first, second

        first, second = asyncio.run(scenario())

        assert (first.succeeded, first.failed) == (1, 1)
        assert (second.succeeded, second.failed) == (1, 0)
        assert ledger.find_latest(healthy.schedule_id).purchased_at == T0 + timedelta(seconds=60)
        assert ledger.find_latest(failing.schedule_id).purchased_at == T0 + timedelta(seconds=61)
        assert ledger.count() == 2

    def test_none_result_is_failure(self, store, ledger, clock):
        executor = FakeExecutor()
        executor.execute = MagicMock(side_effect=lambda subscription: asyncio.sleep(0))
        scheduler = DuePurchaseScheduler(store=store, ledger=ledger, executor=executor, clock=clock)
        store.add(make_subscription())
        clock.advance(seconds=60)

        report = asyncio.run(scheduler.tick())

        assert report.failed == 1
        assert ledger.count() == 0

    def test_store_failure_fails_closed(self, ledger, executor, clock):
        store = MagicMock(spec=SubscriptionStore)
        store.list_active.side_effect = ConnectionError("store unavailable")
        scheduler = DuePurchaseScheduler(store=store, ledger=ledger, executor=executor, clock=clock)

        report = asyncio.run(scheduler.tick())

        assert report.store_failed is True
        assert report.due == 0
        assert executor.calls == []

    def test_ledger_lookup_failure_skips_subscription(self, store, executor, clock):
        ledger = MagicMock(spec=PurchaseLedger)
        ledger.find_latest.side_effect = ConnectionError("ledger unavailable")
        scheduler = DuePurchaseScheduler(store=store, ledger=ledger, executor=executor, clock=clock)
        store.add(make_subscription())
        clock.advance(seconds=60)

        report = asyncio.run(scheduler.tick())

        assert report.failed == 1
        assert executor.calls == []

    def test_ledger_append_failure_is_failure(self, store, executor, clock):
        ledger = MagicMock(spec=PurchaseLedger)
        ledger.find_latest.return_value = None
        ledger.append.side_effect = OSError("disk full")
        scheduler = DuePurchaseScheduler(store=store, ledger=ledger, executor=executor, clock=clock)
        store.add(make_subscription())
        clock.advance(seconds=60)

        report = asyncio.run(scheduler.tick())

        assert report.failed == 1
        assert scheduler.in_flight == frozenset()

    def test_duplicate_tx_hash_counts_as_recorded(self, store, ledger, clock):
        executor = FakeExecutor(tx_hash="0x" + "ab" * 32)
        scheduler = DuePurchaseScheduler(store=store, ledger=ledger, executor=executor, clock=clock)
        store.add(make_subscription())
        store.add(make_subscription(schedule_id="b" * 24, wallet=WALLET_B))
        clock.advance(seconds=60)

        report = asyncio.run(scheduler.tick())

        assert report.failed == 0
        assert report.succeeded == 2
        assert ledger.count() == 1


class TestInFlight:
    """In-flight tracking, abandoning and draining."""

    @staticmethod
    async def wait_until(condition, timeout=2.0):
        for _ in range(int(timeout / 0.01)):
            if condition():
                return
            await asyncio.sleep(0.01)
        raise AssertionError("condition not reached")

    def test_abandoned_purchase_skipped_by_later_ticks(self, store, ledger, clock):
        store.add(make_subscription())
        clock.advance(seconds=60)

        async def scenario():
            release = asyncio.Event()
            executor = FakeExecutor(release=release)
            scheduler = DuePurchaseScheduler(
                store=store, ledger=ledger, executor=executor, clock=clock
            )
            tick = asyncio.create_task(scheduler.tick())
            await self.wait_until(lambda: scheduler.in_flight)

            assert scheduler.abandon() is True
            first = await asyncio.wait_for(tick, 1.0)
            assert not scheduler.is_ticking

            # The lock is free again; the straggler keeps its subscription busy
            second = await asyncio.wait_for(scheduler.tick(), 1.0)

            release.set()
            drained = await scheduler.drain(2.0)
            return first, second, drained, executor.calls

        first, second, drained, calls = asyncio.run(scenario())

        assert first.abandoned == 1
        assert first.due == 0
        assert second.skipped == 1
        assert drained is True
        assert calls == ["a" * 24]
        # The abandoned call still completes and records its purchase
        assert [r.purchased_at for r in ledger.get_all()] == [T0 + timedelta(seconds=60)]

    def test_purchase_not_started_after_abandon(self, store, clock):
        slow_id = "b" * 24
        lookup_gate = threading.Event()

        class SlowLookupLedger(PurchaseLedger):
            def find_latest(self, subscription_id):
                if subscription_id == slow_id:
                    lookup_gate.wait(timeout=5)
                return super().find_latest(subscription_id)

        ledger = SlowLookupLedger()
        store.add(make_subscription())
        store.add(make_subscription(schedule_id=slow_id, wallet=WALLET_B))
        clock.advance(seconds=60)

        async def scenario():
            release = asyncio.Event()
            executor = FakeExecutor(release=release)
            scheduler = DuePurchaseScheduler(
                store=store, ledger=ledger, executor=executor, clock=clock
            )
            tick = asyncio.create_task(scheduler.tick())
            await self.wait_until(lambda: scheduler.in_flight)

            scheduler.abandon()
            report = await asyncio.wait_for(tick, 1.0)

            lookup_gate.set()
            await self.wait_until(
                lambda: not any(
                    task.get_name() == f"dca-purchase-{slow_id}" for task in asyncio.all_tasks()
                )
            )
            release.set()
            await scheduler.drain(2.0)
            return report, executor.calls

        report, calls = asyncio.run(scenario())

        assert report.abandoned == 2
        assert calls == ["a" * 24]
        assert ledger.count_by_subscription(slow_id) == 0

    def test_abandon_without_running_tick(self, scheduler):
        assert scheduler.abandon() is False

    def test_cancelled_tick_leaves_purchase_running(self, store, ledger, clock):
        store.add(make_subscription())
        clock.advance(seconds=60)

        async def scenario():
            release = asyncio.Event()
            executor = FakeExecutor(release=release)
            scheduler = DuePurchaseScheduler(
                store=store, ledger=ledger, executor=executor, clock=clock
            )
            tick = asyncio.create_task(scheduler.tick())
            await self.wait_until(lambda: scheduler.in_flight)

            tick.cancel()
            await asyncio.wait({tick})
            release.set()
            drained = await scheduler.drain(2.0)
            return tick.cancelled(), drained

        cancelled, drained = asyncio.run(scenario())

        assert cancelled is True
        assert drained is True
        assert ledger.count() == 1

    def test_drain_waits_for_in_flight_purchase(self, store, ledger, clock):
        store.add(make_subscription())
        clock.advance(seconds=60)

        async def scenario():
            release = asyncio.Event()
            executor = FakeExecutor(release=release)
            scheduler = DuePurchaseScheduler(
                store=store, ledger=ledger, executor=executor, clock=clock
            )
            tick = asyncio.create_task(scheduler.tick())
            for _ in range(200):
                if scheduler.in_flight:
                    break
                await asyncio.sleep(0.01)

            assert scheduler.in_flight == frozenset({"a" * 24})
            assert scheduler.is_ticking
            timed_out = await scheduler.drain(0.05)

            release.set()
            drained = await scheduler.drain(2.0)
            await tick
            return timed_out, drained, scheduler.in_flight

        timed_out, drained, in_flight = asyncio.run(scenario())

        assert timed_out is False
        assert drained is True
        assert in_flight == frozenset()
        assert ledger.count() == 1

    def test_drain_with_nothing_running(self, scheduler):
        assert asyncio.run(scheduler.drain(0)) is True

    def test_close_releases_executor(self, scheduler, executor):
        asyncio.run(scheduler.close())
        assert executor.closed is True
