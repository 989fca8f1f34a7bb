"""Scheduler lifecycle controller.

Responsibilities:
- Start the periodic tick loop (stopped -> starting -> running)
- Graceful shutdown (running -> stopping -> stopped): cancel the schedule,
  drain in-flight purchases with a bounded wait, release resources
- Keep ticks serialized: the next tick is scheduled only after the previous
  one has completed
"""

import asyncio
from enum import Enum
from typing import Any, Optional

from dca_service.logging_config import get_logger
from dca_service.services.scheduler import DuePurchaseScheduler, TickReport
from dca_service.state_logger import log_scheduler_state_change

logger = get_logger(__name__)


class SchedulerError(Exception):
    """Base exception for scheduler lifecycle errors."""

    pass


class AlreadyRunningError(SchedulerError):
    """Raised when start() is called on a controller that is not stopped."""

    pass


class NotInitializedError(SchedulerError):
    """Raised when a tick is requested before the controller was started."""

    pass


class SchedulerState(str, Enum):
    """Lifecycle states of the scheduler."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class SchedulerController:
    """Owns the tick loop of one DuePurchaseScheduler.

    The controller is created by the process entry point and handed to
    whatever needs to stop it; there is no module-level instance.

    Args:
        scheduler: Scheduler whose ticks are driven
        tick_interval_seconds: Delay between the start of consecutive ticks
        drain_timeout_seconds: Upper bound on waiting for in-flight purchases at stop
    """

    def __init__(
        self,
        scheduler: DuePurchaseScheduler,
        tick_interval_seconds: float = 1.0,
        drain_timeout_seconds: float = 3.0,
    ):
        if tick_interval_seconds <= 0:
            raise ValueError("tick_interval_seconds must be positive")
        if drain_timeout_seconds < 0:
            raise ValueError("drain_timeout_seconds cannot be negative")

        self._scheduler = scheduler
        self._tick_interval = tick_interval_seconds
        self._drain_timeout = drain_timeout_seconds
        self._state = SchedulerState.STOPPED
        self._lifecycle_lock = asyncio.Lock()
        self._loop_task: Optional[asyncio.Task] = None
        self._current_tick: Optional[asyncio.Task] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == SchedulerState.RUNNING

    @property
    def scheduler(self) -> DuePurchaseScheduler:
        return self._scheduler

    def _set_state(self, new_state: SchedulerState, reason: Optional[str] = None) -> None:
        old_state = self._state
        if old_state != new_state:
            self._state = new_state
            log_scheduler_state_change(
                old_state=old_state.value,
                new_state=new_state.value,
                reason=reason,
                tick_count=self._scheduler.tick_count,
            )

    async def start(self) -> None:
        """Start the tick loop.

        Raises:
            AlreadyRunningError: If the controller is not stopped
        """
        async with self._lifecycle_lock:
            if self._state != SchedulerState.STOPPED:
                raise AlreadyRunningError(f"Scheduler is already {self._state.value}")

            self._set_state(SchedulerState.STARTING, reason="start requested")
            try:
                self._loop_task = asyncio.create_task(self._run_loop(), name="dca-tick-loop")
            except Exception:
                self._set_state(SchedulerState.STOPPED, reason="failed to schedule tick loop")
                raise
            self._set_state(SchedulerState.RUNNING, reason="tick loop scheduled")

            logger.info(
                "scheduler_started",
                tick_interval_seconds=self._tick_interval,
                drain_timeout_seconds=self._drain_timeout,
            )

    async def _run_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            self._current_tick = asyncio.create_task(self._scheduler.tick(), name="dca-tick")
            try:
                # Cancelling the loop must not cancel the tick or its purchases
                await asyncio.shield(self._current_tick)
            except Exception as e:
                logger.error(
                    "tick_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
            delay = max(0.0, self._tick_interval - (loop.time() - started))
            await asyncio.sleep(delay)

    async def trigger_tick(self) -> TickReport:
        """Run one tick now, serialized with the periodic ones.

        Cancelling the caller (a dropped HTTP request, say) does not cancel the
        tick; it runs to completion in the background.

        Raises:
            NotInitializedError: If the controller is not running
        """
        if self._state != SchedulerState.RUNNING:
            raise NotInitializedError(
                f"Scheduler is {self._state.value}; call start() before requesting ticks"
            )
        task = asyncio.create_task(self._scheduler.tick(), name="dca-manual-tick")
        return await asyncio.shield(task)

    async def stop(self) -> None:
        """Gracefully stop the scheduler.

        A no-op when already stopped. Each shutdown step is attempted even if
        an earlier one failed, and the controller always ends up STOPPED.
        """
        async with self._lifecycle_lock:
            if self._state == SchedulerState.STOPPED:
                logger.debug("scheduler_stop_ignored", reason="already stopped")
                return

            self._set_state(SchedulerState.STOPPING, reason="stop requested")
            try:
                try:
                    await self._cancel_schedule()
                except Exception as e:
                    logger.error(
                        "scheduler_cancel_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                        exc_info=True,
                    )

                try:
                    await self._drain()
                except Exception as e:
                    logger.error(
                        "scheduler_drain_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                        exc_info=True,
                    )

                try:
                    await self._scheduler.close()
                except Exception as e:
                    logger.error(
                        "scheduler_release_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                        exc_info=True,
                    )
            finally:
                self._loop_task = None
                self._current_tick = None
                self._set_state(SchedulerState.STOPPED, reason="shutdown complete")

    async def _cancel_schedule(self) -> None:
        task = self._loop_task
        if task is None or task.done():
            return
        task.cancel()
        # asyncio.wait does not propagate the loop's CancelledError into stop()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.error("tick_loop_crashed", error=str(task.exception()))

    async def _drain(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._drain_timeout

        in_flight = sorted(self._scheduler.in_flight)
        tick = self._current_tick
        tick_pending = tick is not None and not tick.done()
        if not tick_pending and not in_flight:
            logger.info("scheduler_drained", waited=False)
            return

        logger.info(
            "scheduler_draining",
            in_flight=in_flight,
            timeout_seconds=self._drain_timeout,
        )
        if tick_pending:
            await asyncio.wait({tick}, timeout=self._drain_timeout)
            tick_pending = not tick.done()

        remaining = max(0.0, deadline - loop.time())
        drained = await self._scheduler.drain(remaining) and not tick_pending

        if drained:
            logger.info("scheduler_drained", waited=True)
        else:
            # Abandoned, not cancelled: these may still complete and write to the ledger.
            # The tick lock is released so a restarted controller can tick again.
            self._scheduler.abandon()
            logger.warning(
                "scheduler_drain_timeout",
                abandoned=sorted(self._scheduler.in_flight),
                timeout_seconds=self._drain_timeout,
            )

    def status(self) -> dict[str, Any]:
        """Snapshot of the lifecycle state for health/status endpoints."""
        last = self._scheduler.last_report
        return {
            "state": self._state.value,
            "tick_count": self._scheduler.tick_count,
            "in_flight": sorted(self._scheduler.in_flight),
            "last_tick": last.to_dict() if last else None,
        }

    async def __aenter__(self) -> "SchedulerController":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    def __repr__(self) -> str:
        return f"SchedulerController(state={self._state.value}, ticks={self._scheduler.tick_count})"
