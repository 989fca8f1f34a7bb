"""Time sources for the scheduler.

Responsibilities:
- Provide the current instant for due-ness checks (SystemClock)
- Maintain a virtual instant that only moves when told to (VirtualClock)
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

from dca_service.logging_config import get_logger

logger = get_logger(__name__)


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Real wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class VirtualClock:
    """Virtual clock for time manipulation and fast-forwarding.

    Time stands still until advance() or set_time() is called, which lets
    tests and local simulations step the scheduler through purchase intervals
    without waiting for them.

    Args:
        start: Initial virtual instant (defaults to real current time)
    """

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._lock = threading.RLock()
        if start is None:
            start = datetime.now(timezone.utc)
        elif start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._start = start
        self._now = start

        logger.debug("virtual_clock_initialized", virtual_time=start.isoformat())

    def now(self) -> datetime:
        """Get the current virtual time."""
        with self._lock:
            return self._now

    @property
    def elapsed_seconds(self) -> float:
        """Seconds advanced since the clock was created."""
        with self._lock:
            return (self._now - self._start).total_seconds()

    def advance(self, seconds: float = 0, minutes: float = 0, hours: float = 0) -> datetime:
        """Move virtual time forward.

        Args:
            seconds: number of seconds to advance
            minutes: number of minutes to advance
            hours: number of hours to advance

        Returns:
            New virtual time

        Raises:
            ValueError: if any value is negative
        """
        if seconds < 0 or minutes < 0 or hours < 0:
            raise ValueError("Cannot advance time backwards, negative values are not allowed")

        delta = timedelta(seconds=seconds, minutes=minutes, hours=hours)
        with self._lock:
            old_time = self._now
            self._now = old_time + delta
            new_time = self._now

        logger.debug(
            "virtual_time_advanced",
            old_time=old_time.isoformat(),
            new_time=new_time.isoformat(),
            advanced_seconds=delta.total_seconds(),
        )
        return new_time

    def set_time(self, instant: datetime) -> datetime:
        """Jump to a specific instant.

        Raises:
            ValueError: If the instant is before the current virtual time
        """
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        with self._lock:
            if instant < self._now:
                raise ValueError(
                    f"cannot set time backwards, current: {self._now.isoformat()}, "
                    f"requested: {instant.isoformat()}"
                )
            self._now = instant
        logger.debug("virtual_time_set", new_time=instant.isoformat())
        return instant
