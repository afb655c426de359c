"""Tick source module.

Owns at most one periodic timer per distinct period. The process builds a
single TickSource and hands it to every Scheduler, so two schedulers with
the same period can never both drive the same logical clock.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

JOIN_TIMEOUT_SECONDS = 5.0


class AlreadyRunningError(RuntimeError):
    """Raised when a timer for the requested period is already armed."""
    pass


class _PeriodicTimer(threading.Thread):
    """Daemon thread calling its callback every period seconds."""

    def __init__(
        self, period: float, callback: Callable[[float], None], name: str
    ) -> None:
        super().__init__(name=name, daemon=True)
        self.period = period
        self._callback = callback
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(timeout=self.period):
            try:
                self._callback(time.time())
            except Exception:
                logger.exception(f"Unhandled exception in tick callback {self.name}")

    def cancel(self) -> None:
        self._stop_event.set()


class TickSource:
    """Registry of periodic timers keyed by period.

    Thread-safe: all access to the timer registry is protected by a lock.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._timers: Dict[float, _PeriodicTimer] = {}

    def arm(
        self,
        period: float,
        callback: Callable[[float], None],
        name: Optional[str] = None,
    ) -> None:
        """Start a timer calling callback(now) every period seconds.

        Args:
            period: Tick period in seconds
            callback: Called with the wall-clock time of each tick
            name: Thread name for logging

        Raises:
            ValueError: If period is not positive
            AlreadyRunningError: If a timer for period is already armed
        """
        if period <= 0:
            raise ValueError(f"period must be > 0, got {period!r}")

        with self._lock:
            if period in self._timers:
                raise AlreadyRunningError(f"Existing timer @ {period}s")
            timer = _PeriodicTimer(period, callback, name or f"tick@{period}s")
            self._timers[period] = timer
            timer.start()

        logger.debug(f"Armed timer @ {period}s")

    def disarm(self, period: float) -> bool:
        """Stop the timer for period, if any.

        Waits for a tick already in progress to return, unless called from
        that tick.

        Returns:
            True if a timer was stopped, False if none was armed
        """
        with self._lock:
            timer = self._timers.pop(period, None)

        if timer is None:
            return False

        timer.cancel()
        if timer is not threading.current_thread():
            timer.join(timeout=JOIN_TIMEOUT_SECONDS)
        logger.debug(f"Disarmed timer @ {period}s")
        return True

    def is_armed(self, period: float) -> bool:
        with self._lock:
            return period in self._timers

    def armed_periods(self) -> List[float]:
        with self._lock:
            return sorted(self._timers)

    def disarm_all(self) -> None:
        for period in self.armed_periods():
            self.disarm(period)
