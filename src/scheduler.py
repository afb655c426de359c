"""Scheduler module.

Drives every registered Sampler at a fixed cadence. Each tick fans out to
all samplers on a thread pool without waiting for any of them, so a slow
or hung target never delays its siblings or the next tick.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, List, Mapping, Optional

import http_client
from change_log import ChangeLog
from outcome import Outcome
from sampler import Sampler, validate_target
from tick_source import AlreadyRunningError, TickSource

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_SECONDS = 60.0

__all__ = [
    "AlreadyRunningError",
    "DuplicateTargetError",
    "Scheduler",
]


class DuplicateTargetError(RuntimeError):
    """Raised when a target is registered twice on one scheduler."""
    pass


class Scheduler:
    """Periodic fan-out of samples to every registered target.

    A scheduler is constructed idle; start() arms its period on the shared
    TickSource and stop() disarms it.
    """

    def __init__(
        self,
        tick_source: TickSource,
        period: float = DEFAULT_PERIOD_SECONDS,
        client: Any = None,
        timeout_seconds: float = http_client.DEFAULT_TIMEOUT_SECONDS,
        max_workers: Optional[int] = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            tick_source: Shared TickSource owning the per-period timers
            period: Tick period in seconds
            client: httpx.Client shared by all samplers; one is built (and
                owned) when omitted
            timeout_seconds: Request timeout for every sampler
            max_workers: Thread pool size for the fan-out
        """
        if period <= 0:
            raise ValueError(f"period must be > 0, got {period!r}")

        self.period = float(period)
        self.timeout_seconds = timeout_seconds
        self._tick_source = tick_source
        self._owns_client = client is None
        self._client = client if client is not None else http_client.build_http_client(timeout_seconds)
        self._max_workers = max_workers
        self._lock = threading.RLock()
        self._samplers: Dict[str, Sampler] = {}
        self._executor: Optional[ThreadPoolExecutor] = None
        self._running = False
        self.started_at: Optional[float] = None

    def register(
        self,
        target: str,
        json_filter: Optional[Mapping[str, Any]] = None,
        expect_json: bool = False,
    ) -> Sampler:
        """Add a sampler for target with its own change log.

        Args:
            target: URL to monitor
            json_filter: Normalization filter for the JSON body
            expect_json: Record the decoded JSON body alongside the status

        Returns:
            The Sampler, exposing target, json_filter and change_log

        Raises:
            InvalidTargetError: If target is not a valid URL
            DuplicateTargetError: If target is already registered
        """
        validate_target(target)

        with self._lock:
            if target in self._samplers:
                raise DuplicateTargetError(f"Duplicate target {target} @ {self.period}s")

            sampler = Sampler(
                target,
                ChangeLog(interval=self.period),
                self._client,
                json_filter=json_filter,
                expect_json=expect_json,
                timeout_seconds=self.timeout_seconds,
            )
            self._samplers[target] = sampler

        logger.info(f"Registered {target} @ {self.period}s")
        return sampler

    def get(self, target: str) -> Optional[Sampler]:
        with self._lock:
            return self._samplers.get(target)

    @property
    def samplers(self) -> List[Sampler]:
        with self._lock:
            return list(self._samplers.values())

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Arm the timer for this scheduler's period.

        Raises:
            AlreadyRunningError: If a timer for this period is already armed,
                by this scheduler or another one sharing the tick source
        """
        with self._lock:
            if self._running:
                raise AlreadyRunningError(f"Scheduler @ {self.period}s is already running")

            executor = ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix=f"sampler@{self.period}s",
            )
            try:
                self._tick_source.arm(self.period, self.tick, name=f"scheduler@{self.period}s")
            except AlreadyRunningError:
                executor.shutdown(wait=False)
                raise

            self._executor = executor
            self._running = True
            self.started_at = time.time()

        logger.info(f"Scheduler started @ {self.period}s with {len(self.samplers)} target(s)")

    def stop(self) -> None:
        """Disarm the timer. In-flight samples are allowed to complete.

        Safe to call on a scheduler that is not running.
        """
        with self._lock:
            if not self._running:
                logger.debug(f"Scheduler @ {self.period}s is inactive")
                return

            executor = self._executor
            self._executor = None
            self._running = False

        # disarm joins the timer thread, whose tick() takes self._lock
        self._tick_source.disarm(self.period)
        if executor is not None:
            executor.shutdown(wait=False)
        logger.info(f"Scheduler stopped @ {self.period}s")

    def close(self) -> None:
        """Stop, wait for in-flight samples and release the HTTP client."""
        with self._lock:
            executor = self._executor
        self.stop()
        if executor is not None:
            executor.shutdown(wait=True)
        if self._owns_client:
            self._client.close()

    def tick(self, now: Optional[float] = None) -> List[Future]:
        """Start a sample of every registered target without waiting.

        Args:
            now: Tick time passed to every sampler, defaults to now

        Returns:
            Futures of the submitted samples (empty when not running)
        """
        now = time.time() if now is None else now

        with self._lock:
            executor = self._executor
            samplers = list(self._samplers.values())

        if executor is None:
            logger.debug(f"Tick @ {self.period}s ignored, scheduler is not running")
            return []

        futures = []
        for sampler in samplers:
            try:
                future = executor.submit(sampler.sample, now)
            except RuntimeError:
                # Executor shut down by a concurrent stop()
                break
            future.add_done_callback(self._log_failure)
            futures.append(future)
        return futures

    def sample_all(self, now: Optional[float] = None) -> List[Optional[Outcome]]:
        """Sample every registered target synchronously.

        Args:
            now: Tick time passed to every sampler, defaults to now

        Returns:
            Outcome per sampler in registration order (None for skipped ticks)
        """
        now = time.time() if now is None else now
        return [sampler.sample(now) for sampler in self.samplers]

    @staticmethod
    def _log_failure(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Sampler raised unexpectedly: {error!r}")

    def __repr__(self) -> str:
        return (
            f"Scheduler(period={self.period}, running={self._running}, "
            f"targets={len(self.samplers)})"
        )
