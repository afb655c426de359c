"""Reporter thread module for state change output.

Logs a full snapshot of a target's change log whenever its head state
changes, and a periodic heartbeat line while it does not.
"""

import json
import logging
import time
from typing import Any, Dict

from config import Config


logger = logging.getLogger(__name__)


class Reporter:
    """Reporter thread that surfaces change log transitions.

    Wakes once per sampling interval, compares each target's head hash with
    the one seen on the previous cycle and logs what changed.
    """

    def __init__(self, config: Config, scheduler: Any) -> None:
        """Initialize the reporter.

        Args:
            config: Configuration object with monitor settings
            scheduler: Scheduler whose samplers are reported
        """
        self._config = config
        self._scheduler = scheduler
        self._last_hashes: Dict[str, str] = {}

    def run(self, shutdown_event: Any) -> None:
        """Run the reporter loop.

        Continuously reports at the configured interval until
        shutdown_event is set.

        Args:
            shutdown_event: Threading event to signal shutdown
        """
        while not shutdown_event.is_set():
            try:
                cycle_start = time.time()
                self._run_cycle()

                # Sleep for remainder of interval
                elapsed = time.time() - cycle_start
                sleep_time = max(0, self._config.monitor.interval_seconds - elapsed)

                # Check shutdown_event during sleep
                if shutdown_event.wait(timeout=sleep_time):
                    break

            except Exception as e:
                logger.exception(f"Error in reporter cycle: {e}")
                # Sleep briefly before retrying
                if shutdown_event.wait(timeout=5):
                    break

    def _run_cycle(self) -> None:
        """Execute a single reporter cycle."""
        heartbeat_period = self._config.monitor.heartbeat_period

        for sampler in self._scheduler.samplers:
            snapshot = sampler.change_log.snapshot()
            target = sampler.target

            if snapshot["hash"] != self._last_hashes.get(target):
                self._last_hashes[target] = snapshot["hash"]
                logger.info(
                    f"state of {target}: "
                    f"{json.dumps(self._format_snapshot(snapshot), indent=2, default=str)}"
                )
                continue

            age = snapshot["age"]
            if heartbeat_period and age % heartbeat_period == 0:
                age_seconds = age * snapshot["interval"]
                logger.info(
                    f"{target} state unchanged @ {age} probes ({age_seconds:g}s)"
                )

    @staticmethod
    def _format_snapshot(snapshot: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "state": snapshot["state"],
            "age": snapshot["age"],
            "date": time.strftime(
                "%Y-%m-%d %H:%M:%S", time.localtime(snapshot["date"])
            ),
            "transitions": len(snapshot["history"]),
        }
