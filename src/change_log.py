"""Discrete-time change log module.

Records when the state of a monitored target changed rather than every
sample taken. Samples are deduplicated by content hash and synchronized
onto a regular logical time axis of fixed ``interval`` ticks. Missed ticks
are recorded as explicit gap runs whose state is None (unknown).

Runs cover the half-open window ``(start_time, start_time + duration]``.
The head run ends at ``date``, each archived run ends where the next one
begins.

Does no I/O.
"""

import copy
import hashlib
import json
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

import normalization
from outcome import Err, Ok


DEFAULT_INTERVAL_SECONDS = 1.0


class OutOfOrderError(ValueError):
    """Raised when an update is older than the log's logical clock."""
    pass


def content_hash(value: Any) -> str:
    """Return a deterministic digest of a serializable value.

    Args:
        value: Any JSON-serializable value (non-JSON scalars use str())

    Returns:
        SHA-256 hex digest of the canonical JSON encoding
    """
    canonical = json.dumps(
        value, sort_keys=True, separators=(",", ":"), default=str
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _to_timestamp(value: Union[float, int, str, datetime]) -> float:
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    return float(value)


@dataclass(frozen=True)
class StateRun:
    """One contiguous run of a single state."""
    duration_ticks: int
    state: Any
    start_time: float
    interval: float

    @property
    def duration_seconds(self) -> float:
        return self.duration_ticks * self.interval

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration_seconds


class HistoryCursor:
    """Backward cursor over a frozen copy of a change log.

    Walks from the head run toward the oldest archived run. The cursor is
    not restartable and later updates to the log are not visible to it.
    """

    def __init__(
        self,
        interval: float,
        date: float,
        state: Any,
        age: int,
        history: List[Dict[str, Any]],
        end_date: Optional[float] = None,
    ) -> None:
        self._interval = interval
        self._head = {"age": age, "state": state}
        self._history = history
        self._index = len(history)
        self._boundary = date
        self._end_date = end_date
        self._done = False

    def next_run(self) -> Optional[StateRun]:
        """Advance the cursor.

        Returns:
            The next older StateRun, or None once the walk is exhausted
        """
        if self._done:
            return None

        if self._index == len(self._history) and self._head is not None:
            entry = self._head
            self._head = None
        elif self._index > 0:
            self._index -= 1
            entry = self._history[self._index]
        else:
            self._done = True
            return None

        if self._end_date is not None and self._boundary <= self._end_date:
            self._done = True
            return None

        start_time = self._boundary - entry["age"] * self._interval
        self._boundary = start_time
        return StateRun(
            duration_ticks=entry["age"],
            state=copy.deepcopy(entry["state"]),
            start_time=start_time,
            interval=self._interval,
        )

    def __iter__(self) -> Iterator[StateRun]:
        return self

    def __next__(self) -> StateRun:
        run = self.next_run()
        if run is None:
            raise StopIteration
        return run


class ChangeLog:
    """Compact discrete-time history of one monitored target.

    ``date`` is the logical clock (time of the most recent update), ``state``
    and ``age`` describe the live head run, and ``history`` holds previous
    runs oldest first as ``{"age", "state"}`` dicts.
    """

    def __init__(
        self,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        date: Optional[Union[float, int, str, datetime]] = None,
        state: Any = None,
        history: Optional[List[Dict[str, Any]]] = None,
        hash: Optional[str] = None,
        age: int = 1,
        properties: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Create a change log, or restore one from its serialized fields.

        Args:
            interval: Duration of one logical tick in seconds
            date: Logical clock, defaults to now
            state: Head state, None meaning unknown
            history: Previous runs, oldest first
            hash: Content hash of state, computed when omitted
            age: Number of ticks the head state has persisted
            properties: Optional normalization filter applied on update

        Raises:
            ValueError: If interval is not positive or age is below 1
            InvalidFilterRuleError: If properties is not a valid filter
        """
        if interval is None or interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval!r}")
        if age < 1:
            raise ValueError(f"age must be >= 1, got {age!r}")
        normalization.validate_filter(properties)

        self._lock = threading.RLock()
        self.interval = float(interval)
        self.date = time.time() if date is None else _to_timestamp(date)
        self.state = copy.deepcopy(state)
        self.history: List[Dict[str, Any]] = copy.deepcopy(history) if history else []
        self.hash = hash or content_hash(self.state)
        self.age = int(age)
        self.properties = dict(properties) if properties is not None else None

    def update(
        self,
        new_state: Any,
        date: Optional[Union[float, int, str, datetime]] = None,
    ) -> "ChangeLog":
        """Record the state observed for the given sample time.

        Elapsed time since the last update is quantized down to whole ticks
        with a minimum of one. Ticks skipped between two samples become a
        gap run of unknown state.

        Args:
            new_state: Raw state, or an Ok/Err sample outcome. Err states
                are stored as is, properties only apply to payloads.
            date: Sample time, defaults to now

        Returns:
            This change log

        Raises:
            OutOfOrderError: If date precedes the logical clock
            NormalizationError: If properties cannot be applied to new_state
        """
        filtered = not isinstance(new_state, Err)
        if isinstance(new_state, (Ok, Err)):
            new_state = new_state.to_state()
        sample_time = time.time() if date is None else _to_timestamp(date)

        with self._lock:
            if sample_time < self.date:
                raise OutOfOrderError(
                    f"Sample time {sample_time} precedes log clock {self.date}"
                )

            if filtered:
                new_state = normalization.normalize(new_state, self.properties)
            state = copy.deepcopy(new_state)
            new_hash = content_hash(state)
            elapsed = max(1, math.floor((sample_time - self.date) / self.interval))
            gap = elapsed - 1

            if new_hash == self.hash:
                if gap == 0 or self.state is None:
                    self.age += elapsed
                else:
                    self._archive(self.age, self.state)
                    self._archive(gap, None)
                    self.age = 1
            else:
                self._archive(self.age, self.state)
                if state is None:
                    self.age = elapsed
                else:
                    if gap > 0:
                        self._archive(gap, None)
                    self.age = 1
                self.state = state
                self.hash = new_hash

            self.date = sample_time

        return self

    def _archive(self, age: int, state: Any) -> None:
        # Unknown runs never sit next to each other
        if state is None and self.history and self.history[-1]["state"] is None:
            self.history[-1] = {"age": self.history[-1]["age"] + age, "state": None}
        else:
            self.history.append({"age": age, "state": state})

    def state_at(
        self, date: Optional[Union[float, int, str, datetime]] = None
    ) -> Any:
        """Return the state that was current at the given time.

        Times before the first recorded run return the oldest known state,
        times after the logical clock return the head state.

        Args:
            date: Query time, defaults to now
        """
        query = time.time() if date is None else _to_timestamp(date)

        with self._lock:
            result = self.state
            boundary = self.date - self.interval * self.age
            for entry in reversed(self.history):
                if query > boundary:
                    break
                result = entry["state"]
                boundary -= self.interval * entry["age"]
            return copy.deepcopy(result)

    def state_history(
        self,
        intervals: int = 1,
        end_date: Optional[Union[float, int, str, datetime]] = None,
    ) -> List[Any]:
        """Return per-tick states for the period ending at end_date.

        Args:
            intervals: Number of ticks in the period
            end_date: Period end time, defaults to now

        Returns:
            List of states, oldest first
        """
        date = time.time() if end_date is None else _to_timestamp(end_date)
        states = []
        with self._lock:
            for _ in range(intervals):
                states.append(self.state_at(date))
                date -= self.interval
        states.reverse()
        return states

    def iterate(
        self, end_date: Optional[Union[float, int, str, datetime]] = None
    ) -> HistoryCursor:
        """Return a cursor over the runs of this log, newest first.

        Args:
            end_date: Optional time at or below which the walk stops
        """
        bound = None if end_date is None else _to_timestamp(end_date)
        with self._lock:
            return HistoryCursor(
                interval=self.interval,
                date=self.date,
                state=copy.deepcopy(self.state),
                age=self.age,
                history=list(self.history),
                end_date=bound,
            )

    def __iter__(self) -> Iterator[StateRun]:
        return self.iterate()

    def to_dict(self) -> Dict[str, Any]:
        """Return the plain serializable representation of this log."""
        with self._lock:
            return {
                "interval": self.interval,
                "date": self.date,
                "state": copy.deepcopy(self.state),
                "history": copy.deepcopy(self.history),
                "hash": self.hash,
                "age": self.age,
                "properties": copy.deepcopy(self.properties),
            }

    def snapshot(self) -> Dict[str, Any]:
        """Return a consistent copy of the log for concurrent readers."""
        return self.to_dict()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChangeLog":
        return cls(
            interval=data.get("interval", DEFAULT_INTERVAL_SECONDS),
            date=data.get("date"),
            state=data.get("state"),
            history=data.get("history"),
            hash=data.get("hash"),
            age=data.get("age", 1),
            properties=data.get("properties"),
        )

    def to_json(self, **kwargs: Any) -> str:
        return json.dumps(self.to_dict(), default=str, **kwargs)

    @classmethod
    def from_json(cls, text: str) -> "ChangeLog":
        return cls.from_dict(json.loads(text))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChangeLog):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return (
            f"ChangeLog(interval={self.interval}, date={self.date}, "
            f"age={self.age}, history={len(self.history)} runs)"
        )
