"""Sampler module for target probing.

Performs one request per invocation and feeds the outcome, success or
failure, into the target's change log. Failures are states, not
exceptions: a sampler never raises past its own boundary.
"""

import logging
import threading
import time
from typing import Any, Mapping, Optional
from urllib.parse import urlsplit

import http_client
import normalization
from change_log import ChangeLog, OutOfOrderError
from config import ConfigError
from outcome import Err, Ok, Outcome

logger = logging.getLogger(__name__)

VALID_SCHEMES = ("http", "https")


class InvalidTargetError(ConfigError):
    """Raised when a target is not a valid network resource reference."""
    pass


def validate_target(target: Any) -> str:
    """Validate a target URL.

    Args:
        target: Candidate target

    Returns:
        The target as a string

    Raises:
        InvalidTargetError: If target is not an http(s) URL with a host
    """
    if not isinstance(target, str) or not target:
        raise InvalidTargetError(f"Invalid url: {target!r}")
    try:
        parts = urlsplit(target)
        valid = (
            parts.scheme in VALID_SCHEMES
            and bool(parts.hostname)
            and (parts.port is None or parts.port > 0)
        )
    except ValueError as e:
        raise InvalidTargetError(f"Invalid url: {target!r} ({e})")
    if not valid:
        raise InvalidTargetError(f"Invalid url: {target!r}")
    return target


class Sampler:
    """Probe a single target and log the results in its change log."""

    def __init__(
        self,
        target: str,
        change_log: ChangeLog,
        client: Any,
        json_filter: Optional[Mapping[str, Any]] = None,
        expect_json: bool = False,
        timeout_seconds: float = http_client.DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the sampler.

        Args:
            target: URL to probe
            change_log: ChangeLog owned by this sampler
            client: httpx.Client used for requests
            json_filter: Normalization filter for the JSON body; implies
                expect_json
            expect_json: Record the decoded JSON body alongside the status
            timeout_seconds: Request timeout in seconds

        Raises:
            InvalidTargetError: If target is not a valid URL
            InvalidFilterRuleError: If json_filter is malformed
        """
        self.target = validate_target(target)
        if change_log is None:
            raise ValueError("change_log is required")
        if timeout_seconds <= 0:
            raise ConfigError(f"timeout_seconds must be > 0, got {timeout_seconds!r}")
        normalization.validate_filter(json_filter)

        self.change_log = change_log
        self.json_filter = dict(json_filter) if json_filter is not None else None
        self.expect_json = expect_json or json_filter is not None
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._in_flight = threading.Lock()

    def probe(self) -> Outcome:
        """Fetch the target once without touching the change log.

        Returns:
            Ok with {"status"} or {"status", "body"}, or Err with the reason
        """
        try:
            response = http_client.fetch(
                self._client,
                self.target,
                timeout_seconds=self.timeout_seconds,
                expect_json=self.expect_json,
            )
        except http_client.FetchError as e:
            return Err(str(e))
        except Exception as e:
            logger.warning(f"Unexpected error fetching {self.target}: {e!r}")
            return Err(f"{type(e).__name__}: {e}")

        if not self.expect_json:
            return Ok({"status": response.status})

        try:
            body = normalization.normalize(response.body, self.json_filter)
        except (normalization.NormalizationError, normalization.InvalidFilterRuleError) as e:
            return Err(str(e))

        return Ok({"status": response.status, "body": body})

    def sample(self, date: Optional[float] = None) -> Optional[Outcome]:
        """Probe the target and log the outcome for the given tick time.

        Only one sample per target is in flight at a time; a tick that
        arrives while the previous sample is unresolved is skipped.

        Args:
            date: Logging time (the tick, not the response time), defaults
                to now

        Returns:
            The logged outcome, or None if the tick was skipped or rejected
        """
        date = time.time() if date is None else date

        if not self._in_flight.acquire(blocking=False):
            logger.debug(f"Previous sample of {self.target} still in flight, skipping tick")
            return None

        try:
            outcome = self.probe()
            if not outcome.ok:
                logger.debug(f"Sample of {self.target} failed: {outcome.reason}")
            try:
                self.change_log.update(outcome, date)
            except OutOfOrderError as e:
                logger.warning(f"Discarding out-of-order sample of {self.target}: {e}")
                return None
            return outcome
        finally:
            self._in_flight.release()

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    def __repr__(self) -> str:
        return f"Sampler(target={self.target!r}, json_filter={self.json_filter!r})"
