"""HTTP client abstraction module.

All httpx usage is isolated here. No other module imports from httpx.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 1.0
USER_AGENT = "change-log-monitor/0.1"


class FetchError(Exception):
    """Raised when a target cannot be fetched or its body cannot be decoded."""
    pass


@dataclass
class FetchResponse:
    """Outcome of a single successful request."""
    status: int
    body: Any = None


def build_http_client(
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Construct and return a configured HTTP client.

    Args:
        timeout_seconds: Default per-request timeout
        transport: Optional transport override (used by tests)

    Returns:
        httpx.Client: Client that follows redirects
    """
    return httpx.Client(
        timeout=timeout_seconds,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
        transport=transport,
    )


def fetch(
    client: httpx.Client,
    target: str,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    expect_json: bool = False,
) -> FetchResponse:
    """Issue one GET request to target.

    Non-2xx statuses are returned, not raised: the status is part of the
    observed state.

    Args:
        client: Configured httpx.Client instance
        target: URL to fetch
        timeout_seconds: Request timeout in seconds
        expect_json: If True, decode the response body as JSON

    Returns:
        FetchResponse with the status code and, when expect_json, the body

    Raises:
        FetchError: On timeout, transport failure, a URL httpx rejects or an
            undecodable body
    """
    try:
        response = client.get(target, timeout=timeout_seconds)
    except httpx.TimeoutException as e:
        raise FetchError(f"Timeout after {timeout_seconds}s fetching {target}: {e}") from e
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise FetchError(f"Request to {target} failed: {e}") from e

    logger.debug(f"GET {target} -> {response.status_code}")

    if not expect_json:
        return FetchResponse(status=response.status_code)

    try:
        body = response.json()
    except ValueError as e:
        raise FetchError(f"Could not decode JSON from {target}: {e}") from e

    return FetchResponse(status=response.status_code, body=body)
