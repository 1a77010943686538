"""
Shared HTTP utilities for external service clients.

Provides the retry policy used by the Google Drive adapter: connection
errors, timeouts and transient 429/5xx responses are retried with exponential
backoff; everything else surfaces immediately.
"""

import logging
from collections.abc import Sequence
from typing import Any

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class TransientHTTPError(requests.exceptions.HTTPError):
    """A response status worth retrying."""


def safe_headers(response: requests.Response) -> dict[str, str]:
    """
    Safely extract headers from a response object.

    Useful for mocked tests where response.headers might not be a proper dict.
    """
    headers = getattr(response, "headers", None)
    if isinstance(headers, dict):
        return headers
    if hasattr(headers, "items"):
        return dict(headers.items())
    return {}


def request_with_retry(
    session: requests.Session,
    method: str,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    data: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout: float = 30,
    attempts: int = 4,
    retry_on: Sequence[type[Exception]] = (
        requests.exceptions.Timeout,
        requests.exceptions.ConnectionError,
        TransientHTTPError,
    ),
    backoff: dict[str, int | float] | None = None,
) -> requests.Response:
    """
    Make an HTTP request, retrying transient failures.

    Args:
        session: Requests session to use
        method: HTTP method (GET, POST, etc.)
        url: Full URL to request
        params: Query parameters
        data: Form body
        headers: Additional headers (merged with session headers)
        timeout: Request timeout in seconds
        attempts: Total attempts before giving up
        retry_on: Exception types to retry on
        backoff: Backoff configuration dict with keys: multiplier, min, max

    Returns:
        The final response. Non-transient error statuses are returned to the
        caller unchanged so it can map them to its own exceptions.

    Raises:
        The last retried exception once attempts are exhausted
    """
    if backoff is None:
        backoff = {"multiplier": 1, "min": 2, "max": 30}

    @retry(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(
            multiplier=backoff.get("multiplier", 1),
            min=backoff.get("min", 2),
            max=backoff.get("max", 30),
        ),
        retry=retry_if_exception_type(tuple(retry_on)),
        reraise=True,
    )
    def _make_request() -> requests.Response:
        logger.debug(f"Making {method} request to {url}")
        response = session.request(
            method=method,
            url=url,
            params=params,
            data=data,
            headers=headers or None,
            timeout=timeout,
        )
        if response.status_code in TRANSIENT_STATUS_CODES:
            retry_after = safe_headers(response).get("Retry-After")
            logger.warning(
                f"Transient {response.status_code} from {url}"
                + (f" (retry after {retry_after}s)" if retry_after else "")
            )
            raise TransientHTTPError(f"{response.status_code} from {url}", response=response)
        return response

    return _make_request()
