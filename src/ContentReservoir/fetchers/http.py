"""HTTP client and retry controller used by the built-in fetchers.

Provides:
- An ``httpx.Client`` factory honouring ``RES_HTTP_TIMEOUT`` and ``RES_USER_AGENT``
- A Tenacity controller retrying transport errors and 429/5xx responses
- :func:`get_with_retries`, which maps final failures onto :class:`FetchError`
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import httpx
import tenacity
from tenacity import RetryCallState, retry_if_exception_type, retry_if_result

from ..errors import FetchError
from ..settings import ReservoirSettings, get_settings

__all__ = ["RETRY_STATUSES", "build_client", "build_retrying", "get_with_retries"]

LOGGER = logging.getLogger(__name__)

RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})

_RETRYABLE_EXCEPTIONS = (
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.TimeoutException,
    httpx.RemoteProtocolError,
)


def build_client(
    settings: Optional[ReservoirSettings] = None,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    settings = settings or get_settings()
    return httpx.Client(
        timeout=settings.http_timeout,
        headers={"User-Agent": settings.user_agent},
        follow_redirects=True,
        transport=transport,
    )


def _retryable_response(value: Any) -> bool:
    return getattr(value, "status_code", None) in RETRY_STATUSES


def _before_sleep(retry_state: RetryCallState) -> None:
    next_action = retry_state.next_action
    wait_ms = int(next_action.sleep * 1000) if next_action is not None else 0
    LOGGER.warning(
        "retry attempt=%d wait_ms=%d elapsed_s=%.1f",
        retry_state.attempt_number,
        wait_ms,
        retry_state.seconds_since_start or 0.0,
    )


def build_retrying(
    settings: Optional[ReservoirSettings] = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> tenacity.Retrying:
    """Build the Tenacity controller for adapter GET requests."""

    settings = settings or get_settings()
    return tenacity.Retrying(
        retry=retry_if_exception_type(_RETRYABLE_EXCEPTIONS) | retry_if_result(_retryable_response),
        stop=tenacity.stop_after_attempt(settings.http_retries),
        wait=tenacity.wait_random_exponential(multiplier=0.5, max=8.0),
        sleep=sleep,
        before_sleep=_before_sleep,
        retry_error_callback=lambda state: state.outcome.result(),
        reraise=True,
    )


def get_with_retries(
    client: httpx.Client,
    url: str,
    retrying: tenacity.Retrying,
    *,
    channel_id: Optional[str] = None,
) -> httpx.Response:
    """GET ``url``; non-2xx final responses and transport errors raise :class:`FetchError`."""

    try:
        response = retrying(client.get, url)
    except httpx.HTTPError as exc:
        raise FetchError(f"Failed to fetch {url}: {exc}", channel_id=channel_id, url=url) from exc
    if not response.is_success:
        raise FetchError(
            f"Failed to fetch {url}: {response.status_code} {response.reason_phrase}",
            channel_id=channel_id,
            url=url,
            details={"status": response.status_code},
        )
    return response
