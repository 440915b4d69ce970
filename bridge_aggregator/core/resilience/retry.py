"""
Retrying HTTP fetcher for upstream quote and oracle APIs.

Each attempt gets its own timeout, growing linearly with the attempt
number, and attempts are separated by exponential backoff:

    attempt n timeout = base_timeout + (n - 1) * timeout_increment
    sleep after attempt n = base_delay * 2 ** (n - 1)

Retried: non-2xx statuses, transport errors, per-attempt timeouts.
Not retried: a body that is not valid JSON.

``max_retries`` is the total number of attempts.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
import orjson
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from bridge_aggregator.core.clock import Clock, get_clock
from bridge_aggregator.core.config.constants import USER_AGENT, Stage
from bridge_aggregator.core.config.settings import get_settings
from bridge_aggregator.core.exceptions import (
    ProviderHTTPStatusError,
    ProviderMalformedResponseError,
    ProviderTimeoutError,
    ProviderUpstreamError,
)
from bridge_aggregator.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)

DEFAULT_HEADERS = {"Accept": "application/json", "User-Agent": USER_AGENT}


@dataclass(frozen=True)
class FetchRequest:
    """A single upstream GET."""

    url: str
    params: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)


def create_http_client() -> httpx.AsyncClient:
    """Shared client for all upstream calls; per-attempt timeouts are applied by the fetcher."""
    return httpx.AsyncClient(headers=DEFAULT_HEADERS, timeout=None, follow_redirects=True)


class RetryingFetcher:
    """
    Bounded-retry JSON fetcher.

    Usage:
        fetcher = RetryingFetcher(client, "Across Protocol")
        payload = await fetcher.fetch_with_retry(FetchRequest(url, params))
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        name: str,
        max_retries: int | None = None,
        base_timeout: float | None = None,
        timeout_increment: float | None = None,
        base_delay: float | None = None,
        clock: Clock | None = None,
    ):
        retry_settings = get_settings().retry
        self._client = client
        self.name = name
        self.max_retries = max_retries if max_retries is not None else retry_settings.RETRY_MAX_ATTEMPTS
        self.base_timeout = base_timeout if base_timeout is not None else retry_settings.RETRY_BASE_TIMEOUT
        self.timeout_increment = (
            timeout_increment if timeout_increment is not None else retry_settings.RETRY_TIMEOUT_INCREMENT
        )
        self.base_delay = base_delay if base_delay is not None else retry_settings.RETRY_BASE_DELAY
        self._clock = clock or get_clock()

    def attempt_timeout(self, attempt_number: int) -> float:
        return self.base_timeout + (attempt_number - 1) * self.timeout_increment

    async def fetch_with_retry(self, request: FetchRequest, max_retries: int | None = None) -> Any:
        """
        Fetch ``request`` and return the decoded JSON body.

        Raises the last attempt's error once the attempt budget is spent, or
        ProviderMalformedResponseError immediately on an undecodable body.
        """
        attempts = max_retries if max_retries is not None else self.max_retries
        if attempts < 1:
            raise ValueError("max_retries must be >= 1")

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=2, min=0),
            retry=retry_if_exception_type(ProviderUpstreamError),
            sleep=self._clock.sleep,
            before_sleep=before_sleep_log(logging.getLogger(__name__), logging.WARNING),
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                payload = await self._attempt(request, attempt.retry_state.attempt_number)
        return payload

    async def _attempt(self, request: FetchRequest, attempt_number: int) -> Any:
        timeout = self.attempt_timeout(attempt_number)
        log_stage(
            logger,
            Stage.RETRY,
            "Upstream attempt",
            level="debug",
            upstream=self.name,
            attempt=attempt_number,
            timeout=timeout,
        )

        try:
            response = await asyncio.wait_for(
                self._client.get(request.url, params=request.params or None, headers=request.headers or None),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise ProviderTimeoutError(
                f"{self.name} timed out after {timeout:.1f}s",
                provider_name=self.name,
                details={"attempt": attempt_number, "timeout": timeout},
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderUpstreamError(
                f"{self.name} transport error: {exc.__class__.__name__}",
                provider_name=self.name,
                details={"attempt": attempt_number},
            ) from exc

        if not response.is_success:
            raise ProviderHTTPStatusError(
                f"{self.name} returned HTTP {response.status_code}",
                provider_name=self.name,
                status_code=response.status_code,
                details={"attempt": attempt_number},
            )

        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError as exc:
            raise ProviderMalformedResponseError(
                f"{self.name} returned a body that is not valid JSON",
                provider_name=self.name,
            ) from exc
