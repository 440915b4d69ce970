"""
Unit Tests for RetryingFetcher

Upstream HTTP is scripted with httpx.MockTransport; backoff sleeps go
through the fake clock so the schedule can be asserted exactly.
"""

import asyncio

import httpx
import pytest

from bridge_aggregator.core.exceptions import (
    ProviderHTTPStatusError,
    ProviderMalformedResponseError,
    ProviderTimeoutError,
    ProviderUpstreamError,
)
from bridge_aggregator.core.resilience.retry import FetchRequest, RetryingFetcher
from tests.test_fixtures import HttpTestFactory

URL = "https://bridge.test/quote"


def _fetcher(client, clock, **kwargs) -> RetryingFetcher:
    options = {"max_retries": 3, "base_timeout": 10.0, "timeout_increment": 2.0, "base_delay": 0.5}
    options.update(kwargs)
    return RetryingFetcher(client, "Test Bridge", clock=clock, **options)


@pytest.mark.unit
class TestRetryingFetcher:
    def test_attempt_timeout_grows_linearly(self, fake_clock):
        fetcher = _fetcher(httpx.AsyncClient(), fake_clock)
        assert [fetcher.attempt_timeout(n) for n in (1, 2, 3)] == [10.0, 12.0, 14.0]

    @pytest.mark.asyncio
    async def test_returns_decoded_json_on_first_success(self, fake_clock):
        client, transport = HttpTestFactory.client(HttpTestFactory.routes({"bridge.test": {"fee": "1"}}))
        payload = await _fetcher(client, fake_clock).fetch_with_retry(FetchRequest(URL, params={"a": "1"}))

        assert payload == {"fee": "1"}
        assert len(transport.requests) == 1
        assert transport.requests[0].url.params["a"] == "1"
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_retries_server_errors_with_exponential_backoff(self, fake_clock):
        client, transport = HttpTestFactory.client(
            HttpTestFactory.routes({"bridge.test": [500, 502, {"ok": True}]})
        )
        payload = await _fetcher(client, fake_clock).fetch_with_retry(FetchRequest(URL))

        assert payload == {"ok": True}
        assert len(transport.requests) == 3
        assert fake_clock.sleeps == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_raises_last_error_after_all_attempts(self, fake_clock):
        client, transport = HttpTestFactory.client(HttpTestFactory.routes({"bridge.test": 503}))

        with pytest.raises(ProviderHTTPStatusError) as exc_info:
            await _fetcher(client, fake_clock).fetch_with_retry(FetchRequest(URL))

        assert exc_info.value.status_code == 503
        assert len(transport.requests) == 3

    @pytest.mark.asyncio
    async def test_per_call_max_retries_overrides_default(self, fake_clock):
        client, transport = HttpTestFactory.client(HttpTestFactory.routes({"bridge.test": 500}))

        with pytest.raises(ProviderUpstreamError):
            await _fetcher(client, fake_clock).fetch_with_retry(FetchRequest(URL), max_retries=1)

        assert len(transport.requests) == 1
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self, fake_clock):
        client, transport = HttpTestFactory.client(
            HttpTestFactory.routes({"bridge.test": [httpx.ConnectError("refused"), {"ok": True}]})
        )
        payload = await _fetcher(client, fake_clock).fetch_with_retry(FetchRequest(URL))

        assert payload == {"ok": True}
        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_malformed_body_is_not_retried(self, fake_clock):
        client, transport = HttpTestFactory.client(
            HttpTestFactory.routes({"bridge.test": httpx.Response(200, content=b"<html>oops</html>")})
        )

        with pytest.raises(ProviderMalformedResponseError):
            await _fetcher(client, fake_clock).fetch_with_retry(FetchRequest(URL))

        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_slow_attempt_times_out(self, fake_clock):
        async def never_answers(request):
            await asyncio.sleep(10)
            return httpx.Response(200, json={})

        client = httpx.AsyncClient(transport=httpx.MockTransport(never_answers))
        fetcher = _fetcher(client, fake_clock, max_retries=2, base_timeout=0.01, timeout_increment=0.01)

        with pytest.raises(ProviderTimeoutError):
            await fetcher.fetch_with_retry(FetchRequest(URL))

        assert fake_clock.sleeps == [0.5]

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self, fake_clock):
        with pytest.raises(ValueError):
            await _fetcher(httpx.AsyncClient(), fake_clock).fetch_with_retry(FetchRequest(URL), max_retries=0)
