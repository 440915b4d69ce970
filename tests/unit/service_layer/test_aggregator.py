"""
Unit Tests for Aggregator

Providers are scripted stubs; cache and rate limiter run for real on the
in-memory store so caching and admission behave as in production.
"""

import asyncio

import pytest

from bridge_aggregator.core.config.constants import ProviderErrorCode
from bridge_aggregator.core.exceptions import (
    CacheConnectionError,
    ProviderBreakerOpenError,
    RateLimitExceededError,
    ValidationError,
)
from bridge_aggregator.core.resilience.circuit_breaker import CircuitBreaker
from bridge_aggregator.core.resilience.rate_limiter import RateLimiter
from bridge_aggregator.quotes.providers.base_provider import ProviderRegistry
from bridge_aggregator.services.aggregator import Aggregator
from tests.test_fixtures import CacheTestFactory, FailingStore, ProviderTestFactory, ScriptedProvider


def _registry(*providers) -> ProviderRegistry:
    registry = ProviderRegistry()
    for provider in providers:
        registry.register(provider)
    return registry


@pytest.fixture
def build_aggregator(cache_manager, memory_store, mock_market_data, test_settings, fake_clock):
    """Factory fixture: aggregator over the given providers."""

    def _build(*providers, cache=None, settings=None):
        settings = settings or test_settings
        limiter = RateLimiter(
            memory_store,
            window_ms=settings.rate_limit.RATE_LIMIT_WINDOW_MS,
            max_requests=settings.rate_limit.RATE_LIMIT_MAX_REQUESTS,
            clock=fake_clock,
        )
        return Aggregator(
            _registry(*providers),
            cache or cache_manager,
            mock_market_data,
            rate_limiter=limiter,
            settings=settings,
            clock=fake_clock,
        )

    return _build


@pytest.mark.unit
class TestAggregation:
    """Test suite for Aggregator.get_quotes."""

    @pytest.mark.asyncio
    async def test_quotes_sorted_by_total_cost(self, build_aggregator):
        aggregator = build_aggregator(
            ProviderTestFactory.success_provider("Pricey", fee=3.0, gas=1.0),
            ProviderTestFactory.success_provider("Cheap", fee=0.5, gas=0.5),
            ProviderTestFactory.success_provider("Middle", fee=1.0, gas=1.0),
        )

        result = await aggregator.get_quotes("ethereum", "polygon", "100")

        assert result.success is True
        assert [q.provider_name for q in result.quotes] == ["Cheap", "Middle", "Pricey"]
        assert result.metadata.quotes_found == 3
        assert result.metadata.cached is False

    @pytest.mark.asyncio
    async def test_ties_broken_by_reliability_then_name(self, build_aggregator):
        aggregator = build_aggregator(
            ProviderTestFactory.success_provider("Beta", fee=1.0, gas=0.0, reliability=95.0),
            ProviderTestFactory.success_provider("Zeta", fee=1.0, gas=0.0, reliability=98.0),
            ProviderTestFactory.success_provider("Alpha", fee=1.0, gas=0.0, reliability=95.0),
        )

        result = await aggregator.get_quotes("ethereum", "polygon", "100")

        assert [q.provider_name for q in result.quotes] == ["Zeta", "Alpha", "Beta"]

    @pytest.mark.asyncio
    async def test_partial_failure_still_succeeds(self, build_aggregator):
        aggregator = build_aggregator(
            ProviderTestFactory.success_provider("Good"),
            ProviderTestFactory.failing_provider("Bad"),
        )

        result = await aggregator.get_quotes("ethereum", "polygon", "100")

        assert result.success is True
        assert len(result.quotes) == 1
        assert result.errors[0].provider_name == "Bad"
        assert result.errors[0].code == ProviderErrorCode.UPSTREAM_ERROR
        assert result.metadata.errors_count == 1

    @pytest.mark.asyncio
    async def test_total_failure_is_not_cached(self, build_aggregator):
        failing = ProviderTestFactory.failing_provider("Bad")
        aggregator = build_aggregator(failing)

        first = await aggregator.get_quotes("ethereum", "polygon", "100")
        second = await aggregator.get_quotes("ethereum", "polygon", "100")

        assert first.success is False
        assert first.quotes == []
        assert second.metadata.cached is False
        assert failing.calls == 2

    @pytest.mark.asyncio
    async def test_repeat_request_served_from_cache(self, build_aggregator, mock_market_data):
        provider = ProviderTestFactory.success_provider("Good")
        aggregator = build_aggregator(provider, ProviderTestFactory.failing_provider("Bad"))

        first = await aggregator.get_quotes("ethereum", "polygon", "100")
        second = await aggregator.get_quotes("Ethereum", "POLYGON", "100.00")

        assert provider.calls == 1
        assert mock_market_data.get_market_snapshot.await_count == 1
        assert second.metadata.cached is True
        assert second.quotes == first.quotes
        assert second.errors == first.errors

    @pytest.mark.asyncio
    async def test_cache_expiry_triggers_fresh_fan_out(self, build_aggregator, fake_clock, test_settings):
        provider = ProviderTestFactory.success_provider("Good")
        aggregator = build_aggregator(provider)

        await aggregator.get_quotes("ethereum", "polygon", "100")
        fake_clock.advance(test_settings.cache.CACHE_QUOTE_TTL)
        result = await aggregator.get_quotes("ethereum", "polygon", "100")

        assert result.metadata.cached is False
        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_slow_provider_times_out_and_is_cancelled(self, build_aggregator, test_settings):
        settings = test_settings.model_copy(update={"AGGREGATION_TIMEOUT": 0.05})
        slow = ProviderTestFactory.slow_provider("Slow", delay=5.0)
        aggregator = build_aggregator(ProviderTestFactory.success_provider("Fast"), slow, settings=settings)

        result = await aggregator.get_quotes("ethereum", "polygon", "100")

        assert result.success is True
        assert [q.provider_name for q in result.quotes] == ["Fast"]
        assert result.errors[0].provider_name == "Slow"
        assert result.errors[0].code == ProviderErrorCode.TIMEOUT
        assert slow.cancelled is True

    @pytest.mark.asyncio
    async def test_cancelled_request_cancels_provider_calls(self, build_aggregator):
        slow = ProviderTestFactory.slow_provider("Slow", delay=5.0)
        aggregator = build_aggregator(slow)

        outer = asyncio.create_task(aggregator.get_quotes("ethereum", "polygon", "100"))
        await asyncio.sleep(0.05)
        outer.cancel()

        with pytest.raises(asyncio.CancelledError):
            await outer
        assert slow.cancelled is True

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_upstream_error(self, build_aggregator):
        aggregator = build_aggregator(ScriptedProvider("Buggy", outcome=RuntimeError("boom")))

        result = await aggregator.get_quotes("ethereum", "polygon", "100")

        assert result.success is False
        assert result.errors[0].code == ProviderErrorCode.UPSTREAM_ERROR
        assert "boom" not in result.errors[0].message

    @pytest.mark.asyncio
    async def test_breaker_retry_hint_attached(self, build_aggregator, fake_clock):
        breaker = CircuitBreaker("Tripped", threshold=1, timeout_ms=60_000, clock=fake_clock)

        async def fail():
            raise RuntimeError("down")

        with pytest.raises(RuntimeError):
            await breaker.execute(fail)

        provider = ScriptedProvider("Tripped", outcome=ProviderBreakerOpenError(
            "Tripped circuit is open", provider_name="Tripped"), breaker=breaker)
        aggregator = build_aggregator(provider)

        result = await aggregator.get_quotes("ethereum", "polygon", "100")

        assert result.errors[0].code == ProviderErrorCode.BREAKER_OPEN
        assert result.errors[0].retry_after_seconds == 60

    @pytest.mark.asyncio
    async def test_errors_follow_registration_order(self, build_aggregator):
        aggregator = build_aggregator(
            ProviderTestFactory.failing_provider("Zulu"),
            ProviderTestFactory.failing_provider("Alpha"),
        )

        result = await aggregator.get_quotes("ethereum", "polygon", "100")

        assert [e.provider_name for e in result.errors] == ["Zulu", "Alpha"]


@pytest.mark.unit
class TestAggregatorGuards:
    @pytest.mark.asyncio
    async def test_validation_error_before_fan_out(self, build_aggregator):
        provider = ProviderTestFactory.success_provider("Good")
        aggregator = build_aggregator(provider)

        with pytest.raises(ValidationError) as exc_info:
            await aggregator.get_quotes("ethereum", "ethereum", "0")

        assert "amount" in exc_info.value.fields
        assert provider.calls == 0

    @pytest.mark.asyncio
    async def test_rate_limit_rejects_sixth_request(self, build_aggregator):
        aggregator = build_aggregator(ProviderTestFactory.success_provider("Good"))

        for _ in range(5):
            await aggregator.get_quotes("ethereum", "polygon", "100", client_identity="1.2.3.xxx:abc")

        with pytest.raises(RateLimitExceededError) as exc_info:
            await aggregator.get_quotes("ethereum", "polygon", "100", client_identity="1.2.3.xxx:abc")

        assert exc_info.value.limit == 5
        assert exc_info.value.remaining == 0
        assert exc_info.value.retry_after_seconds >= 1

        other = await aggregator.get_quotes("ethereum", "polygon", "100", client_identity="other")
        assert other.success is True

    @pytest.mark.asyncio
    async def test_rate_limit_counts_invalid_requests(self, build_aggregator):
        aggregator = build_aggregator(ProviderTestFactory.success_provider("Good"))

        for _ in range(5):
            with pytest.raises(ValidationError):
                await aggregator.get_quotes("mars", "polygon", "100")

        with pytest.raises(RateLimitExceededError):
            await aggregator.get_quotes("ethereum", "polygon", "100")

    @pytest.mark.asyncio
    async def test_disabled_rate_limiting(self, build_aggregator, test_settings):
        settings = test_settings.model_copy(update={"RATE_LIMIT_ENABLED": False})
        aggregator = build_aggregator(ProviderTestFactory.success_provider("Good"), settings=settings)

        for _ in range(10):
            result = await aggregator.get_quotes("ethereum", "polygon", "100")

        assert result.rate_limit is None

    @pytest.mark.asyncio
    async def test_cache_read_failure_propagates(self, build_aggregator, fake_clock):
        provider = ProviderTestFactory.success_provider("Good")
        cache = CacheTestFactory.cache_manager(FailingStore(), clock=fake_clock)
        aggregator = build_aggregator(provider, cache=cache)

        with pytest.raises(CacheConnectionError):
            await aggregator.get_quotes("ethereum", "polygon", "100")

        assert provider.calls == 0

    @pytest.mark.asyncio
    async def test_cache_write_failure_still_returns_quotes(self, build_aggregator, mock_cache_manager):
        mock_cache_manager.set.side_effect = CacheConnectionError("Redis connection refused")
        aggregator = build_aggregator(ProviderTestFactory.success_provider("Good"), cache=mock_cache_manager)

        result = await aggregator.get_quotes("ethereum", "polygon", "100")

        assert result.success is True
        mock_cache_manager.set.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rate_limit_result_not_serialized(self, build_aggregator):
        aggregator = build_aggregator(ProviderTestFactory.success_provider("Good"))

        result = await aggregator.get_quotes("ethereum", "polygon", "100")

        assert result.rate_limit is not None
        assert result.rate_limit.remaining == 4
        assert "rate_limit" not in result.model_dump()
