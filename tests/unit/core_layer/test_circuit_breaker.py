"""
Unit Tests for CircuitBreaker

Tests state transitions (closed -> open -> half-open -> closed), failure
counting, trial-slot accounting and stale-outcome handling, all driven by
a fake clock.
"""

import asyncio

import pytest

from bridge_aggregator.core.config.constants import CircuitState
from bridge_aggregator.core.exceptions import (
    CircuitBreakerHalfOpenError,
    CircuitBreakerOpenError,
    ProviderUpstreamError,
)
from bridge_aggregator.core.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerManager


async def _ok():
    return "ok"


async def _boom():
    raise ProviderUpstreamError("upstream down", provider_name="test")


@pytest.fixture
def breaker(fake_clock):
    return CircuitBreaker("test", threshold=5, timeout_ms=60_000, clock=fake_clock)


async def _trip(breaker: CircuitBreaker, failures: int = 5) -> None:
    for _ in range(failures):
        with pytest.raises(ProviderUpstreamError):
            await breaker.execute(_boom)


@pytest.mark.unit
class TestCircuitBreakerStates:
    @pytest.mark.asyncio
    async def test_starts_closed_and_passes_results_through(self, breaker):
        assert breaker.state == CircuitState.CLOSED
        assert await breaker.execute(_ok) == "ok"
        assert breaker.get_retry_after() == 0

    @pytest.mark.asyncio
    async def test_opens_after_threshold_consecutive_failures(self, breaker):
        await _trip(breaker, 4)
        assert breaker.state == CircuitState.CLOSED

        await _trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN
        assert breaker.get_retry_after() == 60

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker):
        await _trip(breaker, 4)
        await breaker.execute(_ok)
        await _trip(breaker, 4)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 4

    @pytest.mark.asyncio
    async def test_open_breaker_rejects_without_calling(self, breaker, fake_clock):
        await _trip(breaker)
        calls = 0

        async def counted():
            nonlocal calls
            calls += 1
            return "ok"

        fake_clock.advance(59.5)
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            await breaker.execute(counted)

        assert calls == 0
        assert exc_info.value.retry_after_seconds == 1

    @pytest.mark.asyncio
    async def test_trial_success_after_timeout_closes(self, breaker, fake_clock):
        await _trip(breaker)
        fake_clock.advance(60)

        assert await breaker.execute(_ok) == "ok"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 0
        assert breaker.next_retry_at is None

    @pytest.mark.asyncio
    async def test_trial_failure_reopens_with_fresh_timeout(self, breaker, fake_clock):
        await _trip(breaker)
        fake_clock.advance(61)

        with pytest.raises(ProviderUpstreamError):
            await breaker.execute(_boom)

        assert breaker.state == CircuitState.OPEN
        assert breaker.get_retry_after() == 60

    @pytest.mark.asyncio
    async def test_half_open_admits_one_trial_at_a_time(self, breaker, fake_clock):
        await _trip(breaker)
        fake_clock.advance(60)

        release = asyncio.Event()

        async def slow_trial():
            await release.wait()
            return "ok"

        trial = asyncio.create_task(breaker.execute(slow_trial))
        await asyncio.sleep(0)
        assert breaker.state == CircuitState.HALF_OPEN

        with pytest.raises(CircuitBreakerHalfOpenError) as exc_info:
            await breaker.execute(_ok)
        assert exc_info.value.retry_after_seconds == 1

        release.set()
        assert await trial == "ok"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_cancelled_trial_frees_its_slot(self, breaker, fake_clock):
        await _trip(breaker)
        fake_clock.advance(60)

        trial = asyncio.create_task(breaker.execute(lambda: asyncio.sleep(3600)))
        await asyncio.sleep(0)
        trial.cancel()
        with pytest.raises(asyncio.CancelledError):
            await trial

        assert breaker.state == CircuitState.HALF_OPEN
        assert await breaker.execute(_ok) == "ok"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_stale_success_does_not_close_open_breaker(self, fake_clock):
        breaker = CircuitBreaker("stale", threshold=2, timeout_ms=60_000, clock=fake_clock)
        release = asyncio.Event()

        async def slow_ok():
            await release.wait()
            return "late"

        slow = asyncio.create_task(breaker.execute(slow_ok))
        await asyncio.sleep(0)

        await _trip(breaker, 2)
        assert breaker.state == CircuitState.OPEN

        release.set()
        assert await slow == "late"
        assert breaker.state == CircuitState.OPEN
        assert breaker.get_retry_after() == 60

    @pytest.mark.asyncio
    async def test_reset_forces_closed(self, breaker):
        await _trip(breaker)
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert await breaker.execute(_ok) == "ok"

    @pytest.mark.asyncio
    async def test_stats_record_transitions(self, breaker, fake_clock):
        await _trip(breaker)
        fake_clock.advance(60)
        await breaker.execute(_ok)

        stats = breaker.get_stats()
        transitions = [(change["from"], change["to"]) for change in stats["state_changes"]]
        assert transitions == [("closed", "open"), ("open", "half_open"), ("half_open", "closed")]
        assert stats["metrics"]["total_failures"] == 5
        assert stats["metrics"]["total_successes"] == 1

    def test_rejects_invalid_threshold(self):
        with pytest.raises(ValueError):
            CircuitBreaker("bad", threshold=0)


@pytest.mark.unit
class TestCircuitBreakerManager:
    def test_get_breaker_returns_same_instance(self, fake_clock):
        manager = CircuitBreakerManager(threshold=3, timeout_ms=1000, half_open_requests=1, clock=fake_clock)
        breaker = manager.get_breaker("Across Protocol")
        assert manager.get_breaker("Across Protocol") is breaker
        assert breaker.threshold == 3

    @pytest.mark.asyncio
    async def test_breakers_are_independent(self, fake_clock):
        manager = CircuitBreakerManager(threshold=1, timeout_ms=1000, half_open_requests=1, clock=fake_clock)
        with pytest.raises(ProviderUpstreamError):
            await manager.get_breaker("a").execute(_boom)

        assert manager.get_breaker("a").state == CircuitState.OPEN
        assert manager.get_breaker("b").state == CircuitState.CLOSED

        manager.reset_all()
        assert manager.get_all_stats()["a"]["state"] == "closed"
