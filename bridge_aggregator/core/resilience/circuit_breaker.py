"""
Circuit Breaker for Bridge Providers.

One in-process breaker guards each provider adapter.

MECHANISM OF ACTION:
-------------------
1.  **CLOSED**: The provider is healthy. Calls pass through.
    - On Failure: ``consecutive_failures`` increments.
    - On Success: the failure counter resets to 0.
    - Threshold Reached: state moves to OPEN and ``next_retry_at`` is set
      to ``now + timeout``.

2.  **OPEN**: The provider is considered down.
    - Before ``next_retry_at``: raises ``CircuitBreakerOpenError`` without
      attempting the call.
    - At or after ``next_retry_at``: the next call moves the breaker to
      HALF_OPEN and proceeds as a trial.

3.  **HALF_OPEN**: Probing mode.
    - At most ``half_open_requests`` trials run concurrently; extra callers
      get ``CircuitBreakerHalfOpenError``.
    - Trial success closes the circuit. Trial failure reopens it with a
      fresh ``next_retry_at``.

Every state change bumps a generation counter. An outcome is applied only
if the call started in the current generation, so a slow call admitted
before a transition can neither close a probing circuit nor shorten an
OPEN period.

State is owned by the breaker instance; there is no module-level registry.
"""

from collections import deque
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, TypeVar

from bridge_aggregator.core.clock import Clock, get_clock, now_ms
from bridge_aggregator.core.config.constants import CircuitState, Stage
from bridge_aggregator.core.config.settings import get_settings
from bridge_aggregator.core.exceptions import (
    CircuitBreakerHalfOpenError,
    CircuitBreakerOpenError,
)
from bridge_aggregator.core.logging.logger import get_logger, log_stage
from bridge_aggregator.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)

T = TypeVar("T")

STATE_HISTORY_SIZE = 50


def _iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


class CircuitBreaker:
    """
    Async circuit breaker with an injectable clock.

    Usage:
        breaker = CircuitBreaker("Across Protocol", threshold=5, timeout_ms=60_000)
        payload = await breaker.execute(lambda: fetcher.fetch_with_retry(request))
    """

    def __init__(
        self,
        name: str,
        threshold: int = 5,
        timeout_ms: int = 60_000,
        half_open_requests: int = 1,
        clock: Clock | None = None,
    ):
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        if half_open_requests < 1:
            raise ValueError("half_open_requests must be >= 1")

        self.name = name
        self.threshold = threshold
        self.timeout_ms = timeout_ms
        self.half_open_requests = half_open_requests
        self._clock = clock or get_clock()

        self._state = CircuitState.CLOSED
        self._generation = 0
        self.consecutive_failures = 0
        self.consecutive_successes = 0
        self.next_retry_at: int | None = None
        self._half_open_in_flight = 0

        self._metrics: dict[str, Any] = {
            "total_requests": 0,
            "total_failures": 0,
            "total_successes": 0,
            "total_rejections": 0,
            "last_failure": None,
            "last_success": None,
        }
        self._state_changes: deque[dict[str, Any]] = deque(maxlen=STATE_HISTORY_SIZE)

    @property
    def state(self) -> CircuitState:
        return self._state

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``fn`` under breaker protection.

        Returns ``fn``'s result or re-raises its exception unchanged.
        Raises CircuitBreakerOpenError / CircuitBreakerHalfOpenError when the
        call is rejected without being attempted.
        """
        generation, is_trial = self._admit()
        try:
            result = await fn()
        except Exception:
            self._on_failure(generation)
            raise
        else:
            self._on_success(generation)
            return result
        finally:
            # Cancellation records nothing but must free the trial slot.
            if is_trial and generation == self._generation:
                self._half_open_in_flight -= 1

    def _admit(self) -> tuple[int, bool]:
        now = now_ms(self._clock)
        self._metrics["total_requests"] += 1

        if self._state == CircuitState.OPEN:
            if self.next_retry_at is not None and now < self.next_retry_at:
                self._metrics["total_rejections"] += 1
                raise CircuitBreakerOpenError(
                    "Circuit breaker is open",
                    name=self.name,
                    retry_after_seconds=self.get_retry_after(),
                )
            self._transition(CircuitState.HALF_OPEN, now)

        if self._state == CircuitState.HALF_OPEN:
            if self._half_open_in_flight >= self.half_open_requests:
                self._metrics["total_rejections"] += 1
                raise CircuitBreakerHalfOpenError(
                    "Circuit breaker is testing, please retry",
                    name=self.name,
                    retry_after_seconds=1,
                )
            self._half_open_in_flight += 1
            return self._generation, True

        return self._generation, False

    def _on_success(self, generation: int) -> None:
        now = now_ms(self._clock)
        self._metrics["total_successes"] += 1
        self._metrics["last_success"] = _iso(now)

        if generation != self._generation:
            return

        self.consecutive_failures = 0
        self.consecutive_successes += 1
        if self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.CLOSED, now)

    def _on_failure(self, generation: int) -> None:
        now = now_ms(self._clock)
        self._metrics["total_failures"] += 1
        self._metrics["last_failure"] = _iso(now)
        get_metrics_collector().record_circuit_failure(self.name)

        if generation != self._generation:
            return

        self.consecutive_successes = 0
        self.consecutive_failures += 1

        if self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN, now)
        elif self._state == CircuitState.CLOSED and self.consecutive_failures >= self.threshold:
            self._transition(CircuitState.OPEN, now)
        else:
            log_stage(
                logger,
                Stage.CIRCUIT_BREAKER,
                "Circuit recorded failure",
                level="warning",
                breaker=self.name,
                failures=self.consecutive_failures,
                threshold=self.threshold,
            )

    def _transition(self, new_state: CircuitState, now: int) -> None:
        old_state = self._state
        self._state = new_state
        self._generation += 1
        self._half_open_in_flight = 0

        if new_state == CircuitState.OPEN:
            self.next_retry_at = now + self.timeout_ms
        elif new_state == CircuitState.CLOSED:
            self.next_retry_at = None
            self.consecutive_failures = 0
            self.consecutive_successes = 0

        self._state_changes.append({"from": old_state.value, "to": new_state.value, "at": _iso(now)})
        get_metrics_collector().set_circuit_state(self.name, new_state.value)

        log_stage(
            logger,
            Stage.CIRCUIT_BREAKER,
            f"Circuit changed state to {new_state.value}",
            level="error" if new_state == CircuitState.OPEN else "info",
            breaker=self.name,
            previous_state=old_state.value,
            next_retry_at=self.next_retry_at,
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_retry_after(self) -> int:
        """Whole seconds until the breaker admits a trial; 0 unless OPEN."""
        if self._state != CircuitState.OPEN or self.next_retry_at is None:
            return 0
        remaining_ms = self.next_retry_at - now_ms(self._clock)
        if remaining_ms <= 0:
            return 0
        return -(-remaining_ms // 1000)

    def reset(self) -> None:
        """Force the breaker back to CLOSED."""
        if self._state != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED, now_ms(self._clock))
        self.consecutive_failures = 0
        self.consecutive_successes = 0

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self._state.value,
            "consecutive_failures": self.consecutive_failures,
            "consecutive_successes": self.consecutive_successes,
            "next_retry_at": self.next_retry_at,
            "retry_after_seconds": self.get_retry_after(),
            "metrics": dict(self._metrics),
            "state_changes": list(self._state_changes),
        }


# ============================================================================
# Manager
# ============================================================================


class CircuitBreakerManager:
    """
    Registry of circuit breakers keyed by provider name.

    Constructed explicitly and passed to the components that need it.
    """

    def __init__(
        self,
        threshold: int | None = None,
        timeout_ms: int | None = None,
        half_open_requests: int | None = None,
        clock: Clock | None = None,
    ):
        cb_settings = get_settings().circuit_breaker
        self.threshold = threshold if threshold is not None else cb_settings.CB_FAILURE_THRESHOLD
        self.timeout_ms = timeout_ms if timeout_ms is not None else cb_settings.CB_RECOVERY_TIMEOUT_MS
        self.half_open_requests = (
            half_open_requests if half_open_requests is not None else cb_settings.CB_HALF_OPEN_REQUESTS
        )
        self._clock = clock or get_clock()
        self._breakers: dict[str, CircuitBreaker] = {}

    def get_breaker(self, name: str) -> CircuitBreaker:
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(
                name,
                threshold=self.threshold,
                timeout_ms=self.timeout_ms,
                half_open_requests=self.half_open_requests,
                clock=self._clock,
            )
        return self._breakers[name]

    def get_all_stats(self) -> dict[str, dict[str, Any]]:
        return {name: breaker.get_stats() for name, breaker in self._breakers.items()}

    def reset_all(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()
