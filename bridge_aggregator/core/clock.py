"""
Clock Abstraction

Every time-dependent component (circuit breaker, rate limiter, cache TTLs,
retry backoff) reads time through a Clock so tests can drive it manually.

Times are wall-clock seconds as floats; ``now_ms`` is provided for the
millisecond-based rate window and breaker timeout.
"""

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    """Time source used by the resilience layer."""

    def time(self) -> float:
        """Current time in seconds."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend the caller for ``seconds``."""
        ...


class SystemClock:
    """Real clock backed by ``time.time`` and ``asyncio.sleep``."""

    def time(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


def now_ms(clock: Clock) -> int:
    """Current clock time in integer milliseconds."""
    return int(clock.time() * 1000)


_default_clock = SystemClock()


def get_clock() -> Clock:
    """Process-wide default clock."""
    return _default_clock
