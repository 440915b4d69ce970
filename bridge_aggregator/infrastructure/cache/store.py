"""
Key-Value Store Abstraction

Both the quote cache and the rate limiter persist through a small async
key-value interface. Two implementations exist:

- ``InMemoryStore``: process-local, LRU-bounded, TTL-aware
- ``RedisClient`` (redis_client.py): shared across instances
"""

import asyncio
from collections import OrderedDict
from typing import Any, Protocol

from bridge_aggregator.core.clock import Clock, get_clock


class KeyValueStore(Protocol):
    """Async string key-value store with optional per-key TTL (seconds)."""

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        ...

    async def delete(self, *keys: str) -> int:
        ...

    async def ping(self) -> bool:
        ...

    async def health_check(self) -> dict[str, Any]:
        ...


class InMemoryStore:
    """
    In-process store used when Redis is disabled, and in tests.

    Entries expire by the injected clock. When full, the least recently
    used key is evicted.
    """

    def __init__(self, max_size: int = 10_000, clock: Clock | None = None):
        self.max_size = max_size
        self._clock = clock or get_clock()
        self._data: OrderedDict[str, tuple[str, float | None]] = OrderedDict()
        self._lock = asyncio.Lock()

    def _expired(self, expires_at: float | None) -> bool:
        return expires_at is not None and self._clock.time() >= expires_at

    async def get(self, key: str) -> str | None:
        async with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, expires_at = item
            if self._expired(expires_at):
                del self._data[key]
                return None
            self._data.move_to_end(key)
            return value

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        async with self._lock:
            expires_at = self._clock.time() + ttl if ttl else None
            if key in self._data:
                self._data.move_to_end(key)
            self._data[key] = (value, expires_at)
            while len(self._data) > self.max_size:
                self._data.popitem(last=False)
            return True

    async def delete(self, *keys: str) -> int:
        async with self._lock:
            removed = 0
            for key in keys:
                if self._data.pop(key, None) is not None:
                    removed += 1
            return removed

    async def ping(self) -> bool:
        return True

    async def health_check(self) -> dict[str, Any]:
        return {"status": "healthy", "backend": "memory", "keys": len(self._data)}

    def __len__(self) -> int:
        return len(self._data)
