"""
Cache Test Factory

Creates key-value stores and cache managers for testing.
"""

from bridge_aggregator.core.exceptions import CacheConnectionError
from bridge_aggregator.infrastructure.cache.cache_manager import CacheManager
from bridge_aggregator.infrastructure.cache.store import InMemoryStore


class FailingStore:
    """Key-value store whose every operation fails like an unreachable Redis."""

    def __init__(self):
        self.calls = 0

    def _fail(self):
        self.calls += 1
        raise CacheConnectionError("Redis connection refused")

    async def get(self, key):
        self._fail()

    async def set(self, key, value, ttl=None):
        self._fail()

    async def delete(self, *keys):
        self._fail()

    async def ping(self):
        self._fail()

    async def health_check(self):
        return {"status": "unhealthy", "backend": "redis", "error": "connection refused"}


class CacheTestFactory:
    """Factory for creating cache test objects."""

    @staticmethod
    def memory_store(clock=None, max_size: int = 10_000) -> InMemoryStore:
        return InMemoryStore(max_size=max_size, clock=clock)

    @staticmethod
    def cache_manager(store=None, clock=None, ttl: int = 300, enabled: bool = True) -> CacheManager:
        return CacheManager(
            store if store is not None else InMemoryStore(clock=clock),
            l1_max_size=100,
            default_ttl=ttl,
            enabled=enabled,
            clock=clock,
        )
