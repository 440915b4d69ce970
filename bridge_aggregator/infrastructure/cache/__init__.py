from bridge_aggregator.infrastructure.cache.cache_manager import CacheEntry, CacheManager
from bridge_aggregator.infrastructure.cache.redis_client import RedisClient, close_redis, init_redis
from bridge_aggregator.infrastructure.cache.store import InMemoryStore, KeyValueStore

__all__ = [
    "CacheEntry",
    "CacheManager",
    "RedisClient",
    "init_redis",
    "close_redis",
    "InMemoryStore",
    "KeyValueStore",
]
