"""
Two-Tier TTL Cache for Aggregate Quotes and Market Snapshots

Architecture:
    CacheManager (public API)
        ├── L1Storage (in-process LRU of serialized envelopes)
        └── KeyValueStore as L2 (Redis or InMemoryStore)

Every value is wrapped in a ``CacheEntry`` envelope that records when it
was stored and for how long it is valid. Visibility is decided by the
injected clock, so an entry the backing store still holds physically is
treated as absent once ``stored_at + ttl_seconds`` has passed.

Keys are content-addressed: an MD5 fingerprint of the normalized request
and the provider set, so identical requests share one entry.

Author: Refactored for clarity and maintainability
Date: 2025-12-13
"""

import asyncio
import hashlib
from collections import OrderedDict
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

import orjson

from bridge_aggregator.core.clock import Clock, get_clock
from bridge_aggregator.core.config.constants import (
    CACHE_NAMESPACE_QUOTES,
    REDIS_KEY_CACHE,
    CacheTier,
    Stage,
)
from bridge_aggregator.core.config.settings import get_settings
from bridge_aggregator.core.exceptions import CacheKeyError
from bridge_aggregator.core.logging.logger import get_logger, log_stage
from bridge_aggregator.infrastructure.cache.store import KeyValueStore
from bridge_aggregator.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Stored envelope around a cached value."""

    key: str
    value: Any
    stored_at: float
    ttl_seconds: int

    def is_expired(self, now: float) -> bool:
        return now >= self.stored_at + self.ttl_seconds

    def encode(self) -> str:
        return orjson.dumps(asdict(self)).decode("utf-8")

    @classmethod
    def decode(cls, raw: str) -> "CacheEntry":
        try:
            data = orjson.loads(raw)
            return cls(
                key=data["key"],
                value=data["value"],
                stored_at=float(data["stored_at"]),
                ttl_seconds=int(data["ttl_seconds"]),
            )
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise CacheKeyError(message=f"Corrupt cache entry: {e}") from e


class L1Storage:
    """
    In-memory LRU cache in front of the key-value store.

    Thread-safe via asyncio.Lock; evicts the least recently used entry
    when over capacity.
    """

    def __init__(self, max_size: int):
        self._max_size = max_size
        self._cache: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> CacheEntry | None:
        async with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
                return self._cache[key]
            return None

    async def set(self, key: str, entry: CacheEntry) -> None:
        async with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
            self._cache[key] = entry
            while len(self._cache) > self._max_size:
                self._cache.popitem(last=False)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._cache.pop(key, None) is not None

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()

    def get_size(self) -> int:
        return len(self._cache)

    def get_max_size(self) -> int:
        return self._max_size


class CacheManager:
    """
    TTL cache with an L1 LRU tier over a KeyValueStore.

    Usage:
        cache = CacheManager(store)
        key = CacheManager.quote_cache_key(["Across Protocol"], "ethereum", "polygon", "100.00", "usdc")
        await cache.set(key, payload, ttl=300)
        payload = await cache.get(key)

    Read failures of the backing store propagate as CacheError; callers
    decide whether that aborts the request.
    """

    def __init__(
        self,
        store: KeyValueStore,
        l1_max_size: int | None = None,
        default_ttl: int | None = None,
        enabled: bool | None = None,
        clock: Clock | None = None,
    ):
        settings = get_settings()
        self._store = store
        self._l1 = L1Storage(max_size=l1_max_size or settings.cache.CACHE_L1_MAX_SIZE)
        self._default_ttl = default_ttl or settings.cache.CACHE_QUOTE_TTL
        self._enabled = settings.cache.ENABLE_CACHING if enabled is None else enabled
        self._clock = clock or get_clock()

        self._hits = {CacheTier.L1.value: 0, CacheTier.L2.value: 0}
        self._misses = 0
        self._expired = 0

        logger.info(
            "Cache manager initialized",
            stage="C.0",
            l1_max_size=self._l1.get_max_size(),
            default_ttl=self._default_ttl,
            caching_enabled=self._enabled,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    # -------------------------------------------------------------------------
    # Core Cache Operations
    # -------------------------------------------------------------------------

    async def get(self, key: str, namespace: str = CACHE_NAMESPACE_QUOTES) -> Any | None:
        """
        Return the cached value, or None when absent or expired.

        Lookup order is L1 then the backing store; an L2 hit warms L1.
        """
        if not self._enabled:
            return None

        metrics = get_metrics_collector()
        now = self._clock.time()

        entry = await self._l1.get(key)
        tier = CacheTier.L1
        if entry is None:
            raw = await self._store.get(key)
            if raw is not None:
                try:
                    entry = CacheEntry.decode(raw)
                except CacheKeyError as e:
                    log_stage(logger, Stage.CACHE, "Discarding corrupt cache entry", level="warning",
                              cache_key=key, error=e.message)
            tier = CacheTier.L2
            if entry is not None and not entry.is_expired(now):
                await self._l1.set(key, entry)

        if entry is None:
            self._misses += 1
            metrics.record_cache_miss(namespace)
            log_stage(logger, Stage.CACHE, "Cache miss", level="debug", cache_key=key)
            return None

        if entry.is_expired(now):
            await self._l1.delete(key)
            self._expired += 1
            self._misses += 1
            metrics.record_cache_miss(namespace)
            log_stage(logger, Stage.CACHE, "Cache entry expired", level="debug", cache_key=key)
            return None

        self._hits[tier.value] += 1
        metrics.record_cache_hit(tier.value, namespace)
        log_stage(logger, Stage.CACHE, "Cache hit", level="debug", cache_key=key, tier=tier.value)
        return entry.value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """
        Store ``value`` under ``key`` for ``ttl`` seconds.

        L1 is populated first so the local instance benefits even when the
        backing store write fails; that failure is re-raised.
        """
        if not self._enabled:
            return

        entry = CacheEntry(
            key=key,
            value=value,
            stored_at=self._clock.time(),
            ttl_seconds=ttl or self._default_ttl,
        )
        await self._l1.set(key, entry)
        await self._store.set(key, entry.encode(), ttl=entry.ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._l1.delete(key)
        await self._store.delete(key)

    async def clear_l1(self) -> None:
        await self._l1.clear()

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    @staticmethod
    def generate_cache_key(prefix: str, *args: Any) -> str:
        """
        Generate consistent cache key from prefix and arguments.

        Uses MD5 for fast hashing; same input always yields the same key.
        """
        data = ":".join(str(arg) for arg in args)
        hash_value = hashlib.md5(data.encode()).hexdigest()
        return f"{REDIS_KEY_CACHE}{prefix}:{hash_value}"

    @classmethod
    def quote_cache_key(
        cls,
        provider_names: list[str],
        source_chain: str,
        destination_chain: str,
        amount: str,
        token: str,
    ) -> str:
        """Fingerprint of a normalized quote request and the participating providers."""
        providers = ",".join(sorted(provider_names))
        return cls.generate_cache_key(
            CACHE_NAMESPACE_QUOTES, providers, source_chain, destination_chain, amount, token
        )

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        total_hits = sum(self._hits.values())
        lookups = total_hits + self._misses
        return {
            "hits": dict(self._hits),
            "misses": self._misses,
            "expired": self._expired,
            "hit_rate": round(total_hits / lookups * 100, 2) if lookups else 0.0,
            "l1_size": self._l1.get_size(),
            "l1_max_size": self._l1.get_max_size(),
            "caching_enabled": self._enabled,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def health_check(self) -> dict[str, Any]:
        """Health of both tiers; the store failing marks the cache degraded."""
        health: dict[str, Any] = {
            "status": "healthy",
            "caching_enabled": self._enabled,
            "l1": {"status": "healthy", "size": self._l1.get_size(), "max_size": self._l1.get_max_size()},
        }
        l2_health = await self._store.health_check()
        health["l2"] = l2_health
        if l2_health.get("status") != "healthy":
            health["status"] = "degraded"
        return health
