"""
Rate Limiter

Sliding-window admission control per client identity.

Algorithm:
1. Load the identity's timestamps (ms) from the key-value store
2. Drop timestamps older than ``now - window``
3. If the window is full, deny; the retry hint is when the oldest entry leaves
4. Otherwise record ``now`` and admit

The window is persisted as an orjson array under ``ratelimit:{identity}``
with a TTL equal to the window. Read-modify-write for one identity is
serialized with a per-identity asyncio.Lock; different identities never
wait on each other.

Any store failure fails open: the request is admitted and ``remaining`` is
reported as -1.
"""

import asyncio
import hashlib
import ipaddress
import math
import weakref
from dataclasses import dataclass

import orjson

from bridge_aggregator.core.clock import Clock, get_clock, now_ms
from bridge_aggregator.core.config.constants import REDIS_KEY_RATE_LIMIT, Stage
from bridge_aggregator.core.config.settings import get_settings
from bridge_aggregator.core.logging.logger import get_logger, log_stage
from bridge_aggregator.infrastructure.cache.store import KeyValueStore
from bridge_aggregator.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)

FAIL_OPEN_REMAINING = -1


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one admission check."""

    allowed: bool
    remaining: int
    retry_after_seconds: int
    reset_at: int  # epoch milliseconds
    limit: int

    @property
    def failed_open(self) -> bool:
        return self.remaining == FAIL_OPEN_REMAINING


def client_identity(address: str | None) -> str:
    """
    Derive a rate-limit identity from a client address.

    The last IPv4 octet (or the trailing IPv6 groups) is masked and a short
    MD5 digest of the full address is appended, so the raw address is never
    persisted while distinct clients keep distinct windows.
    """
    if not address:
        return "anonymous"

    digest = hashlib.md5(address.encode()).hexdigest()[:12]
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return f"client:{digest}"

    if ip.version == 4:
        prefix = ".".join(address.split(".")[:3]) + ".xxx"
    else:
        prefix = ":".join(ip.exploded.split(":")[:4]) + ":xxxx"
    return f"{prefix}:{digest}"


class RateLimiter:
    """
    Sliding-window rate limiter.

    Usage:
        limiter = RateLimiter(store, window_ms=60_000, max_requests=60)
        result = await limiter.check(client_identity(request.client.host))
        if not result.allowed:
            ...
    """

    def __init__(
        self,
        store: KeyValueStore,
        window_ms: int | None = None,
        max_requests: int | None = None,
        key_prefix: str = REDIS_KEY_RATE_LIMIT,
        clock: Clock | None = None,
    ):
        rl_settings = get_settings().rate_limit
        self._store = store
        self.window_ms = window_ms if window_ms is not None else rl_settings.RATE_LIMIT_WINDOW_MS
        self.max_requests = max_requests if max_requests is not None else rl_settings.RATE_LIMIT_MAX_REQUESTS
        self.key_prefix = key_prefix
        self._clock = clock or get_clock()
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

        if self.window_ms < 1 or self.max_requests < 1:
            raise ValueError("window_ms and max_requests must be positive")

    def _key(self, identity: str) -> str:
        return f"{self.key_prefix}{identity}"

    def _lock_for(self, identity: str) -> asyncio.Lock:
        lock = self._locks.get(identity)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[identity] = lock
        return lock

    async def check(self, identity: str) -> RateLimitResult:
        """Admit or deny one request for ``identity``."""
        lock = self._lock_for(identity)
        async with lock:
            now = now_ms(self._clock)
            try:
                return await self._check_locked(identity, now)
            except Exception as e:
                log_stage(
                    logger,
                    Stage.RATE_LIMITING,
                    "Rate limit store unavailable, failing open",
                    level="warning",
                    identity=identity,
                    error=str(e),
                )
                get_metrics_collector().record_rate_limit_fail_open()
                return RateLimitResult(
                    allowed=True,
                    remaining=FAIL_OPEN_REMAINING,
                    retry_after_seconds=0,
                    reset_at=now + self.window_ms,
                    limit=self.max_requests,
                )

    async def _check_locked(self, identity: str, now: int) -> RateLimitResult:
        key = self._key(identity)
        raw = await self._store.get(key)
        timestamps: list[int] = orjson.loads(raw) if raw else []

        window_start = now - self.window_ms
        timestamps = sorted(t for t in timestamps if t > window_start)

        if len(timestamps) >= self.max_requests:
            oldest = timestamps[0]
            reset_at = oldest + self.window_ms
            retry_after = max(1, math.ceil((reset_at - now) / 1000))
            log_stage(
                logger,
                Stage.RATE_LIMITING,
                "Rate limit exceeded",
                level="warning",
                identity=identity,
                retry_after_seconds=retry_after,
            )
            get_metrics_collector().record_rate_limit_exceeded()
            return RateLimitResult(
                allowed=False,
                remaining=0,
                retry_after_seconds=retry_after,
                reset_at=reset_at,
                limit=self.max_requests,
            )

        timestamps.append(now)
        await self._store.set(
            key,
            orjson.dumps(timestamps).decode("utf-8"),
            ttl=math.ceil(self.window_ms / 1000),
        )
        return RateLimitResult(
            allowed=True,
            remaining=self.max_requests - len(timestamps),
            retry_after_seconds=0,
            reset_at=now + self.window_ms,
            limit=self.max_requests,
        )

    async def reset(self, identity: str) -> None:
        """Forget the window for ``identity``."""
        async with self._lock_for(identity):
            await self._store.delete(self._key(identity))
        log_stage(logger, Stage.RATE_LIMITING, "Rate limit window reset", identity=identity)
