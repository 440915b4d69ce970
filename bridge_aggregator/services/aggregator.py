"""
Quote Aggregator Service
========================

The Aggregator coordinates the complete lifecycle of a quote request.

THE REQUEST LIFECYCLE:
----------------------

┌─────────────────────────────────────────────────────────────────┐
│ STAGE 1: RATE LIMITING                                          │
│ - Sliding window per client identity                            │
│ - Store failures fail open                                      │
└─────────────────────────────────────────────────────────────────┘
                            ↓
┌─────────────────────────────────────────────────────────────────┐
│ STAGE 2: VALIDATION                                             │
│ - Chains, token, amount, injection patterns                     │
└─────────────────────────────────────────────────────────────────┘
                            ↓
┌─────────────────────────────────────────────────────────────────┐
│ STAGE 3: CACHE LOOKUP                                           │
│ - Hit: return cached quotes with metadata.cached = true         │
└─────────────────────────────────────────────────────────────────┘
                            ↓
┌─────────────────────────────────────────────────────────────────┐
│ STAGE 4: MARKET DATA                                            │
│ - One snapshot shared by every provider                         │
└─────────────────────────────────────────────────────────────────┘
                            ↓
┌─────────────────────────────────────────────────────────────────┐
│ STAGE 5: PROVIDER FAN-OUT                                       │
│ - One task per provider, wait for all under AGGREGATION_TIMEOUT │
│ - Pending tasks are cancelled and reported as timeouts          │
└─────────────────────────────────────────────────────────────────┘
                            ↓
┌─────────────────────────────────────────────────────────────────┐
│ STAGE 6: RANKING & CACHING                                      │
│ - Cheapest total first, then reliability, then name             │
│ - Only non-empty results are cached                             │
└─────────────────────────────────────────────────────────────────┘

A provider failure never fails the aggregate. Only validation, rate
limiting and an unreachable cache store abort a request.
"""

import asyncio
import time

from bridge_aggregator.core.clock import Clock, get_clock
from bridge_aggregator.core.config.constants import CACHE_NAMESPACE_QUOTES, ProviderErrorCode, Stage
from bridge_aggregator.core.config.settings import Settings, get_settings
from bridge_aggregator.core.exceptions import CacheError, ProviderError, RateLimitExceededError
from bridge_aggregator.core.logging.logger import get_logger, log_stage
from bridge_aggregator.core.resilience.rate_limiter import RateLimiter, RateLimitResult
from bridge_aggregator.infrastructure.cache.cache_manager import CacheManager
from bridge_aggregator.infrastructure.market_data.market_data import MarketDataSource
from bridge_aggregator.infrastructure.monitoring.metrics_collector import get_metrics_collector
from bridge_aggregator.quotes.models import (
    AggregateMetadata,
    AggregateResult,
    MarketSnapshot,
    ProviderErrorInfo,
    Quote,
    QuoteRequest,
)
from bridge_aggregator.quotes.providers.base_provider import BaseProvider, ProviderRegistry
from bridge_aggregator.quotes.validators import QuoteRequestValidator

logger = get_logger(__name__)


class Aggregator:
    """
    Central coordinator for quote aggregation.

    All collaborators are injected; the application lifespan builds them
    once and tests substitute fakes.

    Usage:
        aggregator = Aggregator(registry, cache, market_data, rate_limiter=limiter)
        result = await aggregator.get_quotes("ethereum", "polygon", "100", "usdc", identity)
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        cache_manager: CacheManager,
        market_data: MarketDataSource,
        rate_limiter: RateLimiter | None = None,
        settings: Settings | None = None,
        validator: QuoteRequestValidator | None = None,
        clock: Clock | None = None,
    ):
        settings = settings or get_settings()
        self._registry = registry
        self._cache = cache_manager
        self._market_data = market_data
        self._rate_limiter = rate_limiter if settings.rate_limit.RATE_LIMIT_ENABLED else None
        self._validator = validator or QuoteRequestValidator()
        self._clock = clock or get_clock()
        self._quote_ttl = settings.cache.CACHE_QUOTE_TTL
        self._timeout = settings.app.AGGREGATION_TIMEOUT

        logger.info(
            "Aggregator initialized",
            stage="0.1",
            providers=registry.get_available(),
            rate_limiting=self._rate_limiter is not None,
            aggregation_timeout=self._timeout,
        )

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    async def get_quotes(
        self,
        source_chain: str | None,
        destination_chain: str | None,
        amount,
        token: str | None = "usdc",
        client_identity: str = "anonymous",
    ) -> AggregateResult:
        """
        Aggregate quotes for one transfer.

        Raises:
            RateLimitExceededError: identity exhausted its window
            ValidationError: invalid parameters, with per-field details
            CacheError: the cache store could not be read
        """
        metrics = get_metrics_collector()
        start = time.perf_counter()

        # STAGE 1: rate gate
        rate_limit = await self._admit(client_identity)

        # STAGE 2: validation
        try:
            request = self._validator.validate(source_chain, destination_chain, amount, token)
        except Exception:
            metrics.record_quote_request("invalid")
            raise

        # STAGE 3: cache lookup
        providers = self._registry.get_all()
        cache_key = CacheManager.quote_cache_key(
            self._registry.get_available(),
            request.source_chain,
            request.destination_chain,
            request.amount_str,
            request.token,
        )
        try:
            cached = await self._cache.get(cache_key, namespace=CACHE_NAMESPACE_QUOTES)
        except CacheError:
            metrics.record_quote_request("cache_unavailable")
            raise

        if cached is not None:
            log_stage(logger, Stage.CACHE_LOOKUP, "Serving cached quotes", cache_key=cache_key)
            result = self._from_cache(cached, request, rate_limit)
            metrics.record_quote_request("cached")
            metrics.record_aggregation_duration(time.perf_counter() - start)
            return result

        # STAGE 4: market data
        snapshot = await self._market_data.get_market_snapshot()

        # STAGE 5: fan-out
        quotes, errors = await self._fan_out(providers, request, snapshot)

        # STAGE 6: ranking and caching
        quotes.sort(key=Quote.sort_key)
        result = AggregateResult(
            success=bool(quotes),
            quotes=quotes,
            errors=errors,
            metadata=AggregateMetadata(
                quotes_found=len(quotes),
                errors_count=len(errors),
                cached=False,
                request=request,
            ),
            rate_limit=rate_limit,
        )

        if quotes:
            await self._store(cache_key, result)

        log_stage(
            logger,
            Stage.RANKING,
            "Aggregation complete",
            quotes_found=len(quotes),
            errors_count=len(errors),
            best=quotes[0].provider_name if quotes else None,
        )
        metrics.record_quote_request("success" if quotes else "no_quotes")
        metrics.record_aggregation_duration(time.perf_counter() - start)
        return result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _admit(self, identity: str) -> RateLimitResult | None:
        if self._rate_limiter is None:
            return None

        decision = await self._rate_limiter.check(identity)
        if not decision.allowed:
            get_metrics_collector().record_quote_request("rate_limited")
            raise RateLimitExceededError(
                "Too many requests, please retry later",
                retry_after_seconds=decision.retry_after_seconds,
                limit=decision.limit,
                remaining=decision.remaining,
                reset_at=decision.reset_at,
            )
        return decision

    async def _fan_out(
        self,
        providers: list[BaseProvider],
        request: QuoteRequest,
        snapshot: MarketSnapshot,
    ) -> tuple[list[Quote], list[ProviderErrorInfo]]:
        if not providers:
            return [], []

        tasks = {
            asyncio.create_task(provider.quote(request, snapshot), name=f"quote:{provider.name}"): provider
            for provider in providers
        }
        log_stage(logger, Stage.PROVIDER_FANOUT, "Fan-out started", providers=len(tasks))

        try:
            done, pending = await asyncio.wait(tasks, timeout=self._timeout)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        for task in pending:
            task.cancel()
        if pending:
            # Let cancelled tasks unwind so breaker trial slots are released
            await asyncio.gather(*pending, return_exceptions=True)

        quotes: list[Quote] = []
        errors: list[ProviderErrorInfo] = []

        # Registration order keeps the error list stable
        for task, provider in tasks.items():
            if task in pending:
                log_stage(logger, Stage.PROVIDER_FANOUT, "Provider timed out", level="warning",
                          provider=provider.name, timeout=self._timeout)
                errors.append(ProviderErrorInfo(
                    provider_name=provider.name,
                    message=f"{provider.name} did not answer within {self._timeout}s",
                    code=ProviderErrorCode.TIMEOUT,
                    retry_after_seconds=self._retry_hint(provider),
                ))
                continue

            exc = task.exception()
            if exc is None:
                quotes.append(task.result())
            elif isinstance(exc, ProviderError):
                log_stage(logger, Stage.PROVIDER_FANOUT, "Provider failed", level="warning",
                          provider=provider.name, code=exc.code.value, error=exc.message)
                errors.append(ProviderErrorInfo(
                    provider_name=provider.name,
                    message=exc.message,
                    code=exc.code,
                    retry_after_seconds=exc.retry_after_seconds or self._retry_hint(provider),
                ))
            else:
                logger.error(
                    "Unexpected provider failure",
                    stage=Stage.PROVIDER_FANOUT.value,
                    provider=provider.name,
                    exc_info=exc,
                )
                errors.append(ProviderErrorInfo(
                    provider_name=provider.name,
                    message=f"{provider.name} failed unexpectedly",
                    code=ProviderErrorCode.UPSTREAM_ERROR,
                    retry_after_seconds=self._retry_hint(provider),
                ))

        return quotes, errors

    @staticmethod
    def _retry_hint(provider: BaseProvider) -> int | None:
        retry_after = provider.breaker.get_retry_after()
        return retry_after if retry_after > 0 else None

    async def _store(self, cache_key: str, result: AggregateResult) -> None:
        payload = {
            "quotes": [quote.model_dump(mode="json", exclude={"total_cost"}) for quote in result.quotes],
            "errors": [error.model_dump(mode="json") for error in result.errors],
        }
        try:
            await self._cache.set(cache_key, payload, ttl=self._quote_ttl)
        except CacheError as e:
            log_stage(logger, Stage.CACHE, "Failed to cache quotes", level="warning",
                      cache_key=cache_key, error=e.message)

    def _from_cache(
        self,
        cached: dict,
        request: QuoteRequest,
        rate_limit: RateLimitResult | None,
    ) -> AggregateResult:
        quotes = [Quote.model_validate(item) for item in cached.get("quotes", [])]
        errors = [ProviderErrorInfo.model_validate(item) for item in cached.get("errors", [])]
        return AggregateResult(
            success=bool(quotes),
            quotes=quotes,
            errors=errors,
            metadata=AggregateMetadata(
                quotes_found=len(quotes),
                errors_count=len(errors),
                cached=True,
                request=request,
            ),
            rate_limit=rate_limit,
        )
