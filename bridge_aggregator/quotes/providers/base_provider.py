#!/usr/bin/env python3
"""
Base Provider Abstract Class

This module defines the abstract base class for all bridge providers.
Concrete implementations (Stargate, Across, Hop) inherit from this class
and only describe how to build the upstream request and how to read the
fee out of the response.

Every upstream call runs as:

    breaker.execute(fetch_with_retry(...) + normalization)

so a malformed payload counts against the breaker exactly like a network
failure, while unsupported routes are rejected before the breaker is
consulted.

Author: Senior Solution Architect
Date: 2025-12-05
"""

import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from bridge_aggregator.core.config.constants import FEE_PRECISION, MarketOrigin, SourceTag, Stage
from bridge_aggregator.core.config.settings import get_settings
from bridge_aggregator.core.exceptions import (
    CircuitBreakerHalfOpenError,
    CircuitBreakerOpenError,
    ProviderBreakerOpenError,
    ProviderBreakerTestingError,
    ProviderError,
    ProviderMalformedResponseError,
    ProviderUnsupportedRouteError,
)
from bridge_aggregator.core.logging.logger import get_logger, log_stage
from bridge_aggregator.core.resilience.circuit_breaker import CircuitBreaker
from bridge_aggregator.core.resilience.retry import FetchRequest, RetryingFetcher
from bridge_aggregator.infrastructure.market_data.market_data import estimate_gas_usd
from bridge_aggregator.infrastructure.monitoring.metrics_collector import get_metrics_collector
from bridge_aggregator.quotes.models import MarketSnapshot, Quote, QuoteRequest

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProviderConfig:
    """
    Static description of a bridge provider.

    Attributes:
        name: Display name, also the breaker and registry key
        url: Quote endpoint
        supported_chains: Chains the bridge can send from and to
        supported_tokens: Token symbols the bridge carries
        reliability: Reliability score in percent
        affiliate_url: Referral link returned with each quote
        gas_ratio: Gas estimate as a fraction of the fee
        estimated_time: Human readable transfer time
        fee_in_eth: Fee is quoted in native gas token and converted at the snapshot ETH price
    """
    name: str
    url: str
    supported_chains: tuple[str, ...]
    supported_tokens: tuple[str, ...]
    reliability: float
    affiliate_url: str
    gas_ratio: float
    estimated_time: str
    fee_in_eth: bool = False


def parse_amount(value: Any) -> float | None:
    """Parse a numeric upstream value; None when absent, non-numeric or not finite."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class BaseProvider(ABC):
    """
    Abstract base class for bridge providers.

    STAGE-5: Provider quote with resilience

    Subclasses must implement:
    - build_request(): upstream request for a quote
    - extract_fee(): USD fee from the payload, or None when unusable

    Usage:
        class AcrossProvider(BaseProvider):
            def build_request(self, request): ...
            def extract_fee(self, payload, request, snapshot): ...
    """

    def __init__(
        self,
        config: ProviderConfig,
        fetcher: RetryingFetcher,
        breaker: CircuitBreaker,
        min_fee_rate: float | None = None,
    ):
        self.config = config
        self.name = config.name
        self._fetcher = fetcher
        self._breaker = breaker
        self._min_fee_rate = (
            min_fee_rate if min_fee_rate is not None else get_settings().fees.MIN_FEE_RATE
        )

        logger.info("Provider initialized", stage="5.0", provider=self.name, url=config.url)

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def supports(self, request: QuoteRequest) -> bool:
        return (
            request.source_chain in self.config.supported_chains
            and request.destination_chain in self.config.supported_chains
            and request.token in self.config.supported_tokens
        )

    async def quote(self, request: QuoteRequest, snapshot: MarketSnapshot) -> Quote:
        """
        Fetch and normalize a quote.

        Raises:
            ProviderUnsupportedRouteError: route not served (no network call)
            ProviderBreakerOpenError / ProviderBreakerTestingError: breaker rejected the call
            ProviderError: upstream failure after retries, or malformed payload
        """
        if not self.supports(request):
            raise ProviderUnsupportedRouteError(
                f"{self.name} does not support {request.token.upper()} "
                f"{request.source_chain} -> {request.destination_chain}",
                provider_name=self.name,
            )

        start = time.perf_counter()
        try:
            quote = await self._breaker.execute(lambda: self._fetch_and_normalize(request, snapshot))
        except CircuitBreakerOpenError as e:
            raise ProviderBreakerOpenError(
                f"{self.name} circuit breaker is open",
                provider_name=self.name,
                retry_after_seconds=e.retry_after_seconds,
            ) from e
        except CircuitBreakerHalfOpenError as e:
            raise ProviderBreakerTestingError(
                f"{self.name} circuit breaker is testing, please retry",
                provider_name=self.name,
                retry_after_seconds=e.retry_after_seconds,
            ) from e
        except ProviderError as e:
            get_metrics_collector().record_provider_outcome(
                self.name, e.code.value, time.perf_counter() - start
            )
            raise

        get_metrics_collector().record_provider_outcome(self.name, "success", time.perf_counter() - start)
        return quote

    async def _fetch_and_normalize(self, request: QuoteRequest, snapshot: MarketSnapshot) -> Quote:
        payload = await self._fetcher.fetch_with_retry(self.build_request(request))
        if not isinstance(payload, dict):
            raise ProviderMalformedResponseError(
                f"{self.name} returned a non-object payload", provider_name=self.name
            )
        fee = self.extract_fee(payload, request, snapshot)
        return self.build_quote(request, snapshot, fee)

    def build_quote(self, request: QuoteRequest, snapshot: MarketSnapshot, fee: float | None) -> Quote:
        """Apply fee floors and provenance tagging to a raw USD fee."""
        if fee is None or not math.isfinite(fee) or fee < 0:
            floored_fee = float(request.amount) * self._min_fee_rate
            gas = estimate_gas_usd(request.source_chain, snapshot)
            log_stage(
                logger,
                Stage.PROVIDER_FANOUT,
                "Unusable fee value, applying floors",
                level="warning",
                provider=self.name,
                raw_fee=fee,
            )
            fee, tag = floored_fee, SourceTag.FALLBACK
        else:
            gas = fee * self.config.gas_ratio
            # Token-denominated fees do not depend on the ETH price
            if not self.config.fee_in_eth:
                tag = SourceTag.LIVE
            elif snapshot.origin == MarketOrigin.DEFAULT:
                tag = SourceTag.FALLBACK
            elif snapshot.origin == MarketOrigin.STALE:
                tag = SourceTag.CACHED
            else:
                tag = SourceTag.LIVE

        return Quote(
            provider_name=self.name,
            fee=round(fee, FEE_PRECISION),
            gas_estimate=round(gas, FEE_PRECISION),
            estimated_time=self.estimated_time_for(request),
            reliability_score=self.config.reliability,
            affiliate_url=self.config.affiliate_url,
            source_tag=tag,
        )

    def estimated_time_for(self, request: QuoteRequest) -> str:
        return self.config.estimated_time

    def require(self, payload: dict[str, Any], field: str) -> Any:
        """Return a structurally required field or raise a malformed-response error."""
        if field not in payload or payload[field] is None:
            raise ProviderMalformedResponseError(
                f"{self.name} response is missing '{field}'",
                provider_name=self.name,
            )
        return payload[field]

    @abstractmethod
    def build_request(self, request: QuoteRequest) -> FetchRequest:
        """Upstream request for ``request``."""

    @abstractmethod
    def extract_fee(
        self, payload: dict[str, Any], request: QuoteRequest, snapshot: MarketSnapshot
    ) -> float | None:
        """
        USD fee from ``payload``.

        Raise ProviderMalformedResponseError when a structurally required
        field is missing; return None when the fee value itself is unusable.
        """

    def get_stats(self) -> dict[str, Any]:
        return {
            "provider": self.name,
            "circuit_breaker": self._breaker.get_stats(),
            "supported_chains": list(self.config.supported_chains),
            "supported_tokens": list(self.config.supported_tokens),
        }


class ProviderRegistry:
    """
    Ordered collection of provider adapters.

    The registered names participate in the quote cache key, so changing
    the provider set never serves results computed for another set.
    """

    def __init__(self):
        self._providers: dict[str, BaseProvider] = {}

    def register(self, provider: BaseProvider) -> None:
        self._providers[provider.name] = provider
        logger.info(f"Registered provider: {provider.name}", stage="5.F.1")

    def get(self, name: str) -> BaseProvider:
        if name not in self._providers:
            raise ValueError(f"Provider not registered: {name}")
        return self._providers[name]

    def get_all(self) -> list[BaseProvider]:
        return list(self._providers.values())

    def get_available(self) -> list[str]:
        return list(self._providers.keys())

    def __len__(self) -> int:
        return len(self._providers)
