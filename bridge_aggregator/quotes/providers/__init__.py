"""
Bridge Providers Module

Adapters that turn each bridge's quote API into a normalized Quote.

Available providers:
- Stargate Finance
- Across Protocol
- Hop Protocol
"""

import httpx

from bridge_aggregator.core.clock import Clock
from bridge_aggregator.core.config.settings import Settings, get_settings
from bridge_aggregator.core.resilience.circuit_breaker import CircuitBreakerManager
from bridge_aggregator.core.resilience.retry import RetryingFetcher
from bridge_aggregator.quotes.providers.across_provider import ACROSS_CONFIG, AcrossProvider
from bridge_aggregator.quotes.providers.base_provider import BaseProvider, ProviderConfig, ProviderRegistry
from bridge_aggregator.quotes.providers.hop_provider import HOP_CONFIG, HopProvider
from bridge_aggregator.quotes.providers.stargate_provider import STARGATE_CONFIG, StargateProvider

DEFAULT_PROVIDERS: tuple[tuple[type[BaseProvider], ProviderConfig], ...] = (
    (StargateProvider, STARGATE_CONFIG),
    (AcrossProvider, ACROSS_CONFIG),
    (HopProvider, HOP_CONFIG),
)


def create_provider_registry(
    client: httpx.AsyncClient,
    breakers: CircuitBreakerManager,
    settings: Settings | None = None,
    clock: Clock | None = None,
) -> ProviderRegistry:
    """Build a registry holding every default bridge, each with its own breaker and fetcher."""
    settings = settings or get_settings()
    registry = ProviderRegistry()
    for provider_class, config in DEFAULT_PROVIDERS:
        fetcher = RetryingFetcher(
            client,
            config.name,
            max_retries=settings.retry.RETRY_MAX_ATTEMPTS,
            base_timeout=settings.retry.RETRY_BASE_TIMEOUT,
            timeout_increment=settings.retry.RETRY_TIMEOUT_INCREMENT,
            base_delay=settings.retry.RETRY_BASE_DELAY,
            clock=clock,
        )
        registry.register(
            provider_class(
                config,
                fetcher=fetcher,
                breaker=breakers.get_breaker(config.name),
                min_fee_rate=settings.fees.MIN_FEE_RATE,
            )
        )
    return registry


__all__ = [
    "BaseProvider",
    "ProviderConfig",
    "ProviderRegistry",
    "StargateProvider",
    "AcrossProvider",
    "HopProvider",
    "DEFAULT_PROVIDERS",
    "create_provider_registry",
]
