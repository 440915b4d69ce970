#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

This module provides metrics collection with:
- Quote request counters by outcome
- Aggregation latency histogram
- Per-provider outcome counters and latency
- Cache hit/miss rates by tier and namespace
- Circuit breaker state gauge
- Rate limit rejections

Author: Senior Solution Architect
Date: 2025-12-05
"""


from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from bridge_aggregator.core.config.settings import get_settings
from bridge_aggregator.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

QUOTE_REQUESTS = Counter(
    'bridge_quote_requests_total',
    'Total number of aggregate quote requests',
    ['outcome']  # success, no_quotes, cached, rate_limited, invalid
)

AGGREGATION_DURATION = Histogram(
    'bridge_aggregation_duration_seconds',
    'End-to-end aggregation duration in seconds',
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
)

PROVIDER_REQUESTS = Counter(
    'bridge_provider_requests_total',
    'Provider quote outcomes',
    ['provider', 'status']  # success or a provider error code
)

PROVIDER_LATENCY = Histogram(
    'bridge_provider_latency_seconds',
    'Provider quote latency',
    ['provider'],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0)
)

CACHE_HITS = Counter(
    'bridge_cache_hits_total',
    'Total cache hits',
    ['tier', 'namespace']
)

CACHE_MISSES = Counter(
    'bridge_cache_misses_total',
    'Total cache misses',
    ['namespace']
)

CIRCUIT_BREAKER_STATE = Gauge(
    'bridge_circuit_breaker_state',
    'Circuit breaker state (0=closed, 1=half_open, 2=open)',
    ['provider']
)

CIRCUIT_BREAKER_FAILURES = Counter(
    'bridge_circuit_breaker_failures_total',
    'Total circuit breaker recorded failures',
    ['provider']
)

RATE_LIMIT_EXCEEDED = Counter(
    'bridge_rate_limit_exceeded_total',
    'Total rate limit rejections'
)

RATE_LIMIT_FAIL_OPEN = Counter(
    'bridge_rate_limit_fail_open_total',
    'Rate limit checks admitted because the store was unreachable'
)

MARKET_DATA_REFRESH = Counter(
    'bridge_market_data_refresh_total',
    'Market snapshot refreshes by origin',
    ['origin']  # live, stale, default
)

ERRORS = Counter(
    'bridge_errors_total',
    'Total errors by type and component',
    ['error_type', 'component']
)

APP_INFO = Info(
    'bridge_app',
    'Application information'
)


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_quote_request("success")
        metrics.record_provider_outcome("Across Protocol", "success", 0.42)
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self):
        self.settings = get_settings()

        APP_INFO.info({
            'version': self.settings.app.APP_VERSION,
            'environment': self.settings.app.ENVIRONMENT,
            'app_name': self.settings.app.APP_NAME
        })

        logger.info("Metrics collector initialized", stage="M.0")

    # =========================================================================
    # Request Metrics
    # =========================================================================

    def record_quote_request(self, outcome: str) -> None:
        """Record an aggregate request outcome."""
        QUOTE_REQUESTS.labels(outcome=outcome).inc()

    def record_aggregation_duration(self, duration_seconds: float) -> None:
        AGGREGATION_DURATION.observe(duration_seconds)

    # =========================================================================
    # Provider Metrics
    # =========================================================================

    def record_provider_outcome(
        self, provider: str, status: str, duration_seconds: float | None = None
    ) -> None:
        """Record one provider outcome and, when measured, its latency."""
        PROVIDER_REQUESTS.labels(provider=provider, status=status).inc()
        if duration_seconds is not None:
            PROVIDER_LATENCY.labels(provider=provider).observe(duration_seconds)

    # =========================================================================
    # Cache Metrics
    # =========================================================================

    def record_cache_hit(self, tier: str, namespace: str = "quotes") -> None:
        CACHE_HITS.labels(tier=tier, namespace=namespace).inc()

    def record_cache_miss(self, namespace: str = "quotes") -> None:
        CACHE_MISSES.labels(namespace=namespace).inc()

    # =========================================================================
    # Circuit Breaker Metrics
    # =========================================================================

    def set_circuit_state(self, provider: str, state: str) -> None:
        """Set circuit breaker state."""
        state_value = {"closed": 0, "half_open": 1, "open": 2}.get(state, 0)
        CIRCUIT_BREAKER_STATE.labels(provider=provider).set(state_value)

    def record_circuit_failure(self, provider: str) -> None:
        CIRCUIT_BREAKER_FAILURES.labels(provider=provider).inc()

    # =========================================================================
    # Rate Limiting Metrics
    # =========================================================================

    def record_rate_limit_exceeded(self) -> None:
        RATE_LIMIT_EXCEEDED.inc()

    def record_rate_limit_fail_open(self) -> None:
        RATE_LIMIT_FAIL_OPEN.inc()

    # =========================================================================
    # Market Data Metrics
    # =========================================================================

    def record_market_refresh(self, origin: str) -> None:
        MARKET_DATA_REFRESH.labels(origin=origin).inc()

    # =========================================================================
    # Error Metrics
    # =========================================================================

    def record_error(self, error_type: str, component: str) -> None:
        ERRORS.labels(error_type=error_type, component=component).inc()

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """
        Get Prometheus metrics output.

        Returns:
            bytes: Prometheus text format metrics
        """
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        """Get Prometheus content type."""
        return CONTENT_TYPE_LATEST


# Global metrics collector
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
