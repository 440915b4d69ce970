"""
Resilience Module

Failure-isolation primitives shared by the provider adapters and the
aggregator:

- CircuitBreaker / CircuitBreakerManager: per-provider fail-fast
- RetryingFetcher: bounded retries with backoff and growing timeouts
- RateLimiter: sliding-window client admission control
"""

from bridge_aggregator.core.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerManager
from bridge_aggregator.core.resilience.rate_limiter import RateLimiter, RateLimitResult, client_identity
from bridge_aggregator.core.resilience.retry import FetchRequest, RetryingFetcher, create_http_client

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerManager",
    "RateLimiter",
    "RateLimitResult",
    "client_identity",
    "FetchRequest",
    "RetryingFetcher",
    "create_http_client",
]
