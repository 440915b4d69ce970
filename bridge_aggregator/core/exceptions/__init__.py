"""
Exception Module

Structured exception hierarchy for the bridge quote aggregator.

Module Structure:
-----------------
- **base.py**: BridgeAggregatorError base class + ConfigurationError
- **cache.py**: Key-value store and cache exceptions
- **circuit_breaker.py**: Circuit breaker exceptions
- **provider.py**: Bridge provider and market data exceptions
- **rate_limit.py**: Rate limiting exceptions
- **validation.py**: Request validation exceptions

Usage:
------
```python
from bridge_aggregator.core.exceptions import ProviderTimeoutError, ValidationError
from bridge_aggregator.core.exceptions.provider import ProviderError
```

Author: System Architect
Date: 2025-12-08
"""

# Base exception
from bridge_aggregator.core.exceptions.base import BridgeAggregatorError, ConfigurationError

# Cache exceptions
from bridge_aggregator.core.exceptions.cache import CacheConnectionError, CacheError, CacheKeyError

# Circuit breaker exceptions
from bridge_aggregator.core.exceptions.circuit_breaker import (
    CircuitBreakerError,
    CircuitBreakerHalfOpenError,
    CircuitBreakerOpenError,
)

# Provider exceptions
from bridge_aggregator.core.exceptions.provider import (
    MarketDataUnavailableError,
    ProviderBreakerOpenError,
    ProviderBreakerTestingError,
    ProviderError,
    ProviderHTTPStatusError,
    ProviderMalformedResponseError,
    ProviderTimeoutError,
    ProviderUnsupportedRouteError,
    ProviderUpstreamError,
)

# Rate limit exceptions
from bridge_aggregator.core.exceptions.rate_limit import RateLimitError, RateLimitExceededError

# Validation exceptions
from bridge_aggregator.core.exceptions.validation import InvalidInputError, ValidationError

__all__ = [
    # Base
    "BridgeAggregatorError",
    "ConfigurationError",
    # Cache
    "CacheError",
    "CacheConnectionError",
    "CacheKeyError",
    # Circuit breaker
    "CircuitBreakerError",
    "CircuitBreakerOpenError",
    "CircuitBreakerHalfOpenError",
    # Provider
    "ProviderError",
    "ProviderUnsupportedRouteError",
    "ProviderUpstreamError",
    "ProviderHTTPStatusError",
    "ProviderTimeoutError",
    "ProviderMalformedResponseError",
    "ProviderBreakerOpenError",
    "ProviderBreakerTestingError",
    "MarketDataUnavailableError",
    # Rate limit
    "RateLimitError",
    "RateLimitExceededError",
    # Validation
    "ValidationError",
    "InvalidInputError",
]
