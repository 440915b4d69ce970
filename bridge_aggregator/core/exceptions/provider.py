"""
Bridge Provider Exceptions

All exceptions raised by bridge provider adapters (Stargate, Across, Hop).
Each subclass carries a machine-readable ``code`` that ends up in the
per-provider error entry of an aggregate response.

Author: System Architect
Date: 2025-12-08
"""

from bridge_aggregator.core.config.constants import ProviderErrorCode
from bridge_aggregator.core.exceptions.base import BridgeAggregatorError


class ProviderError(BridgeAggregatorError):
    """Base exception for bridge provider errors."""

    code: ProviderErrorCode = ProviderErrorCode.UPSTREAM_ERROR

    def __init__(
        self,
        message: str,
        provider_name: str,
        retry_after_seconds: int | None = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.provider_name = provider_name
        self.retry_after_seconds = retry_after_seconds
        self.details.update({"provider": provider_name, "code": self.code.value})


class ProviderUnsupportedRouteError(ProviderError):
    """
    Raised when the provider does not serve the requested chain pair or token.

    Detected locally before any network call; never retried and never
    counted against the provider's circuit breaker.
    """

    code = ProviderErrorCode.UNSUPPORTED_ROUTE


class ProviderUpstreamError(ProviderError):
    """
    Raised when the upstream API keeps failing after all retries.

    Common causes:
    - Provider API is down
    - Network connectivity issues
    - Rate limiting by provider
    """

    code = ProviderErrorCode.UPSTREAM_ERROR


class ProviderHTTPStatusError(ProviderUpstreamError):
    """Raised when the upstream answers with a non-2xx status."""

    def __init__(self, message: str, provider_name: str, status_code: int, **kwargs):
        super().__init__(message, provider_name, **kwargs)
        self.status_code = status_code
        self.details["status_code"] = status_code


class ProviderTimeoutError(ProviderUpstreamError):
    """
    Raised when an upstream attempt or the overall fan-out deadline expires.
    """

    code = ProviderErrorCode.TIMEOUT


class ProviderMalformedResponseError(ProviderError):
    """
    Raised when the upstream payload cannot be parsed or lacks a required field.

    Not retried: a malformed answer is deterministic for the same request.
    Still counts as a failure for the circuit breaker.
    """

    code = ProviderErrorCode.MALFORMED_RESPONSE


class ProviderBreakerOpenError(ProviderError):
    """Raised when the provider's circuit breaker is open."""

    code = ProviderErrorCode.BREAKER_OPEN


class ProviderBreakerTestingError(ProviderError):
    """Raised when the provider's breaker is half-open with no free trial slot."""

    code = ProviderErrorCode.BREAKER_TESTING


class MarketDataUnavailableError(BridgeAggregatorError):
    """
    Raised internally when no price oracle answered.

    Never reaches callers: the market data source falls back to the previous
    snapshot or to default values.
    """
    pass
