"""
Rate Limiting Exceptions

All exceptions related to rate limiting operations

Author: System Architect
Date: 2025-12-08
"""

from bridge_aggregator.core.exceptions.base import BridgeAggregatorError


class RateLimitError(BridgeAggregatorError):
    """Base exception for rate limiting errors."""
    pass


class RateLimitExceededError(RateLimitError):
    """
    Raised when a client identity exceeds its sliding window.

    The HTTP response should include:
    - Retry-After: seconds until the oldest request leaves the window
    - X-RateLimit-Limit: Maximum requests allowed
    - X-RateLimit-Remaining: Requests remaining (0)
    - X-RateLimit-Reset: Time when the window frees a slot (epoch ms)
    """

    def __init__(
        self,
        message: str,
        retry_after_seconds: int,
        limit: int,
        remaining: int = 0,
        reset_at: int | None = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.retry_after_seconds = retry_after_seconds
        self.limit = limit
        self.remaining = remaining
        self.reset_at = reset_at
        self.details.update(
            {"retry_after_seconds": retry_after_seconds, "limit": limit, "remaining": remaining}
        )
