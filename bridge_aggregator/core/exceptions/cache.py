"""
Cache-Related Exceptions

All exceptions related to caching operations (Redis, in-memory store)

Author: System Architect
Date: 2025-12-08
"""

from bridge_aggregator.core.exceptions.base import BridgeAggregatorError


class CacheError(BridgeAggregatorError):
    """Base exception for cache-related errors."""
    pass


class CacheConnectionError(CacheError):
    """
    Raised when unable to connect to the key-value store.

    Common causes:
    - Redis server is down
    - Network connectivity issues
    - Incorrect host/port configuration
    """
    pass


class CacheKeyError(CacheError):
    """
    Raised when a key operation fails.

    Common causes:
    - Operation timeout
    - Corrupt serialized value
    """
    pass
