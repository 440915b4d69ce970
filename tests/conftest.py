"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tests.test_fixtures import CacheTestFactory, FakeClock, QuoteFactory, RequestFactory  # noqa: E402


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def test_settings():
    """
    Real Settings with test-friendly values.

    Small retry delays and a short aggregation deadline keep tests fast;
    every other value is the production default.
    """
    from bridge_aggregator.core.config.settings import Settings

    return Settings(
        REDIS_ENABLED=False,
        RATE_LIMIT_ENABLED=True,
        RATE_LIMIT_WINDOW_MS=60_000,
        RATE_LIMIT_MAX_REQUESTS=5,
        CB_FAILURE_THRESHOLD=5,
        CB_RECOVERY_TIMEOUT_MS=60_000,
        RETRY_MAX_ATTEMPTS=3,
        RETRY_BASE_TIMEOUT=10.0,
        RETRY_TIMEOUT_INCREMENT=2.0,
        RETRY_BASE_DELAY=0.5,
        CACHE_QUOTE_TTL=300,
        AGGREGATION_TIMEOUT=2.0,
        ENVIRONMENT="development",
        LOG_FORMAT="console",
    )


# ============================================================================
# Time Fixtures
# ============================================================================


@pytest.fixture
def fake_clock():
    """Manually driven clock; ``sleep`` advances it without waiting."""
    return FakeClock()


# ============================================================================
# Infrastructure Fixtures
# ============================================================================


@pytest.fixture
def memory_store(fake_clock):
    """In-memory key-value store expiring by the fake clock."""
    return CacheTestFactory.memory_store(clock=fake_clock)


@pytest.fixture
def cache_manager(memory_store, fake_clock):
    """Real CacheManager over the in-memory store."""
    return CacheTestFactory.cache_manager(memory_store, clock=fake_clock)


@pytest.fixture
def mock_cache_manager():
    """
    Mock CacheManager for isolated testing.

    Provides async mock methods for get/set operations.
    """
    from bridge_aggregator.infrastructure.cache.cache_manager import CacheManager

    cache = AsyncMock(spec=CacheManager)
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock(return_value=None)
    cache.delete = AsyncMock(return_value=None)
    cache.stats = MagicMock(return_value={"hits": {"l1": 0, "l2": 0}, "misses": 0})
    cache.health_check = AsyncMock(return_value={"status": "healthy"})
    return cache


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def quote_request():
    """100 USDC from Ethereum to Polygon."""
    return RequestFactory.basic()


@pytest.fixture
def live_snapshot():
    """Live market snapshot at 2000 USD/ETH."""
    return QuoteFactory.snapshot()


@pytest.fixture
def mock_market_data(live_snapshot):
    """MarketDataSource stub always answering the live snapshot."""
    from bridge_aggregator.infrastructure.market_data.market_data import MarketDataSource

    market = AsyncMock(spec=MarketDataSource)
    market.get_market_snapshot = AsyncMock(return_value=live_snapshot)
    return market
