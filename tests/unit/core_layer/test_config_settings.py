"""
Unit Tests for Configuration Settings

Tests the settings loading, validation, grouped views and default values.
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError as PydanticValidationError

from bridge_aggregator.core.config.settings import Settings, get_settings, reload_settings


@pytest.mark.unit
class TestSettingsDefaults:
    """Defaults match the documented behavior of the engine."""

    def test_circuit_breaker_defaults(self):
        settings = Settings()
        assert settings.circuit_breaker.CB_FAILURE_THRESHOLD == 5
        assert settings.circuit_breaker.CB_RECOVERY_TIMEOUT_MS == 60_000
        assert settings.circuit_breaker.CB_HALF_OPEN_REQUESTS == 1

    def test_retry_defaults(self):
        settings = Settings()
        assert settings.retry.RETRY_MAX_ATTEMPTS == 3
        assert settings.retry.RETRY_BASE_TIMEOUT == 10.0
        assert settings.retry.RETRY_TIMEOUT_INCREMENT == 2.0

    def test_cache_and_fee_defaults(self):
        settings = Settings()
        assert settings.cache.CACHE_QUOTE_TTL == 300
        assert settings.cache.CACHE_MARKET_TTL == 300
        assert settings.fees.MIN_FEE_RATE == pytest.approx(0.003)

    def test_market_data_defaults(self):
        settings = Settings()
        assert settings.market_data.MARKET_SOURCE_TIMEOUT == 5.0
        assert settings.market_data.MARKET_DATA_BUDGET == 8.0

    def test_app_settings_have_valid_defaults(self):
        settings = Settings()
        assert settings.app.APP_NAME == "Bridge Quote Aggregator"
        assert settings.app.AGGREGATION_TIMEOUT > 0


@pytest.mark.unit
class TestSettingsValidation:
    def test_settings_load_from_env_vars(self):
        with patch.dict(os.environ, {"RATE_LIMIT_MAX_REQUESTS": "5", "LOG_LEVEL": "debug"}):
            settings = Settings()
        assert settings.rate_limit.RATE_LIMIT_MAX_REQUESTS == 5
        assert settings.logging.LOG_LEVEL == "DEBUG"

    def test_invalid_log_level_is_rejected(self):
        with pytest.raises(PydanticValidationError):
            Settings(LOG_LEVEL="LOUD")

    def test_non_positive_threshold_is_rejected(self):
        with pytest.raises(PydanticValidationError):
            Settings(CB_FAILURE_THRESHOLD=0)

    def test_market_budget_must_cover_one_source_timeout(self):
        with pytest.raises(PydanticValidationError):
            Settings(MARKET_SOURCE_TIMEOUT=5.0, MARKET_DATA_BUDGET=2.0)


@pytest.mark.unit
class TestGetSettings:
    def test_get_settings_is_singleton(self):
        assert get_settings() is get_settings()

    def test_reload_settings_picks_up_env(self):
        try:
            with patch.dict(os.environ, {"CACHE_QUOTE_TTL": "42"}):
                assert reload_settings().cache.CACHE_QUOTE_TTL == 42
        finally:
            reload_settings()
