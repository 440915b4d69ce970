#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
bridge quote aggregator. All tunables for rate limiting, circuit breaking,
retries, caching and market data live here.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with override mechanisms

Author: System Architect
Date: 2025-12-05
"""

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """
    Redis configuration for the shared key-value store.

    STAGE-0.1: Redis connection configuration

    When REDIS_ENABLED is false the service runs on the in-process store.
    """

    REDIS_ENABLED: bool = Field(default=False, description="Use Redis as the key-value store")
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum total connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CircuitBreakerSettings(BaseSettings):
    """
    Circuit breaker configuration for fault tolerance.

    STAGE-CB: Circuit breaker thresholds

    One breaker is kept per provider inside the process.
    """

    CB_FAILURE_THRESHOLD: int = Field(default=5, ge=1, description="Consecutive failures before opening circuit")
    CB_RECOVERY_TIMEOUT_MS: int = Field(default=60_000, ge=0, description="Milliseconds before attempting recovery")
    CB_HALF_OPEN_REQUESTS: int = Field(default=1, ge=1, description="Concurrent trial calls while half-open")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RateLimitSettings(BaseSettings):
    """
    Rate limiting configuration.

    STAGE-1: Sliding window admission control per client identity
    """

    RATE_LIMIT_ENABLED: bool = Field(default=True, description="Enable request rate limiting")
    RATE_LIMIT_WINDOW_MS: int = Field(default=60_000, ge=1, description="Sliding window length in milliseconds")
    RATE_LIMIT_MAX_REQUESTS: int = Field(default=60, ge=1, description="Requests admitted per window")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RetrySettings(BaseSettings):
    """
    Upstream retry configuration.

    STAGE-R: Bounded retries with exponential backoff and growing timeouts
    """

    RETRY_MAX_ATTEMPTS: int = Field(default=3, ge=1, description="Total attempts per upstream call")
    RETRY_BASE_TIMEOUT: float = Field(default=10.0, gt=0, description="First attempt timeout in seconds")
    RETRY_TIMEOUT_INCREMENT: float = Field(default=2.0, ge=0, description="Timeout added per extra attempt")
    RETRY_BASE_DELAY: float = Field(default=0.5, ge=0, description="Backoff base delay in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    Caching configuration.

    STAGE-3: Cache TTL configuration
    """

    ENABLE_CACHING: bool = Field(default=True, description="Cache aggregate quote responses")
    CACHE_QUOTE_TTL: int = Field(default=300, ge=1, description="Aggregate quote TTL (5 minutes)")
    CACHE_MARKET_TTL: int = Field(default=300, ge=1, description="Market snapshot TTL (5 minutes)")
    CACHE_MARKET_FALLBACK_TTL: int = Field(default=30, ge=1, description="TTL of stale or default market snapshots")
    CACHE_L1_MAX_SIZE: int = Field(default=1000, ge=1, description="L1 in-memory cache max entries")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class MarketDataSettings(BaseSettings):
    """
    Price and gas oracle configuration.

    STAGE-4: Market data refresh
    """

    ETHERSCAN_API_KEY: str | None = Field(default=None, description="Etherscan API key for the gas tracker")
    MARKET_SOURCE_TIMEOUT: float = Field(default=5.0, gt=0, description="Per-oracle timeout in seconds")
    MARKET_DATA_BUDGET: float = Field(default=8.0, gt=0, description="Overall market refresh budget in seconds")
    DEFAULT_ETH_PRICE: float = Field(default=3000.0, gt=0, description="ETH/USD price used when no oracle answers")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class FeeSettings(BaseSettings):
    """Fee floors applied when an upstream fee value is unusable."""

    MIN_FEE_RATE: float = Field(default=0.003, ge=0, description="Fee floor as a fraction of the amount")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    DEBUG: bool = Field(default=False, description="Debug mode")
    APP_NAME: str = Field(default="Bridge Quote Aggregator", description="Application name")
    APP_VERSION: str = Field(default="2.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")
    TRUSTED_PROXIES: list[str] = Field(
        default_factory=list,
        description="Peers (IP, CIDR or host name) allowed to set X-Forwarded-For"
    )
    AGGREGATION_TIMEOUT: float = Field(default=30.0, gt=0, description="Overall fan-out deadline in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from bridge_aggregator.core.config.settings import get_settings

        settings = get_settings()
        window = settings.rate_limit.RATE_LIMIT_WINDOW_MS
        threshold = settings.circuit_breaker.CB_FAILURE_THRESHOLD
    """

    # Redis settings
    REDIS_ENABLED: bool = Field(default=False, description="Use Redis as the key-value store")
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum total connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")

    # Circuit Breaker settings
    CB_FAILURE_THRESHOLD: int = Field(default=5, ge=1, description="Consecutive failures before opening circuit")
    CB_RECOVERY_TIMEOUT_MS: int = Field(default=60_000, ge=0, description="Milliseconds before attempting recovery")
    CB_HALF_OPEN_REQUESTS: int = Field(default=1, ge=1, description="Concurrent trial calls while half-open")

    # Rate Limiting settings
    RATE_LIMIT_ENABLED: bool = Field(default=True, description="Enable request rate limiting")
    RATE_LIMIT_WINDOW_MS: int = Field(default=60_000, ge=1, description="Sliding window length in milliseconds")
    RATE_LIMIT_MAX_REQUESTS: int = Field(default=60, ge=1, description="Requests admitted per window")

    # Retry settings
    RETRY_MAX_ATTEMPTS: int = Field(default=3, ge=1, description="Total attempts per upstream call")
    RETRY_BASE_TIMEOUT: float = Field(default=10.0, gt=0, description="First attempt timeout in seconds")
    RETRY_TIMEOUT_INCREMENT: float = Field(default=2.0, ge=0, description="Timeout added per extra attempt")
    RETRY_BASE_DELAY: float = Field(default=0.5, ge=0, description="Backoff base delay in seconds")

    # Cache settings
    ENABLE_CACHING: bool = Field(default=True, description="Cache aggregate quote responses")
    CACHE_QUOTE_TTL: int = Field(default=300, ge=1, description="Aggregate quote TTL (5 minutes)")
    CACHE_MARKET_TTL: int = Field(default=300, ge=1, description="Market snapshot TTL (5 minutes)")
    CACHE_MARKET_FALLBACK_TTL: int = Field(default=30, ge=1, description="TTL of stale or default market snapshots")
    CACHE_L1_MAX_SIZE: int = Field(default=1000, ge=1, description="L1 in-memory cache max entries")

    # Market data settings
    ETHERSCAN_API_KEY: str | None = Field(default=None, description="Etherscan API key for the gas tracker")
    MARKET_SOURCE_TIMEOUT: float = Field(default=5.0, gt=0, description="Per-oracle timeout in seconds")
    MARKET_DATA_BUDGET: float = Field(default=8.0, gt=0, description="Overall market refresh budget in seconds")
    DEFAULT_ETH_PRICE: float = Field(default=3000.0, gt=0, description="ETH/USD price used when no oracle answers")

    # Fee settings
    MIN_FEE_RATE: float = Field(default=0.003, ge=0, description="Fee floor as a fraction of the amount")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    DEBUG: bool = Field(default=False, description="Debug mode")
    APP_NAME: str = Field(default="Bridge Quote Aggregator", description="Application name")
    APP_VERSION: str = Field(default="2.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")
    TRUSTED_PROXIES: list[str] = Field(
        default_factory=list,
        description="Peers (IP, CIDR or host name) allowed to set X-Forwarded-For"
    )
    AGGREGATION_TIMEOUT: float = Field(default=30.0, gt=0, description="Overall fan-out deadline in seconds")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def check_market_budget(self):
        """The market refresh budget must leave room for at least one oracle call."""
        if self.MARKET_DATA_BUDGET < self.MARKET_SOURCE_TIMEOUT:
            raise ValueError("MARKET_DATA_BUDGET must be >= MARKET_SOURCE_TIMEOUT")
        return self

    # Nested configuration views
    @property
    def redis(self) -> 'RedisSettings':
        """Get Redis settings."""
        return RedisSettings(
            REDIS_ENABLED=self.REDIS_ENABLED,
            REDIS_HOST=self.REDIS_HOST,
            REDIS_PORT=self.REDIS_PORT,
            REDIS_DB=self.REDIS_DB,
            REDIS_PASSWORD=self.REDIS_PASSWORD,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
            REDIS_HEALTH_CHECK_INTERVAL=self.REDIS_HEALTH_CHECK_INTERVAL
        )

    @property
    def circuit_breaker(self) -> 'CircuitBreakerSettings':
        """Get circuit breaker settings."""
        return CircuitBreakerSettings(
            CB_FAILURE_THRESHOLD=self.CB_FAILURE_THRESHOLD,
            CB_RECOVERY_TIMEOUT_MS=self.CB_RECOVERY_TIMEOUT_MS,
            CB_HALF_OPEN_REQUESTS=self.CB_HALF_OPEN_REQUESTS
        )

    @property
    def rate_limit(self) -> 'RateLimitSettings':
        """Get rate limit settings."""
        return RateLimitSettings(
            RATE_LIMIT_ENABLED=self.RATE_LIMIT_ENABLED,
            RATE_LIMIT_WINDOW_MS=self.RATE_LIMIT_WINDOW_MS,
            RATE_LIMIT_MAX_REQUESTS=self.RATE_LIMIT_MAX_REQUESTS
        )

    @property
    def retry(self) -> 'RetrySettings':
        """Get retry settings."""
        return RetrySettings(
            RETRY_MAX_ATTEMPTS=self.RETRY_MAX_ATTEMPTS,
            RETRY_BASE_TIMEOUT=self.RETRY_BASE_TIMEOUT,
            RETRY_TIMEOUT_INCREMENT=self.RETRY_TIMEOUT_INCREMENT,
            RETRY_BASE_DELAY=self.RETRY_BASE_DELAY
        )

    @property
    def cache(self) -> 'CacheSettings':
        """Get cache settings."""
        return CacheSettings(
            ENABLE_CACHING=self.ENABLE_CACHING,
            CACHE_QUOTE_TTL=self.CACHE_QUOTE_TTL,
            CACHE_MARKET_TTL=self.CACHE_MARKET_TTL,
            CACHE_MARKET_FALLBACK_TTL=self.CACHE_MARKET_FALLBACK_TTL,
            CACHE_L1_MAX_SIZE=self.CACHE_L1_MAX_SIZE
        )

    @property
    def market_data(self) -> 'MarketDataSettings':
        """Get market data settings."""
        return MarketDataSettings(
            ETHERSCAN_API_KEY=self.ETHERSCAN_API_KEY,
            MARKET_SOURCE_TIMEOUT=self.MARKET_SOURCE_TIMEOUT,
            MARKET_DATA_BUDGET=self.MARKET_DATA_BUDGET,
            DEFAULT_ETH_PRICE=self.DEFAULT_ETH_PRICE
        )

    @property
    def fees(self) -> 'FeeSettings':
        """Get fee floor settings."""
        return FeeSettings(MIN_FEE_RATE=self.MIN_FEE_RATE)

    @property
    def logging(self) -> 'LoggingSettings':
        """Get logging settings."""
        return LoggingSettings(
            LOG_LEVEL=self.LOG_LEVEL,
            LOG_FORMAT=self.LOG_FORMAT
        )

    @property
    def app(self) -> 'ApplicationSettings':
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            DEBUG=self.DEBUG,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
            CORS_ORIGINS=self.CORS_ORIGINS,
            TRUSTED_PROXIES=self.TRUSTED_PROXIES,
            AGGREGATION_TIMEOUT=self.AGGREGATION_TIMEOUT
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
