#!/usr/bin/env python3
"""
FastAPI Application Entry Point

Configures the Bridge Quote Aggregator: lifespan wiring, middleware,
exception handlers and routes.

Author: Senior Solution Architect
Date: 2025-12-05
"""

import time
import uuid
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from bridge_aggregator.api.middleware.error_handler import ErrorHandlingMiddleware, register_exception_handlers
from bridge_aggregator.api.routes.health import router as health_router
from bridge_aggregator.api.routes.metrics import router as metrics_router
from bridge_aggregator.api.routes.quotes import router as quotes_router
from bridge_aggregator.core.clock import Clock
from bridge_aggregator.core.config.constants import (
    HEADER_RATE_LIMIT_LIMIT,
    HEADER_RATE_LIMIT_REMAINING,
    HEADER_RATE_LIMIT_RESET,
    HEADER_REQUEST_ID,
    HEADER_RETRY_AFTER,
)
from bridge_aggregator.core.config.settings import Settings, get_settings
from bridge_aggregator.core.logging.logger import clear_request_id, get_logger, set_request_id, setup_logging
from bridge_aggregator.core.resilience.circuit_breaker import CircuitBreakerManager
from bridge_aggregator.core.resilience.rate_limiter import RateLimiter
from bridge_aggregator.core.resilience.retry import create_http_client
from bridge_aggregator.infrastructure.cache.cache_manager import CacheManager
from bridge_aggregator.infrastructure.cache.redis_client import close_redis, init_redis
from bridge_aggregator.infrastructure.cache.store import InMemoryStore, KeyValueStore
from bridge_aggregator.infrastructure.market_data.market_data import MarketDataSource
from bridge_aggregator.quotes.providers import create_provider_registry
from bridge_aggregator.services.aggregator import Aggregator

logger = get_logger(__name__)

API_PREFIX = "/api"


def wire_components(
    app: FastAPI,
    settings: Settings,
    store: KeyValueStore,
    client: httpx.AsyncClient,
    clock: Clock | None = None,
) -> Aggregator:
    """
    Build every collaborator once and publish it on ``app.state``.

    Shared by the lifespan and by tests that inject an in-memory store and
    a mocked HTTP transport.
    """
    cache_manager = CacheManager(
        store,
        l1_max_size=settings.cache.CACHE_L1_MAX_SIZE,
        default_ttl=settings.cache.CACHE_QUOTE_TTL,
        enabled=settings.cache.ENABLE_CACHING,
        clock=clock,
    )
    breaker_manager = CircuitBreakerManager(
        threshold=settings.circuit_breaker.CB_FAILURE_THRESHOLD,
        timeout_ms=settings.circuit_breaker.CB_RECOVERY_TIMEOUT_MS,
        half_open_requests=settings.circuit_breaker.CB_HALF_OPEN_REQUESTS,
        clock=clock,
    )
    rate_limiter = RateLimiter(
        store,
        window_ms=settings.rate_limit.RATE_LIMIT_WINDOW_MS,
        max_requests=settings.rate_limit.RATE_LIMIT_MAX_REQUESTS,
        clock=clock,
    )
    market_data = MarketDataSource(cache_manager, client, settings=settings, clock=clock)
    registry = create_provider_registry(client, breaker_manager, settings=settings, clock=clock)

    aggregator = Aggregator(
        registry,
        cache_manager,
        market_data,
        rate_limiter=rate_limiter,
        settings=settings,
        clock=clock,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.cache_manager = cache_manager
    app.state.breaker_manager = breaker_manager
    app.state.rate_limiter = rate_limiter
    app.state.market_data = market_data
    app.state.aggregator = aggregator
    app.state.started_at = time.monotonic()
    return aggregator


# ============================================================================
# Application Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle (startup and shutdown).
    """
    settings = getattr(app.state, "settings", None) or get_settings()
    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

    logger.info(
        "Starting Bridge Quote Aggregator",
        environment=settings.app.ENVIRONMENT,
        version=settings.app.APP_VERSION,
    )

    redis_client = None
    client = create_http_client()
    try:
        if settings.redis.REDIS_ENABLED:
            redis_client = await init_redis(settings)
            store: KeyValueStore = redis_client
            logger.info("Redis connected")
        else:
            store = InMemoryStore()
            logger.info("Using in-memory key-value store")

        wire_components(app, settings, store, client)
        logger.info("Application startup complete")

        yield

    finally:
        logger.info("Shutting down application")
        await client.aclose()
        await close_redis(redis_client)
        logger.info("Application shutdown complete")


# ============================================================================
# Application Factory
# ============================================================================


def create_app(settings: Settings | None = None, use_lifespan: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Middleware runs in reverse registration order, so the error handler is
    added first and wraps everything else.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Compare cross-chain bridge quotes with per-provider fault isolation",
        lifespan=lifespan if use_lifespan else None,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings

    app.add_middleware(
        ErrorHandlingMiddleware,
        include_traceback=(settings.app.ENVIRONMENT == "development"),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
        expose_headers=[
            HEADER_REQUEST_ID,
            HEADER_RETRY_AFTER,
            HEADER_RATE_LIMIT_LIMIT,
            HEADER_RATE_LIMIT_REMAINING,
            HEADER_RATE_LIMIT_RESET,
        ],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Inject a request ID into all requests for log correlation."""
        request_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
        set_request_id(request_id)
        try:
            response = await call_next(request)
            response.headers[HEADER_REQUEST_ID] = request_id
            return response
        finally:
            clear_request_id()

    register_exception_handlers(app)

    app.include_router(quotes_router, prefix=API_PREFIX)
    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(metrics_router)

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "name": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "docs": "/docs",
            "health": f"{API_PREFIX}/health",
        }

    return app


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "bridge_aggregator.app:create_app",
        factory=True,
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        reload=settings.app.ENVIRONMENT == "development",
        log_level=settings.logging.LOG_LEVEL.lower(),
    )
