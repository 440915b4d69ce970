"""
Health Check Routes

- GET /api/health: status, version, uptime, cache health and breaker states
- GET /api/health/live: liveness probe, no dependency checks
"""

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from bridge_aggregator.api.dependencies import BreakerManagerDep, CacheManagerDep, SettingsDep
from bridge_aggregator.core.config.constants import CircuitState

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check(
    request: Request,
    settings: SettingsDep,
    cache_manager: CacheManagerDep,
    breakers: BreakerManagerDep,
):
    """
    Overall health.

    ``degraded`` when the cache store is unhealthy or any breaker is open;
    the service still answers quotes in both cases.
    """
    cache_health = await cache_manager.health_check()
    breaker_stats = breakers.get_all_stats()

    status = "healthy"
    if cache_health.get("status") != "healthy":
        status = "degraded"
    if any(stats["state"] == CircuitState.OPEN.value for stats in breaker_stats.values()):
        status = "degraded"

    started_at = getattr(request.app.state, "started_at", None)
    uptime = round(time.monotonic() - started_at, 1) if started_at is not None else 0.0

    return {
        "status": status,
        "version": settings.app.APP_VERSION,
        "environment": settings.app.ENVIRONMENT,
        "uptime_seconds": uptime,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "cache": cache_health,
        "circuit_breakers": breaker_stats,
    }


@router.get("/live")
async def liveness_probe():
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}
