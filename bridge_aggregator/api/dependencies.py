"""
FastAPI Dependencies
====================

Reusable dependencies that hand route handlers the singletons built in the
application lifespan. Everything lives on ``app.state``, so tests can build
an app, attach fakes and exercise routes without Redis or upstream APIs.

Example:
    @router.get("/quotes")
    async def get_quotes(aggregator: AggregatorDep, identity: ClientIdentityDep):
        ...
"""

import ipaddress
from typing import Annotated

from fastapi import Depends, Request

from bridge_aggregator.core.config.settings import Settings, get_settings
from bridge_aggregator.core.resilience.circuit_breaker import CircuitBreakerManager
from bridge_aggregator.core.resilience.rate_limiter import client_identity
from bridge_aggregator.infrastructure.cache.cache_manager import CacheManager
from bridge_aggregator.services.aggregator import Aggregator


def _require_state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(f"Application state '{name}' is not initialized")
    return value


def get_aggregator(request: Request) -> Aggregator:
    """Retrieve the Aggregator built during startup."""
    return _require_state(request, "aggregator")


def get_cache_manager(request: Request) -> CacheManager:
    return _require_state(request, "cache_manager")


def get_breaker_manager(request: Request) -> CircuitBreakerManager:
    return _require_state(request, "breaker_manager")


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return getattr(request.app.state, "settings", None) or get_settings()


def _is_trusted(address: str, trusted_proxies: list[str]) -> bool:
    for entry in trusted_proxies:
        if address == entry:
            return True
        try:
            if ipaddress.ip_address(address) in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            continue
    return False


def get_client_identity(request: Request, settings: Annotated[Settings, Depends(get_app_settings)]) -> str:
    """
    Rate-limit identity of the caller.

    X-Forwarded-For is honored only when the socket peer is one of
    TRUSTED_PROXIES. The chain is then walked from the right and the first
    hop that is not itself a trusted proxy is the client; a caller can
    prepend hops but never replace the one its proxy appended.
    """
    peer = request.client.host if request.client else None
    trusted = settings.app.TRUSTED_PROXIES
    forwarded = request.headers.get("X-Forwarded-For")
    if not forwarded or peer is None or not _is_trusted(peer, trusted):
        return client_identity(peer)

    address = peer
    for hop in reversed([h.strip() for h in forwarded.split(",") if h.strip()]):
        address = hop
        if not _is_trusted(hop, trusted):
            break
    return client_identity(address)


AggregatorDep = Annotated[Aggregator, Depends(get_aggregator)]
CacheManagerDep = Annotated[CacheManager, Depends(get_cache_manager)]
BreakerManagerDep = Annotated[CircuitBreakerManager, Depends(get_breaker_manager)]
ClientIdentityDep = Annotated[str, Depends(get_client_identity)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
