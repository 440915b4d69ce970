"""
Market Data Source

Provides the ETH/USD price and per-chain gas prices used to turn raw
bridge fees into USD.

Refresh algorithm:
1. Return the cached snapshot if one is still valid (no network)
2. Query CoinGecko, Coinbase and Binance concurrently, each with a short timeout
3. Keep positive finite prices and take the median
4. Query the gas oracle (Etherscan with an API key, else ETH Gas Station)
5. No price at all → previous snapshot tagged ``stale``, else defaults tagged ``default``;
   these are cached for CACHE_MARKET_FALLBACK_TTL only

Concurrent callers that miss the cache share one in-flight refresh.

The whole refresh is bounded by MARKET_DATA_BUDGET. This component never
raises to its caller.
"""

import asyncio
import math
import statistics
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from bridge_aggregator.core.clock import Clock, get_clock
from bridge_aggregator.core.config.constants import (
    BINANCE_PRICE_URL,
    COINBASE_PRICE_URL,
    COINGECKO_PRICE_URL,
    DEFAULT_GAS_PRICES_GWEI,
    DEFAULT_GAS_UNITS,
    ETHERSCAN_GAS_URL,
    ETHGASSTATION_URL,
    GAS_UNITS_BY_CHAIN,
    MARKET_SNAPSHOT_KEY,
    MIN_GAS_COST_USD,
    MarketOrigin,
    Stage,
)
from bridge_aggregator.core.config.settings import Settings, get_settings
from bridge_aggregator.core.exceptions import (
    BridgeAggregatorError,
    CacheError,
    MarketDataUnavailableError,
)
from bridge_aggregator.core.logging.logger import get_logger, log_stage
from bridge_aggregator.core.resilience.retry import FetchRequest, RetryingFetcher
from bridge_aggregator.infrastructure.cache.cache_manager import CacheManager
from bridge_aggregator.infrastructure.monitoring.metrics_collector import get_metrics_collector
from bridge_aggregator.quotes.models import MarketSnapshot

logger = get_logger(__name__)


@dataclass(frozen=True)
class PriceOracle:
    """An ETH/USD price endpoint and how to read the price out of its payload."""

    name: str
    url: str
    extract: Callable[[Any], Any]


DEFAULT_PRICE_ORACLES: tuple[PriceOracle, ...] = (
    PriceOracle("coingecko", COINGECKO_PRICE_URL, lambda data: data["ethereum"]["usd"]),
    PriceOracle("coinbase", COINBASE_PRICE_URL, lambda data: data["data"]["rates"]["USD"]),
    PriceOracle("binance", BINANCE_PRICE_URL, lambda data: data["price"]),
)


def _positive_float(value: Any) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def estimate_gas_usd(chain: str, snapshot: MarketSnapshot) -> float:
    """
    USD cost of a typical bridge transaction on ``chain``.

    cost = gas units * gwei / 1e9 * ETH price, never below MIN_GAS_COST_USD.
    """
    units = GAS_UNITS_BY_CHAIN.get(chain, DEFAULT_GAS_UNITS)
    gwei = snapshot.gas_price_by_chain.get(chain, DEFAULT_GAS_PRICES_GWEI.get(chain, 0.0))
    cost = units * gwei / 1e9 * snapshot.eth_usd_price
    if not math.isfinite(cost):
        return MIN_GAS_COST_USD
    return max(cost, MIN_GAS_COST_USD)


class MarketDataSource:
    """
    Cached, medianized market data.

    Usage:
        market = MarketDataSource(cache, client)
        snapshot = await market.get_market_snapshot()
        snapshot.eth_usd_price
    """

    def __init__(
        self,
        cache: CacheManager,
        client: httpx.AsyncClient,
        settings: Settings | None = None,
        clock: Clock | None = None,
        price_oracles: tuple[PriceOracle, ...] = DEFAULT_PRICE_ORACLES,
    ):
        settings = settings or get_settings()
        market_settings = settings.market_data
        self._cache = cache
        self._clock = clock or get_clock()
        self._ttl = settings.cache.CACHE_MARKET_TTL
        self._fallback_ttl = settings.cache.CACHE_MARKET_FALLBACK_TTL
        self._budget = market_settings.MARKET_DATA_BUDGET
        self._default_eth_price = market_settings.DEFAULT_ETH_PRICE
        self._etherscan_api_key = market_settings.ETHERSCAN_API_KEY
        self._price_oracles = price_oracles

        def single_shot(name: str) -> RetryingFetcher:
            return RetryingFetcher(
                client,
                name,
                max_retries=1,
                base_timeout=market_settings.MARKET_SOURCE_TIMEOUT,
                clock=self._clock,
            )

        self._price_fetchers = {oracle.name: single_shot(oracle.name) for oracle in price_oracles}
        self._gas_fetcher = single_shot("gas-oracle")

        self._previous: MarketSnapshot | None = None
        self._inflight: asyncio.Future | None = None

    async def get_market_snapshot(self) -> MarketSnapshot:
        cached = await self._read_cached()
        if cached is not None:
            return cached

        # Concurrent callers share one refresh; a cancelled caller leaves it running
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._refresh_and_store())
        return await asyncio.shield(self._inflight)

    async def _refresh_and_store(self) -> MarketSnapshot:
        try:
            snapshot = await asyncio.wait_for(self._refresh(), timeout=self._budget)
        except MarketDataUnavailableError as e:
            log_stage(logger, Stage.MARKET_DATA, "MarketDataUnavailable", level="warning", reason=e.message)
            snapshot = self._fallback()
        except asyncio.TimeoutError:
            log_stage(logger, Stage.MARKET_DATA, "MarketDataUnavailable", level="warning",
                      reason="refresh budget exhausted", budget=self._budget)
            snapshot = self._fallback()

        get_metrics_collector().record_market_refresh(snapshot.origin.value)

        if snapshot.origin == MarketOrigin.LIVE:
            self._previous = snapshot
            await self._write_cached(snapshot, self._ttl)
        else:
            await self._write_cached(snapshot, self._fallback_ttl)
        return snapshot

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def _refresh(self) -> MarketSnapshot:
        price_results, gas_prices = await asyncio.gather(
            asyncio.gather(*(self._fetch_price(oracle) for oracle in self._price_oracles)),
            self._fetch_gas_prices(),
        )

        answered = [(name, price) for name, price in price_results if price is not None]
        if not answered:
            raise MarketDataUnavailableError("No price oracle returned a usable ETH price")

        eth_price = statistics.median(price for _, price in answered)
        snapshot = MarketSnapshot(
            eth_usd_price=eth_price,
            gas_price_by_chain=gas_prices,
            fetched_at=self._clock.time(),
            sources=[name for name, _ in answered],
            origin=MarketOrigin.LIVE,
        )
        log_stage(logger, Stage.MARKET_DATA, "Market data refreshed",
                  eth_usd_price=eth_price, sources=snapshot.sources)
        return snapshot

    async def _fetch_price(self, oracle: PriceOracle) -> tuple[str, float | None]:
        try:
            payload = await self._price_fetchers[oracle.name].fetch_with_retry(FetchRequest(oracle.url))
            return oracle.name, _positive_float(oracle.extract(payload))
        except BridgeAggregatorError as e:
            log_stage(logger, Stage.MARKET_DATA, "Price oracle failed", level="warning",
                      oracle=oracle.name, error=e.message)
        except (KeyError, TypeError, IndexError) as e:
            log_stage(logger, Stage.MARKET_DATA, "Price oracle returned unexpected payload",
                      level="warning", oracle=oracle.name, error=repr(e))
        return oracle.name, None

    async def _fetch_gas_prices(self) -> dict[str, float]:
        gas_prices = dict(DEFAULT_GAS_PRICES_GWEI)
        try:
            if self._etherscan_api_key:
                payload = await self._gas_fetcher.fetch_with_retry(FetchRequest(
                    ETHERSCAN_GAS_URL,
                    params={"module": "gastracker", "action": "gasoracle", "apikey": self._etherscan_api_key},
                ))
                ethereum_gwei = _positive_float(payload["result"]["ProposeGasPrice"])
            else:
                payload = await self._gas_fetcher.fetch_with_retry(FetchRequest(ETHGASSTATION_URL))
                ethereum_gwei = _positive_float(payload["medium"]["suggestedMaxFeePerGas"])
        except BridgeAggregatorError as e:
            log_stage(logger, Stage.MARKET_DATA, "Gas oracle failed, using defaults", level="warning", error=e.message)
            return gas_prices
        except (KeyError, TypeError, IndexError) as e:
            log_stage(logger, Stage.MARKET_DATA, "Gas oracle returned unexpected payload",
                      level="warning", error=repr(e))
            return gas_prices

        if ethereum_gwei is not None:
            gas_prices["ethereum"] = ethereum_gwei
        return gas_prices

    def _fallback(self) -> MarketSnapshot:
        if self._previous is not None:
            return self._previous.model_copy(update={"origin": MarketOrigin.STALE})
        return MarketSnapshot(
            eth_usd_price=self._default_eth_price,
            gas_price_by_chain=dict(DEFAULT_GAS_PRICES_GWEI),
            fetched_at=self._clock.time(),
            sources=[],
            origin=MarketOrigin.DEFAULT,
        )

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    async def _read_cached(self) -> MarketSnapshot | None:
        try:
            data = await self._cache.get(MARKET_SNAPSHOT_KEY, namespace="market")
        except CacheError as e:
            log_stage(logger, Stage.MARKET_DATA, "Market cache read failed", level="warning", error=e.message)
            return None
        if data is None:
            return None
        try:
            return MarketSnapshot.model_validate(data)
        except PydanticValidationError as e:
            log_stage(logger, Stage.MARKET_DATA, "Discarding invalid cached market snapshot",
                      level="warning", errors=e.error_count())
            return None

    async def _write_cached(self, snapshot: MarketSnapshot, ttl: int) -> None:
        try:
            await self._cache.set(MARKET_SNAPSHOT_KEY, snapshot.model_dump(mode="json"), ttl=ttl)
        except CacheError as e:
            log_stage(logger, Stage.MARKET_DATA, "Market cache write failed", level="warning", error=e.message)
