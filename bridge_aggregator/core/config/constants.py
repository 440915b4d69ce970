"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across
the bridge quote aggregator: chain and token tables, per-bridge business
constants, default market values and storage key prefixes.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic numbers
- Type-safe enums for state management
- Fee ratios and gas tables are business constants, not derived values

Author: System Architect
Date: 2025-12-05
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Request processing stages used as the ``stage`` field of log entries.

    Format: {SEQUENCE}_{DESCRIPTIVE_NAME}
    - SEQUENCE: Numeric order (0.0, 1.0, 2.0) or alphabetic prefix (CB, R)
    - DESCRIPTIVE_NAME: Clear, uppercase description with underscores
    """

    # Main Request Lifecycle (Sequential 0.0 - 6.0)
    INITIALIZATION = "0.0_INITIALIZATION"
    RATE_LIMITING = "1.0_RATE_LIMITING"
    REQUEST_VALIDATION = "2.0_REQUEST_VALIDATION"
    CACHE_LOOKUP = "3.0_CACHE_LOOKUP"
    MARKET_DATA = "4.0_MARKET_DATA"
    PROVIDER_FANOUT = "5.0_PROVIDER_FANOUT"
    RANKING = "6.0_RANKING"

    # Cross-Cutting Concerns (Alphabetic Prefixes)
    CIRCUIT_BREAKER = "CB_CIRCUIT_BREAKER"
    RETRY = "R_RETRY_LOGIC"
    CACHE = "C_CACHE_OPERATIONS"
    METRICS = "M_METRICS_COLLECTION"


# ============================================================================
# Circuit Breaker States
# ============================================================================


class CircuitState(str, Enum):
    """
    Circuit breaker states.

    CLOSED: Normal operation, requests allowed
    OPEN: Failing fast, requests blocked
    HALF_OPEN: Testing recovery, limited requests
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


# ============================================================================
# Cache Tiers
# ============================================================================


class CacheTier(str, Enum):
    """
    Multi-tier caching levels.

    L1: In-memory LRU cache (fastest, < 1ms)
    L2: Key-value store (Redis or in-process)
    """

    L1 = "l1"
    L2 = "l2"


# ============================================================================
# Quote Provenance
# ============================================================================


class SourceTag(str, Enum):
    """
    Where the numbers in a quote came from.

    LIVE: priced from a fresh upstream response and live market data
    CACHED: priced from a stale market snapshot
    FALLBACK: fee or gas floored, or market data fell back to defaults
    """

    LIVE = "live"
    CACHED = "cached"
    FALLBACK = "fallback"


class MarketOrigin(str, Enum):
    """Provenance of a market snapshot."""

    LIVE = "live"
    STALE = "stale"
    DEFAULT = "default"


class ProviderErrorCode(str, Enum):
    """Machine-readable codes attached to per-provider failures."""

    UNSUPPORTED_ROUTE = "unsupported_route"
    UPSTREAM_ERROR = "upstream_error"
    TIMEOUT = "timeout"
    MALFORMED_RESPONSE = "malformed_response"
    BREAKER_OPEN = "breaker_open"
    BREAKER_TESTING = "breaker_testing"


# ============================================================================
# Chains and Tokens
# ============================================================================

CHAIN_IDS: dict[str, int] = {
    "ethereum": 1,
    "polygon": 137,
    "arbitrum": 42161,
    "optimism": 10,
    "avalanche": 43114,
}

SUPPORTED_CHAINS: tuple[str, ...] = tuple(CHAIN_IDS)

TOKEN_DECIMALS: dict[str, int] = {
    "usdc": 6,
    "usdt": 6,
    "dai": 18,
}

SUPPORTED_TOKENS: tuple[str, ...] = tuple(TOKEN_DECIMALS)

TOKEN_ADDRESSES: dict[str, dict[str, str]] = {
    "ethereum": {
        "usdc": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
        "usdt": "0xdAC17F958D2ee523a2206206994597C13D831ec7",
        "dai": "0x6B175474E89094C44Da98b954EedeAC495271d0F",
    },
    "polygon": {
        "usdc": "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359",
        "usdt": "0xc2132D05D31c914a87C6611C10748AEb04B58e8F",
        "dai": "0x8f3Cf7ad23Cd3CaDbD9735AFf958023239c6A063",
    },
    "arbitrum": {
        "usdc": "0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
        "usdt": "0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9",
        "dai": "0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1",
    },
    "optimism": {
        "usdc": "0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85",
        "usdt": "0x94b008aA00579c1307B0EF2c499aD98a8ce58e58",
        "dai": "0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1",
    },
    "avalanche": {
        "usdc": "0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E",
        "usdt": "0x9702230A8Ea53601f5cD2dc00fDBc13d4dF4A8c7",
        "dai": "0xd586E7F844cEa2F87f50152665BCbc2C279D8d70",
    },
}

# Request amount bounds (token units)
MIN_AMOUNT = 1
MAX_AMOUNT = 1_000_000

# ============================================================================
# Bridge Business Constants
# ============================================================================

STARGATE_NAME = "Stargate Finance"
STARGATE_URL = "https://api.stargate.finance/api/v1/quotes"
STARGATE_CHAINS = ("ethereum", "polygon", "arbitrum", "optimism", "avalanche")
STARGATE_TOKENS = ("usdc", "usdt")
STARGATE_RELIABILITY = 99.8
STARGATE_GAS_RATIO = 0.3
STARGATE_ESTIMATED_TIME = "2-3 min"
STARGATE_AFFILIATE_URL = "https://stargate.finance?ref=bridgecompare"

ACROSS_NAME = "Across Protocol"
ACROSS_URL = "https://app.across.to/api/suggested-fees"
ACROSS_CHAINS = ("ethereum", "polygon", "arbitrum", "optimism")
ACROSS_TOKENS = ("usdc", "usdt", "dai")
ACROSS_RELIABILITY = 99.9
ACROSS_GAS_RATIO = 0.2
ACROSS_ESTIMATED_TIME = "30 sec"
ACROSS_AFFILIATE_URL = "https://across.to?ref=bridgecompare"

HOP_NAME = "Hop Protocol"
HOP_URL = "https://api.hop.exchange/v1/quote"
HOP_CHAINS = ("ethereum", "polygon", "arbitrum", "optimism")
HOP_TOKENS = ("usdc", "usdt", "dai")
HOP_RELIABILITY = 99.2
HOP_GAS_RATIO = 0.4
HOP_SLIPPAGE = "0.5"
HOP_TIME_L1 = "7-10 min"
HOP_TIME_L2 = "3-5 min"
HOP_AFFILIATE_URL = "https://app.hop.exchange?ref=bridgecompare"

# Decimal places kept on fee and gas values
FEE_PRECISION = 4

# ============================================================================
# Market Data Defaults
# ============================================================================

DEFAULT_ETH_PRICE_USD = 3000.0

# Gas price per chain in gwei, used when the gas oracle is unavailable
DEFAULT_GAS_PRICES_GWEI: dict[str, float] = {
    "ethereum": 30.0,
    "polygon": 100.0,
    "arbitrum": 0.1,
    "optimism": 0.1,
    "avalanche": 25.0,
}

# Gas units consumed by a typical bridge transfer
GAS_UNITS_BY_CHAIN: dict[str, int] = {
    "ethereum": 120_000,
    "polygon": 80_000,
    "arbitrum": 60_000,
    "optimism": 60_000,
    "avalanche": 80_000,
}
DEFAULT_GAS_UNITS = 100_000
MIN_GAS_COST_USD = 0.5

COINGECKO_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price?ids=ethereum&vs_currencies=usd"
COINBASE_PRICE_URL = "https://api.coinbase.com/v2/exchange-rates?currency=ETH"
BINANCE_PRICE_URL = "https://api.binance.com/api/v3/ticker/price?symbol=ETHUSDT"
ETHERSCAN_GAS_URL = "https://api.etherscan.io/api"
ETHGASSTATION_URL = "https://api.ethgasstation.info/api/fee-estimate"

# ============================================================================
# Storage Keys and Headers
# ============================================================================

REDIS_KEY_RATE_LIMIT = "ratelimit:"
REDIS_KEY_CACHE = "cache:"
CACHE_NAMESPACE_QUOTES = "quotes"
MARKET_SNAPSHOT_KEY = "market:snapshot"

HEADER_REQUEST_ID = "X-Request-ID"
HEADER_RATE_LIMIT_LIMIT = "X-RateLimit-Limit"
HEADER_RATE_LIMIT_REMAINING = "X-RateLimit-Remaining"
HEADER_RATE_LIMIT_RESET = "X-RateLimit-Reset"
HEADER_RETRY_AFTER = "Retry-After"

USER_AGENT = "BridgeCompare/2.0"
