"""
Quote Data Models

Pydantic models shared by the providers, the aggregator and the HTTP layer.
All models that leave a provider adapter are frozen.
"""

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, Field, computed_field

from bridge_aggregator.core.config.constants import (
    MAX_AMOUNT,
    MIN_AMOUNT,
    TOKEN_DECIMALS,
    MarketOrigin,
    ProviderErrorCode,
    SourceTag,
)
from bridge_aggregator.core.resilience.rate_limiter import RateLimitResult


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class QuoteRequest(BaseModel):
    """
    A validated, normalized quote request.

    Chains and token are lower-cased; ``amount`` carries exactly two
    decimal places.
    """

    model_config = {"frozen": True}

    source_chain: str = Field(..., description="Source chain name, e.g. 'ethereum'")
    destination_chain: str = Field(..., description="Destination chain name")
    amount: Decimal = Field(..., ge=MIN_AMOUNT, le=MAX_AMOUNT, decimal_places=2)
    token: str = Field(default="usdc", description="Token symbol")

    @property
    def amount_str(self) -> str:
        return f"{self.amount:.2f}"

    @property
    def token_decimals(self) -> int:
        return TOKEN_DECIMALS[self.token]

    def base_units(self) -> str:
        """Amount in the token's smallest unit, as sent to bridge APIs."""
        return str(int(self.amount * (Decimal(10) ** self.token_decimals)))


class Quote(BaseModel):
    """
    A normalized, comparable quote from one provider.

    ``fee`` and ``gas_estimate`` are USD amounts, always finite and
    non-negative.
    """

    model_config = {"frozen": True}

    provider_name: str
    fee: float = Field(..., ge=0, allow_inf_nan=False)
    gas_estimate: float = Field(..., ge=0, allow_inf_nan=False)
    estimated_time: str
    reliability_score: float = Field(..., ge=0, le=100)
    affiliate_url: str
    source_tag: SourceTag = SourceTag.LIVE
    timestamp: str = Field(default_factory=utc_now_iso)

    @computed_field
    @property
    def total_cost(self) -> float:
        return round(self.fee + self.gas_estimate, 4)

    def sort_key(self) -> tuple[float, float, str]:
        """Cheapest first, then most reliable, then by name."""
        return (self.fee + self.gas_estimate, -self.reliability_score, self.provider_name)


class ProviderErrorInfo(BaseModel):
    """A non-fatal per-provider failure reported alongside the quotes."""

    model_config = {"frozen": True}

    provider_name: str
    message: str
    code: ProviderErrorCode
    retry_after_seconds: int | None = None


class MarketSnapshot(BaseModel):
    """ETH/USD price and per-chain gas prices used to price quotes."""

    model_config = {"frozen": True}

    eth_usd_price: float = Field(..., gt=0, allow_inf_nan=False)
    gas_price_by_chain: dict[str, float] = Field(default_factory=dict)
    fetched_at: float = Field(..., description="Epoch seconds")
    sources: list[str] = Field(default_factory=list)
    origin: MarketOrigin = MarketOrigin.LIVE

    @property
    def is_fallback(self) -> bool:
        return self.origin != MarketOrigin.LIVE


class AggregateMetadata(BaseModel):
    quotes_found: int
    errors_count: int
    cached: bool = False
    timestamp: str = Field(default_factory=utc_now_iso)
    request: QuoteRequest | None = None


class AggregateResult(BaseModel):
    """Merged outcome of one aggregation."""

    success: bool
    quotes: list[Quote] = Field(default_factory=list)
    errors: list[ProviderErrorInfo] = Field(default_factory=list)
    metadata: AggregateMetadata
    rate_limit: RateLimitResult | None = Field(default=None, exclude=True)
