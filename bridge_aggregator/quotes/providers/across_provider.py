"""
Across Protocol Provider

Uses the suggested-fees endpoint; ``totalRelayFee.total`` is expressed in
the token's base units.
"""

from typing import Any

from bridge_aggregator.core.config.constants import (
    ACROSS_AFFILIATE_URL,
    ACROSS_CHAINS,
    ACROSS_ESTIMATED_TIME,
    ACROSS_GAS_RATIO,
    ACROSS_NAME,
    ACROSS_RELIABILITY,
    ACROSS_TOKENS,
    ACROSS_URL,
    CHAIN_IDS,
    TOKEN_ADDRESSES,
)
from bridge_aggregator.core.resilience.retry import FetchRequest
from bridge_aggregator.quotes.models import MarketSnapshot, QuoteRequest
from bridge_aggregator.quotes.providers.base_provider import BaseProvider, ProviderConfig, parse_amount

ACROSS_CONFIG = ProviderConfig(
    name=ACROSS_NAME,
    url=ACROSS_URL,
    supported_chains=ACROSS_CHAINS,
    supported_tokens=ACROSS_TOKENS,
    reliability=ACROSS_RELIABILITY,
    affiliate_url=ACROSS_AFFILIATE_URL,
    gas_ratio=ACROSS_GAS_RATIO,
    estimated_time=ACROSS_ESTIMATED_TIME,
)


class AcrossProvider(BaseProvider):

    def build_request(self, request: QuoteRequest) -> FetchRequest:
        return FetchRequest(
            self.config.url,
            params={
                "inputToken": TOKEN_ADDRESSES[request.source_chain][request.token],
                "outputToken": TOKEN_ADDRESSES[request.destination_chain][request.token],
                "originChainId": str(CHAIN_IDS[request.source_chain]),
                "destinationChainId": str(CHAIN_IDS[request.destination_chain]),
                "amount": request.base_units(),
            },
        )

    def extract_fee(
        self, payload: dict[str, Any], request: QuoteRequest, snapshot: MarketSnapshot
    ) -> float | None:
        relay_fee = self.require(payload, "totalRelayFee")
        total = parse_amount(relay_fee.get("total")) if isinstance(relay_fee, dict) else None
        if total is None:
            return None
        return total / 10 ** request.token_decimals
