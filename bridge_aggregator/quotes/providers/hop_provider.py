"""
Hop Protocol Provider

``bonderFee`` is expressed in the token's base units. Transfers touching
Ethereum L1 settle more slowly than L2-to-L2 transfers.
"""

from typing import Any

from bridge_aggregator.core.config.constants import (
    HOP_AFFILIATE_URL,
    HOP_CHAINS,
    HOP_GAS_RATIO,
    HOP_NAME,
    HOP_RELIABILITY,
    HOP_SLIPPAGE,
    HOP_TIME_L1,
    HOP_TIME_L2,
    HOP_TOKENS,
    HOP_URL,
)
from bridge_aggregator.core.resilience.retry import FetchRequest
from bridge_aggregator.quotes.models import MarketSnapshot, QuoteRequest
from bridge_aggregator.quotes.providers.base_provider import BaseProvider, ProviderConfig, parse_amount

HOP_CONFIG = ProviderConfig(
    name=HOP_NAME,
    url=HOP_URL,
    supported_chains=HOP_CHAINS,
    supported_tokens=HOP_TOKENS,
    reliability=HOP_RELIABILITY,
    affiliate_url=HOP_AFFILIATE_URL,
    gas_ratio=HOP_GAS_RATIO,
    estimated_time=HOP_TIME_L2,
)


class HopProvider(BaseProvider):

    def build_request(self, request: QuoteRequest) -> FetchRequest:
        return FetchRequest(
            self.config.url,
            params={
                "amount": request.base_units(),
                "token": request.token.upper(),
                "fromChain": request.source_chain,
                "toChain": request.destination_chain,
                "slippage": HOP_SLIPPAGE,
            },
        )

    def extract_fee(
        self, payload: dict[str, Any], request: QuoteRequest, snapshot: MarketSnapshot
    ) -> float | None:
        bonder_fee = parse_amount(self.require(payload, "bonderFee"))
        if bonder_fee is None:
            return None
        return bonder_fee / 10 ** request.token_decimals

    def estimated_time_for(self, request: QuoteRequest) -> str:
        if "ethereum" in (request.source_chain, request.destination_chain):
            return HOP_TIME_L1
        return HOP_TIME_L2
