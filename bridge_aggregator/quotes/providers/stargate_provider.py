"""
Stargate Finance Provider

Quotes come back as a list of routes; the first route's ``fees`` are
summed (wei of the native gas token) and converted to USD at the
snapshot's ETH price.
"""

from typing import Any

from bridge_aggregator.core.config.constants import (
    STARGATE_AFFILIATE_URL,
    STARGATE_CHAINS,
    STARGATE_ESTIMATED_TIME,
    STARGATE_GAS_RATIO,
    STARGATE_NAME,
    STARGATE_RELIABILITY,
    STARGATE_TOKENS,
    STARGATE_URL,
    TOKEN_ADDRESSES,
)
from bridge_aggregator.core.exceptions import ProviderMalformedResponseError
from bridge_aggregator.core.resilience.retry import FetchRequest
from bridge_aggregator.quotes.models import MarketSnapshot, QuoteRequest
from bridge_aggregator.quotes.providers.base_provider import BaseProvider, ProviderConfig, parse_amount

WEI_PER_ETH = 1e18

STARGATE_CONFIG = ProviderConfig(
    name=STARGATE_NAME,
    url=STARGATE_URL,
    supported_chains=STARGATE_CHAINS,
    supported_tokens=STARGATE_TOKENS,
    reliability=STARGATE_RELIABILITY,
    affiliate_url=STARGATE_AFFILIATE_URL,
    gas_ratio=STARGATE_GAS_RATIO,
    estimated_time=STARGATE_ESTIMATED_TIME,
    fee_in_eth=True,
)


class StargateProvider(BaseProvider):

    def build_request(self, request: QuoteRequest) -> FetchRequest:
        return FetchRequest(
            self.config.url,
            params={
                "srcToken": TOKEN_ADDRESSES[request.source_chain][request.token],
                "dstToken": TOKEN_ADDRESSES[request.destination_chain][request.token],
                "srcChainKey": request.source_chain,
                "dstChainKey": request.destination_chain,
                "srcAmount": request.base_units(),
            },
        )

    def extract_fee(
        self, payload: dict[str, Any], request: QuoteRequest, snapshot: MarketSnapshot
    ) -> float | None:
        routes = self.require(payload, "quotes")
        if not isinstance(routes, list) or not routes:
            raise ProviderMalformedResponseError(
                "No Stargate routes available for this pair", provider_name=self.name
            )

        route = routes[0]
        fees = route.get("fees") if isinstance(route, dict) else None
        if not isinstance(fees, list):
            return None

        total_wei = 0.0
        for fee in fees:
            amount = parse_amount(fee.get("amount")) if isinstance(fee, dict) else None
            if amount is None:
                return None
            total_wei += amount

        return total_wei / WEI_PER_ETH * snapshot.eth_usd_price
