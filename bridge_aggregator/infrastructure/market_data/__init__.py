from bridge_aggregator.infrastructure.market_data.market_data import (
    DEFAULT_PRICE_ORACLES,
    MarketDataSource,
    PriceOracle,
    estimate_gas_usd,
)

__all__ = ["DEFAULT_PRICE_ORACLES", "MarketDataSource", "PriceOracle", "estimate_gas_usd"]
