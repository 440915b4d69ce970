"""Infrastructure layer: key-value stores, caching, market data and metrics."""
