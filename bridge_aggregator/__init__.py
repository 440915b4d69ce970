"""
Bridge Quote Aggregator

Fans out quote requests to cross-chain bridge providers, normalizes the
answers and returns them ranked by total cost, with per-provider circuit
breaking, retries, caching and client rate limiting.
"""

__version__ = "2.0.0"
