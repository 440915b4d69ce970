"""
Services Module

Application services that coordinate the core and infrastructure layers.
"""

from bridge_aggregator.services.aggregator import Aggregator

__all__ = ["Aggregator"]
