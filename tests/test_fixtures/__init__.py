"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .cache_factory import CacheTestFactory, FailingStore
from .fake_clock import FakeClock
from .http_factory import HttpTestFactory
from .provider_factory import ProviderTestFactory, ScriptedProvider
from .request_factory import QuoteFactory, RequestFactory

__all__ = [
    "CacheTestFactory",
    "FailingStore",
    "FakeClock",
    "HttpTestFactory",
    "ProviderTestFactory",
    "ScriptedProvider",
    "QuoteFactory",
    "RequestFactory",
]
