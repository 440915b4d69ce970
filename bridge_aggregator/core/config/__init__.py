"""
Configuration Module

Centralized, type-safe configuration for the bridge quote aggregator.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Chain/token tables, bridge business constants, enums

Usage:
------
```python
from bridge_aggregator.core.config import get_settings
from bridge_aggregator.core.config.constants import CircuitState, Stage

settings = get_settings()
threshold = settings.circuit_breaker.CB_FAILURE_THRESHOLD
```

Testing:
-------
```python
import os
from bridge_aggregator.core.config import reload_settings

os.environ["RATE_LIMIT_MAX_REQUESTS"] = "5"
settings = reload_settings()
assert settings.rate_limit.RATE_LIMIT_MAX_REQUESTS == 5
```

Author: System Architect
Date: 2025-12-05
"""

from bridge_aggregator.core.config.constants import (
    CHAIN_IDS,
    SUPPORTED_CHAINS,
    SUPPORTED_TOKENS,
    CacheTier,
    CircuitState,
    MarketOrigin,
    ProviderErrorCode,
    SourceTag,
    Stage,
)
from bridge_aggregator.core.config.settings import Settings, get_settings, reload_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "reload_settings",
    # Enums
    "Stage",
    "CircuitState",
    "CacheTier",
    "SourceTag",
    "MarketOrigin",
    "ProviderErrorCode",
    # Tables
    "CHAIN_IDS",
    "SUPPORTED_CHAINS",
    "SUPPORTED_TOKENS",
]
