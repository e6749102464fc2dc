"""Cloud pricing engine.

Submodules:
    provider  -- Provider, key and credential abstractions, cost records, errors.
    models    -- Custom pricing document and its on-disk store.
    custom    -- Provider priced from operator-supplied base prices.
    alibaba   -- Alibaba Cloud DescribePrice provider and billing queries.
"""

from costscope.cloud.provider import (
    REDACTED,
    ConfigError,
    NodeCost,
    PricingError,
    PricingKeyError,
    Provider,
    PVCost,
    UnsupportedComponentError,
)

__all__ = [
    "REDACTED",
    "ConfigError",
    "NodeCost",
    "PVCost",
    "PricingError",
    "PricingKeyError",
    "Provider",
    "UnsupportedComponentError",
]
