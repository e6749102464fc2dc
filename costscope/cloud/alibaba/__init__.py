"""Alibaba Cloud pricing.

Submodules:
    keys        -- Slim node/disk views, pricing keys and price table entries.
    client      -- Signed OpenAPI client and DescribePrice/DescribeDisks helpers.
    provider    -- Cached, single-flight pricing provider.
    boaconfig   -- Access key authorizer and billing connection configuration.
    boaquerier  -- Paginated billing queries and cost categories.
"""

from costscope.cloud.alibaba.boaconfig import (
    AccessKey,
    AlibabaInfo,
    BOAConfiguration,
    convert_alibaba_info_to_config,
    select_authorizer_by_type,
)
from costscope.cloud.alibaba.provider import AlibabaProvider

__all__ = [
    "AccessKey",
    "AlibabaInfo",
    "AlibabaProvider",
    "BOAConfiguration",
    "convert_alibaba_info_to_config",
    "select_authorizer_by_type",
]
