"""Kubelet summary collection.

Submodules:
    config   -- Client and proxy configuration.
    request  -- Endpoint formatters, retrying HTTP client, multi-endpoint fallback.
    client   -- Ready-node selection, connection plans, bounded fan-out.
    scrape   -- Summary documents to metric updates and their collector.
"""

from costscope.nodestats.client import NodeStatsSummaryClient
from costscope.nodestats.config import NodeClientConfig, NodeClientProxyConfig
from costscope.nodestats.request import (
    DirectNodeFormatter,
    NodeFormatterError,
    NodeHttpClient,
    NodeHttpConnection,
    NodeProxyFormatter,
    NodeRequestError,
    request_node_data,
)

__all__ = [
    "DirectNodeFormatter",
    "NodeClientConfig",
    "NodeClientProxyConfig",
    "NodeFormatterError",
    "NodeHttpClient",
    "NodeHttpConnection",
    "NodeProxyFormatter",
    "NodeRequestError",
    "NodeStatsSummaryClient",
    "request_node_data",
]
