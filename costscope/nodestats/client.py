"""Cluster-wide kubelet summary collection.

:class:`NodeStatsSummaryClient` enumerates ready nodes from the cluster cache,
builds a connection plan per node (API-server proxy first, direct kubelet
second) and fetches ``stats/summary`` from every node with bounded
parallelism. Per-node failures are logged and skipped; the caller receives
the successful subset.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import httpx
from pydantic import ValidationError

from costscope.cache.cluster_cache import ClusterCacheReader
from costscope.models.entities import Node
from costscope.models.stats import Summary
from costscope.nodestats.config import NodeClientConfig
from costscope.nodestats.request import (
    DirectNodeFormatter,
    NodeFormatterError,
    NodeHttpClient,
    NodeHttpConnection,
    NodeProxyFormatter,
    NodeRequestError,
    request_node_data,
)
from costscope.observability.logging import get_logger
from costscope.observability.metrics import nodestats_nodes_scraped, nodestats_scrape_duration_seconds
from costscope.util.worker import concurrent_collect_with

SUMMARY_PATH = "stats/summary"

# Nodes carrying this label cannot be reached on their kubelet port.
_FARGATE_LABEL = "eks.amazonaws.com/compute-type"
_FARGATE_VALUE = "fargate"


class NodeStatsError(Exception):
    """The collector cannot run at all (as opposed to a per-node failure)."""


def build_http_client(config: NodeClientConfig, ca_cert: str = "") -> httpx.AsyncClient:
    """Create the shared AsyncClient used for kubelet and proxy requests.

    Args:
        config: Node client configuration (timeouts, TLS options).
        ca_cert: Cluster CA bundle path used to verify the API server when
            ``config.insecure`` is false.
    """
    verify: bool | str = False if config.insecure else (ca_cert or True)
    cert: tuple[str, str] | None = None
    if config.cert_file and config.key_file:
        cert = (config.cert_file, config.key_file)
    return httpx.AsyncClient(
        timeout=httpx.Timeout(config.timeout_seconds),
        limits=httpx.Limits(
            max_keepalive_connections=config.concurrent_pollers,
            max_connections=config.concurrent_pollers * 2,
        ),
        verify=verify,
        cert=cert,
    )


class NodeStatsSummaryClient:
    """Fetches kubelet summaries from every ready node.

    Usage::

        client = NodeStatsSummaryClient(cache, config, http_client, host="https://10.0.0.1")
        summaries = await client.get_node_data()
    """

    def __init__(
        self,
        cache: ClusterCacheReader,
        config: NodeClientConfig,
        http_client: httpx.AsyncClient,
        host: str = "",
    ) -> None:
        """Initialise the client.

        Args:
            cache: Source of nodes.
            config: Client configuration.
            http_client: Shared AsyncClient; the caller owns its lifecycle.
            host: API server base URL used for proxy connections.
        """
        self._cache = cache
        self._config = config
        self._host = host
        self._node_client = NodeHttpClient(http_client, attempts=config.retry_attempts)
        self._log = get_logger("nodestats.client")

    async def get_node_data(self) -> list[Summary]:
        """Return the summaries of every ready node that answered.

        Raises:
            NodeStatsError: if the bearer token cannot be read.
        """
        start = time.monotonic()
        nodes = self.get_ready_nodes()
        if not nodes:
            return []

        token = ""
        if not self._config.proxy_config.is_local_proxy():
            token = await self._read_token()

        async def _worker(node: Node) -> Summary | None:
            return await self._fetch_summary(node, token)

        summaries = await concurrent_collect_with(self._config.concurrent_pollers, _worker, nodes)
        nodestats_scrape_duration_seconds.observe(time.monotonic() - start)
        nodestats_nodes_scraped.set(len(summaries))
        self._log.debug("node_stats_collected", ready_nodes=len(nodes), summaries=len(summaries))
        return summaries

    def get_ready_nodes(self) -> list[Node]:
        """Return nodes whose Ready condition is "True", logging the rest."""
        nodes = self._cache.get_all_nodes()
        ready = [n for n in nodes if n.is_ready()]
        if nodes and not ready:
            self._log.warning("no_ready_nodes", total_nodes=len(nodes))
        elif len(ready) < len(nodes):
            self._log.warning(
                "nodes_not_ready",
                not_ready=len(nodes) - len(ready),
                total_nodes=len(nodes),
            )
        return ready

    def connection_options(self, node: Node) -> list[NodeHttpConnection]:
        """Build the ordered connection plan for *node*."""
        proxy = self._config.proxy_config
        host = proxy.local_proxy if proxy.is_local_proxy() else self._host
        options = [NodeHttpConnection(NodeProxyFormatter(host, node.name), self._node_client)]

        if proxy.force_kube_proxy or node.labels.get(_FARGATE_LABEL) == _FARGATE_VALUE:
            return options
        try:
            direct = DirectNodeFormatter(node)
        except NodeFormatterError as exc:
            self._log.warning("direct_connection_unavailable", node=node.name, error=str(exc))
            return options
        options.append(NodeHttpConnection(direct, self._node_client))
        return options

    async def _fetch_summary(self, node: Node, token: str) -> Summary | None:
        if not node.provider_id:
            self._log.warning("node_missing_provider_id", node=node.name)
            return None
        try:
            body = await request_node_data(self.connection_options(node), SUMMARY_PATH, token)
        except NodeRequestError as exc:
            self._log.warning("node_stats_unavailable", node=node.name, error=str(exc))
            return None
        try:
            return Summary.model_validate_json(body)
        except ValidationError as exc:
            self._log.warning("node_stats_decode_failed", node=node.name, error=str(exc))
            return None

    async def _read_token(self) -> str:
        """Read the bearer token just in time; its value is never logged."""
        path = Path(self._config.token_file)
        try:
            raw = await asyncio.to_thread(path.read_text)
        except OSError as exc:
            raise NodeStatsError("could not read bearer token from file") from exc
        return raw.strip()
