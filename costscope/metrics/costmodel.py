"""Hourly node and volume prices from the active pricing provider.

Prices are read from the provider's cache on every scrape; no pricing call
leaves the process here. An entity whose price is not known yet (for example
before the first refresh, or after a failed quote) is skipped with a debug
log and the remaining entities are still exported.
"""

from __future__ import annotations

from collections.abc import Iterator

from costscope.cache.cluster_cache import ClusterCacheReader
from costscope.cloud.provider import PricingError, Provider
from costscope.metrics.base import GAUGE, ClusterStateCollector
from costscope.metrics.config import MetricsConfig
from costscope.models.entities import Node, PersistentVolume
from costscope.observability.logging import get_logger

NODE_CPU_HOURLY_COST = "node_cpu_hourly_cost"
NODE_RAM_HOURLY_COST = "node_ram_hourly_cost"
NODE_GPU_HOURLY_COST = "node_gpu_hourly_cost"
NODE_TOTAL_HOURLY_COST = "node_total_hourly_cost"
PV_HOURLY_COST = "pv_hourly_cost"

_log = get_logger("metrics.costmodel")

Row = tuple[str, dict[str, str], float]


class CostModelCollector(ClusterStateCollector):
    """Per-node and per-volume hourly cost gauges.

    Args:
        cache: Cluster cache the nodes and volumes are read from.
        provider: Pricing provider answering from its in-memory table.
        config: Metric gating.
    """

    METRICS = {
        NODE_CPU_HOURLY_COST: (GAUGE, "Hourly cost per vCPU on this node"),
        NODE_RAM_HOURLY_COST: (GAUGE, "Hourly cost per GiB of memory on this node"),
        NODE_GPU_HOURLY_COST: (GAUGE, "Hourly cost per GPU on this node"),
        NODE_TOTAL_HOURLY_COST: (GAUGE, "Total node cost per hour"),
        PV_HOURLY_COST: (GAUGE, "Cost per GiB per hour on a persistent disk"),
    }

    def __init__(self, cache: ClusterCacheReader, provider: Provider, config: MetricsConfig | None = None) -> None:
        super().__init__(cache, config)
        self._provider = provider

    def samples(self) -> Iterator[Row]:
        for node in self._cache.get_all_nodes():
            yield from self._node_rows(node)

        if self.enabled(PV_HOURLY_COST):
            parameters = {sc.name: sc.parameters for sc in self._cache.get_all_storage_classes()}
            for pv in self._cache.get_all_persistent_volumes():
                yield from self._pv_rows(pv, parameters.get(pv.storage_class_name, {}))

    def _node_rows(self, node: Node) -> Iterator[Row]:
        try:
            key = self._provider.get_key(node.labels, node)
            cost, _ = self._provider.node_pricing(key)
        except PricingError as exc:
            _log.debug("node_price_unavailable", node=node.name, provider=self._provider.name, error=str(exc))
            return

        labels = {
            "node": node.name,
            "uid": node.uid,
            "instance_type": cost.instance_type,
            "region": cost.region,
            "provider_id": cost.provider_id or node.provider_id,
        }
        yield NODE_CPU_HOURLY_COST, labels, cost.vcpu_cost
        yield NODE_RAM_HOURLY_COST, dict(labels), cost.ram_cost
        yield NODE_GPU_HOURLY_COST, dict(labels), cost.gpu_cost
        yield NODE_TOTAL_HOURLY_COST, dict(labels), cost.hourly_cost

    def _pv_rows(self, pv: PersistentVolume, parameters: dict[str, str]) -> Iterator[Row]:
        try:
            key = self._provider.get_pv_key(pv, parameters, "")
            cost = self._provider.pv_pricing(key)
        except PricingError as exc:
            _log.debug("pv_price_unavailable", persistentvolume=pv.name, provider=self._provider.name, error=str(exc))
            return

        labels = {
            "volumename": pv.name,
            "persistentvolume": pv.name,
            "uid": pv.uid,
            "provider_id": cost.provider_id,
        }
        yield PV_HOURLY_COST, labels, cost.hourly_cost
