"""Wiring of every collector into a Prometheus registry."""

from __future__ import annotations

from prometheus_client.registry import Collector, CollectorRegistry

from costscope.cache.cluster_cache import ClusterCacheReader
from costscope.cloud.provider import Provider
from costscope.metrics.config import MetricsConfig
from costscope.metrics.costmodel import CostModelCollector
from costscope.metrics.deployments import KubecostDeploymentCollector, KubeDeploymentCollector
from costscope.metrics.jobs import KubeJobCollector
from costscope.metrics.namespaces import KubecostNamespaceCollector, KubeNamespaceCollector
from costscope.metrics.nodes import KubeNodeCollector
from costscope.metrics.pods import KubecostPodCollector, KubePodCollector
from costscope.metrics.pvcs import KubePVCCollector
from costscope.metrics.pvs import KubePVCollector
from costscope.metrics.services import KubecostServiceCollector
from costscope.metrics.statefulsets import KubecostStatefulsetCollector
from costscope.observability.logging import get_logger

_log = get_logger("metrics.registry")


def build_collectors(
    cache: ClusterCacheReader,
    config: MetricsConfig,
    provider: Provider | None = None,
) -> list[Collector]:
    """Return the cluster-state collectors, plus the cost collector when *provider* is given."""
    collectors: list[Collector] = [
        KubecostPodCollector(cache, config),
        KubePodCollector(cache, config),
        KubeNodeCollector(cache, config),
        KubecostDeploymentCollector(cache, config),
        KubeDeploymentCollector(cache, config),
        KubecostStatefulsetCollector(cache, config),
        KubecostServiceCollector(cache, config),
        KubecostNamespaceCollector(cache, config),
        KubeNamespaceCollector(cache, config),
        KubeJobCollector(cache, config),
        KubePVCCollector(cache, config),
        KubePVCollector(cache, config),
    ]
    if provider is not None:
        collectors.append(CostModelCollector(cache, provider, config))
    return collectors


def register_collectors(
    registry: CollectorRegistry,
    cache: ClusterCacheReader,
    config: MetricsConfig,
    provider: Provider | None = None,
    extra: list[Collector] | None = None,
) -> list[Collector]:
    """Register every collector on *registry* and return them.

    *extra* carries collectors built elsewhere, such as the node stats
    collector fed by the polling loop.

    Raises:
        ValueError: if two collectors expose the same metric name.
    """
    collectors = build_collectors(cache, config, provider) + list(extra or [])
    for collector in collectors:
        registry.register(collector)
    _log.info(
        "metrics_collectors_registered",
        collectors=len(collectors),
        disabled=sorted(config.disabled_metrics),
    )
    return collectors
