"""Shared plumbing for the cluster-state collectors.

Every collector reads the cluster cache on each scrape and turns entities
into metric families. A family is yielded from :meth:`describe` only when
its metric is enabled, so ``prometheus_client`` sees exactly the names the
collector may produce. Samples are added with an explicit label dict because
families such as ``kube_pod_labels`` carry a different label set per entity.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator

from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

from costscope.cache.cluster_cache import ClusterCacheReader
from costscope.metrics.config import MetricsConfig
from costscope.metrics.labels import to_prometheus_labels
from costscope.util.quantity import QuantityError, parse_quantity

COUNTER = "counter"
GAUGE = "gauge"

UNIT_CORE = "core"
UNIT_BYTE = "byte"
UNIT_INTEGER = "integer"

_BYTE_RESOURCES: frozenset[str] = frozenset({"memory", "storage", "ephemeral-storage"})


class ClusterStateCollector(Collector, ABC):
    """Base class: subclasses list their metrics in ``METRICS`` and implement :meth:`samples`.

    ``METRICS`` maps metric name to ``(type, help)``.
    """

    METRICS: dict[str, tuple[str, str]] = {}

    def __init__(self, cache: ClusterCacheReader, config: MetricsConfig | None = None) -> None:
        self._cache = cache
        self._config = config or MetricsConfig()

    def enabled(self, name: str) -> bool:
        return self._config.is_enabled(name)

    def describe(self) -> Iterator[Metric]:
        for name in self.METRICS:
            if self.enabled(name):
                yield self._family(name)

    def collect(self) -> Iterator[Metric]:
        families: dict[str, Metric] = {}
        for name, labels, value in self.samples():
            if not self.enabled(name):
                continue
            family = families.get(name)
            if family is None:
                family = families[name] = self._family(name)
            sample_name = name if family.type != COUNTER else family.name + "_total"
            family.add_sample(sample_name, labels, value)
        yield from families.values()

    @abstractmethod
    def samples(self) -> Iterator[tuple[str, dict[str, str], float]]:
        """Yield ``(metric name, labels, value)`` rows for the current cache state."""

    def _family(self, name: str) -> Metric:
        kind, documentation = self.METRICS[name]
        if kind == COUNTER:
            return CounterMetricFamily(name, documentation)
        return GaugeMetricFamily(name, documentation)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def labels_with(base: dict[str, str], names: list[str], values: list[str]) -> dict[str, str]:
    """*base* extended with the zipped *names* / *values* pairs."""
    return {**base, **to_prometheus_labels(names, values)}


def resource_unit(resource: str) -> str:
    if resource == "cpu":
        return UNIT_CORE
    if resource in _BYTE_RESOURCES:
        return UNIT_BYTE
    return UNIT_INTEGER


def quantity_value(quantity: str) -> float | None:
    """Numeric value of *quantity* in its base unit, or None if unparseable."""
    try:
        return parse_quantity(quantity)
    except QuantityError:
        return None
