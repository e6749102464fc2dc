"""Kubelet summaries to metric samples.

:func:`scrape_summaries` flattens summaries into :class:`MetricUpdate` rows,
and :class:`NodeStatsCollector` exposes the latest scrape to Prometheus.
Samples sharing a name and label set (several interfaces of one pod, or root
filesystems of several containers on one node) are summed.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

from costscope.models.stats import InterfaceStats, Summary

NODE_CPU_SECONDS_TOTAL = "node_cpu_seconds_total"
NODE_FS_CAPACITY_BYTES = "node_fs_capacity_bytes"
CONTAINER_NETWORK_RECEIVE_BYTES_TOTAL = "container_network_receive_bytes_total"
CONTAINER_NETWORK_TRANSMIT_BYTES_TOTAL = "container_network_transmit_bytes_total"
CONTAINER_CPU_USAGE_SECONDS_TOTAL = "container_cpu_usage_seconds_total"
CONTAINER_MEMORY_WORKING_SET_BYTES = "container_memory_working_set_bytes"
CONTAINER_FS_USAGE_BYTES = "container_fs_usage_bytes"
KUBELET_VOLUME_STATS_USED_BYTES = "kubelet_volume_stats_used_bytes"

_NANO: float = 1e-9
# cni0 carries intra-cluster bridge traffic and would double count pod traffic.
_SKIPPED_INTERFACE = "cni0"

_HELP: dict[str, str] = {
    NODE_CPU_SECONDS_TOTAL: "Cumulative node CPU time in seconds",
    NODE_FS_CAPACITY_BYTES: "Node root filesystem capacity in bytes",
    CONTAINER_NETWORK_RECEIVE_BYTES_TOTAL: "Cumulative bytes received by the pod",
    CONTAINER_NETWORK_TRANSMIT_BYTES_TOTAL: "Cumulative bytes transmitted by the pod",
    CONTAINER_CPU_USAGE_SECONDS_TOTAL: "Cumulative container CPU time in seconds",
    CONTAINER_MEMORY_WORKING_SET_BYTES: "Container memory working set in bytes",
    CONTAINER_FS_USAGE_BYTES: "Container root filesystem usage in bytes",
    KUBELET_VOLUME_STATS_USED_BYTES: "Bytes used on a persistent volume claim",
}

_COUNTERS: frozenset[str] = frozenset(
    {
        NODE_CPU_SECONDS_TOTAL,
        CONTAINER_NETWORK_RECEIVE_BYTES_TOTAL,
        CONTAINER_NETWORK_TRANSMIT_BYTES_TOTAL,
        CONTAINER_CPU_USAGE_SECONDS_TOTAL,
    }
)


@dataclass(frozen=True)
class MetricUpdate:
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    value: float = 0.0


# ---------------------------------------------------------------------------
# Flattening
# ---------------------------------------------------------------------------


def scrape_summaries(summaries: Iterable[Summary]) -> list[MetricUpdate]:
    """Convert kubelet summaries into metric updates."""
    updates: list[MetricUpdate] = []
    # A PVC mounted by several pods is reported once per pod; keep the first.
    seen_pvcs: set[tuple[str, str]] = set()

    for summary in summaries:
        node_name = summary.node.node_name
        node = summary.node

        if node.cpu is not None and node.cpu.usage_core_nano_seconds is not None:
            updates.append(
                MetricUpdate(
                    NODE_CPU_SECONDS_TOTAL,
                    {"kubernetes_node": node_name, "mode": ""},
                    node.cpu.usage_core_nano_seconds * _NANO,
                )
            )
        if node.fs is not None and node.fs.capacity_bytes is not None:
            updates.append(
                MetricUpdate(
                    NODE_FS_CAPACITY_BYTES,
                    {"instance": node_name, "device": "local"},
                    float(node.fs.capacity_bytes),
                )
            )

        for pod in summary.pods:
            ref = pod.pod_ref
            if pod.network is not None:
                net_labels = {"uid": ref.uid, "pod": ref.name, "namespace": ref.namespace}
                interfaces: list[InterfaceStats] = pod.network.interfaces or [pod.network]
                for iface in interfaces:
                    updates.extend(_network_updates(net_labels, iface))

            for vol in pod.volume_stats:
                if vol.pvc_ref is None or vol.used_bytes is None:
                    continue
                key = (vol.pvc_ref.namespace, vol.pvc_ref.name)
                if key in seen_pvcs:
                    continue
                seen_pvcs.add(key)
                updates.append(
                    MetricUpdate(
                        KUBELET_VOLUME_STATS_USED_BYTES,
                        {"persistentvolumeclaim": vol.pvc_ref.name, "namespace": vol.pvc_ref.namespace},
                        float(vol.used_bytes),
                    )
                )

            for container in pod.containers:
                labels = {
                    "container": container.name,
                    "pod": ref.name,
                    "namespace": ref.namespace,
                    "node": node_name,
                    "instance": node_name,
                }
                if container.cpu is not None and container.cpu.usage_core_nano_seconds is not None:
                    updates.append(
                        MetricUpdate(
                            CONTAINER_CPU_USAGE_SECONDS_TOTAL,
                            labels,
                            container.cpu.usage_core_nano_seconds * _NANO,
                        )
                    )
                if container.memory is not None and container.memory.working_set_bytes is not None:
                    updates.append(
                        MetricUpdate(
                            CONTAINER_MEMORY_WORKING_SET_BYTES,
                            labels,
                            float(container.memory.working_set_bytes),
                        )
                    )
                if container.rootfs is not None and container.rootfs.used_bytes is not None:
                    updates.append(
                        MetricUpdate(
                            CONTAINER_FS_USAGE_BYTES,
                            {"instance": node_name, "device": "local"},
                            float(container.rootfs.used_bytes),
                        )
                    )
    return updates


def _network_updates(labels: dict[str, str], iface: InterfaceStats) -> list[MetricUpdate]:
    if iface.name == _SKIPPED_INTERFACE:
        return []
    out: list[MetricUpdate] = []
    if iface.rx_bytes is not None:
        out.append(MetricUpdate(CONTAINER_NETWORK_RECEIVE_BYTES_TOTAL, labels, float(iface.rx_bytes)))
    if iface.tx_bytes is not None:
        out.append(MetricUpdate(CONTAINER_NETWORK_TRANSMIT_BYTES_TOTAL, labels, float(iface.tx_bytes)))
    return out


# ---------------------------------------------------------------------------
# Prometheus collector
# ---------------------------------------------------------------------------


class NodeStatsCollector(Collector):
    """Exposes the most recent node stats scrape.

    The polling task calls :meth:`update`; Prometheus scrapes call
    :meth:`collect` from the exposition thread.
    """

    def __init__(self, disabled_metrics: Iterable[str] = ()) -> None:
        self._disabled = frozenset(disabled_metrics)
        self._lock = threading.Lock()
        self._updates: tuple[MetricUpdate, ...] = ()

    def update(self, updates: Iterable[MetricUpdate]) -> None:
        snapshot = tuple(updates)
        with self._lock:
            self._updates = snapshot

    def describe(self) -> Iterator[Metric]:
        for name in _HELP:
            if name not in self._disabled:
                yield _family(name, [])

    def collect(self) -> Iterator[Metric]:
        with self._lock:
            updates = self._updates

        # name -> label names -> label values -> summed value
        grouped: dict[str, dict[tuple[str, ...], dict[tuple[str, ...], float]]] = {}
        for u in updates:
            if u.name in self._disabled:
                continue
            names = tuple(sorted(u.labels))
            values = tuple(u.labels[n] for n in names)
            series = grouped.setdefault(u.name, {}).setdefault(names, {})
            series[values] = series.get(values, 0.0) + u.value

        for name, by_names in grouped.items():
            for label_names, series in by_names.items():
                family = _family(name, list(label_names))
                for values, value in series.items():
                    family.add_metric(list(values), value)
                yield family


def _family(name: str, label_names: list[str]) -> CounterMetricFamily | GaugeMetricFamily:
    if name in _COUNTERS:
        return CounterMetricFamily(name, _HELP[name], labels=label_names)
    return GaugeMetricFamily(name, _HELP[name], labels=label_names)
