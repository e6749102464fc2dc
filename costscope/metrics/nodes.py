"""Node capacity, allocatable, labels and conditions."""

from __future__ import annotations

from collections.abc import Iterator, Mapping

from costscope.metrics.base import GAUGE, ClusterStateCollector, labels_with, quantity_value, resource_unit
from costscope.metrics.labels import kube_labels_to_labels, sanitize_label_name
from costscope.models.entities import Node

KUBE_NODE_STATUS_CAPACITY = "kube_node_status_capacity"
KUBE_NODE_STATUS_CAPACITY_MEMORY_BYTES = "kube_node_status_capacity_memory_bytes"
KUBE_NODE_STATUS_CAPACITY_CPU_CORES = "kube_node_status_capacity_cpu_cores"
KUBE_NODE_STATUS_ALLOCATABLE = "kube_node_status_allocatable"
KUBE_NODE_STATUS_ALLOCATABLE_CPU_CORES = "kube_node_status_allocatable_cpu_cores"
KUBE_NODE_STATUS_ALLOCATABLE_MEMORY_BYTES = "kube_node_status_allocatable_memory_bytes"
KUBE_NODE_LABELS = "kube_node_labels"
KUBE_NODE_STATUS_CONDITION = "kube_node_status_condition"

Row = tuple[str, dict[str, str], float]


def get_conditions(status: str) -> list[tuple[str, float]]:
    """One ``(status label, value)`` pair for each of true, false and unknown."""
    return [
        ("true", 1.0 if status == "True" else 0.0),
        ("false", 1.0 if status == "False" else 0.0),
        ("unknown", 1.0 if status == "Unknown" else 0.0),
    ]


class KubeNodeCollector(ClusterStateCollector):
    METRICS = {
        KUBE_NODE_STATUS_CAPACITY: (GAUGE, "The capacity for different resources of a node"),
        KUBE_NODE_STATUS_CAPACITY_MEMORY_BYTES: (GAUGE, "The memory capacity of a node in bytes"),
        KUBE_NODE_STATUS_CAPACITY_CPU_CORES: (GAUGE, "The CPU capacity of a node in cores"),
        KUBE_NODE_STATUS_ALLOCATABLE: (GAUGE, "The allocatable for different resources of a node"),
        KUBE_NODE_STATUS_ALLOCATABLE_CPU_CORES: (GAUGE, "The allocatable CPU of a node in cores"),
        KUBE_NODE_STATUS_ALLOCATABLE_MEMORY_BYTES: (GAUGE, "The allocatable memory of a node in bytes"),
        KUBE_NODE_LABELS: (GAUGE, "All labels for each node prefixed with label_"),
        KUBE_NODE_STATUS_CONDITION: (GAUGE, "The condition of a cluster node"),
    }

    def samples(self) -> Iterator[Row]:
        for node in self._cache.get_all_nodes():
            yield from self._node_rows(node)

    def _node_rows(self, node: Node) -> Iterator[Row]:
        ident = {"node": node.name, "uid": node.uid}

        yield from _resource_rows(
            ident,
            node.status.capacity,
            KUBE_NODE_STATUS_CAPACITY,
            KUBE_NODE_STATUS_CAPACITY_CPU_CORES,
            KUBE_NODE_STATUS_CAPACITY_MEMORY_BYTES,
        )
        yield from _resource_rows(
            ident,
            node.status.allocatable,
            KUBE_NODE_STATUS_ALLOCATABLE,
            KUBE_NODE_STATUS_ALLOCATABLE_CPU_CORES,
            KUBE_NODE_STATUS_ALLOCATABLE_MEMORY_BYTES,
        )

        names, values = kube_labels_to_labels(node.labels)
        yield KUBE_NODE_LABELS, labels_with(ident, names, values), 1.0

        for condition in node.status.conditions:
            for status, value in get_conditions(condition.status):
                yield (
                    KUBE_NODE_STATUS_CONDITION,
                    {"node": node.name, "condition": condition.type, "status": status, "uid": node.uid},
                    value,
                )


def _resource_rows(
    ident: dict[str, str],
    resources: Mapping[str, str],
    generic: str,
    cpu_metric: str,
    memory_metric: str,
) -> Iterator[Row]:
    for resource, quantity in sorted(resources.items()):
        value = quantity_value(quantity)
        if value is None:
            continue
        labels = {
            "node": ident["node"],
            "resource": sanitize_label_name(resource),
            "unit": resource_unit(resource),
            "uid": ident["uid"],
        }
        yield generic, labels, value
        if resource == "cpu":
            yield cpu_metric, dict(ident), value
        elif resource == "memory":
            yield memory_metric, dict(ident), value
