"""Pod and container state metrics."""

from __future__ import annotations

from collections.abc import Iterator

from costscope.metrics.base import (
    COUNTER,
    GAUGE,
    ClusterStateCollector,
    labels_with,
    quantity_value,
    resource_unit,
)
from costscope.metrics.labels import kube_annotations_to_labels, kube_labels_to_labels, sanitize_label_name
from costscope.models.entities import Container, Pod

KUBE_POD_LABELS = "kube_pod_labels"
KUBE_POD_OWNER = "kube_pod_owner"
KUBE_POD_CONTAINER_STATUS_RUNNING = "kube_pod_container_status_running"
KUBE_POD_CONTAINER_STATUS_TERMINATED_REASON = "kube_pod_container_status_terminated_reason"
KUBE_POD_CONTAINER_STATUS_RESTARTS_TOTAL = "kube_pod_container_status_restarts_total"
KUBE_POD_CONTAINER_RESOURCE_REQUESTS = "kube_pod_container_resource_requests"
KUBE_POD_CONTAINER_RESOURCE_LIMITS = "kube_pod_container_resource_limits"
KUBE_POD_CONTAINER_RESOURCE_LIMITS_CPU_CORES = "kube_pod_container_resource_limits_cpu_cores"
KUBE_POD_CONTAINER_RESOURCE_LIMITS_MEMORY_BYTES = "kube_pod_container_resource_limits_memory_bytes"
KUBE_POD_STATUS_PHASE = "kube_pod_status_phase"
KUBE_POD_ANNOTATIONS = "kube_pod_annotations"

POD_PHASES: tuple[str, ...] = ("Pending", "Running", "Succeeded", "Failed", "Unknown")

Row = tuple[str, dict[str, str], float]


class KubecostPodCollector(ClusterStateCollector):
    """Pod annotations; pods without annotations produce no sample."""

    METRICS = {
        KUBE_POD_ANNOTATIONS: (GAUGE, "Kubernetes annotations converted to Prometheus labels"),
    }

    def samples(self) -> Iterator[Row]:
        for pod in self._cache.get_all_pods():
            names, values = kube_annotations_to_labels(pod.annotations)
            if not names:
                continue
            base = {"namespace": pod.namespace, "pod": pod.name, "uid": pod.uid}
            yield KUBE_POD_ANNOTATIONS, labels_with(base, names, values), 1.0


class KubePodCollector(ClusterStateCollector):
    """kube-state-metrics compatible pod metrics."""

    METRICS = {
        KUBE_POD_LABELS: (GAUGE, "All labels for each pod prefixed with label_"),
        KUBE_POD_OWNER: (GAUGE, "Information about the Pod's owner"),
        KUBE_POD_CONTAINER_STATUS_RUNNING: (GAUGE, "Describes whether the container is currently in running state"),
        KUBE_POD_CONTAINER_STATUS_TERMINATED_REASON: (
            GAUGE,
            "Describes the reason the container is currently in terminated state",
        ),
        KUBE_POD_CONTAINER_STATUS_RESTARTS_TOTAL: (
            COUNTER,
            "The number of container restarts per container",
        ),
        KUBE_POD_CONTAINER_RESOURCE_REQUESTS: (
            GAUGE,
            "The number of requested resource by a container",
        ),
        KUBE_POD_CONTAINER_RESOURCE_LIMITS: (GAUGE, "The number of limited resource by a container"),
        KUBE_POD_CONTAINER_RESOURCE_LIMITS_CPU_CORES: (
            GAUGE,
            "The number of CPU cores a container is limited to",
        ),
        KUBE_POD_CONTAINER_RESOURCE_LIMITS_MEMORY_BYTES: (
            GAUGE,
            "The number of bytes of memory a container is limited to",
        ),
        KUBE_POD_STATUS_PHASE: (GAUGE, "The pods current phase"),
    }

    def samples(self) -> Iterator[Row]:
        for pod in self._cache.get_all_pods():
            yield from self._pod_rows(pod)

    def _pod_rows(self, pod: Pod) -> Iterator[Row]:
        ident = {"namespace": pod.namespace, "pod": pod.name}

        names, values = kube_labels_to_labels(pod.labels)
        yield KUBE_POD_LABELS, labels_with({**ident, "uid": pod.uid}, names, values), 1.0

        for ref in pod.owner_references:
            yield (
                KUBE_POD_OWNER,
                {
                    **ident,
                    "owner_name": ref.name,
                    "owner_kind": ref.kind,
                    "owner_is_controller": "true" if ref.controller else "false",
                    "uid": pod.uid,
                },
                1.0,
            )

        for status in pod.container_statuses:
            container = {**ident, "container": status.name, "uid": pod.uid}
            yield KUBE_POD_CONTAINER_STATUS_RESTARTS_TOTAL, container, float(status.restart_count)
            if status.state.running:
                yield KUBE_POD_CONTAINER_STATUS_RUNNING, container, 1.0
            if status.state.terminated:
                yield (
                    KUBE_POD_CONTAINER_STATUS_TERMINATED_REASON,
                    {**container, "reason": status.state.terminated_reason},
                    1.0,
                )

        for container in pod.spec.containers:
            yield from self._resource_rows(pod, container)

        if pod.phase:
            for phase in POD_PHASES:
                yield (
                    KUBE_POD_STATUS_PHASE,
                    {**ident, "phase": phase, "uid": pod.uid},
                    1.0 if phase == pod.phase else 0.0,
                )

    def _resource_rows(self, pod: Pod, container: Container) -> Iterator[Row]:
        base = {
            "namespace": pod.namespace,
            "pod": pod.name,
            "container": container.name,
            "node": pod.spec.node_name,
        }

        for resource, quantity in sorted(container.resources.requests.items()):
            value = quantity_value(quantity)
            if value is None:
                continue
            yield (
                KUBE_POD_CONTAINER_RESOURCE_REQUESTS,
                {
                    **base,
                    "resource": sanitize_label_name(resource),
                    "unit": resource_unit(resource),
                    "uid": pod.uid,
                },
                value,
            )

        for resource, quantity in sorted(container.resources.limits.items()):
            value = quantity_value(quantity)
            if value is None:
                continue
            yield (
                KUBE_POD_CONTAINER_RESOURCE_LIMITS,
                {
                    **base,
                    "resource": sanitize_label_name(resource),
                    "unit": resource_unit(resource),
                    "uid": pod.uid,
                },
                value,
            )
            if resource == "cpu":
                yield KUBE_POD_CONTAINER_RESOURCE_LIMITS_CPU_CORES, {**base, "uid": pod.uid}, value
            elif resource == "memory":
                yield KUBE_POD_CONTAINER_RESOURCE_LIMITS_MEMORY_BYTES, {**base, "uid": pod.uid}, value
