"""Namespace labels and annotations."""

from __future__ import annotations

from collections.abc import Iterator

from costscope.metrics.base import GAUGE, ClusterStateCollector, labels_with
from costscope.metrics.labels import kube_annotations_to_labels, kube_labels_to_labels

KUBE_NAMESPACE_ANNOTATIONS = "kube_namespace_annotations"
KUBE_NAMESPACE_LABELS = "kube_namespace_labels"

Row = tuple[str, dict[str, str], float]


class KubecostNamespaceCollector(ClusterStateCollector):
    """Namespace annotations; namespaces without annotations produce no sample."""

    METRICS = {
        KUBE_NAMESPACE_ANNOTATIONS: (GAUGE, "namespace annotations"),
    }

    def samples(self) -> Iterator[Row]:
        for namespace in self._cache.get_all_namespaces():
            names, values = kube_annotations_to_labels(namespace.annotations)
            if not names:
                continue
            base = {"namespace": namespace.name, "uid": namespace.uid}
            yield KUBE_NAMESPACE_ANNOTATIONS, labels_with(base, names, values), 1.0


class KubeNamespaceCollector(ClusterStateCollector):
    METRICS = {
        KUBE_NAMESPACE_LABELS: (GAUGE, "namespace labels"),
    }

    def samples(self) -> Iterator[Row]:
        for namespace in self._cache.get_all_namespaces():
            names, values = kube_labels_to_labels(namespace.labels)
            base = {"namespace": namespace.name, "uid": namespace.uid}
            yield KUBE_NAMESPACE_LABELS, labels_with(base, names, values), 1.0
