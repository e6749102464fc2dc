"""StatefulSet selector metrics."""

from __future__ import annotations

from collections.abc import Iterator

from costscope.metrics.base import GAUGE, ClusterStateCollector, labels_with
from costscope.metrics.labels import kube_labels_to_labels

STATEFULSET_MATCH_LABELS = "statefulSet_match_labels"


class KubecostStatefulsetCollector(ClusterStateCollector):
    """Selector match labels; statefulsets without match labels produce no sample."""

    METRICS = {
        STATEFULSET_MATCH_LABELS: (GAUGE, "statefulSet match labels"),
    }

    def samples(self) -> Iterator[tuple[str, dict[str, str], float]]:
        for statefulset in self._cache.get_all_stateful_sets():
            names, values = kube_labels_to_labels(statefulset.match_labels)
            if not names:
                continue
            base = {"statefulSet": statefulset.name, "namespace": statefulset.namespace, "uid": statefulset.uid}
            yield STATEFULSET_MATCH_LABELS, labels_with(base, names, values), 1.0
