"""Service selector metrics."""

from __future__ import annotations

from collections.abc import Iterator

from costscope.metrics.base import GAUGE, ClusterStateCollector, labels_with
from costscope.metrics.labels import kube_labels_to_labels

SERVICE_SELECTOR_LABELS = "service_selector_labels"


class KubecostServiceCollector(ClusterStateCollector):
    METRICS = {
        SERVICE_SELECTOR_LABELS: (GAUGE, "service selector labels"),
    }

    def samples(self) -> Iterator[tuple[str, dict[str, str], float]]:
        for service in self._cache.get_all_services():
            # Headless and external-name services have no selector.
            names, values = kube_labels_to_labels(service.selector)
            if not names:
                continue
            base = {"service": service.name, "namespace": service.namespace, "uid": service.uid}
            yield SERVICE_SELECTOR_LABELS, labels_with(base, names, values), 1.0
