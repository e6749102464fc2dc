"""Persistent volume claim requests and info."""

from __future__ import annotations

from collections.abc import Iterator

from costscope.metrics.base import GAUGE, ClusterStateCollector, quantity_value

KUBE_PERSISTENTVOLUMECLAIM_RESOURCE_REQUESTS_STORAGE_BYTES = (
    "kube_persistentvolumeclaim_resource_requests_storage_bytes"
)
KUBE_PERSISTENTVOLUMECLAIM_INFO = "kube_persistentvolumeclaim_info"


class KubePVCCollector(ClusterStateCollector):
    METRICS = {
        KUBE_PERSISTENTVOLUMECLAIM_RESOURCE_REQUESTS_STORAGE_BYTES: (
            GAUGE,
            "The capacity of storage requested by the persistent volume claim",
        ),
        KUBE_PERSISTENTVOLUMECLAIM_INFO: (GAUGE, "Information about persistent volume claim"),
    }

    def samples(self) -> Iterator[tuple[str, dict[str, str], float]]:
        for pvc in self._cache.get_all_persistent_volume_claims():
            base = {"persistentvolumeclaim": pvc.name, "namespace": pvc.namespace}
            requested = quantity_value(pvc.requests.get("storage", ""))
            if requested is not None:
                yield KUBE_PERSISTENTVOLUMECLAIM_RESOURCE_REQUESTS_STORAGE_BYTES, {**base, "uid": pvc.uid}, requested
            yield (
                KUBE_PERSISTENTVOLUMECLAIM_INFO,
                {**base, "storageclass": pvc.storage_class_name, "volumename": pvc.volume_name, "uid": pvc.uid},
                1.0,
            )
