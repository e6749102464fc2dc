"""Persistent volume capacity, phase and info."""

from __future__ import annotations

from collections.abc import Iterator

from costscope.metrics.base import GAUGE, ClusterStateCollector, quantity_value

KUBE_PERSISTENTVOLUME_CAPACITY_BYTES = "kube_persistentvolume_capacity_bytes"
KUBE_PERSISTENTVOLUME_STATUS_PHASE = "kube_persistentvolume_status_phase"
KUBE_PERSISTENTVOLUME_INFO = "kube_persistentvolume_info"

PV_PHASES: tuple[str, ...] = ("Pending", "Available", "Bound", "Released", "Failed")

Row = tuple[str, dict[str, str], float]


class KubePVCollector(ClusterStateCollector):
    METRICS = {
        KUBE_PERSISTENTVOLUME_CAPACITY_BYTES: (GAUGE, "The persistentvolume's capacity in bytes"),
        KUBE_PERSISTENTVOLUME_STATUS_PHASE: (
            GAUGE,
            "The phase indicates if a volume is available, bound to a claim, or released by a claim",
        ),
        KUBE_PERSISTENTVOLUME_INFO: (GAUGE, "Information about persistentvolume"),
    }

    def samples(self) -> Iterator[Row]:
        for pv in self._cache.get_all_persistent_volumes():
            capacity = quantity_value(pv.capacity.get("storage", ""))
            if capacity is not None:
                yield KUBE_PERSISTENTVOLUME_CAPACITY_BYTES, {"persistentvolume": pv.name, "uid": pv.uid}, capacity

            if pv.phase:
                for phase in PV_PHASES:
                    yield (
                        KUBE_PERSISTENTVOLUME_STATUS_PHASE,
                        {"persistentvolume": pv.name, "phase": phase, "uid": pv.uid},
                        1.0 if phase == pv.phase else 0.0,
                    )

            yield (
                KUBE_PERSISTENTVOLUME_INFO,
                {"persistentvolume": pv.name, "storageclass": pv.storage_class_name, "uid": pv.uid},
                1.0,
            )
