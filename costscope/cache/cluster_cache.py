"""In-memory cluster cache backed by Kubernetes watch streams.

Holds one :class:`KindIndex` per supported kind, each maintained by its own
:class:`~costscope.cache.watchers.KindWatcher`. Entities are keyed by uid.

Concurrency
-----------
Watchers write from the asyncio loop while the Prometheus exposition server
reads from its own thread. Each index is copy-on-write: a writer takes the
index lock, builds a new dict and a new tuple snapshot, then publishes both
by reference assignment. Readers take no lock; they copy the currently
published tuple into a fresh list, which is always a complete historical
snapshot of the kind.

Readiness states
----------------
WARMING          – initial list calls are in progress.
READY            – every kind was listed successfully and is being watched.
PARTIALLY_READY  – at least one kind failed its initial list; it is filled in
                   by its watcher as events arrive.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from costscope.cache import projection
from costscope.models.entities import (
    DaemonSet,
    Deployment,
    Job,
    Namespace,
    Node,
    PersistentVolume,
    PersistentVolumeClaim,
    Pod,
    PodDisruptionBudget,
    ReplicaSet,
    ReplicationController,
    Service,
    StatefulSet,
    StorageClass,
)
from costscope.models.resources import CacheReadiness
from costscope.observability.logging import get_logger
from costscope.observability.metrics import cache_entities

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Kind registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KindSpec:
    """How to list, watch and project one resource kind."""

    kind: str
    api_group: str  # key into the api_map: "core", "apps", "batch", "storage" or "policy"
    list_method: str
    projector: Callable[[dict[str, Any]], Any]


KIND_SPECS: tuple[KindSpec, ...] = (
    KindSpec("Namespace", "core", "list_namespace", projection.project_namespace),
    KindSpec("Node", "core", "list_node", projection.project_node),
    KindSpec("Pod", "core", "list_pod_for_all_namespaces", projection.project_pod),
    KindSpec("Service", "core", "list_service_for_all_namespaces", projection.project_service),
    KindSpec("DaemonSet", "apps", "list_daemon_set_for_all_namespaces", projection.project_daemon_set),
    KindSpec("Deployment", "apps", "list_deployment_for_all_namespaces", projection.project_deployment),
    KindSpec("StatefulSet", "apps", "list_stateful_set_for_all_namespaces", projection.project_stateful_set),
    KindSpec("ReplicaSet", "apps", "list_replica_set_for_all_namespaces", projection.project_replica_set),
    KindSpec("PersistentVolume", "core", "list_persistent_volume", projection.project_persistent_volume),
    KindSpec(
        "PersistentVolumeClaim",
        "core",
        "list_persistent_volume_claim_for_all_namespaces",
        projection.project_persistent_volume_claim,
    ),
    KindSpec("StorageClass", "storage", "list_storage_class", projection.project_storage_class),
    KindSpec("Job", "batch", "list_job_for_all_namespaces", projection.project_job),
    KindSpec(
        "PodDisruptionBudget",
        "policy",
        "list_pod_disruption_budget_for_all_namespaces",
        projection.project_pod_disruption_budget,
    ),
    KindSpec(
        "ReplicationController",
        "core",
        "list_replication_controller_for_all_namespaces",
        projection.project_replication_controller,
    ),
)


# ---------------------------------------------------------------------------
# Per-kind index
# ---------------------------------------------------------------------------


class KindIndex(Generic[T]):
    """Copy-on-write index of one kind's entities keyed by uid."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._lock = threading.Lock()
        self._by_uid: dict[str, T] = {}
        self._snapshot: tuple[T, ...] = ()

    def upsert(self, uid: str, entity: T) -> None:
        with self._lock:
            by_uid = dict(self._by_uid)
            by_uid[uid] = entity
            self._publish(by_uid)

    def delete(self, uid: str) -> None:
        with self._lock:
            if uid not in self._by_uid:
                return
            by_uid = dict(self._by_uid)
            del by_uid[uid]
            self._publish(by_uid)

    def replace(self, entities: dict[str, T]) -> None:
        with self._lock:
            self._publish(dict(entities))

    def get(self, uid: str) -> T | None:
        return self._by_uid.get(uid)

    def snapshot(self) -> list[T]:
        """Return a new list holding the currently published entities."""
        return list(self._snapshot)

    def __len__(self) -> int:
        return len(self._snapshot)

    def _publish(self, by_uid: dict[str, T]) -> None:
        # Both assignments are atomic; readers only ever read _snapshot.
        self._by_uid = by_uid
        self._snapshot = tuple(by_uid.values())
        cache_entities.labels(kind=self.kind).set(len(by_uid))


# ---------------------------------------------------------------------------
# Reader protocol
# ---------------------------------------------------------------------------


class ClusterCacheReader(Protocol):
    """Read-only surface consumed by collectors and the pricing engine."""

    def get_all_namespaces(self) -> list[Namespace]: ...
    def get_all_nodes(self) -> list[Node]: ...
    def get_all_pods(self) -> list[Pod]: ...
    def get_all_services(self) -> list[Service]: ...
    def get_all_daemon_sets(self) -> list[DaemonSet]: ...
    def get_all_deployments(self) -> list[Deployment]: ...
    def get_all_stateful_sets(self) -> list[StatefulSet]: ...
    def get_all_replica_sets(self) -> list[ReplicaSet]: ...
    def get_all_persistent_volumes(self) -> list[PersistentVolume]: ...
    def get_all_persistent_volume_claims(self) -> list[PersistentVolumeClaim]: ...
    def get_all_storage_classes(self) -> list[StorageClass]: ...
    def get_all_jobs(self) -> list[Job]: ...
    def get_all_pod_disruption_budgets(self) -> list[PodDisruptionBudget]: ...
    def get_all_replication_controllers(self) -> list[ReplicationController]: ...


# ---------------------------------------------------------------------------
# Cluster cache
# ---------------------------------------------------------------------------


class ClusterCache:
    """Watch-driven cluster cache.

    Example::

        cache = ClusterCache({"core": CoreV1Api(), "apps": AppsV1Api(), ...})
        await cache.run()
        pods = cache.get_all_pods()
        await cache.stop()
    """

    def __init__(self, api_map: dict[str, Any] | None = None, cluster_id: str = "") -> None:
        """Initialise the cache.

        Args:
            api_map: Maps an api group key ("core", "apps", "batch",
                "storage", "policy") to its kubernetes_asyncio API instance.
                Kinds whose group is missing are not watched.
            cluster_id: Cluster identifier forwarded to watchers.
        """
        self._log = get_logger("cache.cluster")
        self._api_map = api_map or {}
        self._cluster_id = cluster_id
        self._indexes: dict[str, KindIndex[Any]] = {spec.kind: KindIndex(spec.kind) for spec in KIND_SPECS}
        self._watchers: list[Any] = []
        self._readiness = CacheReadiness.WARMING
        self._running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def readiness(self) -> CacheReadiness:
        return self._readiness

    def index(self, kind: str) -> KindIndex[Any]:
        """Return the index for *kind*. Raises KeyError for unsupported kinds."""
        return self._indexes[kind]

    async def run(self) -> None:
        """List every kind, then start one watcher per kind."""
        if self._running:
            return
        from costscope.cache.watchers import KindWatcher

        self._readiness = CacheReadiness.WARMING
        watchers: list[KindWatcher] = []
        for spec in KIND_SPECS:
            api = self._api_map.get(spec.api_group)
            if api is None:
                self._log.debug("cache_no_api_for_kind", kind=spec.kind, api_group=spec.api_group)
                continue
            watchers.append(KindWatcher(api, spec, self._indexes[spec.kind], cluster_id=self._cluster_id))

        results = await asyncio.gather(*(w.sync() for w in watchers), return_exceptions=True)
        failed = 0
        for watcher, result in zip(watchers, results, strict=True):
            if isinstance(result, BaseException):
                failed += 1
                self._log.error("cache_initial_list_failed", kind=watcher.name, error=str(result))

        for watcher in watchers:
            await watcher.start()
        self._watchers = watchers
        self._running = True
        self._readiness = CacheReadiness.PARTIALLY_READY if failed else CacheReadiness.READY
        self._log.info(
            "cache_running",
            kinds=len(watchers),
            failed_kinds=failed,
            readiness=self._readiness.value,
        )

    async def stop(self) -> None:
        """Stop every watcher. Indexes keep their last contents."""
        if not self._watchers:
            return
        await asyncio.gather(*(w.stop() for w in self._watchers), return_exceptions=True)
        self._watchers = []
        self._running = False
        self._log.info("cache_stopped")

    # ------------------------------------------------------------------
    # Read interface
    # ------------------------------------------------------------------

    def get_all_namespaces(self) -> list[Namespace]:
        return self._indexes["Namespace"].snapshot()

    def get_all_nodes(self) -> list[Node]:
        return self._indexes["Node"].snapshot()

    def get_all_pods(self) -> list[Pod]:
        return self._indexes["Pod"].snapshot()

    def get_all_services(self) -> list[Service]:
        return self._indexes["Service"].snapshot()

    def get_all_daemon_sets(self) -> list[DaemonSet]:
        return self._indexes["DaemonSet"].snapshot()

    def get_all_deployments(self) -> list[Deployment]:
        return self._indexes["Deployment"].snapshot()

    def get_all_stateful_sets(self) -> list[StatefulSet]:
        return self._indexes["StatefulSet"].snapshot()

    def get_all_replica_sets(self) -> list[ReplicaSet]:
        return self._indexes["ReplicaSet"].snapshot()

    def get_all_persistent_volumes(self) -> list[PersistentVolume]:
        return self._indexes["PersistentVolume"].snapshot()

    def get_all_persistent_volume_claims(self) -> list[PersistentVolumeClaim]:
        return self._indexes["PersistentVolumeClaim"].snapshot()

    def get_all_storage_classes(self) -> list[StorageClass]:
        return self._indexes["StorageClass"].snapshot()

    def get_all_jobs(self) -> list[Job]:
        return self._indexes["Job"].snapshot()

    def get_all_pod_disruption_budgets(self) -> list[PodDisruptionBudget]:
        return self._indexes["PodDisruptionBudget"].snapshot()

    def get_all_replication_controllers(self) -> list[ReplicationController]:
        return self._indexes["ReplicationController"].snapshot()
