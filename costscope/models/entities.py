"""Cluster entity records held by the cluster cache.

Each record is the reduced projection of an upstream Kubernetes object:
only the fields consumed by the metric collectors, the node stats collector
and the pricing engine are kept. Records are frozen; the cache replaces them
whole on every update, so a reader never observes a partially-updated entity.
Mapping fields are plain dicts and must be treated as read-only by callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

# ---------------------------------------------------------------------------
# Shared building blocks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OwnerReference:
    """Owner reference attached to a pod or workload.

    ``controller`` and ``block_owner_deletion`` are tri-state: ``None``
    means the upstream object did not set the flag.
    """

    name: str
    kind: str
    uid: str = ""
    api_version: str = ""
    controller: bool | None = None
    block_owner_deletion: bool | None = None


@dataclass(frozen=True)
class ResourceRequirements:
    """Container requests and limits as raw Kubernetes quantity strings."""

    requests: dict[str, str] = field(default_factory=dict)
    limits: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Container:
    name: str
    resources: ResourceRequirements = field(default_factory=ResourceRequirements)


@dataclass(frozen=True)
class ContainerState:
    """Flattened container state: at most one of the three is set."""

    running: bool = False
    waiting_reason: str = ""
    terminated_reason: str = ""

    @property
    def terminated(self) -> bool:
        return bool(self.terminated_reason)


@dataclass(frozen=True)
class ContainerStatus:
    name: str
    ready: bool = False
    restart_count: int = 0
    state: ContainerState = field(default_factory=ContainerState)


@dataclass(frozen=True)
class Volume:
    name: str
    pvc_claim_name: str | None = None


@dataclass(frozen=True)
class PodSpec:
    node_name: str = ""
    containers: tuple[Container, ...] = ()
    volumes: tuple[Volume, ...] = ()
    restart_policy: str = ""


@dataclass(frozen=True)
class PodTemplateSpec:
    """Reduced pod template carried by workload controllers."""

    labels: dict[str, str] = field(default_factory=dict)
    containers: tuple[Container, ...] = ()


# ---------------------------------------------------------------------------
# Core kinds
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Namespace:
    uid: str
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Pod:
    uid: str
    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    owner_references: tuple[OwnerReference, ...] = ()
    phase: str = ""
    container_statuses: tuple[ContainerStatus, ...] = ()
    spec: PodSpec = field(default_factory=PodSpec)
    deletion_timestamp: str | None = None


@dataclass(frozen=True)
class NodeAddress:
    type: str
    address: str


@dataclass(frozen=True)
class NodeCondition:
    type: str
    status: str
    reason: str = ""


@dataclass(frozen=True)
class NodeStatus:
    addresses: tuple[NodeAddress, ...] = ()
    capacity: dict[str, str] = field(default_factory=dict)
    allocatable: dict[str, str] = field(default_factory=dict)
    conditions: tuple[NodeCondition, ...] = ()
    kubelet_port: int = 0


@dataclass(frozen=True)
class Node:
    uid: str
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    status: NodeStatus = field(default_factory=NodeStatus)
    provider_id: str = ""

    def internal_ip(self) -> str:
        """Return the first InternalIP address, or "" if none is reported."""
        for addr in self.status.addresses:
            if addr.type == "InternalIP" and addr.address:
                return addr.address
        return ""

    def is_ready(self) -> bool:
        """True iff the node reports a Ready condition whose status is "True"."""
        return any(c.type == "Ready" and c.status == "True" for c in self.status.conditions)


@dataclass(frozen=True)
class Service:
    uid: str
    name: str
    namespace: str
    selector: dict[str, str] = field(default_factory=dict)
    type: str = ""
    cluster_ip: str = ""
    load_balancer_ingress: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Workload controllers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DaemonSet:
    uid: str
    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    match_labels: dict[str, str] = field(default_factory=dict)
    template: PodTemplateSpec = field(default_factory=PodTemplateSpec)


@dataclass(frozen=True)
class Deployment:
    uid: str
    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    match_labels: dict[str, str] = field(default_factory=dict)
    spec_replicas: int | None = None
    status_available_replicas: int = 0
    template: PodTemplateSpec = field(default_factory=PodTemplateSpec)
    strategy_type: str = ""


@dataclass(frozen=True)
class StatefulSet:
    uid: str
    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    match_labels: dict[str, str] = field(default_factory=dict)
    spec_replicas: int | None = None
    template: PodTemplateSpec = field(default_factory=PodTemplateSpec)


@dataclass(frozen=True)
class ReplicaSet:
    uid: str
    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    match_labels: dict[str, str] = field(default_factory=dict)
    spec_replicas: int | None = None
    owner_references: tuple[OwnerReference, ...] = ()
    template: PodTemplateSpec = field(default_factory=PodTemplateSpec)


@dataclass(frozen=True)
class ReplicationController:
    uid: str
    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    selector: dict[str, str] = field(default_factory=dict)
    spec_replicas: int | None = None
    template: PodTemplateSpec = field(default_factory=PodTemplateSpec)


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NodeSelectorRequirement:
    key: str
    operator: str
    values: tuple[str, ...] = ()


@dataclass(frozen=True)
class PersistentVolume:
    uid: str
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    capacity: dict[str, str] = field(default_factory=dict)
    phase: str = ""
    storage_class_name: str = ""
    csi_driver: str = ""
    csi_volume_handle: str = ""
    csi_attributes: dict[str, str] = field(default_factory=dict)
    # Required node-affinity terms, one tuple of match expressions per term.
    node_affinity_terms: tuple[tuple[NodeSelectorRequirement, ...], ...] = ()
    claim_ref_name: str = ""
    claim_ref_namespace: str = ""


@dataclass(frozen=True)
class PersistentVolumeClaim:
    uid: str
    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    storage_class_name: str = ""
    volume_name: str = ""
    phase: str = ""
    requests: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StorageClass:
    uid: str
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    parameters: dict[str, str] = field(default_factory=dict)
    provisioner: str = ""
    api_version: str = ""
    kind: str = ""


# ---------------------------------------------------------------------------
# Batch and policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class JobCondition:
    type: str
    status: str
    reason: str = ""


@dataclass(frozen=True)
class JobStatus:
    active: int = 0
    succeeded: int = 0
    failed: int = 0
    conditions: tuple[JobCondition, ...] = ()


@dataclass(frozen=True)
class Job:
    uid: str
    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    status: JobStatus = field(default_factory=JobStatus)


@dataclass(frozen=True)
class PodDisruptionBudget:
    uid: str
    name: str
    namespace: str
    min_available: str | None = None
    max_unavailable: str | None = None
    match_labels: dict[str, str] = field(default_factory=dict)
    current_healthy: int = 0
    desired_healthy: int = 0
    expected_pods: int = 0
    disruptions_allowed: int = 0


# ---------------------------------------------------------------------------
# Controller reference helpers
# ---------------------------------------------------------------------------


def get_controller_of_no_copy(pod: Pod) -> OwnerReference | None:
    """Return the stored controller owner reference of *pod*, or None."""
    for ref in pod.owner_references:
        if ref.controller:
            return ref
    return None


def get_controller_of(pod: Pod) -> OwnerReference | None:
    """Return an independent copy of the controller owner reference of *pod*.

    The returned reference is a new instance with its own flag values, so
    it shares no state with the cached record. Returns None when no owner
    reference carries the controller flag.
    """
    ref = get_controller_of_no_copy(pod)
    if ref is None:
        return None
    return replace(ref, controller=ref.controller, block_owner_deletion=ref.block_owner_deletion)
