"""Projection of upstream Kubernetes objects into cache entities.

Every projector takes the camelCase dict form of an object (the watch
stream's ``raw_object`` or ``ApiClient.sanitize_for_serialization`` of a list
item) and returns the reduced frozen record. Fields not read here are dropped
at ingestion time.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from costscope.models.entities import (
    Container,
    ContainerState,
    ContainerStatus,
    DaemonSet,
    Deployment,
    Job,
    JobCondition,
    JobStatus,
    Namespace,
    Node,
    NodeAddress,
    NodeCondition,
    NodeSelectorRequirement,
    NodeStatus,
    OwnerReference,
    PersistentVolume,
    PersistentVolumeClaim,
    Pod,
    PodDisruptionBudget,
    PodSpec,
    PodTemplateSpec,
    ReplicaSet,
    ReplicationController,
    ResourceRequirements,
    Service,
    StatefulSet,
    StorageClass,
    Volume,
)

Projector = Callable[[dict[str, Any]], Any]

# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _str_map(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}


def _int(value: Any, default: int = 0) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _opt_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _opt_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _opt_bool(value: Any) -> bool | None:
    return None if value is None else bool(value)


def _meta(raw: dict[str, Any]) -> dict[str, Any]:
    return _dict(raw.get("metadata"))


def _uid(meta: dict[str, Any]) -> str:
    return str(meta.get("uid", "") or "")


def _name(meta: dict[str, Any]) -> str:
    return str(meta.get("name", "") or "")


def _namespace(meta: dict[str, Any]) -> str:
    return str(meta.get("namespace", "") or "")


def _owner_references(meta: dict[str, Any]) -> tuple[OwnerReference, ...]:
    return tuple(
        OwnerReference(
            name=str(ref.get("name", "")),
            kind=str(ref.get("kind", "")),
            uid=str(ref.get("uid", "")),
            api_version=str(ref.get("apiVersion", "")),
            controller=_opt_bool(ref.get("controller")),
            block_owner_deletion=_opt_bool(ref.get("blockOwnerDeletion")),
        )
        for ref in map(_dict, _list(meta.get("ownerReferences")))
    )


def _containers(value: Any) -> tuple[Container, ...]:
    containers = []
    for c in map(_dict, _list(value)):
        resources = _dict(c.get("resources"))
        containers.append(
            Container(
                name=str(c.get("name", "")),
                resources=ResourceRequirements(
                    requests=_str_map(resources.get("requests")),
                    limits=_str_map(resources.get("limits")),
                ),
            )
        )
    return tuple(containers)


def _container_state(value: Any) -> ContainerState:
    state = _dict(value)
    if "running" in state and state["running"] is not None:
        return ContainerState(running=True)
    if state.get("terminated") is not None:
        return ContainerState(terminated_reason=str(_dict(state["terminated"]).get("reason", "") or ""))
    if state.get("waiting") is not None:
        return ContainerState(waiting_reason=str(_dict(state["waiting"]).get("reason", "") or ""))
    return ContainerState()


def _template(spec: dict[str, Any]) -> PodTemplateSpec:
    template = _dict(spec.get("template"))
    return PodTemplateSpec(
        labels=_str_map(_meta(template).get("labels")),
        containers=_containers(_dict(template.get("spec")).get("containers")),
    )


def _match_labels(spec: dict[str, Any]) -> dict[str, str]:
    return _str_map(_dict(spec.get("selector")).get("matchLabels"))


# ---------------------------------------------------------------------------
# Projectors
# ---------------------------------------------------------------------------


def project_namespace(raw: dict[str, Any]) -> Namespace:
    meta = _meta(raw)
    return Namespace(
        uid=_uid(meta),
        name=_name(meta),
        labels=_str_map(meta.get("labels")),
        annotations=_str_map(meta.get("annotations")),
    )


def project_pod(raw: dict[str, Any]) -> Pod:
    meta = _meta(raw)
    spec = _dict(raw.get("spec"))
    status = _dict(raw.get("status"))

    volumes = tuple(
        Volume(
            name=str(v.get("name", "")),
            pvc_claim_name=_opt_str(_dict(v.get("persistentVolumeClaim")).get("claimName")),
        )
        for v in map(_dict, _list(spec.get("volumes")))
    )
    statuses = tuple(
        ContainerStatus(
            name=str(cs.get("name", "")),
            ready=bool(cs.get("ready", False)),
            restart_count=_int(cs.get("restartCount")),
            state=_container_state(cs.get("state")),
        )
        for cs in map(_dict, _list(status.get("containerStatuses")))
    )
    return Pod(
        uid=_uid(meta),
        name=_name(meta),
        namespace=_namespace(meta),
        labels=_str_map(meta.get("labels")),
        annotations=_str_map(meta.get("annotations")),
        owner_references=_owner_references(meta),
        phase=str(status.get("phase", "") or ""),
        container_statuses=statuses,
        spec=PodSpec(
            node_name=str(spec.get("nodeName", "") or ""),
            containers=_containers(spec.get("containers")),
            volumes=volumes,
            restart_policy=str(spec.get("restartPolicy", "") or ""),
        ),
        deletion_timestamp=_opt_str(meta.get("deletionTimestamp")),
    )


def project_node(raw: dict[str, Any]) -> Node:
    meta = _meta(raw)
    spec = _dict(raw.get("spec"))
    status = _dict(raw.get("status"))
    kubelet = _dict(_dict(status.get("daemonEndpoints")).get("kubeletEndpoint"))
    return Node(
        uid=_uid(meta),
        name=_name(meta),
        labels=_str_map(meta.get("labels")),
        annotations=_str_map(meta.get("annotations")),
        status=NodeStatus(
            addresses=tuple(
                NodeAddress(type=str(a.get("type", "")), address=str(a.get("address", "")))
                for a in map(_dict, _list(status.get("addresses")))
            ),
            capacity=_str_map(status.get("capacity")),
            allocatable=_str_map(status.get("allocatable")),
            conditions=tuple(
                NodeCondition(
                    type=str(c.get("type", "")),
                    status=str(c.get("status", "")),
                    reason=str(c.get("reason", "") or ""),
                )
                for c in map(_dict, _list(status.get("conditions")))
            ),
            kubelet_port=_int(kubelet.get("Port")),
        ),
        provider_id=str(spec.get("providerID", "") or ""),
    )


def project_service(raw: dict[str, Any]) -> Service:
    meta = _meta(raw)
    spec = _dict(raw.get("spec"))
    ingress = _list(_dict(_dict(raw.get("status")).get("loadBalancer")).get("ingress"))
    return Service(
        uid=_uid(meta),
        name=_name(meta),
        namespace=_namespace(meta),
        selector=_str_map(spec.get("selector")),
        type=str(spec.get("type", "") or ""),
        cluster_ip=str(spec.get("clusterIP", "") or ""),
        load_balancer_ingress=tuple(
            str(i.get("ip") or i.get("hostname") or "") for i in map(_dict, ingress)
        ),
    )


def project_daemon_set(raw: dict[str, Any]) -> DaemonSet:
    meta = _meta(raw)
    spec = _dict(raw.get("spec"))
    return DaemonSet(
        uid=_uid(meta),
        name=_name(meta),
        namespace=_namespace(meta),
        labels=_str_map(meta.get("labels")),
        match_labels=_match_labels(spec),
        template=_template(spec),
    )


def project_deployment(raw: dict[str, Any]) -> Deployment:
    meta = _meta(raw)
    spec = _dict(raw.get("spec"))
    status = _dict(raw.get("status"))
    return Deployment(
        uid=_uid(meta),
        name=_name(meta),
        namespace=_namespace(meta),
        labels=_str_map(meta.get("labels")),
        match_labels=_match_labels(spec),
        spec_replicas=_opt_int(spec.get("replicas")),
        status_available_replicas=_int(status.get("availableReplicas")),
        template=_template(spec),
        strategy_type=str(_dict(spec.get("strategy")).get("type", "") or ""),
    )


def project_stateful_set(raw: dict[str, Any]) -> StatefulSet:
    meta = _meta(raw)
    spec = _dict(raw.get("spec"))
    return StatefulSet(
        uid=_uid(meta),
        name=_name(meta),
        namespace=_namespace(meta),
        labels=_str_map(meta.get("labels")),
        match_labels=_match_labels(spec),
        spec_replicas=_opt_int(spec.get("replicas")),
        template=_template(spec),
    )


def project_replica_set(raw: dict[str, Any]) -> ReplicaSet:
    meta = _meta(raw)
    spec = _dict(raw.get("spec"))
    return ReplicaSet(
        uid=_uid(meta),
        name=_name(meta),
        namespace=_namespace(meta),
        labels=_str_map(meta.get("labels")),
        match_labels=_match_labels(spec),
        spec_replicas=_opt_int(spec.get("replicas")),
        owner_references=_owner_references(meta),
        template=_template(spec),
    )


def project_replication_controller(raw: dict[str, Any]) -> ReplicationController:
    meta = _meta(raw)
    spec = _dict(raw.get("spec"))
    return ReplicationController(
        uid=_uid(meta),
        name=_name(meta),
        namespace=_namespace(meta),
        labels=_str_map(meta.get("labels")),
        selector=_str_map(spec.get("selector")),
        spec_replicas=_opt_int(spec.get("replicas")),
        template=_template(spec),
    )


def project_persistent_volume(raw: dict[str, Any]) -> PersistentVolume:
    meta = _meta(raw)
    spec = _dict(raw.get("spec"))
    csi = _dict(spec.get("csi"))
    claim_ref = _dict(spec.get("claimRef"))
    required = _dict(_dict(spec.get("nodeAffinity")).get("required"))
    terms = tuple(
        tuple(
            NodeSelectorRequirement(
                key=str(expr.get("key", "")),
                operator=str(expr.get("operator", "")),
                values=tuple(str(v) for v in _list(expr.get("values"))),
            )
            for expr in map(_dict, _list(term.get("matchExpressions")))
        )
        for term in map(_dict, _list(required.get("nodeSelectorTerms")))
    )
    return PersistentVolume(
        uid=_uid(meta),
        name=_name(meta),
        labels=_str_map(meta.get("labels")),
        annotations=_str_map(meta.get("annotations")),
        capacity=_str_map(spec.get("capacity")),
        phase=str(_dict(raw.get("status")).get("phase", "") or ""),
        storage_class_name=str(spec.get("storageClassName", "") or ""),
        csi_driver=str(csi.get("driver", "") or ""),
        csi_volume_handle=str(csi.get("volumeHandle", "") or ""),
        csi_attributes=_str_map(csi.get("volumeAttributes")),
        node_affinity_terms=terms,
        claim_ref_name=str(claim_ref.get("name", "") or ""),
        claim_ref_namespace=str(claim_ref.get("namespace", "") or ""),
    )


def project_persistent_volume_claim(raw: dict[str, Any]) -> PersistentVolumeClaim:
    meta = _meta(raw)
    spec = _dict(raw.get("spec"))
    return PersistentVolumeClaim(
        uid=_uid(meta),
        name=_name(meta),
        namespace=_namespace(meta),
        labels=_str_map(meta.get("labels")),
        storage_class_name=str(spec.get("storageClassName", "") or ""),
        volume_name=str(spec.get("volumeName", "") or ""),
        phase=str(_dict(raw.get("status")).get("phase", "") or ""),
        requests=_str_map(_dict(spec.get("resources")).get("requests")),
    )


def project_storage_class(raw: dict[str, Any]) -> StorageClass:
    meta = _meta(raw)
    return StorageClass(
        uid=_uid(meta),
        name=_name(meta),
        labels=_str_map(meta.get("labels")),
        annotations=_str_map(meta.get("annotations")),
        parameters=_str_map(raw.get("parameters")),
        provisioner=str(raw.get("provisioner", "") or ""),
        api_version=str(raw.get("apiVersion", "") or ""),
        kind=str(raw.get("kind", "") or ""),
    )


def project_job(raw: dict[str, Any]) -> Job:
    meta = _meta(raw)
    status = _dict(raw.get("status"))
    return Job(
        uid=_uid(meta),
        name=_name(meta),
        namespace=_namespace(meta),
        labels=_str_map(meta.get("labels")),
        status=JobStatus(
            active=_int(status.get("active")),
            succeeded=_int(status.get("succeeded")),
            failed=_int(status.get("failed")),
            conditions=tuple(
                JobCondition(
                    type=str(c.get("type", "")),
                    status=str(c.get("status", "")),
                    reason=str(c.get("reason", "") or ""),
                )
                for c in map(_dict, _list(status.get("conditions")))
            ),
        ),
    )


def project_pod_disruption_budget(raw: dict[str, Any]) -> PodDisruptionBudget:
    meta = _meta(raw)
    spec = _dict(raw.get("spec"))
    status = _dict(raw.get("status"))
    return PodDisruptionBudget(
        uid=_uid(meta),
        name=_name(meta),
        namespace=_namespace(meta),
        min_available=_opt_str(spec.get("minAvailable")),
        max_unavailable=_opt_str(spec.get("maxUnavailable")),
        match_labels=_match_labels(spec),
        current_healthy=_int(status.get("currentHealthy")),
        desired_healthy=_int(status.get("desiredHealthy")),
        expected_pods=_int(status.get("expectedPods")),
        disruptions_allowed=_int(status.get("disruptionsAllowed")),
    )
