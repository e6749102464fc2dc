"""Tests for the cluster cache: projection, per-kind indexes, watchers and lifecycle."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from kubernetes_asyncio.client.exceptions import ApiException

from costscope.cache import projection
from costscope.cache.cluster_cache import KIND_SPECS, ClusterCache, KindIndex, KindSpec
from costscope.cache.watchers import KindWatcher
from costscope.models.entities import OwnerReference, Pod, get_controller_of, get_controller_of_no_copy
from costscope.models.resources import CacheReadiness

# ---------------------------------------------------------------------------
# Raw fixtures
# ---------------------------------------------------------------------------


def _raw_pod(uid: str = "pod-uid", name: str = "web-0") -> dict[str, Any]:
    return {
        "metadata": {
            "uid": uid,
            "name": name,
            "namespace": "default",
            "labels": {"app": "web"},
            "ownerReferences": [{"kind": "ReplicaSet", "name": "web-abc", "uid": "rs", "controller": True}],
        },
        "spec": {
            "nodeName": "node-1",
            "restartPolicy": "Always",
            "containers": [{"name": "app", "resources": {"requests": {"cpu": "250m"}, "limits": {"memory": "1Gi"}}}],
            "volumes": [{"name": "data", "persistentVolumeClaim": {"claimName": "data-web-0"}}, {"name": "tmp"}],
        },
        "status": {
            "phase": "Running",
            "containerStatuses": [
                {"name": "app", "ready": True, "restartCount": 3, "state": {"running": {"startedAt": "x"}}}
            ],
        },
    }


def _raw_node() -> dict[str, Any]:
    return {
        "metadata": {"uid": "node-uid", "name": "node-1", "labels": {"kubernetes.io/os": "linux"}},
        "spec": {"providerID": "alicloud://cn-hangzhou.i-abc"},
        "status": {
            "addresses": [{"type": "InternalIP", "address": "10.0.0.1"}],
            "capacity": {"cpu": "4", "memory": "16Gi"},
            "allocatable": {"cpu": "3900m"},
            "conditions": [{"type": "Ready", "status": "True"}],
            "daemonEndpoints": {"kubeletEndpoint": {"Port": 10250}},
        },
    }


# ===========================================================================
# Projection
# ===========================================================================


class TestProjection:
    def test_pod(self) -> None:
        pod = projection.project_pod(_raw_pod())
        assert pod.uid == "pod-uid"
        assert pod.namespace == "default"
        assert pod.phase == "Running"
        assert pod.spec.node_name == "node-1"
        assert pod.spec.containers[0].resources.requests == {"cpu": "250m"}
        assert pod.spec.volumes[0].pvc_claim_name == "data-web-0"
        assert pod.spec.volumes[1].pvc_claim_name is None
        assert pod.owner_references[0].controller is True
        assert pod.container_statuses[0].restart_count == 3
        assert pod.container_statuses[0].state.running is True

    def test_pod_waiting_state(self) -> None:
        raw = _raw_pod()
        raw["status"]["containerStatuses"][0]["state"] = {"waiting": {"reason": "CrashLoopBackOff"}}
        pod = projection.project_pod(raw)
        assert pod.container_statuses[0].state.waiting_reason == "CrashLoopBackOff"

    def test_node(self) -> None:
        node = projection.project_node(_raw_node())
        assert node.provider_id == "alicloud://cn-hangzhou.i-abc"
        assert node.status.kubelet_port == 10250
        assert node.status.addresses[0].address == "10.0.0.1"
        assert node.status.capacity["memory"] == "16Gi"
        assert node.status.conditions[0].status == "True"

    def test_missing_fields_use_defaults(self) -> None:
        pod = projection.project_pod({"metadata": {"uid": "u"}})
        assert pod.name == ""
        assert pod.spec.containers == ()
        assert pod.phase == ""

    def test_deployment_replicas(self) -> None:
        dep = projection.project_deployment(
            {
                "metadata": {"uid": "d", "name": "web", "namespace": "ns"},
                "spec": {"replicas": 3, "selector": {"matchLabels": {"app": "web"}}},
                "status": {"availableReplicas": 2},
            }
        )
        assert dep.spec_replicas == 3
        assert dep.status_available_replicas == 2
        assert dep.match_labels == {"app": "web"}
        no_replicas = projection.project_deployment({"metadata": {"uid": "d"}, "spec": {}})
        assert no_replicas.spec_replicas is None

    def test_persistent_volume_csi(self) -> None:
        pv = projection.project_persistent_volume(
            {
                "metadata": {"uid": "pv", "name": "d-123"},
                "spec": {
                    "capacity": {"storage": "20Gi"},
                    "storageClassName": "alicloud-disk-essd",
                    "csi": {"driver": "diskplugin.csi.alibabacloud.com", "volumeHandle": "d-123"},
                    "claimRef": {"name": "data", "namespace": "default"},
                },
                "status": {"phase": "Bound"},
            }
        )
        assert pv.csi_volume_handle == "d-123"
        assert pv.phase == "Bound"
        assert pv.claim_ref_namespace == "default"

    def test_job_conditions(self) -> None:
        job = projection.project_job(
            {
                "metadata": {"uid": "j", "name": "backup", "namespace": "ops"},
                "status": {
                    "failed": 2,
                    "conditions": [{"type": "Failed", "status": "True", "reason": "BackoffLimitExceeded"}],
                },
            }
        )
        assert job.status.failed == 2
        assert job.status.conditions[0].reason == "BackoffLimitExceeded"

    def test_storage_class_parameters(self) -> None:
        sc = projection.project_storage_class(
            {"metadata": {"uid": "s", "name": "essd"}, "parameters": {"type": "cloud_essd"}, "provisioner": "p"}
        )
        assert sc.parameters == {"type": "cloud_essd"}
        assert sc.provisioner == "p"


# ===========================================================================
# KindIndex
# ===========================================================================


class TestKindIndex:
    def test_upsert_and_get(self) -> None:
        index: KindIndex[str] = KindIndex("Test")
        index.upsert("a", "one")
        index.upsert("a", "two")
        assert index.get("a") == "two"
        assert len(index) == 1

    def test_delete_unknown_is_noop(self) -> None:
        index: KindIndex[str] = KindIndex("Test")
        index.upsert("a", "one")
        index.delete("missing")
        index.delete("a")
        assert index.snapshot() == []

    def test_snapshot_is_independent_copy(self) -> None:
        index: KindIndex[str] = KindIndex("Test")
        index.upsert("a", "one")
        snap = index.snapshot()
        index.upsert("b", "two")
        snap.append("mutated")
        assert sorted(index.snapshot()) == ["one", "two"]
        assert snap == ["one", "mutated"]

    def test_replace_drops_missing_entries(self) -> None:
        index: KindIndex[str] = KindIndex("Test")
        index.upsert("a", "one")
        index.upsert("b", "two")
        index.replace({"c": "three"})
        assert index.snapshot() == ["three"]
        assert index.get("a") is None


# ===========================================================================
# KindWatcher
# ===========================================================================


def _pod_watcher() -> tuple[KindWatcher, KindIndex[Any]]:
    spec = next(s for s in KIND_SPECS if s.kind == "Pod")
    index: KindIndex[Any] = KindIndex("Pod")
    return KindWatcher(MagicMock(), spec, index), index


class TestKindWatcher:
    async def test_added_then_deleted(self) -> None:
        watcher, index = _pod_watcher()
        raw = _raw_pod()
        await watcher._handle_event("ADDED", None, raw)
        assert index.get("pod-uid").name == "web-0"

        await watcher._handle_event("DELETED", None, raw)
        assert len(index) == 0

    async def test_modified_replaces_entity(self) -> None:
        watcher, index = _pod_watcher()
        await watcher._handle_event("ADDED", None, _raw_pod())
        raw = _raw_pod()
        raw["status"]["phase"] = "Succeeded"
        await watcher._handle_event("MODIFIED", None, raw)
        assert index.get("pod-uid").phase == "Succeeded"
        assert len(index) == 1

    async def test_event_without_uid_is_ignored(self) -> None:
        watcher, index = _pod_watcher()
        await watcher._handle_event("ADDED", None, {"metadata": {"name": "x"}})
        assert len(index) == 0

    async def test_projection_failure_is_skipped(self) -> None:
        spec = KindSpec("Pod", "core", "list_pod_for_all_namespaces", MagicMock(side_effect=ValueError("bad")))
        index: KindIndex[Any] = KindIndex("Pod")
        watcher = KindWatcher(MagicMock(), spec, index)
        await watcher._handle_event("ADDED", None, _raw_pod())
        assert len(index) == 0

    async def test_replace_all(self) -> None:
        watcher, index = _pod_watcher()
        await watcher._handle_event("ADDED", None, _raw_pod("stale", "old"))
        await watcher._replace_all([_raw_pod("u1", "a"), _raw_pod("u2", "b"), {"metadata": {}}])
        assert sorted(p.name for p in index.snapshot()) == ["a", "b"]

    def test_list_func_uses_spec_method(self) -> None:
        watcher, _ = _pod_watcher()
        assert watcher._list_func() is watcher._api.list_pod_for_all_namespaces


# ===========================================================================
# ClusterCache
# ===========================================================================


def _list_result(items: list[dict[str, Any]]) -> MagicMock:
    result = MagicMock()
    result.items = items
    result.metadata.resource_version = "100"
    return result


def _api_map() -> dict[str, Any]:
    core = MagicMock()
    empty = AsyncMock(return_value=_list_result([]))
    for spec in KIND_SPECS:
        setattr(core, spec.list_method, empty)
    core.list_pod_for_all_namespaces = AsyncMock(return_value=_list_result([_raw_pod()]))
    core.list_node = AsyncMock(return_value=_list_result([_raw_node()]))
    return {"core": core, "apps": core, "batch": core, "storage": core, "policy": core}


class TestClusterCache:
    async def test_run_populates_and_becomes_ready(self) -> None:
        cache = ClusterCache(_api_map(), cluster_id="test")
        assert cache.readiness == CacheReadiness.WARMING

        with (
            patch.object(KindWatcher, "start", new_callable=AsyncMock) as mock_start,
            patch.object(KindWatcher, "stop", new_callable=AsyncMock),
        ):
            await cache.run()
            assert cache.readiness == CacheReadiness.READY
            assert [p.name for p in cache.get_all_pods()] == ["web-0"]
            assert [n.name for n in cache.get_all_nodes()] == ["node-1"]
            assert cache.get_all_services() == []
            assert mock_start.await_count == len(KIND_SPECS)
            await cache.stop()

    async def test_failed_kind_is_partially_ready(self) -> None:
        api_map = _api_map()
        api_map["core"].list_node = AsyncMock(side_effect=ApiException(status=403, reason="Forbidden"))
        cache = ClusterCache(api_map)

        with patch.object(KindWatcher, "start", new_callable=AsyncMock):
            await cache.run()

        assert cache.readiness == CacheReadiness.PARTIALLY_READY
        assert cache.get_all_nodes() == []
        assert len(cache.get_all_pods()) == 1

    async def test_missing_api_group_is_skipped(self) -> None:
        api_map = _api_map()
        del api_map["policy"]
        cache = ClusterCache(api_map)

        with patch.object(KindWatcher, "start", new_callable=AsyncMock) as mock_start:
            await cache.run()

        assert mock_start.await_count == len(KIND_SPECS) - 1
        assert cache.readiness == CacheReadiness.READY

    async def test_stop_before_run_is_noop(self) -> None:
        await ClusterCache().stop()

    def test_unknown_kind_raises(self) -> None:
        with pytest.raises(KeyError):
            ClusterCache().index("CronJob")

    def test_every_kind_has_a_reader(self) -> None:
        cache = ClusterCache()
        for getter in (
            cache.get_all_namespaces,
            cache.get_all_daemon_sets,
            cache.get_all_deployments,
            cache.get_all_stateful_sets,
            cache.get_all_replica_sets,
            cache.get_all_persistent_volumes,
            cache.get_all_persistent_volume_claims,
            cache.get_all_storage_classes,
            cache.get_all_jobs,
            cache.get_all_pod_disruption_budgets,
            cache.get_all_replication_controllers,
        ):
            assert getter() == []


# ---------------------------------------------------------------------------
# Controller lookup
# ---------------------------------------------------------------------------


class TestGetControllerOf:
    def test_no_controller_reference(self) -> None:
        pod = Pod(
            uid="p",
            name="web-0",
            namespace="default",
            owner_references=(OwnerReference(name="web", kind="ReplicaSet", controller=False),),
        )
        assert get_controller_of(pod) is None

    def test_pod_without_owners(self) -> None:
        assert get_controller_of(Pod(uid="p", name="bare", namespace="default")) is None

    def test_returns_controller_reference(self) -> None:
        pod = projection.project_pod(_raw_pod())
        ref = get_controller_of(pod)
        assert ref is not None
        assert ref.controller is True
        assert ref.kind == "ReplicaSet"
        assert ref.name == "web-abc"

    def test_returns_independent_copy(self) -> None:
        stored = OwnerReference(name="web-abc", kind="ReplicaSet", uid="rs", controller=True, block_owner_deletion=True)
        pod = Pod(uid="p", name="web-0", namespace="default", owner_references=(stored,))
        ref = get_controller_of(pod)
        assert ref == stored
        assert ref is not stored
        assert get_controller_of_no_copy(pod) is stored
