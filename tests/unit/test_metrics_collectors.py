"""Tests for the costscope.metrics cluster-state collectors.

Covers:
  - describe() yields one family per enabled metric
  - collect() sample counts for pods, nodes, deployments, statefulsets,
    services, namespaces, jobs, PVs and PVCs
  - Annotation and selector families are suppressed for empty maps
  - Label sets: uid on every sample, label_/annotation_ prefixes
  - Pod phase and node condition one-hot encoding
  - Deployment spec replicas default to 1
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import pytest
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

from costscope.metrics.config import MetricsConfig
from costscope.metrics.deployments import KubecostDeploymentCollector, KubeDeploymentCollector
from costscope.metrics.jobs import KubeJobCollector
from costscope.metrics.namespaces import KubecostNamespaceCollector, KubeNamespaceCollector
from costscope.metrics.nodes import KubeNodeCollector, get_conditions
from costscope.metrics.pods import KubecostPodCollector, KubePodCollector
from costscope.metrics.pvcs import KubePVCCollector
from costscope.metrics.pvs import KubePVCollector
from costscope.metrics.services import KubecostServiceCollector
from costscope.metrics.statefulsets import KubecostStatefulsetCollector
from costscope.models.entities import (
    Container,
    ContainerState,
    ContainerStatus,
    Deployment,
    Job,
    JobCondition,
    JobStatus,
    Namespace,
    Node,
    NodeCondition,
    NodeStatus,
    OwnerReference,
    PersistentVolume,
    PersistentVolumeClaim,
    Pod,
    PodSpec,
    ResourceRequirements,
    Service,
    StatefulSet,
)

_POD_METRICS = [
    "kube_pod_labels",
    "kube_pod_owner",
    "kube_pod_container_status_running",
    "kube_pod_container_status_terminated_reason",
    "kube_pod_container_status_restarts_total",
    "kube_pod_container_resource_requests",
    "kube_pod_container_resource_limits",
    "kube_pod_container_resource_limits_cpu_cores",
    "kube_pod_container_resource_limits_memory_bytes",
    "kube_pod_status_phase",
]

_NODE_METRICS = [
    "kube_node_status_capacity",
    "kube_node_status_capacity_memory_bytes",
    "kube_node_status_capacity_cpu_cores",
    "kube_node_status_allocatable",
    "kube_node_status_allocatable_cpu_cores",
    "kube_node_status_allocatable_memory_bytes",
    "kube_node_labels",
    "kube_node_status_condition",
]


class FakeCache:
    """ClusterCacheReader stand-in returning fixed entity lists."""

    def __init__(self, **entities: list[Any]) -> None:
        self._entities = entities

    def _get(self, kind: str) -> list[Any]:
        return list(self._entities.get(kind, []))

    def get_all_namespaces(self) -> list[Any]:
        return self._get("namespaces")

    def get_all_nodes(self) -> list[Any]:
        return self._get("nodes")

    def get_all_pods(self) -> list[Any]:
        return self._get("pods")

    def get_all_services(self) -> list[Any]:
        return self._get("services")

    def get_all_deployments(self) -> list[Any]:
        return self._get("deployments")

    def get_all_stateful_sets(self) -> list[Any]:
        return self._get("stateful_sets")

    def get_all_persistent_volumes(self) -> list[Any]:
        return self._get("persistent_volumes")

    def get_all_persistent_volume_claims(self) -> list[Any]:
        return self._get("persistent_volume_claims")

    def get_all_storage_classes(self) -> list[Any]:
        return self._get("storage_classes")

    def get_all_jobs(self) -> list[Any]:
        return self._get("jobs")


def _samples(collector: Collector) -> list[Any]:
    return [s for family in collector.collect() for s in family.samples]


def _describe(collector: Any) -> list[Metric]:
    return list(collector.describe())


def _samples_named(collector: Collector, name: str) -> list[Any]:
    return [s for s in _samples(collector) if s.name == name]


def _running_pod(**overrides: Any) -> Pod:
    fields: dict[str, Any] = {
        "uid": "pod-uid-1",
        "name": "test-pod",
        "namespace": "default",
        "labels": {"app": "test", "version": "v1"},
        "owner_references": (OwnerReference(name="test-deployment", kind="Deployment", controller=True),),
        "phase": "Running",
        "container_statuses": (
            ContainerStatus(name="container1", restart_count=2, state=ContainerState(running=True)),
        ),
        "spec": PodSpec(
            node_name="node1",
            containers=(
                Container(
                    name="container1",
                    resources=ResourceRequirements(
                        requests={"cpu": "100m", "memory": "128Mi"},
                        limits={"cpu": "200m", "memory": "256Mi"},
                    ),
                ),
            ),
        ),
    }
    fields.update(overrides)
    return Pod(**fields)


def _node(name: str = "node-1", **overrides: Any) -> Node:
    fields: dict[str, Any] = {
        "uid": f"{name}-uid",
        "name": name,
        "labels": {"kubernetes.io/hostname": name},
        "status": NodeStatus(
            capacity={"cpu": "4", "memory": "8Gi"},
            allocatable={"cpu": "3.8", "memory": "7.5Gi"},
            conditions=(NodeCondition(type="Ready", status="True"),),
        ),
    }
    fields.update(overrides)
    return Node(**fields)


# ===========================================================================
# Pods
# ===========================================================================


class TestKubePodCollectorDescribe:
    @pytest.mark.parametrize(
        ("disabled", "expected"),
        [
            ([], 10),
            (["kube_pod_labels", "kube_pod_owner", "kube_pod_container_status_running"], 7),
            (_POD_METRICS, 0),
        ],
    )
    def test_describe_counts(self, disabled: list[str], expected: int) -> None:
        collector = KubePodCollector(FakeCache(), MetricsConfig(disabled))
        assert len(_describe(collector)) == expected


class TestKubePodCollectorCollect:
    def test_pod_with_all_features(self) -> None:
        # 5 phases + labels + owner + restarts + running + 2 requests + 4 limits
        collector = KubePodCollector(FakeCache(pods=[_running_pod()]), MetricsConfig())
        assert len(_samples(collector)) == 15

    def test_pending_pod_without_containers(self) -> None:
        pod = Pod(uid="pod-uid-2", name="empty-pod", namespace="default", labels={"test": "label"}, phase="Pending")
        collector = KubePodCollector(FakeCache(pods=[pod]), MetricsConfig())
        assert len(_samples(collector)) == 6

    def test_terminated_container(self) -> None:
        pod = Pod(
            uid="pod-uid-3",
            name="terminated-pod",
            namespace="default",
            phase="Failed",
            container_statuses=(
                ContainerStatus(
                    name="failed-container",
                    restart_count=5,
                    state=ContainerState(terminated_reason="OOMKilled"),
                ),
            ),
            spec=PodSpec(containers=(Container(name="failed-container"),)),
        )
        collector = KubePodCollector(FakeCache(pods=[pod]), MetricsConfig())

        assert len(_samples(collector)) == 8
        reasons = _samples_named(collector, "kube_pod_container_status_terminated_reason")
        assert len(reasons) == 1
        assert reasons[0].labels["reason"] == "OOMKilled"
        assert reasons[0].labels["container"] == "failed-container"

    def test_pod_without_phase_only_emits_labels(self) -> None:
        pod = Pod(uid="pod-uid-4", name="no-phase-pod", namespace="default", labels={"app": "test"})
        collector = KubePodCollector(FakeCache(pods=[pod]), MetricsConfig())
        samples = _samples(collector)
        assert len(samples) == 1
        assert samples[0].name == "kube_pod_labels"

    def test_multiple_containers(self) -> None:
        pod = Pod(
            uid="pod-uid-5",
            name="multi-container-pod",
            namespace="default",
            phase="Running",
            container_statuses=(
                ContainerStatus(name="container1", restart_count=0, state=ContainerState(running=True)),
                ContainerStatus(name="container2", restart_count=1, state=ContainerState(running=True)),
            ),
            spec=PodSpec(
                node_name="node2",
                containers=(
                    Container(
                        name="container1",
                        resources=ResourceRequirements(requests={"cpu": "50m"}, limits={"cpu": "100m"}),
                    ),
                    Container(
                        name="container2",
                        resources=ResourceRequirements(requests={"memory": "64Mi"}, limits={"memory": "128Mi"}),
                    ),
                ),
            ),
        )
        collector = KubePodCollector(FakeCache(pods=[pod]), MetricsConfig())
        assert len(_samples(collector)) == 16

    def test_disabled_metrics_are_not_collected(self) -> None:
        pod = Pod(uid="pod-uid-6", name="test-pod", namespace="default", labels={"app": "test"}, phase="Running")
        collector = KubePodCollector(FakeCache(pods=[pod]), MetricsConfig(["kube_pod_labels", "kube_pod_status_phase"]))
        assert _samples(collector) == []

    def test_phase_is_one_hot(self) -> None:
        collector = KubePodCollector(FakeCache(pods=[_running_pod()]), MetricsConfig())
        phases = {s.labels["phase"]: s.value for s in _samples_named(collector, "kube_pod_status_phase")}
        assert phases == {"Pending": 0.0, "Running": 1.0, "Succeeded": 0.0, "Failed": 0.0, "Unknown": 0.0}

    def test_every_sample_carries_uid(self) -> None:
        collector = KubePodCollector(FakeCache(pods=[_running_pod()]), MetricsConfig())
        assert all(s.labels["uid"] == "pod-uid-1" for s in _samples(collector))

    def test_labels_metric_uses_prefixed_sanitized_names(self) -> None:
        pod = _running_pod(labels={"app.kubernetes.io/name": "web", "env": "prod"})
        collector = KubePodCollector(FakeCache(pods=[pod]), MetricsConfig())
        (sample,) = _samples_named(collector, "kube_pod_labels")
        assert sample.labels == {
            "namespace": "default",
            "pod": "test-pod",
            "uid": "pod-uid-1",
            "label_app_kubernetes_io_name": "web",
            "label_env": "prod",
        }

    def test_owner_metric_labels(self) -> None:
        collector = KubePodCollector(FakeCache(pods=[_running_pod()]), MetricsConfig())
        (sample,) = _samples_named(collector, "kube_pod_owner")
        assert sample.labels["owner_name"] == "test-deployment"
        assert sample.labels["owner_kind"] == "Deployment"
        assert sample.labels["owner_is_controller"] == "true"

    def test_resource_requests_units_and_values(self) -> None:
        collector = KubePodCollector(FakeCache(pods=[_running_pod()]), MetricsConfig())
        requests = {
            s.labels["resource"]: (s.labels["unit"], s.value)
            for s in _samples_named(collector, "kube_pod_container_resource_requests")
        }
        assert requests["cpu"] == ("core", pytest.approx(0.1))
        assert requests["memory"] == ("byte", 128 * 1024**2)

    def test_limits_shortcut_metrics(self) -> None:
        collector = KubePodCollector(FakeCache(pods=[_running_pod()]), MetricsConfig())
        (cpu,) = _samples_named(collector, "kube_pod_container_resource_limits_cpu_cores")
        (mem,) = _samples_named(collector, "kube_pod_container_resource_limits_memory_bytes")
        assert cpu.value == pytest.approx(0.2)
        assert mem.value == 256 * 1024**2
        assert cpu.labels["node"] == "node1"

    def test_restarts_is_a_counter(self) -> None:
        collector = KubePodCollector(FakeCache(pods=[_running_pod()]), MetricsConfig())
        families = {f.name: f for f in collector.collect()}
        family = families["kube_pod_container_status_restarts"]
        assert family.type == "counter"
        assert family.samples[0].name == "kube_pod_container_status_restarts_total"
        assert family.samples[0].value == 2.0


class TestKubecostPodCollector:
    def test_describe(self) -> None:
        assert len(_describe(KubecostPodCollector(FakeCache(), MetricsConfig()))) == 1
        assert _describe(KubecostPodCollector(FakeCache(), MetricsConfig(["kube_pod_annotations"]))) == []

    def test_annotations_emitted(self) -> None:
        pod = Pod(uid="u1", name="p", namespace="ns", annotations={"owner/team": "payments"})
        (sample,) = _samples(KubecostPodCollector(FakeCache(pods=[pod]), MetricsConfig()))
        assert sample.labels == {"namespace": "ns", "pod": "p", "uid": "u1", "annotation_owner_team": "payments"}

    def test_pod_without_annotations_is_suppressed(self) -> None:
        pod = Pod(uid="u1", name="p", namespace="ns")
        assert _samples(KubecostPodCollector(FakeCache(pods=[pod]), MetricsConfig())) == []


# ===========================================================================
# Nodes
# ===========================================================================


class TestKubeNodeCollector:
    @pytest.mark.parametrize(
        ("disabled", "expected"),
        [([], 8), (["kube_node_status_capacity"], 7), (_NODE_METRICS, 0)],
    )
    def test_describe_counts(self, disabled: list[str], expected: int) -> None:
        assert len(_describe(KubeNodeCollector(FakeCache(), MetricsConfig(disabled)))) == expected

    def test_single_node_with_resources(self) -> None:
        # 2 capacity + 2 capacity specific + 2 allocatable + 2 allocatable specific + labels + 3 conditions
        collector = KubeNodeCollector(FakeCache(nodes=[_node()]), MetricsConfig())
        assert len(_samples(collector)) == 12

    def test_two_nodes_without_labels_or_conditions(self) -> None:
        status = NodeStatus(capacity={"cpu": "4", "memory": "8Gi"}, allocatable={"cpu": "3", "memory": "7Gi"})
        nodes = [_node("node-1", labels={}, status=status), _node("node-2", labels={}, status=status)]
        assert len(_samples(KubeNodeCollector(FakeCache(nodes=nodes), MetricsConfig()))) == 18

    def test_no_nodes(self) -> None:
        assert _samples(KubeNodeCollector(FakeCache(), MetricsConfig())) == []

    def test_disabled_metrics(self) -> None:
        node = _node(labels={}, status=NodeStatus(capacity={"cpu": "2"}))
        disabled = ["kube_node_status_capacity", "kube_node_status_capacity_cpu_cores", "kube_node_labels"]
        assert _samples(KubeNodeCollector(FakeCache(nodes=[node]), MetricsConfig(disabled))) == []

    def test_capacity_labels(self) -> None:
        collector = KubeNodeCollector(FakeCache(nodes=[_node()]), MetricsConfig())
        cpu = next(
            s for s in _samples_named(collector, "kube_node_status_capacity") if s.labels["resource"] == "cpu"
        )
        assert cpu.labels == {"node": "node-1", "resource": "cpu", "unit": "core", "uid": "node-1-uid"}
        assert cpu.value == 4.0
        (mem,) = _samples_named(collector, "kube_node_status_capacity_memory_bytes")
        assert mem.value == 8589934592.0

    def test_extended_resource_unit_is_integer(self) -> None:
        node = _node(status=NodeStatus(capacity={"nvidia.com/gpu": "2"}))
        collector = KubeNodeCollector(FakeCache(nodes=[node]), MetricsConfig())
        (gpu,) = _samples_named(collector, "kube_node_status_capacity")
        assert gpu.labels["resource"] == "nvidia_com_gpu"
        assert gpu.labels["unit"] == "integer"

    def test_condition_samples(self) -> None:
        collector = KubeNodeCollector(FakeCache(nodes=[_node()]), MetricsConfig())
        values = {s.labels["status"]: s.value for s in _samples_named(collector, "kube_node_status_condition")}
        assert values == {"true": 1.0, "false": 0.0, "unknown": 0.0}

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            ("True", {"true": 1.0, "false": 0.0, "unknown": 0.0}),
            ("False", {"true": 0.0, "false": 1.0, "unknown": 0.0}),
            ("Unknown", {"true": 0.0, "false": 0.0, "unknown": 1.0}),
        ],
    )
    def test_get_conditions(self, status: str, expected: dict[str, float]) -> None:
        assert dict(get_conditions(status)) == expected


# ===========================================================================
# Deployments, statefulsets, services
# ===========================================================================


class TestDeploymentCollectors:
    def test_match_labels_emitted(self) -> None:
        deployment = Deployment(uid="d1", name="web", namespace="prod", match_labels={"app": "web"})
        (sample,) = _samples(KubecostDeploymentCollector(FakeCache(deployments=[deployment]), MetricsConfig()))
        assert sample.name == "deployment_match_labels"
        assert sample.labels == {"deployment": "web", "namespace": "prod", "uid": "d1", "label_app": "web"}

    def test_match_labels_suppressed_when_empty(self) -> None:
        deployment = Deployment(uid="d1", name="web", namespace="prod")
        assert _samples(KubecostDeploymentCollector(FakeCache(deployments=[deployment]), MetricsConfig())) == []

    def test_kubecost_describe(self) -> None:
        assert len(_describe(KubecostDeploymentCollector(FakeCache(), MetricsConfig()))) == 1
        disabled = MetricsConfig(["deployment_match_labels"])
        assert _describe(KubecostDeploymentCollector(FakeCache(), disabled)) == []

    def test_kube_describe(self) -> None:
        assert len(_describe(KubeDeploymentCollector(FakeCache(), MetricsConfig()))) == 2
        disabled = MetricsConfig(["kube_deployment_spec_replicas"])
        assert len(_describe(KubeDeploymentCollector(FakeCache(), disabled))) == 1

    def test_replicas(self) -> None:
        deployment = Deployment(uid="d1", name="web", namespace="prod", spec_replicas=3, status_available_replicas=2)
        collector = KubeDeploymentCollector(FakeCache(deployments=[deployment]), MetricsConfig())
        values = {s.name: s.value for s in _samples(collector)}
        assert values == {
            "kube_deployment_spec_replicas": 3.0,
            "kube_deployment_status_replicas_available": 2.0,
        }

    def test_unset_spec_replicas_defaults_to_one(self) -> None:
        deployment = Deployment(uid="d1", name="web", namespace="prod", spec_replicas=None)
        collector = KubeDeploymentCollector(FakeCache(deployments=[deployment]), MetricsConfig())
        (sample,) = _samples_named(collector, "kube_deployment_spec_replicas")
        assert sample.value == 1.0
        assert sample.labels == {"deployment": "web", "namespace": "prod", "uid": "d1"}


class TestStatefulsetCollector:
    def test_match_labels_emitted(self) -> None:
        sts = StatefulSet(uid="s1", name="db", namespace="data", match_labels={"app": "db", "tier": "storage"})
        (sample,) = _samples(KubecostStatefulsetCollector(FakeCache(stateful_sets=[sts]), MetricsConfig()))
        assert sample.name == "statefulSet_match_labels"
        assert sample.labels["statefulSet"] == "db"
        assert sample.labels["label_tier"] == "storage"

    def test_empty_match_labels_suppressed(self) -> None:
        sts = StatefulSet(uid="s1", name="db", namespace="data")
        assert _samples(KubecostStatefulsetCollector(FakeCache(stateful_sets=[sts]), MetricsConfig())) == []


class TestServiceCollector:
    def test_selector_labels_emitted(self) -> None:
        svc = Service(uid="v1", name="api", namespace="prod", selector={"app": "api"})
        (sample,) = _samples(KubecostServiceCollector(FakeCache(services=[svc]), MetricsConfig()))
        assert sample.labels == {"service": "api", "namespace": "prod", "uid": "v1", "label_app": "api"}

    def test_service_without_selector_suppressed(self) -> None:
        svc = Service(uid="v1", name="external", namespace="prod")
        assert _samples(KubecostServiceCollector(FakeCache(services=[svc]), MetricsConfig())) == []

    def test_disabled(self) -> None:
        svc = Service(uid="v1", name="api", namespace="prod", selector={"app": "api"})
        config = MetricsConfig(["service_selector_labels"])
        assert _samples(KubecostServiceCollector(FakeCache(services=[svc]), config)) == []


# ===========================================================================
# Namespaces and jobs
# ===========================================================================


class TestNamespaceCollectors:
    def test_annotations(self) -> None:
        ns = Namespace(uid="n1", name="prod", annotations={"team": "core"})
        (sample,) = _samples(KubecostNamespaceCollector(FakeCache(namespaces=[ns]), MetricsConfig()))
        assert sample.labels == {"namespace": "prod", "uid": "n1", "annotation_team": "core"}

    def test_annotations_suppressed_when_empty(self) -> None:
        ns = Namespace(uid="n1", name="prod")
        assert _samples(KubecostNamespaceCollector(FakeCache(namespaces=[ns]), MetricsConfig())) == []

    def test_labels_always_emitted(self) -> None:
        ns = Namespace(uid="n1", name="prod")
        (sample,) = _samples(KubeNamespaceCollector(FakeCache(namespaces=[ns]), MetricsConfig()))
        assert sample.name == "kube_namespace_labels"
        assert sample.labels == {"namespace": "prod", "uid": "n1"}

    def test_describe(self) -> None:
        assert len(_describe(KubecostNamespaceCollector(FakeCache(), MetricsConfig()))) == 1
        assert len(_describe(KubeNamespaceCollector(FakeCache(), MetricsConfig()))) == 1


class TestKubeJobCollector:
    def test_job_without_failures_emits_one_zero_sample(self) -> None:
        job = Job(uid="test-job-uid", name="test-job", namespace="default", status=JobStatus(failed=0))
        (sample,) = _samples(KubeJobCollector(FakeCache(jobs=[job]), MetricsConfig()))
        assert sample.value == 0.0
        assert sample.labels == {"job_name": "test-job", "namespace": "default", "uid": "test-job-uid", "reason": ""}

    def test_failed_job_reports_condition_reason(self) -> None:
        job = Job(
            uid="j1",
            name="backup",
            namespace="ops",
            status=JobStatus(failed=3, conditions=(JobCondition("Failed", "True", "BackoffLimitExceeded"),)),
        )
        (sample,) = _samples(KubeJobCollector(FakeCache(jobs=[job]), MetricsConfig()))
        assert sample.value == 3.0
        assert sample.labels["reason"] == "BackoffLimitExceeded"


# ===========================================================================
# Storage
# ===========================================================================


class TestKubePVCollector:
    def test_describe(self) -> None:
        assert len(_describe(KubePVCollector(FakeCache(), MetricsConfig()))) == 3

    def test_collect(self) -> None:
        pv = PersistentVolume(uid="test-pv-uid", name="test-pv", capacity={"storage": "10Gi"}, phase="Bound")
        samples = _samples(KubePVCollector(FakeCache(persistent_volumes=[pv]), MetricsConfig()))
        # capacity + 5 phases + info
        assert len(samples) == 7
        assert all(s.labels["uid"] == "test-pv-uid" for s in samples)

    def test_capacity_in_bytes(self) -> None:
        pv = PersistentVolume(uid="u", name="pv", capacity={"storage": "10Gi"}, phase="Bound")
        collector = KubePVCollector(FakeCache(persistent_volumes=[pv]), MetricsConfig())
        (sample,) = _samples_named(collector, "kube_persistentvolume_capacity_bytes")
        assert sample.value == 10 * 1024**3

    def test_phase_one_hot(self) -> None:
        pv = PersistentVolume(uid="u", name="pv", phase="Released")
        collector = KubePVCollector(FakeCache(persistent_volumes=[pv]), MetricsConfig())
        active = [s.labels["phase"] for s in _samples_named(collector, "kube_persistentvolume_status_phase") if s.value]
        assert active == ["Released"]


class TestKubePVCCollector:
    def test_describe(self) -> None:
        assert len(_describe(KubePVCCollector(FakeCache(), MetricsConfig()))) == 2

    def test_collect(self) -> None:
        pvc = PersistentVolumeClaim(
            uid="test-uid",
            name="test-pvc",
            namespace="default",
            requests={"storage": "1Gi"},
            storage_class_name="standard",
            volume_name="pv-1",
        )
        samples = _samples(KubePVCCollector(FakeCache(persistent_volume_claims=[pvc]), MetricsConfig()))
        assert len(samples) == 2
        assert all(s.labels["uid"] == "test-uid" for s in samples)
        info = next(s for s in samples if s.name == "kube_persistentvolumeclaim_info")
        assert info.labels["storageclass"] == "standard"
        assert info.labels["volumename"] == "pv-1"


def _names(families: Iterable[Metric]) -> set[str]:
    return {f.name for f in families}


class TestEmptyFamilies:
    def test_collect_yields_no_empty_families(self) -> None:
        # Families are created lazily, so an empty cache produces nothing.
        assert _names(KubePodCollector(FakeCache(), MetricsConfig()).collect()) == set()
