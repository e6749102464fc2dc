"""Deployment selector and replica metrics."""

from __future__ import annotations

from collections.abc import Iterator

from costscope.metrics.base import GAUGE, ClusterStateCollector, labels_with
from costscope.metrics.labels import kube_labels_to_labels

DEPLOYMENT_MATCH_LABELS = "deployment_match_labels"
KUBE_DEPLOYMENT_SPEC_REPLICAS = "kube_deployment_spec_replicas"
KUBE_DEPLOYMENT_STATUS_REPLICAS_AVAILABLE = "kube_deployment_status_replicas_available"

# Kubernetes defaults an unset replica count to one.
_DEFAULT_REPLICAS = 1

Row = tuple[str, dict[str, str], float]


class KubecostDeploymentCollector(ClusterStateCollector):
    """Selector match labels; deployments without match labels produce no sample."""

    METRICS = {
        DEPLOYMENT_MATCH_LABELS: (GAUGE, "deployment match labels"),
    }

    def samples(self) -> Iterator[Row]:
        for deployment in self._cache.get_all_deployments():
            names, values = kube_labels_to_labels(deployment.match_labels)
            if not names:
                continue
            base = {"deployment": deployment.name, "namespace": deployment.namespace, "uid": deployment.uid}
            yield DEPLOYMENT_MATCH_LABELS, labels_with(base, names, values), 1.0


class KubeDeploymentCollector(ClusterStateCollector):
    METRICS = {
        KUBE_DEPLOYMENT_SPEC_REPLICAS: (GAUGE, "Number of desired pods for a deployment"),
        KUBE_DEPLOYMENT_STATUS_REPLICAS_AVAILABLE: (
            GAUGE,
            "The number of available replicas per deployment",
        ),
    }

    def samples(self) -> Iterator[Row]:
        for deployment in self._cache.get_all_deployments():
            labels = {"deployment": deployment.name, "namespace": deployment.namespace, "uid": deployment.uid}
            replicas = deployment.spec_replicas if deployment.spec_replicas is not None else _DEFAULT_REPLICAS
            yield KUBE_DEPLOYMENT_SPEC_REPLICAS, labels, float(replicas)
            yield KUBE_DEPLOYMENT_STATUS_REPLICAS_AVAILABLE, dict(labels), float(deployment.status_available_replicas)
