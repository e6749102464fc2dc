"""Prometheus collectors for cluster state and cost."""

from costscope.metrics.config import MetricsConfig, load_metrics_config
from costscope.metrics.costmodel import CostModelCollector
from costscope.metrics.deployments import KubecostDeploymentCollector, KubeDeploymentCollector
from costscope.metrics.jobs import KubeJobCollector
from costscope.metrics.namespaces import KubecostNamespaceCollector, KubeNamespaceCollector
from costscope.metrics.nodes import KubeNodeCollector
from costscope.metrics.pods import KubecostPodCollector, KubePodCollector
from costscope.metrics.pvcs import KubePVCCollector
from costscope.metrics.pvs import KubePVCollector
from costscope.metrics.registry import build_collectors, register_collectors
from costscope.metrics.services import KubecostServiceCollector
from costscope.metrics.statefulsets import KubecostStatefulsetCollector

__all__ = [
    "CostModelCollector",
    "KubeDeploymentCollector",
    "KubeJobCollector",
    "KubeNamespaceCollector",
    "KubeNodeCollector",
    "KubePVCCollector",
    "KubePVCollector",
    "KubePodCollector",
    "KubecostDeploymentCollector",
    "KubecostNamespaceCollector",
    "KubecostPodCollector",
    "KubecostServiceCollector",
    "KubecostStatefulsetCollector",
    "MetricsConfig",
    "build_collectors",
    "load_metrics_config",
    "register_collectors",
]
