"""Core data structures for costscope."""

from costscope.models.config import CostScopeConfig
from costscope.models.entities import (
    Container,
    ContainerStatus,
    DaemonSet,
    Deployment,
    Job,
    Namespace,
    Node,
    OwnerReference,
    PersistentVolume,
    PersistentVolumeClaim,
    Pod,
    PodDisruptionBudget,
    ReplicaSet,
    ReplicationController,
    Service,
    StatefulSet,
    StorageClass,
    get_controller_of,
    get_controller_of_no_copy,
)
from costscope.models.resources import CacheReadiness
from costscope.models.stats import Summary

__all__ = [
    "CacheReadiness",
    "Container",
    "ContainerStatus",
    "CostScopeConfig",
    "DaemonSet",
    "Deployment",
    "Job",
    "Namespace",
    "Node",
    "OwnerReference",
    "PersistentVolume",
    "PersistentVolumeClaim",
    "Pod",
    "PodDisruptionBudget",
    "ReplicaSet",
    "ReplicationController",
    "Service",
    "StatefulSet",
    "StorageClass",
    "Summary",
    "get_controller_of",
    "get_controller_of_no_copy",
]
