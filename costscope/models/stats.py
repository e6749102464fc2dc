"""Pydantic models for the kubelet ``stats/summary`` document (v1alpha1).

Only the subset consumed by the summary scraper is modelled; unknown fields
are ignored. Field names follow Python conventions with the kubelet's
camelCase names as aliases, so ``Summary.model_validate_json(body)`` decodes
the raw response directly.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _KubeletModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _null_list(value: Any) -> Any:
    """The kubelet encodes empty lists as null."""
    return [] if value is None else value


# ---------------------------------------------------------------------------
# Leaf stats
# ---------------------------------------------------------------------------


class CPUStats(_KubeletModel):
    time: str | None = None
    usage_nano_cores: int | None = Field(default=None, alias="usageNanoCores")
    usage_core_nano_seconds: int | None = Field(default=None, alias="usageCoreNanoSeconds")


class MemoryStats(_KubeletModel):
    time: str | None = None
    available_bytes: int | None = Field(default=None, alias="availableBytes")
    usage_bytes: int | None = Field(default=None, alias="usageBytes")
    working_set_bytes: int | None = Field(default=None, alias="workingSetBytes")
    rss_bytes: int | None = Field(default=None, alias="rssBytes")


class FsStats(_KubeletModel):
    time: str | None = None
    available_bytes: int | None = Field(default=None, alias="availableBytes")
    capacity_bytes: int | None = Field(default=None, alias="capacityBytes")
    used_bytes: int | None = Field(default=None, alias="usedBytes")


class InterfaceStats(_KubeletModel):
    name: str = ""
    rx_bytes: int | None = Field(default=None, alias="rxBytes")
    tx_bytes: int | None = Field(default=None, alias="txBytes")


class NetworkStats(InterfaceStats):
    """Pod network stats: the default interface inlined plus all interfaces."""

    time: str | None = None
    interfaces: list[InterfaceStats] = Field(default_factory=list)

    @field_validator("interfaces", mode="before")
    @classmethod
    def _interfaces_nullable(cls, v: Any) -> Any:
        return _null_list(v)


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


class PodReference(_KubeletModel):
    name: str = ""
    namespace: str = ""
    uid: str = ""


class PVCReference(_KubeletModel):
    name: str = ""
    namespace: str = ""


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


class ContainerStats(_KubeletModel):
    name: str = ""
    cpu: CPUStats | None = None
    memory: MemoryStats | None = None
    rootfs: FsStats | None = None
    logs: FsStats | None = None


class VolumeStats(FsStats):
    name: str = ""
    pvc_ref: PVCReference | None = Field(default=None, alias="pvcRef")


class PodStats(_KubeletModel):
    pod_ref: PodReference = Field(default_factory=PodReference, alias="podRef")
    containers: list[ContainerStats] = Field(default_factory=list)
    cpu: CPUStats | None = None
    memory: MemoryStats | None = None
    network: NetworkStats | None = None
    volume_stats: list[VolumeStats] = Field(default_factory=list, alias="volume")
    ephemeral_storage: FsStats | None = Field(default=None, alias="ephemeral-storage")

    @field_validator("containers", "volume_stats", mode="before")
    @classmethod
    def _lists_nullable(cls, v: Any) -> Any:
        return _null_list(v)


class NodeStats(_KubeletModel):
    node_name: str = Field(default="", alias="nodeName")
    cpu: CPUStats | None = None
    memory: MemoryStats | None = None
    network: NetworkStats | None = None
    fs: FsStats | None = None


class Summary(_KubeletModel):
    """Top-level kubelet summary for one node."""

    node: NodeStats = Field(default_factory=NodeStats)
    pods: list[PodStats] = Field(default_factory=list)

    @field_validator("pods", mode="before")
    @classmethod
    def _pods_nullable(cls, v: Any) -> Any:
        return _null_list(v)
