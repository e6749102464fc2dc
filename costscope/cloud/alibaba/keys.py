"""Alibaba pricing keys and the slim entity views they are derived from.

Nodes and disks are reduced to :class:`SlimNode` / :class:`SlimDisk`, which
carry exactly the attributes DescribePrice needs. The same attributes,
joined with ``::``, form the price table key, so two nodes that would be
quoted the same price share one cache entry. Empty attributes, such as an
instance type or disk setting the node does not report, are left out of the
key rather than kept as empty segments.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from costscope.cloud.provider import NodeKey, PVKey, UnsupportedComponentError
from costscope.models.entities import Node, PersistentVolume

ALIBABA_OPTIMIZE_KEYWORD = "optimize"
ALIBABA_NON_OPTIMIZE_KEYWORD = "nonoptimize"
ALIBABA_HOUR_PRICE_UNIT = "Hour"
ALIBABA_MONTH_PRICE_UNIT = "Month"
ALIBABA_YEAR_PRICE_UNIT = "Year"
ALIBABA_UNKNOWN_INSTANCE_FAMILY_TYPE = "unknown"
ALIBABA_NOT_SUPPORTED_INSTANCE_FAMILY_TYPE = "unsupported"
ALIBABA_ENHANCED_GENERAL_PURPOSE_TYPE = "g6e"
ALIBABA_SYSTEM_DISK_CATEGORY = "system"
ALIBABA_DATA_DISK_CATEGORY = "data"
ALIBABA_DISK_CLOUD_ESSD_CATEGORY = "cloud_essd"
ALIBABA_DISK_CLOUD_CATEGORY = "cloud"
ALIBABA_DEFAULT_DATADISK_SIZE = "2000"
ALIBABA_DISK_TOPOLOGY_REGION_LABEL = "topology.diskplugin.csi.alibabacloud.com/region"
ALIBABA_DISK_TOPOLOGY_ZONE_LABEL = "topology.diskplugin.csi.alibabacloud.com/zone"

NODE_REGION_LABEL = "topology.kubernetes.io/region"
NODE_OS_LABEL = "beta.kubernetes.io/os"
NODE_INSTANCE_TYPE_LABEL = "node.kubernetes.io/instance-type"

_KEY_SEPARATOR = "::"
_FAMILY_GENERATION_RE = re.compile(r"^[a-z]+(\d+)")
_GIB_QUANTITY_RE = re.compile(r"^(\d+)Gi$")


# ---------------------------------------------------------------------------
# Slim views
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SlimDisk:
    disk_type: str = ""
    region_id: str = ""
    price_unit: str = ALIBABA_HOUR_PRICE_UNIT
    size_in_gib: str = ""
    disk_category: str = ""
    provider_id: str = ""
    storage_class: str = ""
    performance_level: str = ""


@dataclass(frozen=True)
class SystemDisk(SlimDisk):
    """The boot disk of an ECS instance, as reported by DescribeDisks."""

    disk_type: str = ALIBABA_SYSTEM_DISK_CATEGORY


@dataclass(frozen=True)
class SlimNode:
    instance_type: str = ""
    region_id: str = ""
    price_unit: str = ALIBABA_HOUR_PRICE_UNIT
    memory_size_in_kib: str = ""
    is_io_optimized: bool = True
    os_type: str = ""
    provider_id: str = ""
    instance_type_family: str = ""
    system_disk: SlimDisk | None = None
    cpu_cores: float = 0.0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def get_instance_family(instance_type: str) -> str:
    """``ecs.sn2ne.2xlarge`` -> ``sn2ne``."""
    parts = instance_type.split(".")
    if len(parts) != 3 or parts[0] != "ecs":
        return ALIBABA_UNKNOWN_INSTANCE_FAMILY_TYPE
    return parts[1]


def get_instance_family_generation(instance_type: str) -> int:
    """Generation number of the family of *instance_type*, or -1."""
    family = get_instance_family(instance_type)
    if family == ALIBABA_UNKNOWN_INSTANCE_FAMILY_TYPE:
        return -1
    match = _FAMILY_GENERATION_RE.match(family)
    if match is None:
        return -1
    return int(match.group(1))


def get_numerical_value_from_resource_quantity(quantity: str) -> str:
    """``"10Gi"`` -> ``"10"``; anything else yields the default data disk size."""
    match = _GIB_QUANTITY_RE.match(quantity)
    if match is None:
        return ALIBABA_DEFAULT_DATADISK_SIZE
    return match.group(1)


def get_instance_id_from_provider_id(provider_id: str) -> str:
    """``cn-hangzhou.i-abc`` -> ``i-abc``; IDs without a region prefix are returned as-is."""
    _, sep, instance_id = provider_id.partition(".")
    return instance_id if sep else provider_id


def _zone_to_region(zone: str) -> str:
    # Zones are the region name plus a one-letter suffix (us-east-1a).
    return zone[:-1] if zone else ""


def determine_pv_region(pv: PersistentVolume) -> str:
    """Region of a CSI disk from its labels or node affinity; "" when unknown."""
    region = pv.labels.get(ALIBABA_DISK_TOPOLOGY_REGION_LABEL, "")
    if region:
        return region
    zone = pv.labels.get(ALIBABA_DISK_TOPOLOGY_ZONE_LABEL, "")
    if zone:
        return _zone_to_region(zone)
    for term in pv.node_affinity_terms:
        for expr in term:
            if expr.key == ALIBABA_DISK_TOPOLOGY_ZONE_LABEL and expr.values:
                return _zone_to_region(expr.values[0])
    return ""


def slim_node_from_node(node: Node) -> SlimNode:
    instance_type = node.labels.get(NODE_INSTANCE_TYPE_LABEL, "")
    memory = node.status.capacity.get("memory", "")
    cpu = node.status.capacity.get("cpu", "")
    try:
        cpu_cores = float(cpu) if cpu else 0.0
    except ValueError:
        cpu_cores = 0.0
    return SlimNode(
        instance_type=instance_type,
        region_id=node.labels.get(NODE_REGION_LABEL, ""),
        price_unit=ALIBABA_HOUR_PRICE_UNIT,
        memory_size_in_kib=memory.removesuffix("Ki"),
        is_io_optimized=True,
        os_type=node.labels.get(NODE_OS_LABEL, ""),
        provider_id=node.provider_id,
        instance_type_family=get_instance_family(instance_type),
        cpu_cores=cpu_cores,
    )


def slim_disk_from_pv(pv: PersistentVolume, region: str) -> SlimDisk:
    return SlimDisk(
        disk_type=ALIBABA_DATA_DISK_CATEGORY,
        region_id=region,
        price_unit=ALIBABA_HOUR_PRICE_UNIT,
        size_in_gib=get_numerical_value_from_resource_quantity(pv.capacity.get("storage", "")),
        disk_category=pv.csi_attributes.get("type", ""),
        provider_id=pv.csi_volume_handle,
        storage_class=pv.storage_class_name,
        performance_level=pv.csi_attributes.get("performanceLevel", ""),
    )


def _join(parts: list[str]) -> str:
    return _KEY_SEPARATOR.join(p for p in parts if p)


def optimize_keyword(is_io_optimized: bool) -> str:
    return ALIBABA_OPTIMIZE_KEYWORD if is_io_optimized else ALIBABA_NON_OPTIMIZE_KEYWORD


def determine_key_for_pricing(obj: object) -> str:
    """Price table key for a :class:`SlimNode` or :class:`SlimDisk`.

    Raises:
        UnsupportedComponentError: for any other object, including ``None``.
    """
    if isinstance(obj, SlimNode):
        parts = [obj.region_id, obj.instance_type, obj.os_type, optimize_keyword(obj.is_io_optimized)]
        if obj.system_disk is not None:
            disk = obj.system_disk
            parts += [disk.disk_category, disk.size_in_gib, disk.performance_level]
        return _join(parts)
    if isinstance(obj, SlimDisk):
        return _join([obj.region_id, obj.disk_type, obj.disk_category, obj.performance_level, obj.size_in_gib])
    raise UnsupportedComponentError(f"unsupported ECS type {type(obj).__name__} for DescribePrice at this time")


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AlibabaNodeKey(NodeKey):
    slim_node: SlimNode
    provider_id: str = ""
    region_id: str = ""
    instance_type: str = ""
    os_type: str = ""
    optimized_keyword: str = ALIBABA_OPTIMIZE_KEYWORD

    def id(self) -> str:
        return self.provider_id

    def features(self) -> str:
        return determine_key_for_pricing(self.slim_node)

    def features_with_other_disk(self, category: str) -> str:
        """Key of the same instance priced with a system disk of *category*."""
        return _join([self.region_id, self.instance_type, self.os_type, self.optimized_keyword, category])

    def gpu_type(self) -> str:
        return ""

    def gpu_count(self) -> int:
        return 0


@dataclass(frozen=True)
class AlibabaPVKey(PVKey):
    provider_id: str = ""
    region_id: str = ""
    pv_type: str = ALIBABA_DATA_DISK_CATEGORY
    pv_sub_type: str = ""
    pv_category: str = ""
    pv_performance_level: str = ""
    size_in_gib: str = ""
    storage_class: str = ""

    def id(self) -> str:
        return self.provider_id

    def features(self) -> str:
        return _join([self.region_id, self.pv_type, self.pv_category, self.pv_performance_level, self.size_in_gib])

    def get_storage_class(self) -> str:
        return self.storage_class

    @classmethod
    def from_disk(cls, disk: SlimDisk) -> AlibabaPVKey:
        return cls(
            provider_id=disk.provider_id,
            region_id=disk.region_id,
            pv_type=disk.disk_type,
            pv_category=disk.disk_category,
            pv_performance_level=disk.performance_level,
            size_in_gib=disk.size_in_gib,
            storage_class=disk.storage_class,
        )


# ---------------------------------------------------------------------------
# Price table entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AlibabaNodeAttributes:
    instance_type: str = ""
    memory_size_in_kib: str = ""
    is_io_optimized: bool = True
    os_type: str = ""
    system_disk_category: str = ""
    system_disk_size_in_gib: str = ""
    system_disk_performance_level: str = ""

    @classmethod
    def from_node(cls, node: SlimNode) -> AlibabaNodeAttributes:
        disk = node.system_disk
        return cls(
            instance_type=node.instance_type,
            memory_size_in_kib=node.memory_size_in_kib,
            is_io_optimized=node.is_io_optimized,
            os_type=node.os_type,
            system_disk_category=disk.disk_category if disk else "",
            system_disk_size_in_gib=disk.size_in_gib if disk else "",
            system_disk_performance_level=disk.performance_level if disk else "",
        )


@dataclass(frozen=True)
class AlibabaPVAttributes:
    pv_type: str = ""
    pv_sub_type: str = ""
    pv_category: str = ""
    pv_performance_level: str = ""
    size_in_gib: str = ""

    @classmethod
    def from_disk(cls, disk: SlimDisk) -> AlibabaPVAttributes:
        return cls(
            pv_type=disk.disk_type,
            pv_category=disk.disk_category,
            pv_performance_level=disk.performance_level,
            size_in_gib=disk.size_in_gib,
        )


@dataclass(frozen=True)
class AlibabaPricingDetails:
    hourly_price: float = 0.0
    hour_unit: str = ""
    trade_price: float = 0.0
    currency_code: str = ""


@dataclass(frozen=True)
class AlibabaPricingTerms:
    pricing_type: str = ""
    pricing_details: AlibabaPricingDetails = field(default_factory=AlibabaPricingDetails)


@dataclass(frozen=True)
class AlibabaPricing:
    """One cached DescribePrice answer for a node or a disk."""

    node_attributes: AlibabaNodeAttributes | None = None
    pv_attributes: AlibabaPVAttributes | None = None
    pricing_terms: AlibabaPricingTerms = field(default_factory=AlibabaPricingTerms)
    slim_node: SlimNode | None = None
    slim_disk: SlimDisk | None = None
