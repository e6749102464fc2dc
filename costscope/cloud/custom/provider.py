"""Provider backed only by operator-supplied base prices.

Used when no cloud pricing API is configured and as the default provider.
Every node and volume resolves to a price, so lookups never miss once the
custom pricing document has been loaded.
"""

from __future__ import annotations

import asyncio
import json
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import IO, Any

from costscope.cache.cluster_cache import ClusterCacheReader
from costscope.cloud.models import CustomPricing, ProviderConfig, parse_percent, parse_price
from costscope.cloud.provider import (
    ConfigError,
    LoadBalancerCost,
    NetworkCost,
    NodeCost,
    NodeKey,
    PricingKeyError,
    PricingMetadata,
    PricingSourceStatus,
    Provider,
    PVCost,
    PVKey,
    ServiceAccountCheck,
    ServiceAccountStatus,
    read_body,
)
from costscope.models.entities import Node, PersistentVolume
from costscope.observability.logging import get_logger
from costscope.observability.metrics import pricing_refresh_total
from costscope.util.quantity import QuantityError, parse_bytes, parse_cpu_cores

_INSTANCE_TYPE_LABELS: tuple[str, ...] = ("node.kubernetes.io/instance-type", "beta.kubernetes.io/instance-type")
_REGION_LABELS: tuple[str, ...] = ("topology.kubernetes.io/region", "failure-domain.beta.kubernetes.io/region")
_SPOT_LABELS: tuple[str, ...] = ("node.kubernetes.io/lifecycle", "kubernetes.azure.com/scalesetpriority")
_SPOT_VALUES: frozenset[str] = frozenset({"spot", "preemptible"})
_GPU_RESOURCES: tuple[str, ...] = ("nvidia.com/gpu", "amd.com/gpu")

_GIB: float = 1024.0**3
_SOURCE = "custom"


def _first_label(labels: Mapping[str, str], keys: tuple[str, ...]) -> str:
    for key in keys:
        if labels.get(key):
            return labels[key]
    return ""


@dataclass(frozen=True)
class CustomNodeKey(NodeKey):
    provider_id: str
    instance_type: str
    region: str
    spot: bool = False
    gpus: int = 0
    vcpu: float = 0.0
    ram_bytes: float = 0.0

    def id(self) -> str:
        return self.provider_id

    def features(self) -> str:
        parts = [self.region, self.instance_type, "spot" if self.spot else "ondemand"]
        return ",".join(parts)

    def gpu_type(self) -> str:
        return ""

    def gpu_count(self) -> int:
        return self.gpus


@dataclass(frozen=True)
class CustomPVKey(PVKey):
    provider_id: str
    storage_class: str
    region: str
    size_bytes: float = 0.0

    def id(self) -> str:
        return self.provider_id

    def features(self) -> str:
        return f"{self.region},{self.storage_class}"

    def get_storage_class(self) -> str:
        return self.storage_class


class CustomProvider(Provider):
    """Prices every node and volume from :class:`CustomPricing`."""

    name = "custom"

    def __init__(self, cache: ClusterCacheReader, config_store: ProviderConfig, cluster_id: str = "") -> None:
        self._cache = cache
        self._store = config_store
        self._cluster_id = cluster_id
        self._lock = threading.Lock()
        self._pricing: CustomPricing | None = None
        self._last_error = ""
        self._log = get_logger("cloud.custom")

    async def download_pricing_data(self) -> None:
        try:
            pricing = await asyncio.to_thread(self._store.get_custom_pricing_data)
        except ConfigError as exc:
            self._last_error = str(exc)
            pricing_refresh_total.labels(provider=self.name, outcome="error").inc()
            raise
        with self._lock:
            self._pricing = pricing
        self._last_error = ""
        pricing_refresh_total.labels(provider=self.name, outcome="success").inc()
        self._log.info("pricing_refresh_complete", provider=self.name)

    def _current(self) -> CustomPricing:
        with self._lock:
            pricing = self._pricing
        if pricing is None:
            raise PricingKeyError("custom pricing has not been loaded")
        return pricing

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def get_key(self, labels: Mapping[str, str], node: Node) -> CustomNodeKey:
        merged = {**node.labels, **labels}
        gpus = 0
        for resource in _GPU_RESOURCES:
            if resource in node.status.capacity:
                try:
                    gpus += int(parse_cpu_cores(node.status.capacity[resource]))
                except QuantityError:
                    continue
        try:
            vcpu = parse_cpu_cores(node.status.capacity.get("cpu", "0"))
            ram = parse_bytes(node.status.capacity.get("memory", "0"))
        except QuantityError:
            vcpu, ram = 0.0, 0.0
        return CustomNodeKey(
            provider_id=node.provider_id,
            instance_type=_first_label(merged, _INSTANCE_TYPE_LABELS),
            region=_first_label(merged, _REGION_LABELS),
            spot=_first_label(merged, _SPOT_LABELS).lower() in _SPOT_VALUES,
            gpus=gpus,
            vcpu=vcpu,
            ram_bytes=ram,
        )

    def get_pv_key(self, pv: PersistentVolume, parameters: Mapping[str, str], default_region: str) -> CustomPVKey:
        try:
            size = parse_bytes(pv.capacity.get("storage", "0"))
        except QuantityError:
            size = 0.0
        return CustomPVKey(
            provider_id=pv.csi_volume_handle or pv.name,
            storage_class=pv.storage_class_name,
            region=_first_label(pv.labels, _REGION_LABELS) or default_region,
            size_bytes=size,
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def node_pricing(self, key: NodeKey) -> tuple[NodeCost, PricingMetadata]:
        pricing = self._current()
        spot = isinstance(key, CustomNodeKey) and key.spot
        cpu = parse_price(pricing.spot_cpu if spot else pricing.cpu)
        ram = parse_price(pricing.spot_ram if spot else pricing.ram)
        gpu = parse_price(pricing.spot_gpu if spot else pricing.gpu)
        vcpu = key.vcpu if isinstance(key, CustomNodeKey) else 0.0
        ram_bytes = key.ram_bytes if isinstance(key, CustomNodeKey) else 0.0
        gpus = key.gpu_count()
        cost = NodeCost(
            hourly_cost=cpu * vcpu + ram * ram_bytes / _GIB + gpu * gpus,
            vcpu_cost=cpu,
            ram_cost=ram,
            gpu_cost=gpu,
            vcpu=vcpu,
            ram_bytes=ram_bytes,
            gpu_count=gpus,
            instance_type=getattr(key, "instance_type", ""),
            region=getattr(key, "region", ""),
            provider_id=key.id(),
            usage_type="spot" if spot else "ondemand",
            pricing_type=_SOURCE,
            uses_base_cpu_price=True,
        )
        return cost, PricingMetadata(currency=pricing.currency_code, source=_SOURCE)

    def pv_pricing(self, key: PVKey) -> PVCost:
        pricing = self._current()
        size = key.size_bytes / _GIB if isinstance(key, CustomPVKey) else 0.0
        return PVCost(
            hourly_cost=parse_price(pricing.storage),
            size_gib=size,
            storage_class=key.get_storage_class(),
            region=getattr(key, "region", ""),
            provider_id=key.id(),
        )

    def all_node_pricing(self) -> dict[str, Any]:
        pricing = self._current()
        return {"default": pricing.model_copy()}

    def gpu_pricing(self, labels: Mapping[str, str]) -> bytes:
        return b""

    def network_pricing(self) -> NetworkCost:
        pricing = self._store.get_custom_pricing_data()
        return NetworkCost(
            zone_egress=parse_price(pricing.zone_network_egress),
            region_egress=parse_price(pricing.region_network_egress),
            internet_egress=parse_price(pricing.internet_network_egress),
            nat_gateway_egress=parse_price(pricing.nat_gateway_egress),
            nat_gateway_ingress=parse_price(pricing.nat_gateway_ingress),
        )

    def load_balancer_pricing(self) -> LoadBalancerCost:
        pricing = self._store.get_custom_pricing_data()
        return LoadBalancerCost(hourly_cost=parse_price(pricing.default_lb_price))

    def cluster_management_pricing(self) -> tuple[str, float]:
        return "", 0.0

    def pricing_source_summary(self) -> dict[str, Any]:
        with self._lock:
            pricing = self._pricing
        return {"default": pricing.sanitize()} if pricing is not None else {}

    def pricing_source_status(self) -> dict[str, PricingSourceStatus]:
        with self._lock:
            loaded = self._pricing is not None
        return {
            _SOURCE: PricingSourceStatus(name=_SOURCE, enabled=True, available=loaded, error=self._last_error),
        }

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self) -> CustomPricing:
        return self._store.get_custom_pricing_data()

    def update_config(self, body: str | bytes | IO[str] | IO[bytes] | None, update_type: str) -> CustomPricing:
        return update_custom_pricing(self._store, body, update_type)

    def update_config_from_config_map(self, data: Mapping[str, str]) -> CustomPricing:
        return self._store.update_from_map(data)

    def cluster_info(self) -> dict[str, str]:
        pricing = self._store.get_custom_pricing_data()
        return {
            "name": pricing.cluster_name or "Custom Cluster #1",
            "provider": "custom",
            "account": pricing.cluster_account_id,
            "id": self._cluster_id,
        }

    def regions(self) -> list[str]:
        regions = {n.labels.get(_REGION_LABELS[0], "") for n in self._cache.get_all_nodes()}
        regions.discard("")
        return sorted(regions)

    def service_account_status(self) -> ServiceAccountStatus:
        return ServiceAccountStatus(checks=(ServiceAccountCheck(message="Custom pricing in use", status=True),))

    def apply_reserved_instance_pricing(self, nodes: Mapping[str, NodeCost] | None) -> None:
        return None

    def combined_discount_for_node(
        self,
        provider_id: str,
        is_spot: bool,
        base_cpu_price: float,
        base_ram_price: float,
    ) -> float:
        try:
            pricing = self._store.get_custom_pricing_data()
        except ConfigError:
            return 0.0
        return combined_discount(pricing)


def combined_discount(pricing: CustomPricing) -> float:
    """``1 - (1 - discount) * (1 - negotiated)``, never negative."""
    discount = parse_percent(pricing.discount)
    negotiated = parse_percent(pricing.negotiated_discount)
    return max(0.0, 1.0 - (1.0 - discount) * (1.0 - negotiated))


def update_custom_pricing(
    store: ProviderConfig,
    body: str | bytes | IO[str] | IO[bytes] | None,
    update_type: str,
) -> CustomPricing:
    """Apply a JSON update body to *store*.

    Raises:
        ConfigError: for an unsupported *update_type*, an empty or invalid
            JSON body, or when the store cannot be loaded or saved.
    """
    if update_type != "customPricing":
        raise ConfigError(f"unsupported update type: {update_type}")
    text = read_body(body)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError("update body is not valid JSON") from exc
    if not isinstance(data, dict):
        raise ConfigError("update body must be a JSON object")
    return store.update(lambda current: current.merged(data))
