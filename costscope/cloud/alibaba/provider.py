"""Alibaba Cloud pricing provider.

Prices come from the ECS ``DescribePrice`` API and are cached per pricing
key (see :mod:`costscope.cloud.alibaba.keys`).

Refresh
-------
:meth:`AlibabaProvider.download_pricing_data` walks every node and
persistent volume in the cluster cache, resolves system disks through
``DescribeDisks``, and quotes every distinct key once. The new table is
built off to the side and swapped in under the lock, so readers see either
the old or the new table in full. Concurrent callers await the same
in-flight refresh.

A key whose quote failed is remembered for ``negative_ttl_seconds`` and is
not re-quoted until that expires; a previously cached price for it is kept.
"""

from __future__ import annotations

import asyncio
import os
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import replace
from typing import IO

from costscope.cache.cluster_cache import ClusterCacheReader
from costscope.cloud.alibaba.boaconfig import ALIBABA_PROVIDER, AccessKey, AlibabaInfo
from costscope.cloud.alibaba.client import (
    AlibabaClient,
    get_system_disk_info_of_a_node,
    process_describe_price_and_create_alibaba_pricing,
)
from costscope.cloud.alibaba.keys import (
    AlibabaNodeKey,
    AlibabaPricing,
    AlibabaPVKey,
    SlimDisk,
    SlimNode,
    SystemDisk,
    determine_key_for_pricing,
    determine_pv_region,
    get_instance_id_from_provider_id,
    optimize_keyword,
    slim_disk_from_pv,
    slim_node_from_node,
)
from costscope.cloud.custom.provider import combined_discount, update_custom_pricing
from costscope.cloud.models import CustomPricing, ProviderConfig, parse_price
from costscope.cloud.provider import (
    ConfigError,
    LoadBalancerCost,
    NetworkCost,
    NodeCost,
    NodeKey,
    PricingError,
    PricingKeyError,
    PricingMetadata,
    PricingSourceStatus,
    Provider,
    PVCost,
    PVKey,
    ServiceAccountCheck,
    ServiceAccountStatus,
)
from costscope.models.entities import Node, PersistentVolume
from costscope.observability.logging import get_logger
from costscope.observability.metrics import (
    pricing_cache_entries,
    pricing_cache_misses_total,
    pricing_refresh_duration_seconds,
    pricing_refresh_total,
)
from costscope.util.worker import concurrent_collect_with

ClientFactory = Callable[[str, AccessKey], AlibabaClient]

ACCESS_KEY_ID_ENV = "COSTSCOPE_ALIBABA_ACCESS_KEY_ID"
ACCESS_KEY_SECRET_ENV = "COSTSCOPE_ALIBABA_ACCESS_KEY_SECRET"

PRICING_SOURCE_NAME = "Alibaba DescribePrice"

_PROVIDER_LABEL = "alibaba"
_REFRESH_CONCURRENCY: int = 8
_KIB_PER_GIB: float = 1024.0 * 1024.0
_BYTES_PER_KIB: float = 1024.0

ALIBABA_REGIONS: tuple[str, ...] = (
    "cn-qingdao",
    "cn-beijing",
    "cn-zhangjiakou",
    "cn-huhehaote",
    "cn-wulanchabu",
    "cn-hangzhou",
    "cn-shanghai",
    "cn-nanjing",
    "cn-fuzhou",
    "cn-shenzhen",
    "cn-heyuan",
    "cn-guangzhou",
    "cn-chengdu",
    "cn-hongkong",
    "ap-southeast-1",
    "ap-southeast-2",
    "ap-southeast-3",
    "ap-southeast-5",
    "ap-southeast-6",
    "ap-southeast-7",
    "ap-south-1",
    "ap-northeast-1",
    "ap-northeast-2",
    "us-west-1",
    "us-east-1",
    "eu-central-1",
    "eu-west-1",
    "me-east-1",
    "me-central-1",
)


def _default_client_factory(region: str, access_key: AccessKey) -> AlibabaClient:
    return AlibabaClient(region, access_key)


def split_node_cost(total: float, vcpu: float, ram_gib: float, base_cpu: float, base_ram: float) -> tuple[float, float]:
    """Split an hourly node price into per-core and per-GiB prices.

    The split follows the ratio of the base CPU and RAM prices. When the
    node shape or the base prices are unknown, both parts are zero.
    """
    weight = base_cpu * vcpu + base_ram * ram_gib
    if total <= 0 or weight <= 0:
        return 0.0, 0.0
    scale = total / weight
    return base_cpu * scale, base_ram * scale


class AlibabaProvider(Provider):
    """Pricing provider for Alibaba Cloud ECS instances and cloud disks.

    Usage::

        provider = AlibabaProvider(cache, ProviderConfig(path))
        await provider.download_pricing_data()
        cost, meta = provider.node_pricing(provider.get_key({}, node))
    """

    name = _PROVIDER_LABEL

    def __init__(
        self,
        cache: ClusterCacheReader,
        config_store: ProviderConfig,
        client_factory: ClientFactory | None = None,
        cluster_id: str = "",
        negative_ttl_seconds: float = 900.0,
    ) -> None:
        """Initialise the provider.

        Args:
            cache: Source of nodes and persistent volumes.
            config_store: Custom pricing store holding region and credentials.
            client_factory: Builds an :class:`AlibabaClient` for a region;
                the provider closes every client it creates.
            cluster_id: Identifier reported by :meth:`cluster_info`.
            negative_ttl_seconds: How long a failed quote suppresses retries.
        """
        self._cache = cache
        self._store = config_store
        self._client_factory = client_factory or _default_client_factory
        self._cluster_id = cluster_id
        self._negative_ttl = negative_ttl_seconds
        self._log = get_logger("cloud.alibaba")

        self._lock = threading.RLock()
        self._pricing: dict[str, AlibabaPricing] = {}
        self._negative: dict[str, float] = {}
        self._system_disks: dict[str, SystemDisk] = {}
        self._refresh_task: asyncio.Task[None] | None = None
        self._last_error = ""
        self.cluster_region = ""
        self.cluster_account_id = ""

    # ------------------------------------------------------------------
    # Credentials and settings
    # ------------------------------------------------------------------

    def get_alibaba_access_key(self) -> AccessKey:
        """Return validated credentials, read fresh on every call.

        Environment variables take precedence over the custom pricing
        document.

        Raises:
            ConfigError: if no complete key pair is configured.
        """
        key_id = os.environ.get(ACCESS_KEY_ID_ENV, "")
        secret = os.environ.get(ACCESS_KEY_SECRET_ENV, "")
        if not (key_id and secret):
            custom = self._store.get_custom_pricing_data()
            key_id = key_id or custom.alibaba_service_key_name
            secret = secret or custom.alibaba_service_key_secret
        access_key = AccessKey(access_key_id=key_id, access_key_secret=secret)
        access_key.validate()
        return access_key

    def get_alibaba_cloud_info(self) -> AlibabaInfo:
        custom = self._store.get_custom_pricing_data()
        return AlibabaInfo(
            alibaba_cluster_region=custom.alibaba_cluster_region,
            alibaba_service_key_name=custom.alibaba_service_key_name,
            alibaba_service_key_secret=custom.alibaba_service_key_secret,
            alibaba_account_id=custom.alibaba_account_id,
        )

    def _access_key_is_loaded(self) -> bool:
        try:
            self.get_alibaba_access_key()
        except ConfigError:
            return False
        return True

    def _resolve_cluster_region(self, custom: CustomPricing) -> str:
        if custom.alibaba_cluster_region:
            return custom.alibaba_cluster_region
        for node in self._cache.get_all_nodes():
            region = slim_node_from_node(node).region_id
            if region:
                return region
        return ""

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def download_pricing_data(self) -> None:
        """Refresh the price table; concurrent callers share one refresh.

        Raises:
            ConfigError: if the custom pricing document or credentials are
                missing.
        """
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(self._download())
            self._refresh_task = task
        # Shielded so one cancelled waiter does not abort the shared refresh.
        await asyncio.shield(task)

    async def _download(self) -> None:
        start = time.monotonic()
        try:
            custom = self._store.get_custom_pricing_data()
            access_key = self.get_alibaba_access_key()
        except ConfigError as exc:
            self._last_error = str(exc)
            pricing_refresh_total.labels(provider=_PROVIDER_LABEL, outcome="config_error").inc()
            self._log.error("pricing_refresh_config_error", provider=_PROVIDER_LABEL, error=str(exc))
            raise

        region = self._resolve_cluster_region(custom)
        self.cluster_region = region
        self.cluster_account_id = custom.alibaba_account_id
        clients: dict[str, AlibabaClient] = {}

        def _client(for_region: str) -> AlibabaClient:
            if for_region not in clients:
                clients[for_region] = self._client_factory(for_region, access_key)
            return clients[for_region]

        try:
            nodes = self._cache.get_all_nodes()
            await self._refresh_system_disks(nodes, _client)
            pending: dict[str, SlimNode | SlimDisk] = {}
            for node in nodes:
                slim = self._slim_node(node)
                pending.setdefault(determine_key_for_pricing(slim), slim)
            for pv in self._cache.get_all_persistent_volumes():
                disk = slim_disk_from_pv(pv, determine_pv_region(pv) or region)
                pending.setdefault(determine_key_for_pricing(disk), disk)

            with self._lock:
                previous = dict(self._pricing)
            now = time.monotonic()
            to_quote = {k: v for k, v in pending.items() if self._negative.get(k, 0.0) <= now}

            async def _quote(item: tuple[str, SlimNode | SlimDisk]) -> tuple[str, AlibabaPricing | None]:
                key, obj = item
                try:
                    client = _client(obj.region_id or region)
                    pricing = await process_describe_price_and_create_alibaba_pricing(client, obj, custom)
                except PricingError as exc:
                    self._log.warning("pricing_quote_failed", provider=_PROVIDER_LABEL, key=key, error=str(exc))
                    return key, None
                return key, pricing

            results = await concurrent_collect_with(_REFRESH_CONCURRENCY, _quote, to_quote.items())
        finally:
            await asyncio.gather(*(c.aclose() for c in clients.values()), return_exceptions=True)

        fresh: dict[str, AlibabaPricing] = {}
        failed: list[str] = []
        for key, pricing in results:
            if pricing is None:
                failed.append(key)
            else:
                fresh[key] = pricing
        quoted = {key for key, _ in results}
        for key in to_quote:
            if key not in quoted:
                failed.append(key)

        table: dict[str, AlibabaPricing] = {}
        for key in pending:
            if key in fresh:
                table[key] = fresh[key]
            elif key in previous:
                table[key] = previous[key]

        expiry = time.monotonic() + self._negative_ttl
        with self._lock:
            self._pricing = table
            self._negative = {k: v for k, v in self._negative.items() if v > time.monotonic()}
            for key in failed:
                self._negative[key] = expiry

        node_entries = sum(1 for p in table.values() if p.node_attributes is not None)
        pricing_cache_entries.labels(provider=_PROVIDER_LABEL, kind="node").set(node_entries)
        pricing_cache_entries.labels(provider=_PROVIDER_LABEL, kind="pv").set(len(table) - node_entries)
        pricing_refresh_duration_seconds.labels(provider=_PROVIDER_LABEL).observe(time.monotonic() - start)
        outcome = "partial" if failed else "success"
        pricing_refresh_total.labels(provider=_PROVIDER_LABEL, outcome=outcome).inc()
        self._last_error = f"{len(failed)} pricing keys could not be quoted" if failed else ""
        self._log.info(
            "pricing_refresh_complete",
            provider=_PROVIDER_LABEL,
            region=region,
            entries=len(table),
            quoted=len(fresh),
            failed=len(failed),
            suppressed=len(pending) - len(to_quote),
        )

    async def _refresh_system_disks(self, nodes: list[Node], client_for: Callable[[str], AlibabaClient]) -> None:
        async def _fetch(node: Node) -> tuple[str, SystemDisk] | None:
            instance_id = get_instance_id_from_provider_id(node.provider_id)
            region = slim_node_from_node(node).region_id or self.cluster_region
            if not instance_id or not region:
                return None
            try:
                disk = await get_system_disk_info_of_a_node(instance_id, region, client_for(region))
            except PricingError as exc:
                self._log.debug("system_disk_lookup_failed", node=node.name, error=str(exc))
                return None
            return (instance_id, disk) if disk is not None else None

        found = await concurrent_collect_with(_REFRESH_CONCURRENCY, _fetch, nodes)
        with self._lock:
            self._system_disks = dict(found)

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def _slim_node(self, node: Node) -> SlimNode:
        slim = slim_node_from_node(node)
        if not slim.region_id and self.cluster_region:
            slim = replace(slim, region_id=self.cluster_region)
        with self._lock:
            disk = self._system_disks.get(get_instance_id_from_provider_id(node.provider_id))
        if disk is not None:
            slim = replace(slim, system_disk=disk)
        return slim

    def get_key(self, labels: Mapping[str, str], node: Node) -> AlibabaNodeKey:
        slim = self._slim_node(node)
        return AlibabaNodeKey(
            slim_node=slim,
            provider_id=node.provider_id,
            region_id=slim.region_id,
            instance_type=slim.instance_type,
            os_type=slim.os_type,
            optimized_keyword=optimize_keyword(slim.is_io_optimized),
        )

    def get_pv_key(self, pv: PersistentVolume, parameters: Mapping[str, str], default_region: str) -> AlibabaPVKey:
        region = determine_pv_region(pv) or default_region or self.cluster_region
        return AlibabaPVKey.from_disk(slim_disk_from_pv(pv, region))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _lookup(self, features: str) -> AlibabaPricing:
        with self._lock:
            pricing = self._pricing.get(features)
        if pricing is None:
            pricing_cache_misses_total.labels(provider=_PROVIDER_LABEL).inc()
            raise PricingKeyError(f"no pricing data for key {features}")
        return pricing

    def node_pricing(self, key: NodeKey) -> tuple[NodeCost, PricingMetadata]:
        """Return the cached price of the node identified by *key*.

        Raises:
            PricingKeyError: if the key has not been quoted yet.
        """
        pricing = self._lookup(key.features())
        details = pricing.pricing_terms.pricing_details
        slim = pricing.slim_node or SlimNode()
        vcpu = slim.cpu_cores
        try:
            ram_kib = float(slim.memory_size_in_kib) if slim.memory_size_in_kib else 0.0
        except ValueError:
            ram_kib = 0.0

        base_cpu, base_ram = 0.0, 0.0
        try:
            custom = self._store.get_custom_pricing_data()
            base_cpu, base_ram = parse_price(custom.cpu), parse_price(custom.ram)
        except ConfigError:
            pass
        cpu_cost, ram_cost = split_node_cost(details.trade_price, vcpu, ram_kib / _KIB_PER_GIB, base_cpu, base_ram)
        cost = NodeCost(
            hourly_cost=details.trade_price,
            vcpu_cost=cpu_cost,
            ram_cost=ram_cost,
            vcpu=vcpu,
            ram_bytes=ram_kib * _BYTES_PER_KIB,
            instance_type=slim.instance_type,
            region=slim.region_id,
            provider_id=key.id(),
            pricing_type=PRICING_SOURCE_NAME,
        )
        return cost, PricingMetadata(currency=details.currency_code, source=PRICING_SOURCE_NAME)

    def pv_pricing(self, key: PVKey) -> PVCost:
        """Return the cached per-GiB hourly price of the volume behind *key*.

        Raises:
            PricingKeyError: if the key has not been quoted yet.
        """
        pricing = self._lookup(key.features())
        details = pricing.pricing_terms.pricing_details
        disk = pricing.slim_disk or SlimDisk()
        try:
            size = float(disk.size_in_gib) if disk.size_in_gib else 0.0
        except ValueError:
            size = 0.0
        return PVCost(
            hourly_cost=details.trade_price / size if size > 0 else details.trade_price,
            size_gib=size,
            storage_class=key.get_storage_class(),
            region=disk.region_id,
            provider_id=key.id(),
        )

    def all_node_pricing(self) -> dict[str, AlibabaPricing]:
        with self._lock:
            return dict(self._pricing)

    def gpu_pricing(self, labels: Mapping[str, str]) -> bytes:
        return b""

    def network_pricing(self) -> NetworkCost:
        custom = self._store.get_custom_pricing_data()
        return NetworkCost(
            zone_egress=parse_price(custom.zone_network_egress),
            region_egress=parse_price(custom.region_network_egress),
            internet_egress=parse_price(custom.internet_network_egress),
            nat_gateway_egress=parse_price(custom.nat_gateway_egress),
            nat_gateway_ingress=parse_price(custom.nat_gateway_ingress),
        )

    def load_balancer_pricing(self) -> LoadBalancerCost:
        custom = self._store.get_custom_pricing_data()
        return LoadBalancerCost(hourly_cost=parse_price(custom.default_lb_price))

    def cluster_management_pricing(self) -> tuple[str, float]:
        return "", 0.0

    def pricing_source_summary(self) -> dict[str, AlibabaPricing]:
        with self._lock:
            return dict(self._pricing)

    def pricing_source_status(self) -> dict[str, PricingSourceStatus]:
        with self._lock:
            available = bool(self._pricing)
        return {
            PRICING_SOURCE_NAME: PricingSourceStatus(
                name=PRICING_SOURCE_NAME,
                enabled=True,
                available=available,
                error=self._last_error,
            )
        }

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self) -> CustomPricing:
        return self._store.get_custom_pricing_data()

    def update_config(self, body: str | bytes | IO[str] | IO[bytes] | None, update_type: str) -> CustomPricing:
        updated = update_custom_pricing(self._store, body, update_type)
        self._log.info("pricing_config_updated", provider=_PROVIDER_LABEL, update_type=update_type)
        return updated

    def update_config_from_config_map(self, data: Mapping[str, str]) -> CustomPricing:
        return self._store.update_from_map(data)

    def cluster_info(self) -> dict[str, str]:
        custom = self._store.get_custom_pricing_data()
        return {
            "name": custom.cluster_name or "Alibaba Cluster #1",
            "provider": ALIBABA_PROVIDER,
            "account": custom.alibaba_account_id or self.cluster_account_id,
            "region": custom.alibaba_cluster_region or self.cluster_region,
            "id": self._cluster_id,
            "remoteReadEnabled": "false",
        }

    def regions(self) -> list[str]:
        regions = list(ALIBABA_REGIONS)
        try:
            custom_region = self._store.get_custom_pricing_data().alibaba_cluster_region
        except ConfigError:
            custom_region = ""
        if custom_region and custom_region not in regions:
            regions.append(custom_region)
        return regions

    def service_account_status(self) -> ServiceAccountStatus:
        loaded = self._access_key_is_loaded()
        return ServiceAccountStatus(
            checks=(
                ServiceAccountCheck(
                    message="Alibaba access key is configured",
                    status=loaded,
                    additional_info="" if loaded else f"set {ACCESS_KEY_ID_ENV} and {ACCESS_KEY_SECRET_ENV}",
                ),
            )
        )

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
            custom = self._store.get_custom_pricing_data()
        except ConfigError:
            return 0.0
        return combined_discount(custom)
