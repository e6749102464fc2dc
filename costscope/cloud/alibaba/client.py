"""Alibaba Cloud OpenAPI client (RPC style, signature version 1.0).

Only the three calls the pricing engine needs are implemented:
``DescribePrice`` and ``DescribeDisks`` on the regional ECS endpoint and
``QueryInstanceBill`` on the billing endpoint. Requests are signed with
HMAC-SHA1 over the canonicalised query string; the access key secret is
used for signing only and never appears in logs or errors.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import uuid
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

import httpx

from costscope.cloud.alibaba.boaconfig import AccessKey
from costscope.cloud.alibaba.keys import (
    ALIBABA_DISK_CLOUD_ESSD_CATEGORY,
    AlibabaNodeAttributes,
    AlibabaPricing,
    AlibabaPricingDetails,
    AlibabaPricingTerms,
    AlibabaPVAttributes,
    SlimDisk,
    SlimNode,
    SystemDisk,
)
from costscope.cloud.models import CustomPricing
from costscope.cloud.provider import PricingError, UnsupportedComponentError
from costscope.observability.logging import get_logger

ECS_API_VERSION = "2014-05-26"
BSS_API_VERSION = "2017-12-14"
BSS_ENDPOINT = "https://business.aliyuncs.com/"

ALIBABA_INSTANCE_RESOURCE_TYPE = "instance"
ALIBABA_DISK_RESOURCE_TYPE = "disk"

# Families that only launch with an ESSD system disk; DescribePrice rejects
# them unless the system disk category is given explicitly.
DEFAULT_CLOUD_ESSD_FAMILIES: frozenset[str] = frozenset(
    {
        "g6e",
        "c6e",
        "r6e",
        "g7",
        "c7",
        "r7",
        "g7a",
        "c7a",
        "r7a",
        "g8a",
        "c8a",
        "r8a",
        "g8i",
        "c8i",
        "r8i",
        "g7ne",
        "hfg7",
        "hfc7",
        "hfr7",
    }
)

_log = get_logger("cloud.alibaba.client")


class AlibabaAPIError(PricingError):
    """The OpenAPI answered with an error code or a non-2xx status."""

    def __init__(self, action: str, status_code: int, code: str = "", message: str = "", request_id: str = "") -> None:
        self.action = action
        self.status_code = status_code
        self.code = code
        self.request_id = request_id
        super().__init__(f"{action} failed with status {status_code}: {code} {message}".rstrip())


def ecs_endpoint(region: str) -> str:
    return f"https://ecs.{region}.aliyuncs.com/"


def _percent_encode(value: str) -> str:
    return quote(value, safe="~")


def sign_parameters(params: dict[str, str], secret: str, method: str = "GET") -> str:
    """Return the signature v1 of *params* for *method*."""
    canonical = "&".join(f"{_percent_encode(k)}={_percent_encode(v)}" for k, v in sorted(params.items()))
    string_to_sign = f"{method}&{_percent_encode('/')}&{_percent_encode(canonical)}"
    digest = hmac.new(f"{secret}&".encode(), string_to_sign.encode(), hashlib.sha1).digest()
    return base64.b64encode(digest).decode()


# ---------------------------------------------------------------------------
# Request builders
# ---------------------------------------------------------------------------


def create_describe_price_request(obj: object) -> dict[str, str]:
    """Build DescribePrice query parameters for a slim node or disk.

    Raises:
        UnsupportedComponentError: for any other object.
    """
    if isinstance(obj, SlimNode):
        params = {
            "RegionId": obj.region_id,
            "ResourceType": ALIBABA_INSTANCE_RESOURCE_TYPE,
            "InstanceType": obj.instance_type,
            "OSType": obj.os_type,
            "IoOptimized": "optimized" if obj.is_io_optimized else "none",
            "PriceUnit": obj.price_unit,
        }
        if obj.system_disk is not None:
            params["SystemDisk.Category"] = obj.system_disk.disk_category
            params["SystemDisk.Size"] = obj.system_disk.size_in_gib
            if obj.system_disk.performance_level:
                params["SystemDisk.PerformanceLevel"] = obj.system_disk.performance_level
        elif obj.instance_type_family in DEFAULT_CLOUD_ESSD_FAMILIES:
            params["SystemDisk.Category"] = ALIBABA_DISK_CLOUD_ESSD_CATEGORY
        else:
            params["SystemDisk.Category"] = ""
        return params
    if isinstance(obj, SlimDisk):
        params = {
            "RegionId": obj.region_id,
            "ResourceType": ALIBABA_DISK_RESOURCE_TYPE,
            "PriceUnit": obj.price_unit,
            "DataDisk.1.Category": obj.disk_category,
            "DataDisk.1.Size": obj.size_in_gib,
        }
        if obj.performance_level:
            params["DataDisk.1.PerformanceLevel"] = obj.performance_level
        return params
    raise UnsupportedComponentError("unsupported ECS pricing component at this time")


def create_describe_disks_request(instance_id: str, region: str, disk_type: str) -> dict[str, str]:
    return {"InstanceId": instance_id, "RegionId": region, "DiskType": disk_type}


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class AlibabaClient:
    """Signed RPC calls against one region.

    Args:
        region: Region whose ECS endpoint is called.
        access_key: Credentials used for signing.
        http_client: Optional shared AsyncClient; when omitted the client
            creates and owns one.
        timeout: Request timeout in seconds for an owned AsyncClient.
    """

    def __init__(
        self,
        region: str,
        access_key: AccessKey,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        access_key.validate()
        self.region = region
        self._access_key = access_key
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    def __repr__(self) -> str:
        return f"AlibabaClient(region={self.region!r}, access_key_id={self._access_key.access_key_id!r})"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> AlibabaClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def describe_price(self, params: dict[str, str]) -> dict[str, Any]:
        return await self._call(ecs_endpoint(self.region), "DescribePrice", ECS_API_VERSION, params)

    async def describe_disks(self, params: dict[str, str]) -> dict[str, Any]:
        return await self._call(ecs_endpoint(self.region), "DescribeDisks", ECS_API_VERSION, params)

    async def query_instance_bill(self, params: dict[str, str]) -> dict[str, Any]:
        return await self._call(BSS_ENDPOINT, "QueryInstanceBill", BSS_API_VERSION, params)

    async def _call(self, endpoint: str, action: str, version: str, params: dict[str, str]) -> dict[str, Any]:
        key_id, secret = self._access_key.get_credentials()
        query = {
            **{k: v for k, v in params.items() if v != ""},
            "Action": action,
            "Version": version,
            "Format": "JSON",
            "AccessKeyId": key_id,
            "SignatureMethod": "HMAC-SHA1",
            "SignatureVersion": "1.0",
            "SignatureNonce": uuid.uuid4().hex,
            "Timestamp": datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
        query["Signature"] = sign_parameters(query, secret)
        try:
            response = await self._http.get(endpoint, params=query)
        except httpx.HTTPError as exc:
            _log.warning("alibaba_request_failed", action=action, error=type(exc).__name__)
            raise PricingError(f"{action} request failed: {type(exc).__name__}") from exc
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not 200 <= response.status_code < 300:
            _log.warning(
                "alibaba_api_error",
                action=action,
                status_code=response.status_code,
                code=body.get("Code", ""),
                request_id=body.get("RequestId", ""),
            )
            raise AlibabaAPIError(
                action,
                response.status_code,
                code=str(body.get("Code", "")),
                message=str(body.get("Message", "")),
                request_id=str(body.get("RequestId", "")),
            )
        if not isinstance(body, dict):
            raise AlibabaAPIError(action, response.status_code, message="response is not a JSON object")
        return body


# ---------------------------------------------------------------------------
# Response processing
# ---------------------------------------------------------------------------


async def process_describe_price_and_create_alibaba_pricing(
    client: AlibabaClient | None,
    obj: object,
    custom: CustomPricing | None = None,
) -> AlibabaPricing:
    """Query DescribePrice for *obj* and wrap the answer as a price entry.

    Raises:
        PricingError: if *client* is ``None`` or the call fails.
        UnsupportedComponentError: if *obj* is neither a node nor a disk.
    """
    if client is None:
        raise PricingError("describe price called with a nil client")
    params = create_describe_price_request(obj)
    body = await client.describe_price(params)
    price = body.get("PriceInfo", {}).get("Price", {})
    if "TradePrice" not in price:
        raise PricingError(f"DescribePrice returned no price for {type(obj).__name__}")
    currency = str(price.get("Currency", "")) or (custom.currency_code if custom else "")

    def _details(unit: str) -> AlibabaPricingDetails:
        return AlibabaPricingDetails(
            hourly_price=float(price.get("OriginalPrice", price["TradePrice"])),
            hour_unit=unit,
            trade_price=float(price["TradePrice"]),
            currency_code=currency,
        )

    if isinstance(obj, SlimNode):
        return AlibabaPricing(
            node_attributes=AlibabaNodeAttributes.from_node(obj),
            pricing_terms=AlibabaPricingTerms(pricing_type="node", pricing_details=_details(obj.price_unit)),
            slim_node=obj,
        )
    if isinstance(obj, SlimDisk):
        return AlibabaPricing(
            pv_attributes=AlibabaPVAttributes.from_disk(obj),
            pricing_terms=AlibabaPricingTerms(pricing_type="pv", pricing_details=_details(obj.price_unit)),
            slim_disk=obj,
        )
    raise UnsupportedComponentError("unsupported ECS pricing component at this time")


async def get_system_disk_info_of_a_node(
    instance_id: str,
    region: str,
    client: AlibabaClient | None,
) -> SystemDisk | None:
    """Return the system disk of *instance_id*, or ``None`` when unknown."""
    if client is None or not instance_id:
        return None
    body = await client.describe_disks(create_describe_disks_request(instance_id, region, "system"))
    disks = body.get("Disks", {}).get("Disk", [])
    if not disks:
        return None
    disk = disks[0]
    return SystemDisk(
        region_id=region,
        size_in_gib=str(disk.get("Size", "")),
        disk_category=str(disk.get("Category", "")),
        provider_id=str(disk.get("DiskId", "")),
        performance_level=str(disk.get("PerformanceLevel", "")),
    )
