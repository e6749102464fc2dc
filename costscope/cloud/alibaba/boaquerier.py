"""Alibaba billing (BOA) queries.

:class:`BoaQuerier` wraps a :class:`BOAConfiguration` with the status of the
last connection attempt and pages through ``QueryInstanceBill``. Billing
line items are classified into cost categories by
:func:`select_alibaba_category`.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from costscope.cloud.alibaba.boaconfig import BOAConfiguration
from costscope.cloud.alibaba.client import AlibabaClient
from costscope.cloud.provider import ConnectionStatus, PricingError
from costscope.observability.logging import get_logger

_log = get_logger("cloud.alibaba.boa")

_DEFAULT_PAGE_SIZE: int = 300

_NETWORK_PRODUCTS: frozenset[str] = frozenset({"slb", "eip", "nis", "gtm"})
_COMPUTE_PRODUCTS: frozenset[str] = frozenset({"ecs", "eds", "sas"})
_MANAGEMENT_PRODUCTS: frozenset[str] = frozenset({"ack"})
_STORAGE_PRODUCTS: frozenset[str] = frozenset({"ebs", "oss", "scu"})


class CostCategory(StrEnum):
    COMPUTE = "Compute"
    STORAGE = "Storage"
    NETWORK = "Network"
    MANAGEMENT = "Management"
    OTHER = "Other"


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class _BssModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)


class BillingItem(_BssModel):
    instance_id: str = Field(default="", alias="InstanceID")
    product_code: str = Field(default="", alias="ProductCode")
    product_name: str = Field(default="", alias="ProductName")
    usage_unit: str = Field(default="", alias="UsageUnit")
    usage: str = Field(default="", alias="Usage")
    billing_date: str = Field(default="", alias="BillingDate")
    billing_item: str = Field(default="", alias="BillingItem")
    region: str = Field(default="", alias="Region")
    currency: str = Field(default="", alias="Currency")
    pretax_gross_amount: float = Field(default=0.0, alias="PretaxGrossAmount")
    pretax_amount: float = Field(default=0.0, alias="PretaxAmount")
    list_price: str = Field(default="", alias="ListPrice")


class _Items(_BssModel):
    item: list[BillingItem] = Field(default_factory=list, alias="Item")


class InstanceBillData(_BssModel):
    billing_cycle: str = Field(default="", alias="BillingCycle")
    account_id: str = Field(default="", alias="AccountID")
    total_count: int = Field(default=0, alias="TotalCount")
    page_num: int = Field(default=0, alias="PageNum")
    page_size: int = Field(default=0, alias="PageSize")
    items: _Items = Field(default_factory=_Items, alias="Items")


class QueryInstanceBillResponse(_BssModel):
    request_id: str = Field(default="", alias="RequestId")
    success: bool = Field(default=False, alias="Success")
    code: str = Field(default="", alias="Code")
    message: str = Field(default="", alias="Message")
    data: InstanceBillData = Field(default_factory=InstanceBillData, alias="Data")


# ---------------------------------------------------------------------------
# Querier
# ---------------------------------------------------------------------------


@dataclass
class BoaQuerier:
    configuration: BOAConfiguration = field(default_factory=BOAConfiguration)
    connection_status: ConnectionStatus = ConnectionStatus.INITIAL

    @property
    def account(self) -> str:
        return self.configuration.account

    @property
    def region(self) -> str:
        return self.configuration.region

    def get_status(self) -> ConnectionStatus:
        return self.connection_status

    def equals(self, other: object) -> bool:
        if not isinstance(other, BoaQuerier):
            return False
        return self.configuration.equals(other.configuration)

    def validate(self) -> None:
        self.configuration.validate()

    def key(self) -> str:
        return self.configuration.key()

    def provider(self) -> str:
        return self.configuration.provider()

    def sanitize(self) -> BoaQuerier:
        return BoaQuerier(configuration=self.configuration.sanitize(), connection_status=self.connection_status)

    async def query_instance_bill(
        self,
        client: AlibabaClient | None,
        billing_cycle: str,
        billing_date: str,
        granularity: str = "DAILY",
        is_billing_item: bool = True,
        page_num: int = 1,
        page_size: int = _DEFAULT_PAGE_SIZE,
    ) -> QueryInstanceBillResponse:
        """Fetch one page of instance bill items.

        Raises:
            PricingError: if *client* is ``None``, the call fails or the
                answer cannot be parsed.
        """
        if client is None:
            raise PricingError("QueryInstanceBill called with a nil client")
        params = {
            "BillingCycle": billing_cycle,
            "BillingDate": billing_date,
            "Granularity": granularity,
            "IsBillingItem": "true" if is_billing_item else "false",
            "PageNum": str(page_num),
            "PageSize": str(page_size),
        }
        try:
            body = await client.query_instance_bill(params)
        except PricingError:
            self.connection_status = ConnectionStatus.FAILED_CONNECTION
            raise
        try:
            response = QueryInstanceBillResponse.model_validate(body)
        except ValidationError as exc:
            self.connection_status = ConnectionStatus.PARSE_ERROR
            raise PricingError("QueryInstanceBill response could not be parsed") from exc
        if not response.success:
            self.connection_status = ConnectionStatus.FAILED_CONNECTION
            raise PricingError(f"QueryInstanceBill failed: {response.code} {response.message}".rstrip())
        self.connection_status = ConnectionStatus.SUCCESSFUL_CONNECTION
        return response

    async def query_boa_paginated(
        self,
        client: AlibabaClient | None,
        billing_cycle: str,
        billing_date: str,
        handler: Callable[[QueryInstanceBillResponse], bool],
        granularity: str = "DAILY",
        is_billing_item: bool = True,
        page_size: int = _DEFAULT_PAGE_SIZE,
    ) -> None:
        """Walk every page, stopping early when *handler* returns False."""
        page_num = 1
        while True:
            response = await self.query_instance_bill(
                client,
                billing_cycle,
                billing_date,
                granularity=granularity,
                is_billing_item=is_billing_item,
                page_num=page_num,
                page_size=page_size,
            )
            if not handler(response):
                return
            if page_num * page_size >= response.data.total_count:
                return
            page_num += 1


def get_boa_query_instance_bill_func(
    item_handler: Callable[[BillingItem], None],
    billing_date: str,
) -> Callable[[QueryInstanceBillResponse | None], bool]:
    """Adapt a per-item handler into a page handler for :meth:`BoaQuerier.query_boa_paginated`.

    The page handler returns False (stop paging) for a missing or empty page
    and when *item_handler* raises.
    """

    def _process(response: QueryInstanceBillResponse | None) -> bool:
        if response is None:
            return False
        items = response.data.items.item
        if not items:
            return False
        for item in items:
            try:
                item_handler(item)
            except Exception as exc:
                _log.warning(
                    "boa_item_handler_failed",
                    billing_date=billing_date,
                    instance_id=item.instance_id,
                    error=str(exc),
                )
                return False
        return True

    return _process


def select_alibaba_category(item: BillingItem) -> CostCategory:
    """Classify a billing line item.

    Instance IDs win over usage units, which win over product codes.
    """
    if item.instance_id.startswith("i-"):
        return CostCategory.COMPUTE
    if item.instance_id.startswith("d-"):
        return CostCategory.STORAGE
    if item.usage_unit == "piece":
        return CostCategory.NETWORK

    product = item.product_code.lower()
    if product in _NETWORK_PRODUCTS:
        return CostCategory.NETWORK
    if product in _COMPUTE_PRODUCTS:
        return CostCategory.COMPUTE
    if product in _MANAGEMENT_PRODUCTS:
        return CostCategory.MANAGEMENT
    if product in _STORAGE_PRODUCTS:
        return CostCategory.STORAGE
    return CostCategory.OTHER
