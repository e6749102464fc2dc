"""Custom pricing configuration and its on-disk store.

:class:`CustomPricing` mirrors the JSON pricing document operators mount
into the pod (camelCase keys, numbers usually written as strings).
:class:`ProviderConfig` loads it lazily, applies updates and writes it
back when a path is configured.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from costscope.cloud.provider import REDACTED, ConfigError
from costscope.observability.logging import get_logger

_log = get_logger("cloud.config")


class CustomPricing(BaseModel):
    """Operator-supplied base prices and provider settings.

    CPU is priced per core-hour, RAM and GPU per GiB-hour and GPU-hour,
    storage per GiB-hour.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    provider: str = ""
    description: str = ""
    cpu: str = Field(default="0.031611", alias="CPU")
    spot_cpu: str = Field(default="0.006655", alias="SpotCPU")
    ram: str = Field(default="0.004237", alias="RAM")
    spot_ram: str = Field(default="0.000892", alias="SpotRAM")
    gpu: str = Field(default="0.95", alias="GPU")
    spot_gpu: str = Field(default="0.308", alias="SpotGPU")
    storage: str = Field(default="0.00005479452", alias="Storage")
    zone_network_egress: str = Field(default="0.01", alias="zoneNetworkEgress")
    region_network_egress: str = Field(default="0.01", alias="regionNetworkEgress")
    internet_network_egress: str = Field(default="0.12", alias="internetNetworkEgress")
    nat_gateway_egress: str = Field(default="0.045", alias="natGatewayEgress")
    nat_gateway_ingress: str = Field(default="0.045", alias="natGatewayIngress")
    first_five_forwarding_rules_cost: str = Field(default="", alias="firstFiveForwardingRulesCost")
    additional_forwarding_rule_cost: str = Field(default="", alias="additionalForwardingRuleCost")
    lb_ingress_data_cost: str = Field(default="", alias="LBIngressDataCost")
    default_lb_price: str = Field(default="0.025", alias="defaultLBPrice")
    currency_code: str = Field(default="USD", alias="currencyType")
    discount: str = Field(default="", alias="discount")
    negotiated_discount: str = Field(default="", alias="negotiatedDiscount")
    cluster_name: str = Field(default="", alias="clusterName")
    cluster_account_id: str = Field(default="", alias="clusterAccountID")
    alibaba_service_key_name: str = Field(default="", alias="alibabaServiceKeyName")
    alibaba_service_key_secret: str = Field(default="", alias="alibabaServiceKeySecret")
    alibaba_cluster_region: str = Field(default="", alias="alibabaClusterRegion")
    alibaba_account_id: str = Field(default="", alias="alibabaAccountID")

    def merged(self, data: Mapping[str, Any]) -> CustomPricing:
        """Return a copy with *data* (alias or field names) applied on top.

        Raises:
            ConfigError: if the result does not validate.
        """
        current = self.model_dump(by_alias=True)
        current.update(data)
        try:
            return CustomPricing.model_validate(current)
        except ValidationError as exc:
            fields = ", ".join(str(err["loc"][0]) for err in exc.errors() if err.get("loc"))
            raise ConfigError(f"invalid custom pricing fields: {fields}") from exc

    def sanitize(self) -> CustomPricing:
        if not self.alibaba_service_key_secret:
            return self.model_copy()
        return self.model_copy(update={"alibaba_service_key_secret": REDACTED})


def parse_price(value: str, default: float = 0.0) -> float:
    """Parse a price string; empty or malformed values yield *default*."""
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def parse_percent(value: str) -> float:
    """Parse ``"30%"`` or ``"0.3"`` into a fraction clamped to [0, 1]."""
    text = value.strip()
    if not text:
        return 0.0
    try:
        fraction = float(text.rstrip("%")) / 100.0 if text.endswith("%") else float(text)
    except ValueError:
        return 0.0
    return min(max(fraction, 0.0), 1.0)


class ProviderConfig:
    """Thread-safe store for :class:`CustomPricing`.

    With an empty *path* the store is in-memory only and starts from
    *defaults*. With a path, a missing file also falls back to *defaults*
    while an unreadable or invalid file raises :class:`ConfigError`.
    """

    def __init__(self, path: str = "", defaults: CustomPricing | None = None) -> None:
        self._path = Path(path) if path else None
        self._defaults = defaults or CustomPricing()
        self._lock = threading.Lock()
        self._pricing: CustomPricing | None = None

    @property
    def path(self) -> str:
        return str(self._path) if self._path else ""

    def get_custom_pricing_data(self) -> CustomPricing:
        with self._lock:
            return self._load().model_copy()

    def update(self, updater: Callable[[CustomPricing], CustomPricing]) -> CustomPricing:
        """Apply *updater* to the current pricing and persist the result."""
        with self._lock:
            updated = updater(self._load().model_copy())
            self._save(updated)
            self._pricing = updated
            return updated.model_copy()

    def update_from_map(self, data: Mapping[str, str]) -> CustomPricing:
        """Apply a ConfigMap-style flat mapping of alias keys to values."""
        return self.update(lambda current: current.merged(data))

    def _load(self) -> CustomPricing:
        if self._pricing is not None:
            return self._pricing
        if self._path is None or not self._path.exists():
            self._pricing = self._defaults.model_copy()
            return self._pricing
        try:
            raw = self._path.read_text()
        except OSError as exc:
            raise ConfigError(f"could not read pricing config {self._path}") from exc
        try:
            self._pricing = CustomPricing.model_validate_json(raw)
        except ValidationError as exc:
            raise ConfigError(f"invalid pricing config {self._path}") from exc
        _log.info("custom_pricing_loaded", path=str(self._path))
        return self._pricing

    def _save(self, pricing: CustomPricing) -> None:
        if self._path is None:
            return
        payload = json.dumps(pricing.model_dump(by_alias=True), indent=2, sort_keys=True)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(payload)
        except OSError as exc:
            raise ConfigError(f"could not write pricing config {self._path}") from exc
        _log.info("custom_pricing_saved", path=str(self._path))
