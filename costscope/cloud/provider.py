"""Pricing provider abstractions.

A :class:`Provider` turns cluster entities into pricing keys and answers
price lookups from a locally cached price table that is refreshed by
:meth:`Provider.download_pricing_data`. Lookups never perform I/O.

Cloud credentials are modelled as :class:`Config` / :class:`Authorizer`
pairs; both must be passed through ``sanitize()`` before they are logged
or otherwise surfaced.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import IO, Any

from costscope.models.entities import Node, PersistentVolume

REDACTED = "REDACTED"

# Discriminator key inside a serialised authorizer.
AUTHORIZER_TYPE_PROPERTY = "authorizerType"

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class PricingError(Exception):
    """Base class for pricing failures."""


class PricingKeyError(PricingError, KeyError):
    """No cached price exists for the requested key."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class UnsupportedComponentError(PricingError):
    """The object cannot be priced by this provider."""


class ConfigError(ValueError):
    """A provider configuration or authorizer is invalid.

    Messages name the offending field, never its value.
    """


class ConnectionStatus(StrEnum):
    INITIAL = "No Connection"
    INVALID_CONFIGURATION = "Invalid Configuration"
    FAILED_CONNECTION = "Failed Connection"
    PARSE_ERROR = "Parse Error"
    MISSING_DATA = "Missing Data"
    SUCCESSFUL_CONNECTION = "Connection Successful"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class NodeCost:
    """Hourly price of a node, optionally split into CPU, RAM and GPU parts.

    ``vcpu_cost`` is per core-hour, ``ram_cost`` per GiB-hour and
    ``gpu_cost`` per GPU-hour.
    """

    hourly_cost: float = 0.0
    vcpu_cost: float = 0.0
    ram_cost: float = 0.0
    gpu_cost: float = 0.0
    vcpu: float = 0.0
    ram_bytes: float = 0.0
    gpu_count: int = 0
    instance_type: str = ""
    region: str = ""
    provider_id: str = ""
    usage_type: str = "ondemand"
    pricing_type: str = ""
    uses_base_cpu_price: bool = False


@dataclass
class PVCost:
    """Hourly price of a persistent volume per GiB."""

    hourly_cost: float = 0.0
    cost_per_io: float = 0.0
    size_gib: float = 0.0
    storage_class: str = ""
    region: str = ""
    provider_id: str = ""


@dataclass(frozen=True)
class NetworkCost:
    """Egress prices per GiB."""

    zone_egress: float = 0.0
    region_egress: float = 0.0
    internet_egress: float = 0.0
    nat_gateway_egress: float = 0.0
    nat_gateway_ingress: float = 0.0


@dataclass(frozen=True)
class LoadBalancerCost:
    hourly_cost: float = 0.0


@dataclass(frozen=True)
class PricingMetadata:
    currency: str = ""
    source: str = ""
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class PricingSourceStatus:
    name: str
    enabled: bool
    available: bool
    error: str = ""


@dataclass(frozen=True)
class ServiceAccountCheck:
    message: str
    status: bool
    additional_info: str = ""


@dataclass(frozen=True)
class ServiceAccountStatus:
    checks: tuple[ServiceAccountCheck, ...] = field(default_factory=tuple)


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


class NodeKey(ABC):
    """Identifies the price-relevant features of a node."""

    @abstractmethod
    def id(self) -> str: ...

    @abstractmethod
    def features(self) -> str:
        """Stable string used as the price table key."""

    @abstractmethod
    def gpu_type(self) -> str: ...

    @abstractmethod
    def gpu_count(self) -> int: ...


class PVKey(ABC):
    """Identifies the price-relevant features of a persistent volume."""

    @abstractmethod
    def id(self) -> str: ...

    @abstractmethod
    def features(self) -> str: ...

    @abstractmethod
    def get_storage_class(self) -> str: ...


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class Config(ABC):
    """A cloud connection configuration."""

    @abstractmethod
    def validate(self) -> None:
        """Raise :class:`ConfigError` naming the first missing field."""

    @abstractmethod
    def equals(self, other: object) -> bool: ...

    @abstractmethod
    def sanitize(self) -> Config:
        """Return a copy with every secret replaced by :data:`REDACTED`."""

    @abstractmethod
    def key(self) -> str: ...

    @abstractmethod
    def provider(self) -> str: ...


class Authorizer(ABC):
    """Credentials used by a :class:`Config` to sign requests."""

    authorizer_type: str = ""

    @abstractmethod
    def validate(self) -> None: ...

    @abstractmethod
    def equals(self, other: object) -> bool: ...

    @abstractmethod
    def sanitize(self) -> Authorizer: ...

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Serialise including the :data:`AUTHORIZER_TYPE_PROPERTY` discriminator."""


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class Provider(ABC):
    """Cloud pricing provider.

    Implementations keep their price table in memory. Lookups read the
    table under a short lock and raise :class:`PricingKeyError` on a miss;
    only :meth:`download_pricing_data` talks to the cloud.
    """

    name: str = ""

    @abstractmethod
    async def download_pricing_data(self) -> None:
        """Refresh the price table. Concurrent callers share one refresh."""

    @abstractmethod
    def get_key(self, labels: Mapping[str, str], node: Node) -> NodeKey: ...

    @abstractmethod
    def get_pv_key(self, pv: PersistentVolume, parameters: Mapping[str, str], default_region: str) -> PVKey: ...

    @abstractmethod
    def node_pricing(self, key: NodeKey) -> tuple[NodeCost, PricingMetadata]: ...

    @abstractmethod
    def pv_pricing(self, key: PVKey) -> PVCost: ...

    @abstractmethod
    def all_node_pricing(self) -> dict[str, Any]: ...

    @abstractmethod
    def gpu_pricing(self, labels: Mapping[str, str]) -> bytes: ...

    @abstractmethod
    def network_pricing(self) -> NetworkCost: ...

    @abstractmethod
    def load_balancer_pricing(self) -> LoadBalancerCost: ...

    @abstractmethod
    def cluster_management_pricing(self) -> tuple[str, float]: ...

    @abstractmethod
    def pricing_source_summary(self) -> dict[str, Any]: ...

    @abstractmethod
    def pricing_source_status(self) -> dict[str, PricingSourceStatus]: ...

    @abstractmethod
    def get_config(self) -> Any: ...

    @abstractmethod
    def update_config(self, body: str | bytes | IO[str] | IO[bytes] | None, update_type: str) -> Any: ...

    @abstractmethod
    def update_config_from_config_map(self, data: Mapping[str, str]) -> Any: ...

    @abstractmethod
    def cluster_info(self) -> dict[str, str]: ...

    @abstractmethod
    def regions(self) -> list[str]: ...

    @abstractmethod
    def service_account_status(self) -> ServiceAccountStatus: ...

    @abstractmethod
    def apply_reserved_instance_pricing(self, nodes: Mapping[str, NodeCost] | None) -> None: ...

    @abstractmethod
    def combined_discount_for_node(
        self,
        provider_id: str,
        is_spot: bool,
        base_cpu_price: float,
        base_ram_price: float,
    ) -> float: ...


def read_body(body: str | bytes | IO[str] | IO[bytes] | None) -> str:
    """Return the text of an update body, reading file-like objects."""
    if body is None:
        raise ConfigError("empty update body")
    if hasattr(body, "read"):
        body = body.read()
    if isinstance(body, bytes):
        return body.decode("utf-8")
    return str(body)
