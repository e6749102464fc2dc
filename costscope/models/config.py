"""Runtime configuration for costscope.

Populated from ``COSTSCOPE_*`` environment variables by
:func:`costscope.config.load_config`. Every section has usable defaults so an
empty environment yields a working in-cluster configuration.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

DEFAULT_TOKEN_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/token"


@dataclass
class LogConfig:
    level: str = "info"


@dataclass
class MetricsServerConfig:
    """Prometheus exposition server and metric gating."""

    port: int = 9003
    disabled_metrics: list[str] = field(default_factory=list)
    config_file: str = ""


@dataclass
class NodeStatsConfig:
    """Kubelet summary polling.

    ``retry_attempts`` counts total attempts per endpoint; the default of 1
    means a single request with no retry.
    """

    concurrent_pollers: int = 16
    force_kube_proxy: bool = False
    local_proxy: str = ""
    insecure: bool = False
    cert_file: str = ""
    key_file: str = ""
    token_file: str = DEFAULT_TOKEN_FILE
    retry_attempts: int = 1
    timeout_seconds: int = 10
    interval_seconds: int = 60


@dataclass
class PricingConfig:
    provider: str = "custom"
    config_path: str = ""
    refresh_interval_seconds: int = 3600
    negative_ttl_seconds: int = 900


@dataclass
class CostScopeConfig:
    """Top-level configuration."""

    cluster_id: str = ""
    log: LogConfig = field(default_factory=LogConfig)
    metrics: MetricsServerConfig = field(default_factory=MetricsServerConfig)
    nodestats: NodeStatsConfig = field(default_factory=NodeStatsConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)

    def to_dict(self) -> dict[str, object]:
        """Plain-dict view for diagnostics; holds paths, never secret values."""
        return asdict(self)
