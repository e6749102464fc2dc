"""Node stats client configuration."""

from __future__ import annotations

from dataclasses import dataclass, field

from costscope.models.config import DEFAULT_TOKEN_FILE, NodeStatsConfig


@dataclass(frozen=True)
class NodeClientProxyConfig:
    """How requests reach the API-server node proxy.

    Attributes:
        force_kube_proxy: Never use direct kubelet connections.
        local_proxy: Base URL of a local authenticating proxy (for example
            ``kubectl proxy``). When set it replaces the cluster host and no
            bearer token is sent.
    """

    force_kube_proxy: bool = False
    local_proxy: str = ""

    def is_local_proxy(self) -> bool:
        return self.local_proxy != ""


@dataclass(frozen=True)
class NodeClientConfig:
    cluster_id: str = ""
    concurrent_pollers: int = 16
    proxy_config: NodeClientProxyConfig = field(default_factory=NodeClientProxyConfig)
    insecure: bool = False
    cert_file: str = ""
    key_file: str = ""
    token_file: str = DEFAULT_TOKEN_FILE
    retry_attempts: int = 1
    timeout_seconds: float = 10.0

    @classmethod
    def from_settings(cls, settings: NodeStatsConfig, cluster_id: str = "") -> NodeClientConfig:
        """Build the client configuration from the runtime settings section."""
        return cls(
            cluster_id=cluster_id,
            concurrent_pollers=settings.concurrent_pollers,
            proxy_config=NodeClientProxyConfig(
                force_kube_proxy=settings.force_kube_proxy,
                local_proxy=settings.local_proxy,
            ),
            insecure=settings.insecure,
            cert_file=settings.cert_file,
            key_file=settings.key_file,
            token_file=settings.token_file,
            retry_attempts=settings.retry_attempts,
            timeout_seconds=float(settings.timeout_seconds),
        )
