"""Application bootstrap for costscope.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → cluster cache → pricing provider
              → metrics registry and exposition server → node stats loop
              → pricing refresh loop

Shutdown is graceful: background loops are cancelled first, then components
are stopped in reverse startup order. Each component's stop error is caught
and logged independently so that one failure does not block the rest.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any

from costscope.config import load_config
from costscope.models.config import CostScopeConfig
from costscope.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import httpx
    from prometheus_client.registry import CollectorRegistry
    from structlog.typing import FilteringBoundLogger

    from costscope.cache.cluster_cache import ClusterCache
    from costscope.cloud.models import ProviderConfig
    from costscope.cloud.provider import Provider
    from costscope.nodestats.client import NodeStatsSummaryClient
    from costscope.nodestats.scrape import NodeStatsCollector

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class CostScopeApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` is safe to call on an app that was never started or has
    already stopped.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.config: CostScopeConfig | None = None

        self._k8s_client: bool | None = None
        self._api_host = ""
        self._ca_cert = ""
        self._cache: ClusterCache | None = None
        self._provider_config: ProviderConfig | None = None
        self._provider: Provider | None = None
        self._registry = registry
        self._nodestats_collector: NodeStatsCollector | None = None
        self._nodestats_client: NodeStatsSummaryClient | None = None
        self._http_client: httpx.AsyncClient | None = None
        self._metrics_server: Any = None

        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: FilteringBoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("costscope_starting", version=_costscope_version(), cluster_id=self.config.cluster_id)

        # --- 3. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 4. Cluster cache --------------------------------------------
        await self._start_cache()

        # --- 5. Pricing provider -----------------------------------------
        await self._start_provider()

        # --- 6. Metrics registry and exposition server -------------------
        await self._start_metrics()

        # --- 7. Node stats polling ---------------------------------------
        await self._start_nodestats()

        # --- 8. Pricing refresh ------------------------------------------
        await self._start_pricing_refresh()

        self._running = True
        self._log.info("costscope_started", port=self.config.metrics.port)

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    async def _start_k8s_client(self) -> None:
        """Initialise the kubernetes-asyncio client from in-cluster config or kubeconfig."""
        assert self._log is not None
        self._log.debug("starting_k8s_client")
        try:
            import kubernetes_asyncio.config as k8s_config
            from kubernetes_asyncio import client as k8s_client

            try:
                k8s_config.load_incluster_config()  # type: ignore[no-untyped-call]
                self._log.info("k8s_client_configured", source="incluster")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s_client_configured", source="kubeconfig")

            configuration = k8s_client.Configuration.get_default_copy()
            self._api_host = str(configuration.host or "")
            self._ca_cert = str(configuration.ssl_ca_cert or "")
            self._k8s_client = True
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    async def _start_cache(self) -> None:
        """Create the cluster cache, list every kind and start the watchers."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting_cluster_cache")
        try:
            from kubernetes_asyncio import client as k8s_client

            from costscope.cache import ClusterCache

            api_map = {
                "core": k8s_client.CoreV1Api(),
                "apps": k8s_client.AppsV1Api(),
                "batch": k8s_client.BatchV1Api(),
                "storage": k8s_client.StorageV1Api(),
                "policy": k8s_client.PolicyV1Api(),
            }
            cache = ClusterCache(api_map, cluster_id=self.config.cluster_id)
            await cache.run()
            self._cache = cache
            self._log.info("cluster_cache_started", readiness=cache.readiness.value)
        except Exception as exc:
            raise _ComponentError("cache", exc) from exc

    async def _start_provider(self) -> None:
        """Load the custom pricing document and build the configured provider."""
        assert self._log is not None
        assert self.config is not None
        assert self._cache is not None
        self._log.debug("starting_pricing_provider", provider=self.config.pricing.provider)
        try:
            from costscope.cloud.models import ProviderConfig

            store = ProviderConfig(self.config.pricing.config_path)
            # Fails fast on an unreadable or invalid pricing document.
            custom = store.get_custom_pricing_data()
            self._provider_config = store
            self._provider = self._build_provider(store)
            self._log.info(
                "pricing_provider_started",
                provider=self._provider.name,
                pricing=custom.sanitize().model_dump(by_alias=True),
            )
        except Exception as exc:
            raise _ComponentError("pricing_provider", exc) from exc

    def _build_provider(self, store: ProviderConfig) -> Provider:
        assert self.config is not None
        assert self._cache is not None
        if self.config.pricing.provider == "alibaba":
            from costscope.cloud.alibaba import AlibabaProvider

            return AlibabaProvider(
                self._cache,
                store,
                cluster_id=self.config.cluster_id,
                negative_ttl_seconds=float(self.config.pricing.negative_ttl_seconds),
            )
        from costscope.cloud.custom import CustomProvider

        return CustomProvider(self._cache, store, cluster_id=self.config.cluster_id)

    async def _start_metrics(self) -> None:
        """Register every collector and start the exposition server thread."""
        assert self._log is not None
        assert self.config is not None
        assert self._cache is not None
        self._log.debug("starting_metrics")
        try:
            from prometheus_client import REGISTRY, start_http_server

            from costscope.metrics import load_metrics_config, register_collectors
            from costscope.nodestats.scrape import NodeStatsCollector

            metrics_config = load_metrics_config(
                self.config.metrics.disabled_metrics,
                self.config.metrics.config_file,
            )
            registry = self._registry or REGISTRY
            self._nodestats_collector = NodeStatsCollector(metrics_config.disabled_metrics)
            register_collectors(
                registry,
                self._cache,
                metrics_config,
                provider=self._provider,
                extra=[self._nodestats_collector],
            )
            self._metrics_server = start_http_server(self.config.metrics.port, registry=registry)
            self._log.info("metrics_server_started", port=self.config.metrics.port)
        except Exception as exc:
            raise _ComponentError("metrics", exc) from exc

    async def _start_nodestats(self) -> None:
        """Launch the periodic kubelet summary scan."""
        assert self._log is not None
        assert self.config is not None
        assert self._cache is not None
        try:
            from costscope.nodestats.client import NodeStatsSummaryClient, build_http_client
            from costscope.nodestats.config import NodeClientConfig

            client_config = NodeClientConfig.from_settings(self.config.nodestats, cluster_id=self.config.cluster_id)
            self._http_client = build_http_client(client_config, ca_cert=self._ca_cert)
            self._nodestats_client = NodeStatsSummaryClient(
                self._cache,
                client_config,
                self._http_client,
                host=self._api_host,
            )
        except Exception as exc:
            raise _ComponentError("nodestats", exc) from exc

        task = asyncio.create_task(self._nodestats_loop(), name="nodestats-poller")
        self._background_tasks.append(task)
        self._log.info("nodestats_poller_started", interval=self.config.nodestats.interval_seconds)

    async def _nodestats_loop(self) -> None:
        from costscope.nodestats.client import NodeStatsError
        from costscope.nodestats.scrape import scrape_summaries

        assert self.config is not None
        assert self._nodestats_client is not None
        assert self._nodestats_collector is not None
        log = self._log or get_logger("app")
        while True:
            try:
                summaries = await self._nodestats_client.get_node_data()
                self._nodestats_collector.update(scrape_summaries(summaries))
                log.debug("nodestats_scan_complete", nodes=len(summaries))
            except NodeStatsError as exc:
                log.error("nodestats_scan_failed", error=str(exc))
            await asyncio.sleep(self.config.nodestats.interval_seconds)

    async def _start_pricing_refresh(self) -> None:
        """Launch the periodic pricing download."""
        assert self._log is not None
        assert self.config is not None
        task = asyncio.create_task(self._pricing_loop(), name="pricing-refresh")
        self._background_tasks.append(task)
        self._log.info("pricing_refresh_started", interval=self.config.pricing.refresh_interval_seconds)

    async def _pricing_loop(self) -> None:
        from costscope.cloud.provider import ConfigError, PricingError

        assert self.config is not None
        assert self._provider is not None
        log = self._log or get_logger("app")
        while True:
            try:
                await self._provider.download_pricing_data()
            except (PricingError, ConfigError) as exc:
                log.warning("pricing_refresh_failed", provider=self._provider.name, error=str(exc))
            await asyncio.sleep(self.config.pricing.refresh_interval_seconds)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("costscope_shutting_down")

        self._running = False

        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()

        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        await self._stop_http_client()
        await self._stop_metrics_server()
        await self._stop_component("cache", self._cache)
        await self._stop_k8s_client()

        log.info("costscope_stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component_stop_timed_out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component_stop_failed", component=name, error=str(exc))

    async def _stop_http_client(self) -> None:
        if self._http_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await asyncio.wait_for(self._http_client.aclose(), timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.debug("http_client_close_failed", error=str(exc))
        self._http_client = None

    async def _stop_metrics_server(self) -> None:
        if self._metrics_server is None:
            return
        # start_http_server returns (server, thread) on current prometheus_client releases.
        server = self._metrics_server[0] if isinstance(self._metrics_server, tuple) else None
        if server is not None:
            await asyncio.to_thread(server.shutdown)
        self._metrics_server = None

    async def _stop_k8s_client(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        if self._k8s_client is None:
            return
        log = self._log or get_logger("app")
        try:
            from kubernetes_asyncio import client as k8s_client

            api_client = k8s_client.ApiClient()
            await api_client.close()
        except Exception as exc:
            log.debug("k8s_client_close_failed", error=str(exc))
        self._k8s_client = None


def _costscope_version() -> str:
    from costscope import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = CostScopeApp()
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        while app._running:
            await asyncio.sleep(1)
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical("fatal_startup_error", component=exc.component, error=str(exc.cause))
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app._running:
            await app.stop()
