"""Tests for costscope.nodestats — endpoint formatting, retrying requests,
connection plans, summary collection and the stats collector.

HTTP traffic goes through httpx.MockTransport; no sockets are opened.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from costscope.models.config import NodeStatsConfig
from costscope.models.entities import Node, NodeAddress, NodeCondition, NodeStatus
from costscope.models.stats import Summary
from costscope.nodestats.client import NodeStatsError, NodeStatsSummaryClient, build_http_client
from costscope.nodestats.config import NodeClientConfig, NodeClientProxyConfig
from costscope.nodestats.request import (
    DirectNodeFormatter,
    NodeFormatterError,
    NodeHttpClient,
    NodeHttpConnection,
    NodeProxyFormatter,
    NodeRequestError,
    request_node_data,
)
from costscope.nodestats.scrape import MetricUpdate, NodeStatsCollector, scrape_summaries

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _node(
    name: str = "node-1",
    ip: str = "10.0.0.1",
    ready: bool = True,
    port: int = 0,
    provider_id: str = "alicloud://cn-hangzhou.i-1",
    labels: dict[str, str] | None = None,
) -> Node:
    addresses = (NodeAddress("InternalIP", ip),) if ip else ()
    return Node(
        uid=f"{name}-uid",
        name=name,
        labels=labels or {},
        status=NodeStatus(
            addresses=addresses,
            conditions=(NodeCondition("Ready", "True" if ready else "False"),),
            kubelet_port=port,
        ),
        provider_id=provider_id,
    )


class FakeCache:
    def __init__(self, nodes: list[Node]) -> None:
        self._nodes = nodes

    def get_all_nodes(self) -> list[Node]:
        return list(self._nodes)


def _summary_doc(node_name: str = "node-1") -> dict[str, Any]:
    return {
        "node": {
            "nodeName": node_name,
            "cpu": {"usageCoreNanoSeconds": 2_000_000_000},
            "fs": {"capacityBytes": 1000},
        },
        "pods": [
            {
                "podRef": {"name": "web-0", "namespace": "default", "uid": "pod-uid"},
                "network": {
                    "name": "eth0",
                    "rxBytes": 10,
                    "txBytes": 20,
                    "interfaces": [
                        {"name": "eth0", "rxBytes": 10, "txBytes": 20},
                        {"name": "eth1", "rxBytes": 5, "txBytes": 1},
                        {"name": "cni0", "rxBytes": 999, "txBytes": 999},
                    ],
                },
                "containers": [
                    {
                        "name": "app",
                        "cpu": {"usageCoreNanoSeconds": 500_000_000},
                        "memory": {"workingSetBytes": 4096},
                        "rootfs": {"usedBytes": 100},
                    },
                    {"name": "sidecar", "rootfs": {"usedBytes": 50}},
                ],
                "volume": [
                    {"name": "data", "usedBytes": 300, "pvcRef": {"name": "data-web-0", "namespace": "default"}},
                    {"name": "tmp", "usedBytes": 7},
                ],
            }
        ],
    }


def _config(**overrides: Any) -> NodeClientConfig:
    return NodeClientConfig(**overrides)


def _mock_client(handler: Any) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ===========================================================================
# Config
# ===========================================================================


class TestNodeClientConfig:
    def test_from_settings(self) -> None:
        settings = NodeStatsConfig(concurrent_pollers=4, local_proxy="http://localhost:8001", timeout_seconds=5)
        config = NodeClientConfig.from_settings(settings, cluster_id="c1")
        assert config.cluster_id == "c1"
        assert config.concurrent_pollers == 4
        assert config.proxy_config.is_local_proxy() is True
        assert config.timeout_seconds == 5.0

    def test_default_is_not_local_proxy(self) -> None:
        assert NodeClientProxyConfig().is_local_proxy() is False


# ===========================================================================
# Formatters
# ===========================================================================


class TestFormatters:
    def test_direct_uses_kubelet_port(self) -> None:
        formatter = DirectNodeFormatter(_node(port=10255))
        assert formatter.format("stats/summary") == "https://10.0.0.1:10255/stats/summary"

    def test_direct_defaults_port(self) -> None:
        assert DirectNodeFormatter(_node()).format("/stats/summary") == "https://10.0.0.1:10250/stats/summary"

    def test_direct_without_ip_raises(self) -> None:
        with pytest.raises(NodeFormatterError, match="internal IP"):
            DirectNodeFormatter(_node(ip=""))

    def test_proxy(self) -> None:
        formatter = NodeProxyFormatter("https://api.example:6443/", "node-1")
        assert formatter.format("stats/summary") == "https://api.example:6443/api/v1/nodes/node-1/proxy/stats/summary"


# ===========================================================================
# NodeHttpClient
# ===========================================================================


class TestNodeHttpClient:
    async def test_sends_bearer_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b"ok")

        async with _mock_client(handler) as http:
            body = await NodeHttpClient(http).attempt_endpoint("GET", "https://n/stats", token="secret")

        assert body == b"ok"
        assert seen[0].headers["Authorization"] == "bearer secret"

    async def test_no_token_no_header(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        async with _mock_client(handler) as http:
            await NodeHttpClient(http).attempt_endpoint("GET", "https://n/stats")

        assert "Authorization" not in seen[0].headers

    async def test_bad_status_is_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(403)

        async with _mock_client(handler) as http:
            with pytest.raises(NodeRequestError, match="invalid response 403"):
                await NodeHttpClient(http, attempts=3).attempt_endpoint("GET", "https://n/stats")

        assert calls == 1

    async def test_transport_error_is_retried_with_backoff(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, content=b"late")

        with patch("costscope.nodestats.request.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            async with _mock_client(handler) as http:
                body = await NodeHttpClient(http, attempts=3).attempt_endpoint("GET", "https://n/stats")

        assert body == b"late"
        assert [c.args[0] for c in mock_sleep.await_args_list] == [2, 4]

    async def test_exhausted_attempts_raise(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _mock_client(handler) as http:
            with pytest.raises(NodeRequestError, match="failed"):
                await NodeHttpClient(http, attempts=1).attempt_endpoint("GET", "https://n/stats")

    def test_attempts_floor(self) -> None:
        assert NodeHttpClient(httpx.AsyncClient(), attempts=0).attempts == 1


# ===========================================================================
# request_node_data
# ===========================================================================


class TestRequestNodeData:
    async def test_falls_back_to_next_connection(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if "proxy" in request.url.path:
                return httpx.Response(503)
            return httpx.Response(200, content=b"direct")

        async with _mock_client(handler) as http:
            client = NodeHttpClient(http)
            conns = [
                NodeHttpConnection(NodeProxyFormatter("https://api", "node-1"), client),
                NodeHttpConnection(DirectNodeFormatter(_node()), client),
            ]
            assert await request_node_data(conns, "stats/summary") == b"direct"

    async def test_all_failures_are_joined(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        async with _mock_client(handler) as http:
            client = NodeHttpClient(http)
            conns = [
                NodeHttpConnection(NodeProxyFormatter("https://api", "node-1"), client),
                NodeHttpConnection(DirectNodeFormatter(_node()), client),
            ]
            with pytest.raises(NodeRequestError) as exc_info:
                await request_node_data(conns, "stats/summary")

        message = str(exc_info.value)
        assert "https://api/api/v1/nodes/node-1/proxy/stats/summary" in message
        assert "https://10.0.0.1:10250/stats/summary" in message


# ===========================================================================
# NodeStatsSummaryClient
# ===========================================================================


class TestSummaryClient:
    def test_ready_nodes_only(self) -> None:
        cache = FakeCache([_node("a"), _node("b", ready=False)])
        client = NodeStatsSummaryClient(cache, _config(), httpx.AsyncClient())
        assert [n.name for n in client.get_ready_nodes()] == ["a"]

    def test_connection_plan_proxy_then_direct(self) -> None:
        client = NodeStatsSummaryClient(FakeCache([]), _config(), httpx.AsyncClient(), host="https://api")
        plan = [c.formatter.format("x") for c in client.connection_options(_node())]
        assert plan == ["https://api/api/v1/nodes/node-1/proxy/x", "https://10.0.0.1:10250/x"]

    def test_connection_plan_force_kube_proxy(self) -> None:
        config = _config(proxy_config=NodeClientProxyConfig(force_kube_proxy=True))
        client = NodeStatsSummaryClient(FakeCache([]), config, httpx.AsyncClient(), host="https://api")
        assert len(client.connection_options(_node())) == 1

    def test_connection_plan_fargate(self) -> None:
        client = NodeStatsSummaryClient(FakeCache([]), _config(), httpx.AsyncClient(), host="https://api")
        node = _node(labels={"eks.amazonaws.com/compute-type": "fargate"})
        assert len(client.connection_options(node)) == 1

    def test_connection_plan_local_proxy(self) -> None:
        config = _config(proxy_config=NodeClientProxyConfig(local_proxy="http://127.0.0.1:8001"))
        client = NodeStatsSummaryClient(FakeCache([]), config, httpx.AsyncClient(), host="https://api")
        first = client.connection_options(_node(ip=""))
        assert [c.formatter.format("x") for c in first] == ["http://127.0.0.1:8001/api/v1/nodes/node-1/proxy/x"]

    async def test_get_node_data(self, tmp_path: Path) -> None:
        token_file = tmp_path / "token"
        token_file.write_text("tok\n")
        seen_auth: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen_auth.append(request.headers.get("Authorization", ""))
            if request.url.path.endswith("/nodes/node-2/proxy/stats/summary"):
                return httpx.Response(200, content=b"not json")
            return httpx.Response(200, content=json.dumps(_summary_doc()).encode())

        cache = FakeCache([_node("node-1"), _node("node-2", ip=""), _node("node-3", provider_id="")])
        async with _mock_client(handler) as http:
            client = NodeStatsSummaryClient(cache, _config(token_file=str(token_file)), http, host="https://api")
            summaries = await client.get_node_data()

        assert [s.node.node_name for s in summaries] == ["node-1"]
        assert set(seen_auth) == {"bearer tok"}

    async def test_missing_token_raises(self, tmp_path: Path) -> None:
        cache = FakeCache([_node()])
        client = NodeStatsSummaryClient(cache, _config(token_file=str(tmp_path / "absent")), httpx.AsyncClient())
        with pytest.raises(NodeStatsError, match="bearer token"):
            await client.get_node_data()

    async def test_local_proxy_skips_token(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert "Authorization" not in request.headers
            return httpx.Response(200, content=json.dumps(_summary_doc()).encode())

        config = _config(
            token_file=str(tmp_path / "absent"),
            proxy_config=NodeClientProxyConfig(local_proxy="http://127.0.0.1:8001"),
        )
        async with _mock_client(handler) as http:
            summaries = await NodeStatsSummaryClient(FakeCache([_node()]), config, http).get_node_data()
        assert len(summaries) == 1

    async def test_no_nodes(self) -> None:
        client = NodeStatsSummaryClient(FakeCache([]), _config(), httpx.AsyncClient())
        assert await client.get_node_data() == []

    async def test_build_http_client(self) -> None:
        http = build_http_client(_config(insecure=True, timeout_seconds=3.0))
        assert http.timeout.connect == 3.0
        await http.aclose()


# ===========================================================================
# Scrape and collector
# ===========================================================================


def _updates_by_name(updates: list[MetricUpdate]) -> dict[str, list[MetricUpdate]]:
    out: dict[str, list[MetricUpdate]] = {}
    for u in updates:
        out.setdefault(u.name, []).append(u)
    return out


class TestScrapeSummaries:
    def test_flattening(self) -> None:
        updates = _updates_by_name(scrape_summaries([Summary.model_validate(_summary_doc())]))

        cpu = updates["node_cpu_seconds_total"][0]
        assert cpu.value == pytest.approx(2.0)
        assert cpu.labels == {"kubernetes_node": "node-1", "mode": ""}
        assert updates["node_fs_capacity_bytes"][0].labels == {"instance": "node-1", "device": "local"}

        # cni0 is skipped; eth0 and eth1 both reported.
        assert sorted(u.value for u in updates["container_network_receive_bytes_total"]) == [5.0, 10.0]

        container_cpu = updates["container_cpu_usage_seconds_total"][0]
        assert container_cpu.value == pytest.approx(0.5)
        assert container_cpu.labels["container"] == "app"
        assert updates["container_memory_working_set_bytes"][0].value == 4096.0
        assert len(updates["container_fs_usage_bytes"]) == 2

        volumes = updates["kubelet_volume_stats_used_bytes"]
        assert len(volumes) == 1
        assert volumes[0].labels == {"persistentvolumeclaim": "data-web-0", "namespace": "default"}

    def test_network_without_interfaces_uses_pod_totals(self) -> None:
        doc = _summary_doc()
        doc["pods"][0]["network"] = {"name": "eth0", "rxBytes": 11, "txBytes": 22}
        updates = _updates_by_name(scrape_summaries([Summary.model_validate(doc)]))
        assert [u.value for u in updates["container_network_transmit_bytes_total"]] == [22.0]

    def test_shared_pvc_reported_once(self) -> None:
        a = Summary.model_validate(_summary_doc("node-1"))
        b = Summary.model_validate(_summary_doc("node-2"))
        updates = _updates_by_name(scrape_summaries([a, b]))
        assert len(updates["kubelet_volume_stats_used_bytes"]) == 1

    def test_null_lists(self) -> None:
        summary = Summary.model_validate({"node": {"nodeName": "n"}, "pods": None})
        assert scrape_summaries([summary]) == []


class TestNodeStatsCollector:
    def test_empty_collects_nothing(self) -> None:
        assert list(NodeStatsCollector().collect()) == []

    def test_describe_honours_disabled(self) -> None:
        collector = NodeStatsCollector(["container_fs_usage_bytes"])
        assert len(list(collector.describe())) == 7

    def test_duplicate_samples_are_summed(self) -> None:
        collector = NodeStatsCollector()
        labels = {"instance": "node-1", "device": "local"}
        collector.update(
            [
                MetricUpdate("container_fs_usage_bytes", labels, 100.0),
                MetricUpdate("container_fs_usage_bytes", labels, 50.0),
            ]
        )
        families = list(collector.collect())
        assert len(families) == 1
        assert families[0].samples[0].value == 150.0

    def test_counter_sample_name(self) -> None:
        collector = NodeStatsCollector()
        collector.update([MetricUpdate("node_cpu_seconds_total", {"kubernetes_node": "n", "mode": ""}, 3.0)])
        family = next(iter(collector.collect()))
        assert family.type == "counter"
        assert family.samples[0].name == "node_cpu_seconds_total"

    def test_disabled_metric_is_dropped(self) -> None:
        collector = NodeStatsCollector(["node_fs_capacity_bytes"])
        collector.update([MetricUpdate("node_fs_capacity_bytes", {"instance": "n", "device": "local"}, 1.0)])
        assert list(collector.collect()) == []

    def test_update_replaces_previous_scrape(self) -> None:
        collector = NodeStatsCollector()
        collector.update([MetricUpdate("container_fs_usage_bytes", {"instance": "a", "device": "local"}, 1.0)])
        collector.update([])
        assert list(collector.collect()) == []
