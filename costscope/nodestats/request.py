"""HTTP access to per-node kubelet endpoints.

A node can be reached two ways: directly on the kubelet port of its internal
IP, or through the API server's node proxy. Each way is described by an
endpoint formatter; a :class:`NodeHttpConnection` pairs a formatter with a
retrying :class:`NodeHttpClient`, and :func:`request_node_data` walks an
ordered list of connections until one succeeds.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

import httpx

from costscope.models.entities import Node
from costscope.observability.logging import get_logger
from costscope.observability.metrics import nodestats_requests_total

_DEFAULT_KUBELET_PORT: int = 10250

_log = get_logger("nodestats.request")


class NodeRequestError(Exception):
    """A node endpoint could not be queried successfully."""


class NodeFormatterError(Exception):
    """A URL for a node endpoint could not be built."""


# ---------------------------------------------------------------------------
# Endpoint formatters
# ---------------------------------------------------------------------------


class NodeEndpointFormatter(Protocol):
    def format(self, path: str) -> str: ...


class DirectNodeFormatter:
    """``https://<internal-ip>:<kubelet-port>/<path>``."""

    def __init__(self, node: Node) -> None:
        ip = node.internal_ip()
        if not ip:
            raise NodeFormatterError(f"could not find internal IP address for node {node.name}")
        self._ip = ip
        self._port = node.status.kubelet_port or _DEFAULT_KUBELET_PORT

    def format(self, path: str) -> str:
        return f"https://{self._ip}:{self._port}/{path.lstrip('/')}"


class NodeProxyFormatter:
    """``<host>/api/v1/nodes/<node>/proxy/<path>``."""

    def __init__(self, host: str, node_name: str) -> None:
        self._host = host.rstrip("/")
        self._node_name = node_name

    def format(self, path: str) -> str:
        return f"{self._host}/api/v1/nodes/{self._node_name}/proxy/{path.lstrip('/')}"


# ---------------------------------------------------------------------------
# Retrying client
# ---------------------------------------------------------------------------


class NodeHttpClient:
    """Performs authenticated requests with exponential-backoff retry.

    ``attempts`` is the total number of tries per endpoint. Before retry
    ``i`` (``i >= 1``) the client sleeps ``2**i`` seconds. Only transport
    errors are retried; a non-2xx status fails the endpoint at once.
    """

    def __init__(self, client: httpx.AsyncClient, attempts: int = 1) -> None:
        self._client = client
        self._attempts = max(1, attempts)

    @property
    def attempts(self) -> int:
        return self._attempts

    async def attempt_endpoint(self, method: str, url: str, token: str = "") -> bytes:
        """Request *url* until it succeeds or the attempts are exhausted.

        Raises:
            NodeRequestError: after the last failed attempt.
        """
        for i in range(self._attempts):
            if i > 0:
                await asyncio.sleep(2**i)
            try:
                body = await self._make_request(method, url, token)
            except httpx.HTTPError as exc:
                nodestats_requests_total.labels(outcome="transport_error").inc()
                _log.warning(
                    "node_request_failed",
                    url=url,
                    attempt=i + 1,
                    attempts=self._attempts,
                    error=str(exc) or type(exc).__name__,
                )
                continue
            except NodeRequestError as exc:
                # A non-2xx answer will not change on retry; fail the endpoint.
                nodestats_requests_total.labels(outcome="bad_status").inc()
                _log.warning("node_request_rejected", url=url, attempt=i + 1, error=str(exc))
                raise NodeRequestError(f"requests to {url} failed: {exc}") from exc
            nodestats_requests_total.labels(outcome="success").inc()
            return body
        raise NodeRequestError(f"requests to {url} failed")

    async def _make_request(self, method: str, url: str, token: str) -> bytes:
        headers: dict[str, str] = {}
        if token:
            headers["Authorization"] = f"bearer {token}"
        response = await self._client.request(method, url, headers=headers)
        if not 200 <= response.status_code < 300:
            raise NodeRequestError(f"invalid response {response.status_code}")
        return response.content


@dataclass(frozen=True)
class NodeHttpConnection:
    """One way of reaching a node: an endpoint formatter plus an HTTP client."""

    formatter: NodeEndpointFormatter
    client: NodeHttpClient


async def request_node_data(connections: list[NodeHttpConnection], path: str, token: str = "") -> bytes:
    """GET *path* through the first connection that succeeds.

    Raises:
        NodeRequestError: when every connection failed; the message joins the
            individual endpoint errors.
    """
    errors: list[str] = []
    for conn in connections:
        url = conn.formatter.format(path)
        try:
            return await conn.client.attempt_endpoint("GET", url, token)
        except NodeRequestError as exc:
            errors.append(f"error retrieving node data from {url}: {exc}")
    joined = "\n".join(errors)
    raise NodeRequestError(f"problem getting node address: {path}\n{joined}")
