"""Base watcher with automatic reconnection and relist recovery.

Wraps kubernetes_asyncio's Watch to provide:
- Resumable watches via resourceVersion and bookmarks
- Exponential back-off (1 s – 60 s) on transient failures
- Recovery relist triggered by 410, 3 consecutive failures,
  unexpected stream termination, and repeated 429/5xx bursts
- Relist bounded to a 10 s budget and at most once per 5 min; the relist
  result replaces the subclass's whole index, reconciling missed events
"""

from __future__ import annotations

import asyncio
import contextlib
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime, timedelta
from typing import Any

from kubernetes_asyncio import watch
from kubernetes_asyncio.client.exceptions import ApiException

from costscope.observability.logging import get_logger
from costscope.observability.metrics import (
    cache_relist_duration_seconds,
    cache_relist_timeout_total,
    watcher_backoff_seconds,
    watcher_errors_total,
    watcher_events_total,
    watcher_reconnects_total,
    watcher_relistings_total,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_BACKOFF_MIN_S: float = 1.0
_BACKOFF_MAX_S: float = 60.0
_BACKOFF_MULTIPLIER: float = 2.0

_MAX_CONSECUTIVE_FAILURES: int = 3
_RELIST_MIN_INTERVAL_S: float = 300.0  # 5 minutes
_RELIST_BUDGET_S: float = 10.0

# 429/5xx burst: relist if seen more than this many in 1 minute
_BURST_WINDOW_S: float = 60.0
_BURST_RELIST_THRESHOLD: int = 1


class WatcherError(Exception):
    """Raised when a watcher cannot recover from a terminal error."""


class BaseWatcher(ABC):
    """Async base class for all Kubernetes resource watchers.

    Subclasses implement :meth:`_list_func` (which API function to call),
    :meth:`_handle_event` (what to do with each watch event) and
    :meth:`_replace_all` (how to swap in a freshly listed state).

    Lifecycle::

        watcher = MyWatcher(core_v1, name="pods")
        await watcher.sync()     # initial list
        await watcher.start()
        # ... runs until stop() is called
        await watcher.stop()
    """

    def __init__(self, api: Any, cluster_id: str = "", name: str = "base") -> None:
        """Initialise the watcher.

        Args:
            api: A kubernetes_asyncio API instance (e.g. CoreV1Api).
            cluster_id: Cluster identifier, used only for log context.
            name: Short identifier used in log/metric labels.
        """
        self._api = api
        self._cluster_id = cluster_id
        self._name = name
        self._log = get_logger(f"watcher.{name}")

        self._resource_version: str = ""
        self._running: bool = False
        self._task: asyncio.Task[None] | None = None

        # Failure tracking
        self._consecutive_failures: int = 0
        self._last_relist_at: datetime | None = None

        # 429/5xx burst tracking: timestamps in the current window
        self._error_burst_times: list[datetime] = []

        # Current back-off delay for the retry loop
        self._backoff_s: float = _BACKOFF_MIN_S

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    async def sync(self) -> None:
        """List the resource once and replace the local state with the result.

        Used for the initial population; errors propagate to the caller.
        """
        await self._do_relist()

    async def start(self) -> None:
        """Start the watch loop as a background asyncio task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._watch_loop(), name=f"watcher-{self._name}")
        self._log.info("watcher_started", watcher=self._name)

    async def stop(self) -> None:
        """Signal the watch loop to stop and wait for it to exit cleanly."""
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._log.info("watcher_stopped", watcher=self._name)

    # ------------------------------------------------------------------
    # Abstract interface for subclasses
    # ------------------------------------------------------------------

    @abstractmethod
    def _list_func(self) -> Callable[..., Coroutine[Any, Any, Any]]:
        """Return the API list function used by Watch.stream() and relist.

        Example::

            return self._api.list_pod_for_all_namespaces
        """

    @abstractmethod
    async def _handle_event(self, event_type: str, obj: Any, raw: dict[str, Any]) -> None:
        """Process a single watch event.

        Args:
            event_type: One of "ADDED", "MODIFIED", "DELETED".
            obj: Deserialized Kubernetes object (e.g. V1Pod).
            raw: The raw camelCase dict from the watch stream.
        """

    @abstractmethod
    async def _replace_all(self, raw_items: list[dict[str, Any]]) -> None:
        """Replace all local state with the items of a fresh list call.

        Args:
            raw_items: Listed objects in their camelCase dict form.
        """

    # ------------------------------------------------------------------
    # Internal watch loop
    # ------------------------------------------------------------------

    async def _watch_loop(self) -> None:
        """Main watch loop; runs until :attr:`_running` is False."""
        while self._running:
            try:
                await self._run_watch()
            except asyncio.CancelledError:
                return
            except Exception as exc:
                if not self._running:
                    return
                await self._handle_loop_exception(exc)

    async def _run_watch(self) -> None:
        """Open one watch stream and iterate until it terminates or raises."""
        list_func = self._list_func()
        kwargs: dict[str, Any] = {
            "allow_watch_bookmarks": True,
        }
        if self._resource_version:
            kwargs["resource_version"] = self._resource_version

        w = watch.Watch()
        try:
            async for raw_event in w.stream(list_func, **kwargs):
                if not self._running:
                    return
                event_type: str = raw_event.get("type", "")
                if event_type == "BOOKMARK":
                    rv = _extract_rv_from_bookmark(raw_event)
                    if rv:
                        self._resource_version = rv
                    continue

                obj = raw_event.get("object")
                raw = raw_event.get("raw_object", {})
                if not isinstance(raw, dict):
                    raw = {}

                new_rv = _extract_rv(obj, raw)
                if new_rv:
                    self._resource_version = new_rv

                watcher_events_total.labels(watcher=self._name, event_type=event_type).inc()
                await self._handle_event(event_type, obj, raw)
                if self._consecutive_failures:
                    self._reset_backoff()

            # Stream ended without error; treat as transient termination
            self._consecutive_failures += 1
            self._log.debug(
                "watch_stream_ended",
                watcher=self._name,
                consecutive_failures=self._consecutive_failures,
            )
            if self._consecutive_failures >= _MAX_CONSECUTIVE_FAILURES:
                await self._relist(reason="consecutive_failures")
            else:
                await self._backoff("stream_end")

        except ApiException as exc:
            await self._handle_api_exception(exc)
        finally:
            await w.close()

    async def _handle_api_exception(self, exc: ApiException) -> None:
        """Route an ApiException to the correct recovery path."""
        status = exc.status
        watcher_errors_total.labels(watcher=self._name, status_code=str(status)).inc()

        if status == 410:
            # Gone: resource version too old, must relist
            self._log.warning("watch_gone_410", watcher=self._name)
            watcher_reconnects_total.labels(watcher=self._name, reason="410").inc()
            self._resource_version = ""
            await self._relist(reason="410")

        elif status == 429:
            self._record_burst_error()
            self._log.warning("watch_rate_limited_429", watcher=self._name)
            watcher_reconnects_total.labels(watcher=self._name, reason="429").inc()
            if self._should_relist_on_burst():
                await self._relist(reason="429_burst")
            else:
                await self._backoff("429")

        elif status in (500, 503, 504):
            self._consecutive_failures += 1
            self._record_burst_error()
            self._log.warning(
                "watch_server_error",
                watcher=self._name,
                status=status,
                consecutive_failures=self._consecutive_failures,
            )
            watcher_reconnects_total.labels(watcher=self._name, reason=str(status)).inc()
            if self._consecutive_failures >= _MAX_CONSECUTIVE_FAILURES or self._should_relist_on_burst():
                await self._relist(reason=f"{status}_burst")
            else:
                await self._backoff(str(status))

        else:
            self._consecutive_failures += 1
            self._log.error(
                "watch_api_error",
                watcher=self._name,
                status=status,
                reason=exc.reason,
                consecutive_failures=self._consecutive_failures,
            )
            if self._consecutive_failures >= _MAX_CONSECUTIVE_FAILURES:
                await self._relist(reason="api_error_limit")
            else:
                await self._backoff("api_error")

    async def _handle_loop_exception(self, exc: Exception) -> None:
        """Handle unexpected exceptions from the watch loop."""
        self._consecutive_failures += 1
        self._log.error(
            "watch_unexpected_error",
            watcher=self._name,
            error=str(exc),
            consecutive_failures=self._consecutive_failures,
            exc_info=True,
        )
        watcher_reconnects_total.labels(watcher=self._name, reason="unexpected").inc()
        if self._consecutive_failures >= _MAX_CONSECUTIVE_FAILURES:
            await self._relist(reason="unexpected_limit")
        else:
            await self._backoff("unexpected")

    # ------------------------------------------------------------------
    # Back-off
    # ------------------------------------------------------------------

    async def _backoff(self, reason: str) -> None:
        """Sleep for the current back-off duration, then increase it."""
        delay = min(self._backoff_s, _BACKOFF_MAX_S)
        self._log.debug("watcher_backoff", watcher=self._name, reason=reason, delay_s=delay)
        watcher_backoff_seconds.labels(watcher=self._name).observe(delay)
        await asyncio.sleep(delay)
        self._backoff_s = min(self._backoff_s * _BACKOFF_MULTIPLIER, _BACKOFF_MAX_S)

    def _reset_backoff(self) -> None:
        """Reset back-off to minimum after a successful relist or event."""
        self._backoff_s = _BACKOFF_MIN_S
        self._consecutive_failures = 0

    # ------------------------------------------------------------------
    # Burst error tracking
    # ------------------------------------------------------------------

    def _record_burst_error(self) -> None:
        """Record a 429/5xx error timestamp for burst detection."""
        now = datetime.now(tz=UTC)
        cutoff = now - timedelta(seconds=_BURST_WINDOW_S)
        self._error_burst_times = [t for t in self._error_burst_times if t >= cutoff]
        self._error_burst_times.append(now)

    def _should_relist_on_burst(self) -> bool:
        """Return True if burst threshold has been exceeded in the window."""
        now = datetime.now(tz=UTC)
        cutoff = now - timedelta(seconds=_BURST_WINDOW_S)
        recent = [t for t in self._error_burst_times if t >= cutoff]
        return len(recent) > _BURST_RELIST_THRESHOLD

    # ------------------------------------------------------------------
    # Relist
    # ------------------------------------------------------------------

    async def _relist(self, reason: str = "unknown") -> None:
        """Perform a bounded relist to recover a diverged watch stream.

        Enforces at most one relist per 5 minutes and a 10 s budget. When the
        relist fails or times out the previous state keeps serving reads.
        """
        now = datetime.now(tz=UTC)

        if self._last_relist_at is not None:
            elapsed = (now - self._last_relist_at).total_seconds()
            if elapsed < _RELIST_MIN_INTERVAL_S:
                self._log.debug(
                    "relist_throttled",
                    watcher=self._name,
                    reason=reason,
                    next_allowed_in_s=_RELIST_MIN_INTERVAL_S - elapsed,
                )
                await self._backoff("relist_throttled")
                return

        self._last_relist_at = now
        watcher_relistings_total.labels(watcher=self._name).inc()
        self._log.info("relist_start", watcher=self._name, reason=reason)

        try:
            async with asyncio.timeout(_RELIST_BUDGET_S):
                await self._do_relist()
        except TimeoutError:
            self._log.warning("relist_timeout", watcher=self._name, reason=reason)
            cache_relist_timeout_total.labels(kind=self._name).inc()
        except Exception as exc:
            self._log.error(
                "relist_failed",
                watcher=self._name,
                reason=reason,
                error=str(exc),
                exc_info=True,
            )

        self._reset_backoff()

    async def _do_relist(self) -> None:
        """List without a resourceVersion, replace local state, store the new rv."""
        self._resource_version = ""
        list_func = self._list_func()

        with cache_relist_duration_seconds.labels(kind=self._name).time():
            result = await list_func(_preload_content=True, watch=False)
            items = getattr(result, "items", None) or []
            raw_items = [_to_raw(self._api, item) for item in items]
            await self._replace_all(raw_items)

        rv = ""
        if hasattr(result, "metadata") and result.metadata is not None:
            rv = getattr(result.metadata, "resource_version", "") or ""

        if rv:
            self._resource_version = rv
            self._log.info("relist_complete", watcher=self._name, count=len(raw_items), resource_version=rv)
        else:
            self._log.warning("relist_no_rv", watcher=self._name, count=len(raw_items))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_raw(api: Any, item: Any) -> dict[str, Any]:
    """Convert a deserialized list item back to its camelCase dict form."""
    if isinstance(item, dict):
        return item
    api_client = getattr(api, "api_client", None)
    if api_client is not None:
        raw = api_client.sanitize_for_serialization(item)
        if isinstance(raw, dict):
            return raw
    return {}


def _extract_rv(obj: Any, raw: dict[str, Any]) -> str:
    """Extract resourceVersion from a watch event's deserialized object or raw dict."""
    if obj is not None and hasattr(obj, "metadata") and obj.metadata is not None:
        rv = getattr(obj.metadata, "resource_version", None)
        if rv:
            return str(rv)
    metadata = raw.get("metadata")
    if isinstance(metadata, dict):
        rv = metadata.get("resourceVersion", "")
        if rv:
            return str(rv)
    return ""


def _extract_rv_from_bookmark(raw_event: dict[str, Any]) -> str:
    """Extract resourceVersion from a BOOKMARK event."""
    raw_obj = raw_event.get("raw_object", {})
    if not isinstance(raw_obj, dict):
        return ""
    metadata = raw_obj.get("metadata", {})
    if not isinstance(metadata, dict):
        return ""
    return str(metadata.get("resourceVersion", ""))
