"""Per-kind watchers feeding the cluster cache indexes.

A single :class:`KindWatcher` class covers every kind: the
:class:`~costscope.cache.cluster_cache.KindSpec` supplies the list method and
the projector, and the watcher owns exactly one index.
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any

from costscope.collector.watcher import BaseWatcher

if TYPE_CHECKING:
    from costscope.cache.cluster_cache import KindIndex, KindSpec


class KindWatcher(BaseWatcher):
    """Watches one resource kind and keeps its :class:`KindIndex` current."""

    def __init__(self, api: Any, spec: KindSpec, index: KindIndex[Any], cluster_id: str = "") -> None:
        super().__init__(api, cluster_id=cluster_id, name=spec.kind)
        self._spec = spec
        self._index = index

    def _list_func(self) -> Callable[..., Coroutine[Any, Any, Any]]:
        return getattr(self._api, self._spec.list_method)  # type: ignore[no-any-return]

    async def _handle_event(self, event_type: str, obj: Any, raw: dict[str, Any]) -> None:
        """Apply ADDED/MODIFIED as an atomic replace and DELETED as a removal."""
        uid = _uid(raw)
        if not uid:
            self._log.debug("watch_event_without_uid", watcher=self._name, event_type=event_type)
            return

        if event_type == "DELETED":
            self._index.delete(uid)
            return
        if event_type not in ("ADDED", "MODIFIED"):
            return

        try:
            entity = self._spec.projector(raw)
        except Exception as exc:
            self._log.warning(
                "projection_failed",
                watcher=self._name,
                uid=uid,
                error=str(exc),
            )
            return
        self._index.upsert(uid, entity)

    async def _replace_all(self, raw_items: list[dict[str, Any]]) -> None:
        entities: dict[str, Any] = {}
        for raw in raw_items:
            uid = _uid(raw)
            if not uid:
                continue
            try:
                entities[uid] = self._spec.projector(raw)
            except Exception as exc:
                self._log.warning("projection_failed", watcher=self._name, uid=uid, error=str(exc))
        self._index.replace(entities)


def _uid(raw: dict[str, Any]) -> str:
    metadata = raw.get("metadata")
    if not isinstance(metadata, dict):
        return ""
    return str(metadata.get("uid", "") or "")
