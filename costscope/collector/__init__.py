"""Kubernetes watch primitives.

Submodules:
    watcher  -- BaseWatcher: resumable watch, back-off, relist recovery.
"""

from costscope.collector.watcher import BaseWatcher, WatcherError

__all__ = ["BaseWatcher", "WatcherError"]
