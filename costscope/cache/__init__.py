"""Cluster cache for costscope.

Keeps a watch-driven, read-optimised projection of cluster objects.

Submodules:
    projection     -- Upstream camelCase objects to frozen entity records.
    cluster_cache  -- Per-kind copy-on-write indexes and bulk read accessors.
    watchers       -- One watcher per kind feeding its index.
"""

from costscope.cache.cluster_cache import ClusterCache, ClusterCacheReader, KindIndex

__all__ = ["ClusterCache", "ClusterCacheReader", "KindIndex"]
