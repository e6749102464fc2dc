"""Prometheus self-metrics for costscope."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# Watcher metrics
watcher_events_total = Counter(
    "costscope_watcher_events_total",
    "Total watch events received",
    ["watcher", "event_type"],
)

watcher_errors_total = Counter(
    "costscope_watcher_errors_total",
    "Total watch API errors",
    ["watcher", "status_code"],
)

watcher_reconnects_total = Counter(
    "costscope_watcher_reconnects_total",
    "Total watch reconnects",
    ["watcher", "reason"],
)

watcher_relistings_total = Counter(
    "costscope_watcher_relistings_total",
    "Total relist operations",
    ["watcher"],
)

watcher_backoff_seconds = Histogram(
    "costscope_watcher_backoff_seconds",
    "Watch reconnect back-off delay in seconds",
    ["watcher"],
    buckets=(1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 60.0),
)

# Cluster cache metrics
cache_entities = Gauge(
    "costscope_cache_entities",
    "Number of entities held in the cluster cache",
    ["kind"],
)

cache_relist_duration_seconds = Histogram(
    "costscope_cache_relist_duration_seconds",
    "Per-kind relist duration in seconds",
    ["kind"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)

cache_relist_timeout_total = Counter(
    "costscope_cache_relist_timeout_total",
    "Relists that exceeded their time budget",
    ["kind"],
)

# Node stats metrics
nodestats_requests_total = Counter(
    "costscope_nodestats_requests_total",
    "Kubelet summary requests by outcome",
    ["outcome"],
)

nodestats_scrape_duration_seconds = Histogram(
    "costscope_nodestats_scrape_duration_seconds",
    "Duration of a full node stats scan in seconds",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

nodestats_nodes_scraped = Gauge(
    "costscope_nodestats_nodes_scraped",
    "Number of nodes returned by the last node stats scan",
)

# Pricing metrics
pricing_refresh_total = Counter(
    "costscope_pricing_refresh_total",
    "Pricing refreshes by provider and outcome",
    ["provider", "outcome"],
)

pricing_refresh_duration_seconds = Histogram(
    "costscope_pricing_refresh_duration_seconds",
    "Pricing refresh duration in seconds",
    ["provider"],
    buckets=(0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0),
)

pricing_cache_entries = Gauge(
    "costscope_pricing_cache_entries",
    "Entries in the provider pricing cache",
    ["provider", "kind"],
)

pricing_cache_misses_total = Counter(
    "costscope_pricing_cache_misses_total",
    "Pricing lookups that missed the cache",
    ["provider"],
)
