"""Cache state types."""

from __future__ import annotations

from enum import StrEnum


class CacheReadiness(StrEnum):
    """Cluster cache completeness state."""

    WARMING = "warming"
    PARTIALLY_READY = "partially_ready"
    READY = "ready"
