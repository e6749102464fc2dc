"""Metric gating.

A metric named in ``disabled_metrics`` is neither described nor collected.
The list comes from ``COSTSCOPE_DISABLED_METRICS`` and, optionally, from a
JSON file of the form ``{"disabledMetrics": ["kube_pod_labels", ...]}``.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from costscope.observability.logging import get_logger

_log = get_logger("metrics.config")


@dataclass(frozen=True)
class MetricsConfig:
    """Names of metrics switched off; any iterable is accepted and frozen."""

    disabled_metrics: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "disabled_metrics", frozenset(self.disabled_metrics))

    def is_enabled(self, name: str) -> bool:
        return name not in self.disabled_metrics

    def any_enabled(self, names: Iterable[str]) -> bool:
        return any(self.is_enabled(n) for n in names)


def load_metrics_config(disabled_metrics: Iterable[str] = (), config_file: str = "") -> MetricsConfig:
    """Merge *disabled_metrics* with the list found in *config_file*.

    A missing file is not an error: the environment list is used alone.

    Raises:
        ValueError: if the file exists but is not a JSON object with a list
            under ``disabledMetrics``.
    """
    disabled = set(disabled_metrics)
    if not config_file:
        return MetricsConfig(disabled)

    path = Path(config_file)
    if not path.exists():
        _log.info("metrics_config_file_missing", path=config_file)
        return MetricsConfig(disabled)

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Invalid metrics config file {config_file!r}: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid metrics config file {config_file!r}: expected a JSON object")
    from_file = data.get("disabledMetrics", [])
    if not isinstance(from_file, list) or not all(isinstance(n, str) for n in from_file):
        raise ValueError(f"Invalid metrics config file {config_file!r}: disabledMetrics must be a list of strings")

    disabled.update(from_file)
    _log.info("metrics_config_loaded", path=config_file, disabled=len(disabled))
    return MetricsConfig(disabled)
