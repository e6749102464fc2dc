"""Kubernetes labels and annotations as Prometheus label pairs.

Kubernetes keys may contain ``/``, ``.`` and ``-``, none of which are legal
in a Prometheus label name. Keys are prefixed (``label_``, ``annotation_``),
invalid characters are replaced with ``_`` and the result is sorted by name.
When two keys sanitise to the same name the first one in key order wins.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence

_INVALID_LABEL_CHARS = re.compile(r"[^a-zA-Z0-9_]")

LABEL_PREFIX = "label_"
ANNOTATION_PREFIX = "annotation_"


def sanitize_label_name(name: str) -> str:
    """``app.kubernetes.io/name`` -> ``app_kubernetes_io_name``."""
    return _INVALID_LABEL_CHARS.sub("_", name)


def _prefixed(values: Mapping[str, str], prefix: str) -> tuple[list[str], list[str]]:
    names: list[str] = []
    out: list[str] = []
    seen: set[str] = set()
    for key in sorted(values):
        name = prefix + sanitize_label_name(key)
        if name in seen:
            continue
        seen.add(name)
        names.append(name)
        out.append(values[key])
    order = sorted(range(len(names)), key=names.__getitem__)
    return [names[i] for i in order], [out[i] for i in order]


def kube_labels_to_labels(labels: Mapping[str, str]) -> tuple[list[str], list[str]]:
    """Return parallel ``(names, values)`` lists for Kubernetes labels."""
    return _prefixed(labels, LABEL_PREFIX)


def kube_annotations_to_labels(annotations: Mapping[str, str]) -> tuple[list[str], list[str]]:
    """Return parallel ``(names, values)`` lists for Kubernetes annotations."""
    return _prefixed(annotations, ANNOTATION_PREFIX)


def to_prometheus_labels(names: Sequence[str], values: Sequence[str]) -> dict[str, str]:
    """Zip label names with their values.

    Raises:
        ValueError: if the two sequences differ in length.
    """
    if len(names) != len(values):
        raise ValueError(f"label names and values differ in length: {len(names)} != {len(values)}")
    return dict(zip(names, values, strict=True))
