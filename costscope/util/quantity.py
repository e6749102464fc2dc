"""Kubernetes resource quantity parsing.

Quantities arrive as strings such as ``"250m"``, ``"4"``, ``"7.5Gi"`` or
``"1e3"``. Values are converted to the canonical unit of their resource:
cores for CPU, bytes for memory and storage, a plain count otherwise.
"""

from __future__ import annotations

_SUFFIXES: tuple[tuple[str, float], ...] = (
    ("Ki", 1024**1),
    ("Mi", 1024**2),
    ("Gi", 1024**3),
    ("Ti", 1024**4),
    ("Pi", 1024**5),
    ("Ei", 1024**6),
    ("n", 1e-9),
    ("u", 1e-6),
    ("m", 1e-3),
    ("k", 1e3),
    ("K", 1e3),
    ("M", 1e6),
    ("G", 1e9),
    ("T", 1e12),
    ("P", 1e15),
    ("E", 1e18),
)


class QuantityError(ValueError):
    """Raised when a string is not a valid Kubernetes quantity."""


def parse_quantity(value: str | int | float) -> float:
    """Return the numeric value of a quantity in its base unit.

    Raises:
        QuantityError: if *value* cannot be parsed.
    """
    if isinstance(value, int | float):
        return float(value)
    text = value.strip()
    if not text:
        raise QuantityError("empty quantity")
    for suffix, factor in _SUFFIXES:
        if text.endswith(suffix):
            number = text[: -len(suffix)]
            try:
                return float(number) * factor
            except ValueError as exc:
                raise QuantityError(f"invalid quantity {value!r}") from exc
    try:
        return float(text)
    except ValueError as exc:
        raise QuantityError(f"invalid quantity {value!r}") from exc


def parse_cpu_cores(value: str | int | float) -> float:
    """CPU quantity in cores ("250m" -> 0.25)."""
    return parse_quantity(value)


def parse_bytes(value: str | int | float) -> float:
    """Memory or storage quantity in bytes ("1Gi" -> 1073741824.0)."""
    return parse_quantity(value)
