"""Environment-driven configuration loading.

Every setting is read from a ``COSTSCOPE_*`` environment variable. Integer
settings are clamped to their allowed range rather than rejected; enumerated
settings (log level, pricing provider) raise ``ValueError`` when invalid.
"""

from __future__ import annotations

import os

from costscope.models.config import (
    DEFAULT_TOKEN_FILE,
    CostScopeConfig,
    LogConfig,
    MetricsServerConfig,
    NodeStatsConfig,
    PricingConfig,
)

_PREFIX = "COSTSCOPE_"

_VALID_LOG_LEVELS: frozenset[str] = frozenset({"debug", "info", "warning", "error"})
_VALID_PROVIDERS: frozenset[str] = frozenset({"custom", "alibaba"})
_TRUTHY: frozenset[str] = frozenset({"true", "1", "yes"})

# ---------------------------------------------------------------------------
# Primitive readers
# ---------------------------------------------------------------------------


def _env(name: str, default: str = "") -> str:
    return os.environ.get(_PREFIX + name, default).strip()


def _env_bool(name: str, default: bool = False) -> bool:
    raw = _env(name)
    if not raw:
        return default
    return raw.lower() in _TRUTHY


def _env_int(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = _env(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid integer for {_PREFIX}{name}: {raw!r}") from exc
    return max(minimum, min(maximum, value))


def _env_list(name: str) -> list[str]:
    raw = _env(name)
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config() -> CostScopeConfig:
    """Build a :class:`CostScopeConfig` from the process environment.

    Raises:
        ValueError: on an unknown log level, unknown pricing provider, or a
            non-integer value for an integer setting.
    """
    level = _env("LOG_LEVEL", "info").lower()
    if level not in _VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log level {level!r}; expected one of {sorted(_VALID_LOG_LEVELS)}")

    provider = _env("PRICING_PROVIDER", "custom").lower()
    if provider not in _VALID_PROVIDERS:
        raise ValueError(f"Invalid pricing provider {provider!r}; expected one of {sorted(_VALID_PROVIDERS)}")

    return CostScopeConfig(
        cluster_id=_env("CLUSTER_ID"),
        log=LogConfig(level=level),
        metrics=MetricsServerConfig(
            port=_env_int("METRICS_PORT", 9003, 1024, 65535),
            disabled_metrics=_env_list("DISABLED_METRICS"),
            config_file=_env("METRICS_CONFIG_FILE"),
        ),
        nodestats=NodeStatsConfig(
            concurrent_pollers=_env_int("NODESTATS_CONCURRENT_POLLERS", 16, 1, 256),
            force_kube_proxy=_env_bool("NODESTATS_FORCE_KUBE_PROXY"),
            local_proxy=_env("NODESTATS_LOCAL_PROXY"),
            insecure=_env_bool("NODESTATS_INSECURE"),
            cert_file=_env("NODESTATS_CERT_FILE"),
            key_file=_env("NODESTATS_KEY_FILE"),
            token_file=_env("NODESTATS_TOKEN_FILE", DEFAULT_TOKEN_FILE),
            retry_attempts=_env_int("NODESTATS_RETRY_ATTEMPTS", 1, 1, 10),
            timeout_seconds=_env_int("NODESTATS_TIMEOUT", 10, 1, 120),
            interval_seconds=_env_int("NODESTATS_INTERVAL", 60, 10, 3600),
        ),
        pricing=PricingConfig(
            provider=provider,
            config_path=_env("PRICING_CONFIG_PATH"),
            refresh_interval_seconds=_env_int("PRICING_REFRESH_INTERVAL", 3600, 300, 86400),
            negative_ttl_seconds=_env_int("PRICING_NEGATIVE_TTL", 900, 60, 86400),
        ),
    )
