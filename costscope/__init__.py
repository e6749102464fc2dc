"""costscope - Kubernetes cost and utilization telemetry."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("costscope")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
