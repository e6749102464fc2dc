"""Observability helpers: structured logging and self-metrics."""
