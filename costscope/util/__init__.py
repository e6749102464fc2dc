"""Shared helpers: bounded fan-out and Kubernetes quantity parsing."""
