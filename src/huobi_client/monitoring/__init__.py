"""Monitoring helpers."""

from .metrics import ClientMetrics

__all__ = ['ClientMetrics']
