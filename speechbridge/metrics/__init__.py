"""Metrics collection."""

from .collector import LatencyMetrics, MetricsCollector

__all__ = ["LatencyMetrics", "MetricsCollector"]
