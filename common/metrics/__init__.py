"""Metric accumulation shared by the controller and virtual users."""

from common.metrics.sink import MetricSink, BUILTIN_METRICS

__all__ = ["MetricSink", "BUILTIN_METRICS"]
