"""Metrics export for meshcore-stats.

- metrics: metric catalogue, MetricsSink Protocol, Prometheus sink and endpoint
"""

from exporter.metrics import METRICS, MetricsSink, PrometheusSink, serve_metrics

__all__ = [
    "METRICS",
    "MetricsSink",
    "PrometheusSink",
    "serve_metrics",
]
