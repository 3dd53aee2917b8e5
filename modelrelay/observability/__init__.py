"""Lightweight observability helpers for logging, metrics and call tracking."""

from __future__ import annotations

from .collector import MetricRecord, MetricsCollector, ModelMetrics
from .logging import get_logger, log_failover_event
from .metrics import (
    REQUEST_DURATION,
    CollectorListener,
    emit_metric,
    record_metric,
    record_request_duration,
    register_metric_listener,
    unregister_metric_listener,
)

__all__ = [
    "get_logger",
    "log_failover_event",
    "REQUEST_DURATION",
    "CollectorListener",
    "emit_metric",
    "record_metric",
    "record_request_duration",
    "register_metric_listener",
    "unregister_metric_listener",
    "MetricRecord",
    "MetricsCollector",
    "ModelMetrics",
]
