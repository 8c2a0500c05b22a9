"""
Observability Module for the ERP Vector Sync Pipeline

Provides:
- Structured logging with correlation IDs
- Metrics collection (sync runs, record throughput, restrictions, phase timings)
"""

from core.observability.metrics import (
    MetricsCollector,
    get_metrics,
    record_sync_started,
    record_sync_completed,
    record_sync_failed,
    record_field_restricted,
    record_processing_time,
)

from core.observability.logging import (
    get_logger,
    CorrelationContext,
    with_correlation,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "record_sync_started",
    "record_sync_completed",
    "record_sync_failed",
    "record_field_restricted",
    "record_processing_time",
    # Logging
    "get_logger",
    "CorrelationContext",
    "with_correlation",
]
