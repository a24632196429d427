"""
Observability Module for the fuel reconciliation service

Provides:
- Structured logging with correlation IDs
- Metrics collection (reconciliation outcomes, yard linking, conflicts, timings)
"""

from core.observability.metrics import (
    MetricsCollector,
    get_metrics,
    record_processing_time,
)

from core.observability.logging import (
    configure_logging,
    get_logger,
    CorrelationContext,
    with_correlation,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "record_processing_time",
    # Logging
    "configure_logging",
    "get_logger",
    "CorrelationContext",
    "with_correlation",
]
