"""Observability module for Quill.

Provides metrics and structured logging:
- Prometheus cache metrics
- JSON structured logging with correlation IDs
"""

from quill.observability.logging import (
    LogContext,
    configure_logging,
    correlation_id_var,
    request_id_var,
)
from quill.observability.metrics import get_metrics, metrics_registry

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "request_id_var",
    "correlation_id_var",
    # Metrics
    "get_metrics",
    "metrics_registry",
]
