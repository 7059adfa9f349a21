"""Prometheus metrics for the Quill response cache.

Provides metrics collection and exposure:
- Cache hits and misses
- Store lookup latency
- Store operation errors
- Invalidation operations

Usage:
    from quill.observability.metrics import record_cache_hit

    record_cache_hit()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from quill.config import settings

logger = logging.getLogger(__name__)


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    cache_hits_total: Any = None
    cache_misses_total: Any = None
    cache_errors_total: Any = None
    cache_invalidations_total: Any = None
    cache_lookup_duration_seconds: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        from prometheus_client import REGISTRY, Counter, Histogram

        self._registry = REGISTRY

        self.cache_hits_total = Counter(
            "quill_cache_hits_total",
            "Response cache hits",
        )

        self.cache_misses_total = Counter(
            "quill_cache_misses_total",
            "Response cache misses",
        )

        self.cache_errors_total = Counter(
            "quill_cache_errors_total",
            "Store operation failures absorbed by the cache",
            ["operation"],
        )

        self.cache_invalidations_total = Counter(
            "quill_cache_invalidations_total",
            "Cache invalidation operations",
            ["operation"],
        )

        self.cache_lookup_duration_seconds = Histogram(
            "quill_cache_lookup_duration_seconds",
            "Store lookup latency in seconds",
            buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5),
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    @property
    def enabled(self) -> bool:
        return self._registry is not None

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if not self.enabled:
            return b"# Metrics disabled\n"

        from prometheus_client import generate_latest

        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


def record_cache_hit() -> None:
    metrics = get_metrics()
    if metrics.cache_hits_total is not None:
        metrics.cache_hits_total.inc()


def record_cache_miss() -> None:
    metrics = get_metrics()
    if metrics.cache_misses_total is not None:
        metrics.cache_misses_total.inc()


def record_cache_error(operation: str) -> None:
    """Record a store failure that was degraded to a miss."""
    metrics = get_metrics()
    if metrics.cache_errors_total is not None:
        metrics.cache_errors_total.labels(operation=operation).inc()


def record_invalidation(operation: str) -> None:
    metrics = get_metrics()
    if metrics.cache_invalidations_total is not None:
        metrics.cache_invalidations_total.labels(operation=operation).inc()


def observe_lookup(duration: float) -> None:
    metrics = get_metrics()
    if metrics.cache_lookup_duration_seconds is not None:
        metrics.cache_lookup_duration_seconds.observe(duration)
