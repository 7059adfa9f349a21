"""Error types for the response cache.

Only configuration errors ever reach callers. Store failures are absorbed at
the adapter boundary and degrade to cache misses.
"""

from __future__ import annotations


class CacheError(Exception):
    """Base exception for cache layer errors."""


class CacheConfigurationError(CacheError, ValueError):
    """Invalid cache configuration, raised at setup time."""


class StoreUnavailableError(CacheError):
    """The key-value store has no usable connection."""

    def __init__(self, operation: str, reason: str = "not connected"):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Store unavailable for {operation}: {reason}")
