"""Key-value store interface for the response cache.

Defines the contract the cache layer needs from its backing store and an
in-memory implementation for single-process deployments and tests.

Every data operation is best-effort: failures are logged and reported as a
miss (None/False), never raised to the caller.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from quill.config import Settings

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Abstract base class for cache stores."""

    @abstractmethod
    async def connect(self) -> bool:
        """Open the store. Returns False if it starts degraded."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release connections; the store is unusable afterwards."""
        ...

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return the stored value, or None on miss or unavailability."""
        ...

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl_seconds: int) -> bool:
        """Store a value with expiry. Returns False on failure."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a single key."""
        ...

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> bool:
        """Delete every key matching a glob pattern.

        An empty match set is a success.
        """
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether a live entry exists for the key."""
        ...

    @abstractmethod
    async def flush_all(self) -> bool:
        """Remove every entry."""
        ...

    @abstractmethod
    def is_healthy(self) -> bool:
        """Current availability, without a round trip."""
        ...

    async def health_check(self) -> dict[str, Any]:
        """Return store health details for diagnostics."""
        return {"backend": type(self).__name__, "connected": self.is_healthy()}


@dataclass
class _Entry:
    value: bytes
    expires_at: float


class MemoryStore(KeyValueStore):
    """Dict-backed store with per-entry expiry.

    Expired entries are evicted lazily when touched. The clock is injectable
    so expiry can be tested without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._available = True

    def set_available(self, available: bool) -> None:
        """Simulate an outage (False) or recovery (True)."""
        self._available = available

    def is_healthy(self) -> bool:
        return self._available

    async def connect(self) -> bool:
        return self._available

    async def close(self) -> None:
        self._entries.clear()

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    def _unavailable(self, operation: str) -> bool:
        if self._available:
            return False
        logger.warning(f"Memory store unavailable, skipping {operation}")
        return True

    async def get(self, key: str) -> bytes | None:
        if self._unavailable("get"):
            return None
        entry = self._live(key)
        return entry.value if entry else None

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> bool:
        if self._unavailable("set"):
            return False
        self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl_seconds)
        return True

    async def delete(self, key: str) -> bool:
        if self._unavailable("delete"):
            return False
        self._entries.pop(key, None)
        return True

    async def delete_pattern(self, pattern: str) -> bool:
        if self._unavailable("delete_pattern"):
            return False
        matched = [key for key in self._entries if fnmatchcase(key, pattern)]
        for key in matched:
            del self._entries[key]
        logger.debug(f"Deleted {len(matched)} keys matching {pattern}")
        return True

    async def exists(self, key: str) -> bool:
        if self._unavailable("exists"):
            return False
        return self._live(key) is not None

    async def flush_all(self) -> bool:
        if self._unavailable("flush_all"):
            return False
        self._entries.clear()
        return True

    async def health_check(self) -> dict[str, Any]:
        return {
            "backend": "memory",
            "connected": self._available,
            "keys": len(self._entries),
        }

    def __len__(self) -> int:
        return len(self._entries)


def create_store(settings: Settings) -> KeyValueStore:
    """Create a store based on configuration."""
    backend = settings.cache_backend.lower()

    if backend in {"memory", "inmemory", "in_memory"}:
        return MemoryStore()

    if backend == "redis":
        from quill.cache.redis import RedisStore

        return RedisStore(
            settings.redis_url,
            reconnect_delay_initial=settings.redis_reconnect_delay_initial,
            reconnect_delay_max=settings.redis_reconnect_delay_max,
            reconnect_delay_multiplier=settings.redis_reconnect_delay_multiplier,
            max_reconnect_attempts=settings.redis_max_reconnect_attempts,
            socket_timeout=settings.redis_socket_timeout,
        )

    raise ValueError("Unsupported cache_backend. Supported values: memory, redis.")
