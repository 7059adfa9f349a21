"""Response cache layer for Quill.

Provides read-through caching with the cache-aside pattern:
- GET endpoints wrapped with ``cache()`` are served from the store on a hit
- Writes invalidate affected entries by glob pattern after they commit
- TTL expiry bounds staleness even if invalidation is skipped
- Store outages degrade to uncached responses, never to errors
"""

from quill.cache.errors import CacheConfigurationError, CacheError, StoreUnavailableError
from quill.cache.invalidation import CacheInvalidator, MutationEvent
from quill.cache.keys import CacheKeys
from quill.cache.middleware import ResponseCache, cache
from quill.cache.redis import RedisConnectionState, RedisStore
from quill.cache.store import KeyValueStore, MemoryStore, create_store

__all__ = [
    # Middleware
    "ResponseCache",
    "cache",
    # Invalidation
    "CacheInvalidator",
    "MutationEvent",
    # Keys
    "CacheKeys",
    # Stores
    "KeyValueStore",
    "MemoryStore",
    "RedisStore",
    "RedisConnectionState",
    "create_store",
    # Errors
    "CacheError",
    "CacheConfigurationError",
    "StoreUnavailableError",
]
