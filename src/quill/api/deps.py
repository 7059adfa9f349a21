"""FastAPI dependencies for the cache components on app state."""

from __future__ import annotations

from fastapi import Request

from quill.cache.invalidation import CacheInvalidator
from quill.cache.store import KeyValueStore


def get_store(request: Request) -> KeyValueStore:
    """Key-value store owned by the application."""
    store: KeyValueStore = request.app.state.cache_store
    return store


def get_invalidator(request: Request) -> CacheInvalidator:
    """Invalidator for write endpoints to call after their mutation commits."""
    invalidator: CacheInvalidator = request.app.state.cache_invalidator
    return invalidator
