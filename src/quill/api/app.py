"""FastAPI application factory for Quill.

Creates the application with:
- The response cache, invalidator and their store on ``app.state``
- Health, metrics and cache admin routers
- Correlation IDs on every request
- ORJSON for fast JSON serialization

Blog routers are included by the caller on the returned app; GET endpoints
decorated with ``quill.cache.cache`` pick up ``app.state.response_cache``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from quill import __version__
from quill.api.middleware import CorrelationMiddleware
from quill.api.routers import cache_admin, health
from quill.api.routers import metrics as metrics_router
from quill.cache.invalidation import CacheInvalidator
from quill.cache.middleware import ResponseCache
from quill.cache.store import KeyValueStore, create_store
from quill.config import settings
from quill.observability import configure_logging
from quill.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    On startup:
    - Configure structured logging
    - Initialize Prometheus metrics
    - Connect the cache store (a failed connect starts degraded)

    On shutdown:
    - Wait for pending cache writes
    - Close the cache store
    """
    configure_logging(
        json_format=settings.env != "dev",
        level=settings.log_level,
    )
    get_metrics()

    store: KeyValueStore = app.state.cache_store
    logger.info(f"Starting Quill ({settings.env})")
    if not await store.connect():
        logger.warning("Cache store unavailable at startup, serving uncached")

    yield

    logger.info("Shutting down Quill")
    await app.state.response_cache.drain()
    await store.close()


def create_app(store: KeyValueStore | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        store: Cache store to use; built from settings when omitted
    """
    app = FastAPI(
        title="Quill",
        description="Blog API with read-through response caching",
        version=__version__,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    if store is None:
        store = create_store(settings)
    app.state.cache_store = store
    app.state.response_cache = ResponseCache(
        store,
        lookup_timeout=settings.cache_lookup_timeout,
        write_timeout=settings.cache_write_timeout,
        key_prefix=settings.cache_key_prefix,
        default_ttl=settings.cache_default_ttl,
    )
    app.state.cache_invalidator = CacheInvalidator(
        store,
        key_prefix=settings.cache_key_prefix,
        tags_path=settings.tags_path,
    )
    app.state.admin_token = settings.admin_token

    app.add_middleware(CorrelationMiddleware)

    app.include_router(health.router)
    if settings.enable_metrics:
        app.include_router(metrics_router.router)
    app.include_router(cache_admin.router)

    return app
