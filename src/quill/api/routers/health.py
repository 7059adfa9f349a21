"""Health check endpoints for Quill.

- /health       - Process status plus cache store status
- /health/live  - Liveness check (always OK if the process is running)

A cache outage is reported but never makes the service unhealthy: caching
is an optimization and every endpoint still answers without it.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends

from quill.api.deps import get_store
from quill.cache.store import KeyValueStore
from quill.config import settings

router = APIRouter(tags=["health"])

HEALTH_CHECK_TIMEOUT = 2.0  # seconds


async def check_cache(store: KeyValueStore) -> dict[str, Any]:
    """Check cache store connectivity without failing the request."""
    start = time.monotonic()
    try:
        details = await asyncio.wait_for(store.health_check(), timeout=HEALTH_CHECK_TIMEOUT)
    except asyncio.TimeoutError:
        details = {"connected": False, "message": "Cache health check timed out"}
    details["latency_ms"] = round((time.monotonic() - start) * 1000, 2)
    return details


@router.get("/health")
async def health(store: KeyValueStore = Depends(get_store)) -> dict[str, Any]:
    """Service health with cache status.

    Always 200: a disconnected cache is a degradation, not a failure.
    """
    cache = await check_cache(store)
    return {
        "status": "healthy",
        "cache": "connected" if cache.get("connected") else "disconnected",
        "cache_details": cache,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.app_name,
    }


@router.get("/health/live")
async def live() -> dict[str, str]:
    """Liveness check."""
    return {"status": "ok"}
