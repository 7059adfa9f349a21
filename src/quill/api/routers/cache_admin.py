"""Cache admin endpoints - manual flush and pattern invalidation.

Disabled (404) unless QUILL_ADMIN_TOKEN is configured. Callers present the
token in the X-Admin-Token header.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, Field

from quill.api.deps import get_invalidator, get_store
from quill.cache.invalidation import CacheInvalidator
from quill.cache.store import KeyValueStore

logger = logging.getLogger(__name__)

_MAX_PATTERN_LENGTH = 256


def require_admin_token(
    request: Request,
    x_admin_token: str | None = Header(default=None),
) -> None:
    """Reject callers that don't present the configured admin token."""
    expected: str | None = getattr(request.app.state, "admin_token", None)
    if not expected:
        raise HTTPException(status_code=404, detail="Not Found")
    if x_admin_token is None or not secrets.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=403, detail="Invalid admin token")


router = APIRouter(
    prefix="/admin/cache",
    tags=["Admin - Cache"],
    dependencies=[Depends(require_admin_token)],
)


def _validate_pattern(pattern: str) -> str:
    cleaned = pattern.strip()
    if not cleaned:
        raise HTTPException(status_code=400, detail="Pattern must not be empty")
    if len(cleaned) > _MAX_PATTERN_LENGTH:
        raise HTTPException(status_code=400, detail="Pattern is too long")
    return cleaned


class InvalidationRequest(BaseModel):
    """Glob pattern to invalidate (e.g. 'quill:*posts*')."""

    pattern: str = Field(..., description="Key pattern to invalidate")


class InvalidationResult(BaseModel):
    """Result of a cache invalidation operation."""

    success: bool
    pattern: str | None = None
    timestamp: datetime


@router.post("/flush", response_model=InvalidationResult)
async def flush_cache(
    invalidator: CacheInvalidator = Depends(get_invalidator),
) -> InvalidationResult:
    """Flush every cached entry.

    WARNING: Every subsequent read is a miss until the cache warms up again.
    """
    success = await invalidator.invalidate_all()
    logger.warning("Cache flushed via admin endpoint")
    return InvalidationResult(success=success, timestamp=datetime.now(timezone.utc))


@router.post("/invalidate", response_model=InvalidationResult)
async def invalidate_cache(
    body: InvalidationRequest,
    store: KeyValueStore = Depends(get_store),
) -> InvalidationResult:
    """Invalidate cache keys matching a glob pattern."""
    pattern = _validate_pattern(body.pattern)
    success = await store.delete_pattern(pattern)
    logger.info(f"Invalidated {pattern} via admin endpoint (success={success})")
    return InvalidationResult(
        success=success,
        pattern=pattern,
        timestamp=datetime.now(timezone.utc),
    )
