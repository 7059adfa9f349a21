"""Read-through response caching for FastAPI GET endpoints.

Usage:
    from quill.cache import cache

    @router.get("/api/posts")
    @cache(ttl_seconds=300)
    async def list_posts(status: str = "PUBLISHED") -> dict:
        ...

On a hit the stored JSON bytes are returned and the endpoint never runs. On a
miss the endpoint runs, its result is serialized with orjson and returned,
and the store write happens in a background task so the response never waits
for it. Store failures, slow lookups and malformed entries all degrade to a
miss.

The ResponseCache is looked up on ``request.app.state.response_cache`` so the
store is injected by the application factory rather than held globally.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import time
from collections.abc import Awaitable, Coroutine
from typing import Any, Callable, TypeVar

import orjson
from fastapi.dependencies.utils import get_typed_signature
from fastapi.encoders import jsonable_encoder
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import Response

from quill.cache.errors import CacheConfigurationError
from quill.cache.keys import CacheKeys
from quill.cache.store import KeyValueStore
from quill.observability.metrics import (
    observe_lookup,
    record_cache_error,
    record_cache_hit,
    record_cache_miss,
)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])
KeyFn = Callable[[Request], str]
SkipFn = Callable[[Request], bool]

CACHE_HEADER = "X-Cache"
JSON_MEDIA_TYPE = "application/json"
READ_METHODS = frozenset({"GET"})

DEFAULT_TTL = 300  # 5 minutes
DEFAULT_LOOKUP_TIMEOUT = 0.25
DEFAULT_WRITE_TIMEOUT = 1.0

# Name of the Request parameter added to endpoints that don't declare one
_INJECTED_REQUEST = "__quill_cache_request"


def validate_ttl(ttl_seconds: Any) -> int:
    """Reject anything but a positive int (bool included)."""
    if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int) or ttl_seconds <= 0:
        raise CacheConfigurationError(
            f"ttl_seconds must be a positive integer, got {ttl_seconds!r}"
        )
    return ttl_seconds


class ResponseCache:
    """Cache-aside lookups against an injected key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT,
        key_prefix: str = CacheKeys.PREFIX,
        default_ttl: int = DEFAULT_TTL,
    ):
        for name, value in (("lookup_timeout", lookup_timeout), ("write_timeout", write_timeout)):
            if value <= 0:
                raise CacheConfigurationError(f"{name} must be positive, got {value!r}")
        self.store = store
        self.lookup_timeout = lookup_timeout
        self.write_timeout = write_timeout
        self.default_ttl = validate_ttl(default_ttl)
        self.keys = CacheKeys(key_prefix)
        self._pending: set[asyncio.Task[None]] = set()

    def default_key(self, request: Request) -> str:
        return self.keys.for_request(request)

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    async def lookup(self, key: str) -> bytes | None:
        """Fetch a cached JSON body, treating every failure as a miss."""
        start = time.perf_counter()
        try:
            raw = await asyncio.wait_for(self.store.get(key), timeout=self.lookup_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Cache lookup timed out after {self.lookup_timeout}s: {key}")
            record_cache_error("get_timeout")
            return None
        except Exception as e:
            logger.error(f"Cache lookup failed for {key}: {e}")
            record_cache_error("get")
            return None
        finally:
            observe_lookup(time.perf_counter() - start)

        if raw is None:
            return None

        try:
            orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning(f"Discarding malformed cache entry: {key}")
            await self._discard(key)
            return None
        return raw

    async def fetch(
        self,
        key: str,
        ttl_seconds: int,
        compute: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Serve ``key`` from the store or compute, return and cache it.

        A Response returned by ``compute`` is passed through and never cached.
        """
        cached = await self.lookup(key)
        if cached is not None:
            logger.debug(f"Cache HIT: {key}", extra={"cache_key": key, "cache_status": "HIT"})
            record_cache_hit()
            return Response(
                content=cached, media_type=JSON_MEDIA_TYPE, headers={CACHE_HEADER: "HIT"}
            )

        logger.debug(f"Cache MISS: {key}", extra={"cache_key": key, "cache_status": "MISS"})
        record_cache_miss()

        result = await compute()
        if isinstance(result, Response):
            return result

        body = orjson.dumps(jsonable_encoder(result))
        self._spawn(self._write(key, body, ttl_seconds))
        return Response(
            content=body, media_type=JSON_MEDIA_TYPE, headers={CACHE_HEADER: "MISS"}
        )

    # -------------------------------------------------------------------------
    # Background writes
    # -------------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, key: str, body: bytes, ttl_seconds: int) -> None:
        try:
            stored = await asyncio.wait_for(
                self.store.set(key, body, ttl_seconds), timeout=self.write_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Cache write timed out after {self.write_timeout}s: {key}")
            record_cache_error("set_timeout")
            return
        except Exception as e:
            logger.error(f"Failed to cache response for {key}: {e}")
            record_cache_error("set")
            return

        if stored:
            logger.debug(
                f"Cached: {key} (TTL: {ttl_seconds}s)",
                extra={"cache_key": key, "ttl_seconds": ttl_seconds},
            )
        else:
            logger.warning(f"Cache write skipped for {key}")

    async def _discard(self, key: str) -> None:
        try:
            await self.store.delete(key)
        except Exception as e:
            logger.error(f"Failed to discard cache entry {key}: {e}")
            record_cache_error("delete")

    async def drain(self) -> None:
        """Wait for pending background writes.

        Each write is bounded by ``write_timeout``, so this always returns.
        """
        while self._pending:
            pending = list(self._pending)
            await asyncio.gather(*pending, return_exceptions=True)
            self._pending.difference_update(pending)

    # -------------------------------------------------------------------------
    # Manual cache helpers
    # -------------------------------------------------------------------------

    async def get_json(self, key: str) -> Any | None:
        """Get a cached JSON value, or None."""
        raw = await self.lookup(key)
        return orjson.loads(raw) if raw is not None else None

    async def set_json(self, key: str, data: Any, ttl_seconds: int | None = None) -> bool:
        """Cache a JSON-serializable value."""
        ttl = validate_ttl(ttl_seconds if ttl_seconds is not None else self.default_ttl)
        return await self.store.set(key, orjson.dumps(jsonable_encoder(data)), ttl)

    async def delete(self, key: str) -> bool:
        return await self.store.delete(key)

    async def delete_pattern(self, pattern: str) -> bool:
        return await self.store.delete_pattern(pattern)

    async def exists(self, key: str) -> bool:
        return await self.store.exists(key)


def _is_request_param(parameter: inspect.Parameter) -> bool:
    annotation = parameter.annotation
    return inspect.isclass(annotation) and issubclass(annotation, Request)


def _with_request_param(signature: inspect.Signature) -> inspect.Signature:
    """Add a keyword-only Request parameter ahead of any **kwargs."""
    params = list(signature.parameters.values())
    injected = inspect.Parameter(
        _INJECTED_REQUEST, inspect.Parameter.KEYWORD_ONLY, annotation=Request
    )
    if params and params[-1].kind == inspect.Parameter.VAR_KEYWORD:
        params.insert(len(params) - 1, injected)
    else:
        params.append(injected)
    return signature.replace(parameters=params)


def cache(
    ttl_seconds: int = DEFAULT_TTL,
    key_fn: KeyFn | None = None,
    skip_fn: SkipFn | None = None,
) -> Callable[[F], F]:
    """Cache a GET endpoint's JSON result for ``ttl_seconds``.

    Args:
        ttl_seconds: Entry lifetime, a positive integer
        key_fn: Custom key function; defaults to method + path + query + caller
        skip_fn: Return True to bypass the cache for a request

    Raises:
        CacheConfigurationError: If the configuration is invalid. Raised when
            the decorator is applied, before any request is served.
    """
    validate_ttl(ttl_seconds)
    if key_fn is not None and not callable(key_fn):
        raise CacheConfigurationError("key_fn must be callable")
    if skip_fn is not None and not callable(skip_fn):
        raise CacheConfigurationError("skip_fn must be callable")

    def decorator(func: F) -> F:
        signature = get_typed_signature(func)
        request_param = next(
            (p.name for p in signature.parameters.values() if _is_request_param(p)), None
        )
        if request_param is None:
            signature = _with_request_param(signature)
        is_async = inspect.iscoroutinefunction(func)

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            if request_param is None:
                request: Request = kwargs.pop(_INJECTED_REQUEST)
            else:
                request = kwargs[request_param]

            async def call() -> Any:
                if is_async:
                    return await func(*args, **kwargs)
                return await run_in_threadpool(func, *args, **kwargs)

            response_cache: ResponseCache | None = getattr(
                request.app.state, "response_cache", None
            )
            if response_cache is None:
                return await call()
            if request.method not in READ_METHODS or (skip_fn is not None and skip_fn(request)):
                return await call()

            key = key_fn(request) if key_fn is not None else response_cache.default_key(request)
            return await response_cache.fetch(key, ttl_seconds, call)

        wrapper.__signature__ = signature  # type: ignore[attr-defined]
        return wrapper  # type: ignore[return-value]

    return decorator
