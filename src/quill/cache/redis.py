"""Redis store for the Quill response cache.

Wraps the redis-py async client with:
- Connection lifecycle owned by the store (connect, reconnect, close)
- Capped exponential backoff reconnection with a retry ceiling
- Non-throwing operations: failures are logged and reported as misses
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, TypeVar, cast
from urllib.parse import urlsplit

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from quill.cache.errors import StoreUnavailableError
from quill.cache.store import KeyValueStore
from quill.observability.metrics import record_cache_error

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that mean the connection itself is gone
_CONNECTION_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


class RedisConnectionState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


def _redacted(url: str) -> str:
    """Drop credentials from a Redis URL for logging."""
    parts = urlsplit(url)
    host = parts.hostname or ""
    netloc = f"{host}:{parts.port}" if parts.port else host
    return parts._replace(netloc=netloc).geturl()


class RedisStore(KeyValueStore):
    """Redis-backed cache store.

    Reconnection runs as a background task. While it runs, every operation
    degrades to its miss value instead of waiting for the connection.
    After ``max_reconnect_attempts`` failures the store stays in the FAILED
    state until ``connect()`` is called again.
    """

    def __init__(
        self,
        url: str,
        *,
        reconnect_delay_initial: float = 0.1,
        reconnect_delay_max: float = 3.0,
        reconnect_delay_multiplier: float = 2.0,
        max_reconnect_attempts: int = 10,
        socket_timeout: float = 2.0,
        scan_count: int = 500,
        client_factory: Callable[[], Redis] | None = None,
    ):
        self.url = url
        self.reconnect_delay_initial = reconnect_delay_initial
        self.reconnect_delay_max = reconnect_delay_max
        self.reconnect_delay_multiplier = reconnect_delay_multiplier
        self.max_reconnect_attempts = max_reconnect_attempts
        self.socket_timeout = socket_timeout
        self.scan_count = scan_count
        self._client_factory = client_factory or self._create_client

        self._client: Redis | None = None
        self._state = RedisConnectionState.DISCONNECTED
        self._lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task[None] | None = None
        self._current_delay = reconnect_delay_initial
        self._reconnect_attempts = 0
        self._closed = False

    def _create_client(self) -> Redis:
        return redis.from_url(  # type: ignore[no-untyped-call]
            self.url,
            decode_responses=False,
            socket_connect_timeout=self.socket_timeout,
            socket_timeout=self.socket_timeout,
        )

    @property
    def state(self) -> RedisConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    def is_healthy(self) -> bool:
        return self._state == RedisConnectionState.CONNECTED and self._client is not None

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> bool:
        """Connect to Redis, falling back to background reconnection.

        Returns:
            True if connected now, False if the store starts degraded.
        """
        self._closed = False
        if self._state == RedisConnectionState.FAILED:
            self._state = RedisConnectionState.DISCONNECTED
            self._reset_backoff()

        if await self._connect_once():
            return True

        self._schedule_reconnect()
        return False

    async def _connect_once(self) -> bool:
        async with self._lock:
            if self.is_healthy():
                return True

            self._state = RedisConnectionState.CONNECTING
            client = self._client_factory()
            try:
                await cast(Awaitable[bool], client.ping())
            except (RedisError, OSError) as e:
                self._state = RedisConnectionState.DISCONNECTED
                logger.error(f"Redis: failed to connect to {_redacted(self.url)}: {e}")
                await self._discard(client)
                return False

            self._client = client
            self._state = RedisConnectionState.CONNECTED
            self._reset_backoff()
            logger.info(f"Redis: connected to {_redacted(self.url)}")
            return True

    def _schedule_reconnect(self) -> None:
        if self._closed or self._state == RedisConnectionState.FAILED:
            return
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        """Background reconnection with capped exponential backoff."""
        self._state = RedisConnectionState.RECONNECTING

        while not self._closed:
            delay = self._current_delay
            logger.warning(
                f"Redis: reconnect attempt {self._reconnect_attempts + 1} in {delay:.1f}s"
            )
            await asyncio.sleep(delay)

            self._reconnect_attempts += 1
            if await self._connect_once():
                return

            if self._reconnect_attempts >= self.max_reconnect_attempts:
                self._state = RedisConnectionState.FAILED
                logger.error(
                    f"Redis: max reconnection attempts ({self.max_reconnect_attempts}) reached"
                )
                return

            self._state = RedisConnectionState.RECONNECTING
            self._current_delay = min(
                self._current_delay * self.reconnect_delay_multiplier,
                self.reconnect_delay_max,
            )

    def _reset_backoff(self) -> None:
        self._current_delay = self.reconnect_delay_initial
        self._reconnect_attempts = 0

    async def _mark_disconnected(self, client: Redis) -> None:
        """Drop ``client`` after a connection error raised on it.

        Errors from a client that was already replaced are ignored, so a late
        failure on an old socket never tears down a newer connection.
        """
        async with self._lock:
            if self._client is not client:
                return
            await self._discard(client)
            self._client = None
            if self._state == RedisConnectionState.CONNECTED:
                self._state = RedisConnectionState.DISCONNECTED
        self._schedule_reconnect()

    async def _discard(self, client: Redis) -> None:
        try:
            await client.aclose()
        except (RedisError, OSError) as e:
            logger.debug(f"Redis: error closing client: {e}")

    async def close(self) -> None:
        """Stop reconnecting and close the connection pool."""
        self._closed = True

        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        self._reconnect_task = None

        async with self._lock:
            if self._client is not None:
                await self._discard(self._client)
                self._client = None
            self._state = RedisConnectionState.DISCONNECTED

        logger.info("Redis: disconnected")

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def _require_client(self, operation: str) -> Redis:
        if not self.is_healthy() or self._client is None:
            raise StoreUnavailableError(operation, self._state.value)
        return self._client

    async def _run(
        self,
        operation: str,
        func: Callable[[Redis], Awaitable[T]],
        default: T,
    ) -> T:
        """Run a Redis call, degrading to ``default`` on any store failure."""
        try:
            client = self._require_client(operation)
        except StoreUnavailableError as e:
            logger.warning(f"Redis: {e}, skipping")
            return default

        try:
            return await func(client)
        except _CONNECTION_ERRORS as e:
            logger.error(f"Redis: connection lost during {operation}: {e}")
            record_cache_error(operation)
            await self._mark_disconnected(client)
            return default
        except RedisError as e:
            logger.error(f"Redis: error during {operation}: {e}")
            record_cache_error(operation)
            return default

    async def get(self, key: str) -> bytes | None:
        async def op(client: Redis) -> bytes | None:
            return cast(bytes | None, await client.get(key))

        return await self._run("get", op, None)

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> bool:
        async def op(client: Redis) -> bool:
            await client.set(key, value, ex=ttl_seconds)
            return True

        return await self._run("set", op, False)

    async def delete(self, key: str) -> bool:
        async def op(client: Redis) -> bool:
            await client.delete(key)
            return True

        return await self._run("delete", op, False)

    async def delete_pattern(self, pattern: str) -> bool:
        """Delete keys matching ``pattern`` using SCAN to avoid blocking Redis.

        Keys are deleted in batches; a failed batch is logged and the scan
        continues, but the overall result is False.
        """

        async def op(client: Redis) -> bool:
            ok = True
            deleted = 0
            batch: list[bytes] = []
            async for key in client.scan_iter(match=pattern, count=self.scan_count):
                batch.append(key)
                if len(batch) >= self.scan_count:
                    ok = await self._delete_batch(client, batch, pattern) and ok
                    deleted += len(batch)
                    batch = []
            if batch:
                ok = await self._delete_batch(client, batch, pattern) and ok
                deleted += len(batch)
            logger.debug(f"Redis: scanned {deleted} keys matching {pattern}")
            return ok

        return await self._run("delete_pattern", op, False)

    async def _delete_batch(self, client: Redis, keys: list[bytes], pattern: str) -> bool:
        try:
            await client.delete(*keys)
            return True
        except RedisError as e:
            logger.error(f"Redis: failed to delete {len(keys)} keys matching {pattern}: {e}")
            record_cache_error("delete_pattern")
            return False

    async def exists(self, key: str) -> bool:
        async def op(client: Redis) -> bool:
            return cast(int, await client.exists(key)) > 0

        return await self._run("exists", op, False)

    async def flush_all(self) -> bool:
        """Flush the configured Redis database."""

        async def op(client: Redis) -> bool:
            await client.flushdb()
            return True

        return await self._run("flush_all", op, False)

    async def health_check(self) -> dict[str, Any]:
        """Return connection health status."""
        result: dict[str, Any] = {
            "backend": "redis",
            "url": _redacted(self.url),
            "connected": False,
            "state": self._state.value,
            "reconnect_attempts": self._reconnect_attempts,
        }

        async def ping(client: Redis) -> bool:
            return bool(await cast(Awaitable[bool], client.ping()))

        start = time.monotonic()
        result["connected"] = await self._run("ping", ping, False)
        result["latency_ms"] = round((time.monotonic() - start) * 1000, 2)
        result["state"] = self._state.value
        return result
