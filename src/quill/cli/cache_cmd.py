"""CLI commands for maintaining the response cache.

Usage:
    quill cache check
    quill cache check --url redis://cache:6379/0
    quill cache flush --yes
    quill cache invalidate 'quill:*posts*'
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape

from quill.cache.middleware import ResponseCache
from quill.cache.redis import RedisStore
from quill.cache.store import KeyValueStore, create_store
from quill.config import settings
from quill.observability.logging import LogContext

app = typer.Typer(help="Inspect and maintain the response cache")
console = Console()

_URL_HELP = "Redis URL (defaults to REDIS_URL / the configured backend)"


def _build_store(url: str | None) -> KeyValueStore:
    if url:
        return RedisStore(
            url,
            max_reconnect_attempts=0,
            socket_timeout=settings.redis_socket_timeout,
        )
    return create_store(settings)


async def _run_check(store: KeyValueStore) -> list[tuple[str, bool, str]]:
    """Exercise every store operation against a throwaway namespace."""
    results: list[tuple[str, bool, str]] = []

    def record(name: str, ok: bool, detail: str = "") -> None:
        results.append((name, ok, detail))

    if not await store.connect():
        record("connect", False, "store unreachable")
        await store.close()
        return results
    record("connect", True)

    namespace = f"{settings.cache_key_prefix}:check:{uuid.uuid4().hex[:8]}"
    response_cache = ResponseCache(store, key_prefix=settings.cache_key_prefix)
    try:
        key = f"{namespace}:raw"
        stored = await store.set(key, b'{"ok":true}', 60)
        record("set/get", stored and await store.get(key) == b'{"ok":true}')

        payload = {"posts": [], "pagination": {"total": 0, "pages": 0}}
        json_key = f"{namespace}:json"
        await response_cache.set_json(json_key, payload, 60)
        record("json helpers", await response_cache.get_json(json_key) == payload)

        await store.delete_pattern(f"{namespace}:*")
        left = [await store.exists(k) for k in (key, json_key)]
        record("pattern delete", not any(left))

        health: dict[str, Any] = await store.health_check()
        record("health", bool(health.get("connected")), str(health))
    finally:
        await store.delete_pattern(f"{namespace}:*")
        await store.close()
    return results


@app.command("check")
def check(url: str | None = typer.Option(None, "--url", "-u", help=_URL_HELP)) -> None:
    """Smoke test the cache store."""
    results = asyncio.run(_run_check(_build_store(url)))

    failed = False
    for name, ok, detail in results:
        mark = "[green]OK[/green]" if ok else "[red]FAIL[/red]"
        console.print(f"{mark} {name}" + (f" [dim]{escape(detail)}[/dim]" if detail else ""))
        failed = failed or not ok

    if failed:
        raise typer.Exit(1)
    console.print("[green]Cache store is healthy[/green]")


async def _flush(store: KeyValueStore) -> bool:
    try:
        if not await store.connect():
            return False
        return await store.flush_all()
    finally:
        await store.close()


@app.command("flush")
def flush(
    url: str | None = typer.Option(None, "--url", "-u", help=_URL_HELP),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Flush every entry in the cache store."""
    if not yes:
        typer.confirm("This removes every cached response. Continue?", abort=True)

    with LogContext(request_id="cli-flush"):
        flushed = asyncio.run(_flush(_build_store(url)))
    if not flushed:
        console.print("[red]Flush failed[/red]")
        raise typer.Exit(1)
    console.print("[green]Cache flushed[/green]")


async def _invalidate(store: KeyValueStore, pattern: str) -> bool:
    try:
        if not await store.connect():
            return False
        return await store.delete_pattern(pattern)
    finally:
        await store.close()


@app.command("invalidate")
def invalidate(
    pattern: str = typer.Argument(..., help="Glob pattern, e.g. 'quill:*posts*'"),
    url: str | None = typer.Option(None, "--url", "-u", help=_URL_HELP),
) -> None:
    """Delete every cache entry matching a glob pattern."""
    if not pattern.strip():
        console.print("[red]Pattern must not be empty[/red]")
        raise typer.Exit(2)

    with LogContext(request_id="cli-invalidate"):
        invalidated = asyncio.run(_invalidate(_build_store(url), pattern))
    if not invalidated:
        console.print(f"[red]Invalidation failed for {escape(pattern)}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Invalidated {escape(pattern)}[/green]")
