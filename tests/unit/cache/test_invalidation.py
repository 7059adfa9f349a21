"""Tests for cache invalidation on writes."""

from unittest.mock import AsyncMock

import pytest

from quill.cache.invalidation import CacheInvalidator, MutationEvent
from quill.cache.keys import CacheKeys
from quill.cache.store import MemoryStore


async def seed(store: MemoryStore) -> dict[str, str]:
    """Populate a store with one entry per resource kind."""
    keys = CacheKeys()
    seeded = {
        "listing": keys.build("GET", "/api/posts", [("status", "PUBLISHED")]),
        "user_listing": keys.build("GET", "/api/users/u1/posts", []),
        "tags": keys.build("GET", "/api/tags", []),
        "post": keys.post("p1"),
        "other_post": keys.post("p2"),
        "comments": keys.comments("p1"),
        "other_comments": keys.comments("p2"),
        "search": keys.search("redis"),
        "user": keys.user("u1"),
        "other_user": keys.user("u2"),
        "foreign": "other-app:GET:/api/posts:{}:anon",
    }
    for key in seeded.values():
        await store.set(key, b"{}", 300)
    return seeded


class TestCacheInvalidator:
    """Test CacheInvalidator operations."""

    @pytest.fixture
    def store(self) -> MemoryStore:
        return MemoryStore()

    @pytest.fixture
    def invalidator(self, store: MemoryStore) -> CacheInvalidator:
        return CacheInvalidator(store)

    async def remaining(self, store: MemoryStore, seeded: dict[str, str]) -> set[str]:
        return {name for name, key in seeded.items() if await store.exists(key)}

    @pytest.mark.asyncio
    async def test_invalidate_post(self, store: MemoryStore, invalidator: CacheInvalidator) -> None:
        seeded = await seed(store)

        assert await invalidator.invalidate_post("p1")

        assert await self.remaining(store, seeded) == {
            "tags",
            "other_post",
            "other_comments",
            "user",
            "other_user",
            "foreign",
        }

    @pytest.mark.asyncio
    async def test_invalidate_tags(self, store: MemoryStore, invalidator: CacheInvalidator) -> None:
        seeded = await seed(store)

        assert await invalidator.invalidate_tags()

        assert await self.remaining(store, seeded) == {
            "post",
            "other_post",
            "comments",
            "other_comments",
            "user",
            "other_user",
            "foreign",
        }

    @pytest.mark.asyncio
    async def test_invalidate_user(self, store: MemoryStore, invalidator: CacheInvalidator) -> None:
        seeded = await seed(store)

        assert await invalidator.invalidate_user("u1")

        remaining = await self.remaining(store, seeded)
        assert "user" not in remaining
        assert "listing" not in remaining
        assert "other_user" in remaining
        assert "tags" in remaining

    @pytest.mark.asyncio
    async def test_invalidate_all(self, store: MemoryStore, invalidator: CacheInvalidator) -> None:
        await seed(store)

        assert await invalidator.invalidate_all()

        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_custom_tags_path(self, store: MemoryStore) -> None:
        invalidator = CacheInvalidator(store, tags_path="/v2/labels")
        key = CacheKeys().build("GET", "/v2/labels", [])
        await store.set(key, b"{}", 300)

        await invalidator.invalidate_tags()

        assert not await store.exists(key)

    @pytest.mark.asyncio
    async def test_failed_pattern_does_not_stop_the_rest(self) -> None:
        store = MemoryStore()
        store.delete_pattern = AsyncMock(  # type: ignore[method-assign]
            side_effect=[False, True, True, True]
        )
        invalidator = CacheInvalidator(store)

        assert not await invalidator.invalidate_post("p1")
        assert store.delete_pattern.await_count == 4

    @pytest.mark.asyncio
    async def test_unavailable_store_reports_failure(
        self, store: MemoryStore, invalidator: CacheInvalidator
    ) -> None:
        store.set_available(False)

        assert not await invalidator.invalidate_post("p1")
        assert not await invalidator.invalidate_all()


class TestMutationEvents:
    """Test event-to-invalidation mapping."""

    @pytest.fixture
    def invalidator(self) -> CacheInvalidator:
        invalidator = CacheInvalidator(MemoryStore())
        invalidator.invalidate_post = AsyncMock(return_value=True)  # type: ignore[method-assign]
        invalidator.invalidate_tags = AsyncMock(return_value=True)  # type: ignore[method-assign]
        invalidator.invalidate_user = AsyncMock(return_value=True)  # type: ignore[method-assign]
        return invalidator

    @pytest.mark.parametrize(
        "event",
        [
            MutationEvent.POST_CREATED,
            MutationEvent.POST_UPDATED,
            MutationEvent.POST_DELETED,
            MutationEvent.POST_LIKED,
            MutationEvent.POST_UNPUBLISHED,
            MutationEvent.COMMENT_CREATED,
            MutationEvent.COMMENT_DELETED,
        ],
    )
    @pytest.mark.asyncio
    async def test_post_events(self, invalidator: CacheInvalidator, event: MutationEvent) -> None:
        assert await invalidator.handle(event, "p1")
        invalidator.invalidate_post.assert_awaited_once_with("p1")

    @pytest.mark.parametrize(
        "event",
        [MutationEvent.TAG_CREATED, MutationEvent.TAG_DELETED, MutationEvent.TAGS_CLEANED_UP],
    )
    @pytest.mark.asyncio
    async def test_tag_events_need_no_id(
        self, invalidator: CacheInvalidator, event: MutationEvent
    ) -> None:
        assert await invalidator.handle(event)
        invalidator.invalidate_tags.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_user_event(self, invalidator: CacheInvalidator) -> None:
        await invalidator.handle(MutationEvent.USER_UPDATED, "u1")
        invalidator.invalidate_user.assert_awaited_once_with("u1")

    @pytest.mark.asyncio
    async def test_event_by_value(self, invalidator: CacheInvalidator) -> None:
        await invalidator.handle("post_liked", "p1")  # type: ignore[arg-type]
        invalidator.invalidate_post.assert_awaited_once_with("p1")

    @pytest.mark.asyncio
    async def test_missing_id_is_rejected(self, invalidator: CacheInvalidator) -> None:
        with pytest.raises(ValueError, match="requires a resource id"):
            await invalidator.handle(MutationEvent.POST_CREATED)

    @pytest.mark.asyncio
    async def test_unknown_event_is_rejected(self, invalidator: CacheInvalidator) -> None:
        with pytest.raises(ValueError):
            await invalidator.handle("post_archived", "p1")  # type: ignore[arg-type]
