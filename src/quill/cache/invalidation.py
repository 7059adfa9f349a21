"""Cache invalidation on writes.

Write endpoints call the invalidator after their mutation has committed.
Each operation deletes every cache entry whose key matches a glob pattern
tied to the changed resource. Patterns are deliberately broad: a write may
purge more than it strictly needs to, never less.

Invalidation is best-effort. A failed deletion is logged and the remaining
patterns still run; the write that triggered it has already succeeded and
TTL bounds how long a missed entry can stay stale.

Example:
    invalidator = CacheInvalidator(store)

    post = await posts.create(...)
    await invalidator.handle(MutationEvent.POST_CREATED, post.id)
"""

from __future__ import annotations

import logging
from enum import Enum

from quill.cache.keys import CacheKeys
from quill.cache.store import KeyValueStore
from quill.observability.metrics import record_invalidation

logger = logging.getLogger(__name__)


class MutationEvent(str, Enum):
    """Resource mutations that require cache invalidation."""

    POST_CREATED = "post_created"
    POST_UPDATED = "post_updated"
    POST_DELETED = "post_deleted"
    POST_LIKED = "post_liked"
    POST_UNPUBLISHED = "post_unpublished"
    TAG_CREATED = "tag_created"
    TAG_DELETED = "tag_deleted"
    TAGS_CLEANED_UP = "tags_cleaned_up"
    COMMENT_CREATED = "comment_created"
    COMMENT_DELETED = "comment_deleted"
    USER_UPDATED = "user_updated"


_POST_EVENTS = frozenset(
    {
        MutationEvent.POST_CREATED,
        MutationEvent.POST_UPDATED,
        MutationEvent.POST_DELETED,
        MutationEvent.POST_LIKED,
        MutationEvent.POST_UNPUBLISHED,
        # Comment events carry the post id; post payloads embed comment counts
        MutationEvent.COMMENT_CREATED,
        MutationEvent.COMMENT_DELETED,
    }
)
_TAG_EVENTS = frozenset(
    {MutationEvent.TAG_CREATED, MutationEvent.TAG_DELETED, MutationEvent.TAGS_CLEANED_UP}
)


class CacheInvalidator:
    """Purges cache entries affected by resource mutations."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        key_prefix: str = CacheKeys.PREFIX,
        tags_path: str = "/api/tags",
    ):
        self.store = store
        self.keys = CacheKeys(key_prefix)
        self.tags_path = tags_path

    async def _delete_patterns(self, operation: str, patterns: list[str]) -> bool:
        ok = True
        for pattern in patterns:
            if not await self.store.delete_pattern(pattern):
                logger.warning(f"Invalidation of {pattern} failed during {operation}")
                ok = False
        record_invalidation(operation)
        return ok

    async def invalidate_post(self, post_id: str) -> bool:
        """Invalidate post lists, the post, its comments and searches."""
        ok = await self._delete_patterns("post", self.keys.post_patterns(post_id))
        logger.info(f"Invalidated caches for post: {post_id}")
        return ok

    async def invalidate_tags(self) -> bool:
        """Invalidate the tag list and everything filterable by tag."""
        ok = await self._delete_patterns("tags", self.keys.tag_patterns(self.tags_path))
        logger.info("Invalidated tag-related caches")
        return ok

    async def invalidate_user(self, user_id: str) -> bool:
        """Invalidate user-scoped entries and post lists."""
        ok = await self._delete_patterns("user", self.keys.user_patterns(user_id))
        logger.info(f"Invalidated caches for user: {user_id}")
        return ok

    async def invalidate_all(self) -> bool:
        """Flush every entry in the store (nuclear option)."""
        ok = await self.store.flush_all()
        record_invalidation("all")
        if ok:
            logger.info("All caches invalidated")
        else:
            logger.warning("Full cache flush failed")
        return ok

    async def handle(self, event: MutationEvent, resource_id: str | None = None) -> bool:
        """Run the invalidation matching a mutation event.

        Args:
            event: The committed mutation
            resource_id: Post id for post and comment events, user id for
                user events; unused for tag events

        Raises:
            ValueError: If the event needs an id and none was given.
        """
        event = MutationEvent(event)
        if event in _TAG_EVENTS:
            return await self.invalidate_tags()

        if not resource_id:
            raise ValueError(f"{event.value} invalidation requires a resource id")

        if event in _POST_EVENTS:
            return await self.invalidate_post(resource_id)
        return await self.invalidate_user(resource_id)
