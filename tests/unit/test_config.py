"""Tests for application settings."""

import pytest

from quill.config import CacheTTL, Settings


class TestCacheTTL:
    """Test per-resource TTL defaults."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("QUILL_CACHE_TTL", raising=False)
        ttl = Settings(_env_file=None).cache_ttl
        assert ttl == CacheTTL(
            post_list=300,
            post_by_slug=600,
            tag_list=600,
            user_posts=60,
            comment_list=300,
        )

    def test_json_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Overriding one TTL keeps the other defaults."""
        monkeypatch.setenv("QUILL_CACHE_TTL", '{"post_list": 120, "user_posts": 30}')

        ttl = Settings(_env_file=None).cache_ttl

        assert ttl.post_list == 120
        assert ttl.user_posts == 30
        assert ttl.tag_list == 600


class TestSettings:
    """Test environment aliases."""

    def test_cache_timeouts_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CACHE_LOOKUP_TIMEOUT", "0.1")
        monkeypatch.setenv("CACHE_WRITE_TIMEOUT", "2.5")

        current = Settings(_env_file=None)

        assert current.cache_lookup_timeout == 0.1
        assert current.cache_write_timeout == 2.5

    def test_redis_url_alias(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")
        assert Settings(_env_file=None).redis_url == "redis://cache:6379/2"
