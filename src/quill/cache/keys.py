"""Cache key schema for Quill.

Request key format: {prefix}:{METHOD}:{path}:{query_json}:{identity}

Where:
- prefix: "quill" (namespace shared with other Redis users)
- METHOD: upper-case HTTP method
- path: request path without trailing slash
- query_json: query parameters as JSON with sorted keys
- identity: "anon" or "auth:<sha256 of the Authorization header>"

Invalidation patterns are Redis-style globs matched against full keys, so
"quill:*posts*" covers every pagination/search/visibility variant of a listing.
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

import orjson

if TYPE_CHECKING:
    from starlette.requests import Request

ANONYMOUS = "anon"

_GLOB_SPECIAL = "*?["


def normalize_path(path: str) -> str:
    """Strip trailing slashes; the root path stays "/"."""
    stripped = path.rstrip("/")
    return stripped or "/"


def query_json(items: list[tuple[str, str]]) -> str:
    """Serialize query parameters deterministically.

    A parameter seen once maps to its value, a repeated one to the list of its
    values in request order.
    """
    grouped: dict[str, list[str]] = {}
    for name, value in items:
        grouped.setdefault(name, []).append(value)
    params = {name: values[0] if len(values) == 1 else values for name, values in grouped.items()}
    return orjson.dumps(params, option=orjson.OPT_SORT_KEYS).decode()


def caller_identity(authorization: str | None) -> str:
    """Identity component of a key; the raw credential is never stored."""
    if not authorization:
        return ANONYMOUS
    digest = hashlib.sha256(authorization.encode()).hexdigest()
    return f"auth:{digest}"


def escape_glob(value: str) -> str:
    """Escape glob metacharacters so an identifier matches only itself.

    Uses single-character classes ("[*]"), understood by both Redis MATCH and
    fnmatch. A backslash is Redis's escape character but a literal for
    fnmatch, so it becomes "?": both read that the same way, at the cost of
    matching any single character in its place.
    """
    return "".join(_escape_char(ch) for ch in value)


def _escape_char(ch: str) -> str:
    if ch == "\\":
        return "?"
    return f"[{ch}]" if ch in _GLOB_SPECIAL else ch


class CacheKeys:
    """Cache key generator following consistent naming convention."""

    PREFIX = "quill"

    def __init__(self, prefix: str = PREFIX):
        self.prefix = prefix

    # -------------------------------------------------------------------------
    # Request keys
    # -------------------------------------------------------------------------

    def build(
        self,
        method: str,
        path: str,
        query_items: list[tuple[str, str]],
        authorization: str | None = None,
    ) -> str:
        """Key for a cached response."""
        return ":".join(
            (
                self.prefix,
                method.upper(),
                normalize_path(path),
                query_json(query_items),
                caller_identity(authorization),
            )
        )

    def for_request(self, request: Request) -> str:
        """Default key function: method, path, query and caller identity."""
        return self.build(
            request.method,
            request.url.path,
            request.query_params.multi_items(),
            request.headers.get("authorization"),
        )

    # -------------------------------------------------------------------------
    # Resource keys for manual caching
    # -------------------------------------------------------------------------

    def post(self, post_id: str) -> str:
        return f"{self.prefix}:post:{post_id}"

    def posts(
        self, page: int | None = None, limit: int | None = None, search: str | None = None
    ) -> str:
        params = ":".join(str(p) for p in (page, limit, search) if p)
        base = f"{self.prefix}:posts"
        return f"{base}:{params}" if params else base

    def user(self, user_id: str) -> str:
        return f"{self.prefix}:user:{user_id}"

    def comments(self, post_id: str) -> str:
        return f"{self.prefix}:comments:{post_id}"

    def tags(self) -> str:
        return f"{self.prefix}:tags"

    def tag(self, slug: str) -> str:
        return f"{self.prefix}:tag:{slug}"

    def search(self, query: str, page: int | None = None) -> str:
        base = f"{self.prefix}:search:{query}"
        return f"{base}:{page}" if page else base

    # -------------------------------------------------------------------------
    # Invalidation patterns
    # -------------------------------------------------------------------------

    def post_patterns(self, post_id: str) -> list[str]:
        """Post lists, the post itself, its comments, and every search result."""
        post = escape_glob(post_id)
        return [
            f"{self.prefix}:*posts*",
            f"{self.prefix}:post:{post}",
            f"{self.prefix}:*comments*{post}*",
            f"{self.prefix}:*search*",
        ]

    def tag_patterns(self, tags_path: str = "/api/tags") -> list[str]:
        """Tag list plus post lists and searches, which filter by tag."""
        path = escape_glob(normalize_path(tags_path))
        return [
            f"{self.prefix}:GET:{path}*",
            f"{self.prefix}:*tag*",
            f"{self.prefix}:*posts*",
            f"{self.prefix}:*search*",
        ]

    def user_patterns(self, user_id: str) -> list[str]:
        """User-scoped entries and post lists, which include per-user views."""
        return [f"{self.prefix}:*user*{escape_glob(user_id)}*", f"{self.prefix}:*posts*"]
