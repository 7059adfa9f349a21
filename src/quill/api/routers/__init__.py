"""API routers for Quill."""

from quill.api.routers import cache_admin, health, metrics

__all__ = ["cache_admin", "health", "metrics"]
