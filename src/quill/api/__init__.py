"""HTTP layer for Quill: application factory, routers and middleware."""

from quill.api.app import create_app

__all__ = ["create_app"]
