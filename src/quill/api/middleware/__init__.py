"""Middleware for the Quill API."""

from quill.api.middleware.correlation import CorrelationMiddleware

__all__ = ["CorrelationMiddleware"]
