"""Global pytest configuration and fixtures.

Unit tests never talk to a real Redis: the default backend is switched to
the in-memory store before quill.config builds its settings.
"""

from __future__ import annotations

import os

os.environ.setdefault("QUILL_CACHE_BACKEND", "memory")
os.environ.setdefault("QUILL_ENV", "test")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "redis: test needs a reachable Redis at REDIS_URL"
    )
