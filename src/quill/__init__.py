"""Quill: response caching for the Quill blog API."""

__version__ = "0.1.0"
