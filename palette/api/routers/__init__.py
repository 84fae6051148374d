"""API routers for Palette."""

from . import runs, sse

__all__ = ["runs", "sse"]
