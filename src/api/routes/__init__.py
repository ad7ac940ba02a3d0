"""Routers: `health` (probes) and `search` (public search, discovery and admin analytics)."""

from api.routes import health, search

__all__ = ["health", "search"]
