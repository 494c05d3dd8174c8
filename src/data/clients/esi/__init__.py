"""ESI client package."""

from .client import NetworkFetcher

__all__ = ["NetworkFetcher"]
