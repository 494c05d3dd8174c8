"""Network clients for the ESI API."""

from .esi.auth import StaticTokenProvider, TokenProvider
from .esi.cache import CacheEntry, FileTier, MemoryTier, TieredCache
from .esi.client import NetworkFetcher
from .esi.rate_limit import RateLimiter
from .esi.retry import RequestRetrier

__all__ = [
    "CacheEntry",
    "FileTier",
    "MemoryTier",
    "NetworkFetcher",
    "RateLimiter",
    "RequestRetrier",
    "StaticTokenProvider",
    "TieredCache",
    "TokenProvider",
]
