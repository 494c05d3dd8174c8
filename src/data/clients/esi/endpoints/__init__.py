"""ESI endpoint classes for organized API access."""

from .assets import AssetsEndpoints
from .universe import UniverseEndpoints

__all__ = [
    "AssetsEndpoints",
    "UniverseEndpoints",
]
