"""Service layer for the asset tree.

Domain-oriented submodules:
    asset_service: asset tree loading, search & region grouping
    asset_tree_builder: ownership forest construction
    display_grouper: flag grouping & stacking for presentation
    location_service: location resolution & structure caching

"""

from .asset_service import AssetService
from .asset_tree_builder import AssetTreeBuilder
from .display_grouper import DisplayGrouper, normalize_flag
from .location_service import LocationResolver, classify_location

__all__ = [
    "AssetService",
    "AssetTreeBuilder",
    "DisplayGrouper",
    "LocationResolver",
    "classify_location",
    "normalize_flag",
]
