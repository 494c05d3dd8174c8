"""Application/business models (domain layer)."""

from .asset_tree import ROOT_LOCATION_FLAG, AssetSearchResult, AssetTreeNode
from .location import LocationInfoDetail, security_color, truncate_security

__all__ = [
    "ROOT_LOCATION_FLAG",
    "AssetSearchResult",
    "AssetTreeNode",
    "LocationInfoDetail",
    "security_color",
    "truncate_security",
]
