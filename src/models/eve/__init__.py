"""EVE Online data models (domain layer)."""

from .asset import EveAsset, EveAssetName
from .position import EvePosition
from .structure import EveStructure

__all__ = [
    "EveAsset",
    "EveAssetName",
    "EvePosition",
    "EveStructure",
]
