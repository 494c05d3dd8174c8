"""EVE Online data models (domain layer)."""

from .eve import EveAsset, EveAssetName, EvePosition, EveStructure

__all__ = [
    "EveAsset",
    "EveAssetName",
    "EvePosition",
    "EveStructure",
]
