from .asset_snapshot_cache import AssetSnapshot, AssetSnapshotCache
from .static_lookup import DEFAULT_ICON, SQLiteStaticLookup, StaticLookup

__all__ = [
    "DEFAULT_ICON",
    "AssetSnapshot",
    "AssetSnapshotCache",
    "SQLiteStaticLookup",
    "StaticLookup",
]
