"""Disk-based snapshot of each owner's built asset forest using diskcache."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

import diskcache

from models.app import AssetTreeNode

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_TTL = timedelta(hours=8)
KEY_PREFIX = "assets:"


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class AssetSnapshot:
    """The last successfully built forest for an owner."""

    owner_id: int
    forest: list[AssetTreeNode]
    timestamp: datetime
    stale: bool = False


class AssetSnapshotCache:
    """Wrapper around diskcache storing one forest per owner.

    Entries are kept past their TTL so a failed refresh can fall back to the
    last known tree; ``load`` only returns them when asked to.
    """

    def __init__(
        self,
        cache_dir: str | Path,
        ttl: timedelta = DEFAULT_SNAPSHOT_TTL,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """Initialize the cache.

        Args:
            cache_dir: Directory for cache storage
            ttl: Age after which a snapshot no longer counts as fresh
            clock: Source of timezone-aware "now"
        """
        self.cache_dir = Path(cache_dir)
        self.ttl = ttl
        self._clock = clock
        self._cache: diskcache.Cache | None = None

    @property
    def cache(self) -> diskcache.Cache:
        if self._cache is None:
            self._cache = diskcache.Cache(str(self.cache_dir))
        return self._cache

    @staticmethod
    def make_key(owner_id: int) -> str:
        return f"{KEY_PREFIX}{owner_id}"

    def load(self, owner_id: int, allow_expired: bool = False) -> AssetSnapshot | None:
        """Load an owner's snapshot.

        Args:
            owner_id: Owner whose forest to load
            allow_expired: Return snapshots older than the TTL (flagged stale)

        Returns:
            The snapshot, or None if absent, unreadable, or expired and not allowed
        """
        key = self.make_key(owner_id)
        cached = self.cache.get(key)
        if cached is None:
            return None

        try:
            timestamp = datetime.fromisoformat(cached["timestamp"])
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=UTC)
            forest = [AssetTreeNode.from_dict(node) for node in cached["forest"]]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding unreadable asset snapshot for %d: %s", owner_id, e)
            self.cache.delete(key)
            return None

        expired = self._clock() - timestamp >= self.ttl
        if expired and not allow_expired:
            logger.debug("Asset snapshot for %d expired (saved %s)", owner_id, timestamp)
            return None

        logger.info(
            "Loaded asset snapshot for %d (%d roots, saved %s%s)",
            owner_id,
            len(forest),
            timestamp.isoformat(),
            ", stale" if expired else "",
        )
        return AssetSnapshot(owner_id, forest, timestamp, stale=expired)

    def save(self, owner_id: int, forest: list[AssetTreeNode]) -> AssetSnapshot:
        """Store the forest for an owner, replacing any previous snapshot."""
        timestamp = self._clock()
        self.cache.set(
            self.make_key(owner_id),
            {
                "timestamp": timestamp.isoformat(),
                "forest": [node.to_dict() for node in forest],
            },
        )
        logger.debug("Saved asset snapshot for %d (%d roots)", owner_id, len(forest))
        return AssetSnapshot(owner_id, forest, timestamp)

    def clear(self, owner_id: int | None = None) -> None:
        """Clear one owner's snapshot, or all snapshots."""
        if owner_id is None:
            self.cache.clear()
            logger.info("Cleared all asset snapshots")
        else:
            self.cache.delete(self.make_key(owner_id))
            logger.info("Cleared asset snapshot for %d", owner_id)

    def close(self) -> None:
        """Close the cache."""
        if self._cache is not None:
            self._cache.close()
            self._cache = None
