"""Asset application service.

Drives a full asset tree load for an owner: paginated fetch, tree building,
container names, type enrichment, location resolution and the per-owner
snapshot cache. Also provides search and region grouping over built forests.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from data import AssetSnapshot
from data.static_lookup import DEFAULT_ICON, lookup_types
from models.app import AssetSearchResult, AssetTreeNode
from utils.exceptions import ESIError, OperationCancelledError
from utils.progress_callback import ProgressUpdate

if TYPE_CHECKING:
    from data import AssetSnapshotCache, StaticLookup
    from data.clients import NetworkFetcher
    from services.asset_tree_builder import AssetTreeBuilder
    from services.location_service import LocationResolver
    from utils.progress_callback import CancelToken, ProgressCallback

logger = logging.getLogger(__name__)

# build, names, types, locations
TREE_STEPS = 4
DEFAULT_OWNER_BATCH_SIZE = 3
UNKNOWN_REGION = "Unknown Region"


class AssetService:
    """Application service for asset tree operations."""

    def __init__(
        self,
        fetcher: NetworkFetcher,
        location_resolver: LocationResolver,
        tree_builder: AssetTreeBuilder,
        static_lookup: StaticLookup,
        snapshot_cache: AssetSnapshotCache,
        owner_batch_size: int = DEFAULT_OWNER_BATCH_SIZE,
    ):
        """Initialize asset service.

        Args:
            fetcher: Network fetcher for asset and name requests
            location_resolver: Resolver for root locations
            tree_builder: Builder for the ownership forest
            static_lookup: Static data for type names and icons
            snapshot_cache: Per-owner cache of built forests
            owner_batch_size: Owners refreshed concurrently per batch
        """
        self._fetcher = fetcher
        self._locations = location_resolver
        self._builder = tree_builder
        self._static = static_lookup
        self._snapshots = snapshot_cache
        self.owner_batch_size = max(1, owner_batch_size)

    @staticmethod
    def _emit(progress: ProgressCallback | None, update: ProgressUpdate) -> None:
        if progress is not None:
            progress(update)

    @staticmethod
    def _check_cancelled(cancel_token: CancelToken | None, owner_id: int) -> None:
        if cancel_token is not None and cancel_token.is_cancelled:
            raise OperationCancelledError(
                f"Asset load for owner {owner_id} was cancelled"
            )

    async def load_asset_tree(
        self,
        owner_id: int,
        progress: ProgressCallback | None = None,
        force_refresh: bool = False,
        allow_stale: bool = False,
        cancel_token: CancelToken | None = None,
    ) -> AssetSnapshot:
        """Load the location-grouped asset forest for an owner.

        A fresh cached snapshot is returned without network access unless
        ``force_refresh`` is set.

        Args:
            owner_id: Character whose assets to load
            progress: Receives fetching/building/complete updates
            force_refresh: Ignore a fresh cached snapshot
            allow_stale: On a failed fetch, fall back to the last snapshot
            cancel_token: Checked between phases

        Returns:
            Snapshot holding the forest; ``stale`` is True for a fallback

        Raises:
            ESIError: If the asset fetch fails and no fallback is available
            OperationCancelledError: If the load was cancelled
        """
        if not force_refresh:
            cached = self._snapshots.load(owner_id)
            if cached is not None:
                item_count = _count_items(cached.forest)
                self._emit(progress, ProgressUpdate.complete(owner_id, item_count))
                return cached

        try:
            records = await self._fetcher.assets.get_assets(
                owner_id,
                on_page=lambda page: self._emit(
                    progress, ProgressUpdate.fetching_page(owner_id, page)
                ),
                cancel_token=cancel_token,
            )
        except ESIError as e:
            if allow_stale:
                fallback = self._snapshots.load(owner_id, allow_expired=True)
                if fallback is not None:
                    logger.warning(
                        "Asset fetch for %d failed (%s); using snapshot from %s",
                        owner_id,
                        e,
                        fallback.timestamp.isoformat(),
                    )
                    fallback.stale = True
                    self._emit(
                        progress,
                        ProgressUpdate.complete(owner_id, _count_items(fallback.forest)),
                    )
                    return fallback
            logger.error("Failed to fetch assets for %d: %s", owner_id, e)
            self._emit(progress, ProgressUpdate.error(owner_id, str(e)))
            raise

        self._check_cancelled(cancel_token, owner_id)
        self._emit(
            progress,
            ProgressUpdate.building_tree(owner_id, 1, TREE_STEPS, "Linking items"),
        )
        roots = self._builder.build(records)

        self._emit(
            progress,
            ProgressUpdate.building_tree(owner_id, 2, TREE_STEPS, "Container names"),
        )
        await self._apply_container_names(owner_id, roots, progress)
        self._check_cancelled(cancel_token, owner_id)

        self._emit(
            progress,
            ProgressUpdate.building_tree(owner_id, 3, TREE_STEPS, "Item types"),
        )
        self._apply_type_info(roots)

        self._emit(
            progress,
            ProgressUpdate.building_tree(owner_id, 4, TREE_STEPS, "Locations"),
        )
        details = await self._locations.resolve_many(
            self._builder.location_requests(roots),
            owner_id,
            on_batch=lambda done, total: self._emit(
                progress, ProgressUpdate.resolving_locations(owner_id, done, total)
            ),
        )
        forest = self._builder.group_by_location(roots, details)

        try:
            snapshot = self._snapshots.save(owner_id, forest)
        except (OSError, sqlite3.Error):
            logger.exception("Failed to save asset snapshot for %d", owner_id)
            snapshot = AssetSnapshot(owner_id, forest, datetime.now(UTC))

        logger.info(
            "Loaded asset tree for %d: %d records in %d locations",
            owner_id,
            len(records),
            len(forest),
        )
        self._emit(progress, ProgressUpdate.complete(owner_id, len(records)))
        return snapshot

    async def _apply_container_names(
        self,
        owner_id: int,
        roots: list[AssetTreeNode],
        progress: ProgressCallback | None,
    ) -> None:
        containers = [
            node for root in roots for node in root.iter_nodes() if node.is_container
        ]
        if not containers:
            return

        self._emit(progress, ProgressUpdate.fetching_names(owner_id, len(containers)))
        try:
            names = await self._fetcher.assets.get_asset_names(
                owner_id, [node.item_id for node in containers]
            )
        except ESIError as e:
            logger.warning("Failed to fetch container names for %d: %s", owner_id, e)
            return

        for node in containers:
            name = names.get(node.item_id)
            if name:
                node.name = name

    def _apply_type_info(self, roots: list[AssetTreeNode]) -> None:
        nodes = [node for root in roots for node in root.iter_nodes()]
        type_info = lookup_types(self._static, [node.type_id for node in nodes])
        for node in nodes:
            type_name, icon = type_info.get(node.type_id, (None, DEFAULT_ICON))
            node.type_name = type_name
            node.icon_name = icon

        missing = {node.type_id for node in nodes} - type_info.keys()
        if missing:
            logger.debug("No static data for %d type IDs", len(missing))

    async def refresh_owners(
        self,
        owner_ids: Iterable[int],
        progress: ProgressCallback | None = None,
        force_refresh: bool = True,
        cancel_token: CancelToken | None = None,
    ) -> dict[int, AssetSnapshot | BaseException]:
        """Load several owners' trees in bounded concurrent batches.

        One owner's failure never cancels the others in its batch. Owners in
        batches not yet started when ``cancel_token`` fires are left out; owners
        already running stop at their next check and report
        OperationCancelledError.

        Returns:
            Mapping of owner ID to its snapshot or the exception it raised
        """
        owners = list(dict.fromkeys(owner_ids))
        results: dict[int, AssetSnapshot | BaseException] = {}

        for start in range(0, len(owners), self.owner_batch_size):
            if cancel_token is not None and cancel_token.is_cancelled:
                logger.info(
                    "Owner refresh cancelled with %d owners pending",
                    len(owners) - start,
                )
                break

            batch = owners[start : start + self.owner_batch_size]
            outcomes = await asyncio.gather(
                *(
                    self.load_asset_tree(
                        owner_id,
                        progress=progress,
                        force_refresh=force_refresh,
                        cancel_token=cancel_token,
                    )
                    for owner_id in batch
                ),
                return_exceptions=True,
            )
            for owner_id, outcome in zip(batch, outcomes, strict=True):
                if isinstance(outcome, BaseException):
                    logger.warning("Asset refresh failed for %d: %s", owner_id, outcome)
                results[owner_id] = outcome

        return results

    @staticmethod
    def search_assets(
        forest: Iterable[AssetTreeNode], query: str
    ) -> list[AssetSearchResult]:
        """Find items whose name or type name contains ``query``.

        Matching is case-insensitive. Location nodes appear in result paths
        but are not matched themselves.

        Returns:
            Hits sorted by display name, then item ID
        """
        needle = query.strip().casefold()
        if not needle:
            return []

        results: list[AssetSearchResult] = []
        stack: list[tuple[AssetTreeNode, tuple[AssetTreeNode, ...]]] = [
            (root, (root,)) for root in reversed(list(forest))
        ]
        while stack:
            node, path = stack.pop()
            if not node.is_location_node and _matches(node, needle):
                results.append(AssetSearchResult(path=list(path), target=node))
            for child in reversed(node.items):
                stack.append((child, (*path, child)))

        results.sort(key=lambda r: (r.target.display_name.casefold(), r.target.item_id))
        return results

    @staticmethod
    def locations_by_region(
        forest: Iterable[AssetTreeNode],
    ) -> dict[str, list[AssetTreeNode]]:
        """Group location nodes by region name.

        Returns:
            Region name to location nodes; regions sorted by name with
            ``Unknown Region`` last, locations sorted by system then name
        """
        regions: dict[str, list[AssetTreeNode]] = {}
        for node in forest:
            if not node.is_location_node:
                continue
            regions.setdefault(node.region_name or UNKNOWN_REGION, []).append(node)

        ordered = sorted(regions, key=lambda name: (name == UNKNOWN_REGION, name))
        return {
            region: sorted(
                regions[region],
                key=lambda n: (
                    n.system_name is None,
                    n.system_name or "",
                    n.display_name,
                ),
            )
            for region in ordered
        }


def _matches(node: AssetTreeNode, needle: str) -> bool:
    return any(
        needle in value.casefold()
        for value in (node.name, node.type_name)
        if value
    )


def _count_items(forest: Iterable[AssetTreeNode]) -> int:
    """Number of item nodes (location nodes excluded)."""
    return sum(
        1
        for root in forest
        for node in root.iter_nodes()
        if not node.is_location_node
    )
