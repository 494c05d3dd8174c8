"""Service for resolving location identifiers into human-readable places.

Stations and solar systems resolve from the static reference data; player
structures resolve through the structure cache and the authenticated ESI
structure endpoint.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, Literal

from data.static_lookup import lookup_solar_system, lookup_station
from models.app import LocationInfoDetail
from utils.exceptions import ESIError, LocationResolutionError

if TYPE_CHECKING:
    from data import StaticLookup
    from data.clients import NetworkFetcher, TieredCache
    from models.eve import EveStructure

logger = logging.getLogger(__name__)

LocationCategory = Literal["station", "structure", "solar_system"]

# ID ranges
SOLAR_SYSTEM_ID_MIN = 30_000_000
SOLAR_SYSTEM_ID_MAX = 40_000_000
STATION_ID_MIN = 60_000_000
STATION_ID_MAX = 70_000_000
STRUCTURE_ID_MIN = 1_000_000_000_000

KNOWN_LOCATION_TYPES: tuple[LocationCategory, ...] = (
    "station",
    "structure",
    "solar_system",
)

DEFAULT_BATCH_SIZE = 5
DEFAULT_BATCH_DELAY = 0.1


def classify_location(location_id: int, location_type: str) -> LocationCategory | None:
    """Decide what kind of place a root's location identifier refers to.

    An explicit station/structure/solar_system type wins; otherwise the ID
    range decides. Returns None for identifiers that are none of these.
    """
    if location_type in KNOWN_LOCATION_TYPES:
        return location_type  # type: ignore[return-value]
    if location_id >= STRUCTURE_ID_MIN:
        return "structure"
    if STATION_ID_MIN <= location_id < STATION_ID_MAX:
        return "station"
    if SOLAR_SYSTEM_ID_MIN <= location_id < SOLAR_SYSTEM_ID_MAX:
        return "solar_system"
    return None


class LocationResolver:
    """Resolves location IDs to LocationInfoDetail.

    Resolution Strategy:
    - NPC Stations (60000000-69999999): static stations table, never cached
    - Solar Systems (30000000-39999999): static universe tables
    - Player Structures (1000000000000+): structure cache, then ESI with the
      owner's token; failures propagate and expired entries are never reused

    Concurrent requests for the same structure share one in-flight lookup.
    """

    def __init__(
        self,
        fetcher: NetworkFetcher,
        static_lookup: StaticLookup,
        structure_cache: TieredCache[EveStructure],
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY,
    ):
        """Initialize location resolver.

        Args:
            fetcher: Network fetcher for structure lookups
            static_lookup: Static reference data
            structure_cache: Tiered cache of structure payloads
            batch_size: Locations resolved concurrently per batch
            batch_delay: Pause between batches in seconds
        """
        self._fetcher = fetcher
        self._static = static_lookup
        self._structure_cache = structure_cache
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay

        # In-flight structure resolutions keyed by (structure_id, owner_id);
        # structure visibility depends on the owner so owners never share one
        self._pending_structures: dict[
            tuple[int, int], asyncio.Future[LocationInfoDetail]
        ] = {}

    async def resolve(
        self, location_id: int, location_type: str, owner_id: int
    ) -> LocationInfoDetail:
        """Resolve a single location.

        Args:
            location_id: Station, structure or solar system ID
            location_type: Location type reported with the asset record
            owner_id: Owner whose token is used for structure lookups

        Returns:
            Resolved location detail

        Raises:
            LocationResolutionError: If the location cannot be resolved
        """
        category = classify_location(location_id, location_type)
        if category == "station":
            return self._resolve_station(location_id)
        if category == "solar_system":
            return self._resolve_solar_system(location_id)
        if category == "structure":
            return await self._resolve_structure_coalesced(location_id, owner_id)
        raise LocationResolutionError(
            location_id, f"unrecognised location type {location_type!r}"
        )

    async def resolve_many(
        self,
        locations: Iterable[tuple[int, str]],
        owner_id: int,
        on_batch: Callable[[int, int], None] | None = None,
    ) -> dict[int, LocationInfoDetail | None]:
        """Resolve several locations in small concurrent batches.

        A failure for one location is logged and mapped to None; it never
        affects the other locations.

        Args:
            locations: (location_id, location_type) pairs
            owner_id: Owner whose token is used for structure lookups
            on_batch: Called with (resolved_so_far, total) after each batch

        Returns:
            Mapping of location ID to detail, or None where resolution failed
        """
        pending: dict[int, str] = {}
        for location_id, location_type in locations:
            pending.setdefault(location_id, location_type)
        requests = list(pending.items())
        total = len(requests)
        results: dict[int, LocationInfoDetail | None] = {}

        for start in range(0, total, self.batch_size):
            batch = requests[start : start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self.resolve(loc_id, loc_type, owner_id) for loc_id, loc_type in batch),
                return_exceptions=True,
            )
            for (loc_id, _), outcome in zip(batch, outcomes, strict=True):
                if isinstance(outcome, BaseException):
                    logger.warning("Failed to resolve location %d: %s", loc_id, outcome)
                    results[loc_id] = None
                else:
                    results[loc_id] = outcome

            done = min(start + self.batch_size, total)
            if on_batch is not None:
                on_batch(done, total)
            if done < total and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        resolved = sum(1 for detail in results.values() if detail is not None)
        logger.info("Resolved %d/%d locations for owner %d", resolved, total, owner_id)
        return results

    async def clear_cache(self) -> None:
        """Drop every cached structure from memory and disk."""
        await self._structure_cache.clear_all()

    def _system_row(self, system_id: int) -> dict[str, Any]:
        return lookup_solar_system(self._static, system_id) or {}

    def _resolve_station(self, station_id: int) -> LocationInfoDetail:
        row = lookup_station(self._static, station_id)
        if row is None:
            raise LocationResolutionError(station_id, "station not in static data")

        system_id = row.get("solarSystemID")
        system = self._system_row(system_id) if system_id is not None else {}
        security = row.get("security")
        if security is None:
            security = system.get("system_security")

        return LocationInfoDetail(
            location_id=station_id,
            display_name=row["stationName"],
            category="station",
            solar_system_id=system_id,
            solar_system_name=system.get("solarSystemName"),
            region_id=row.get("regionID") or system.get("region_id"),
            region_name=system.get("regionName"),
            security=security,
            type_id=row.get("stationTypeID"),
        )

    def _resolve_solar_system(self, system_id: int) -> LocationInfoDetail:
        system = lookup_solar_system(self._static, system_id)
        if system is None:
            raise LocationResolutionError(system_id, "solar system not in static data")

        return LocationInfoDetail(
            location_id=system_id,
            display_name=system["solarSystemName"],
            category="solar_system",
            solar_system_id=system_id,
            solar_system_name=system["solarSystemName"],
            region_id=system.get("region_id"),
            region_name=system.get("regionName"),
            security=system.get("system_security"),
        )

    async def _resolve_structure(
        self, structure_id: int, owner_id: int
    ) -> LocationInfoDetail:
        async def fetch() -> EveStructure:
            logger.debug(
                "Fetching structure %d for owner %d", structure_id, owner_id
            )
            return await self._fetcher.universe.get_structure_info(
                structure_id, owner_id
            )

        try:
            structure = await self._structure_cache.get_or_fetch(structure_id, fetch)
        except ESIError as e:
            raise LocationResolutionError(structure_id, str(e)) from e

        system = self._system_row(structure.solar_system_id)
        return LocationInfoDetail(
            location_id=structure_id,
            display_name=structure.name,
            category="structure",
            solar_system_id=structure.solar_system_id,
            solar_system_name=system.get("solarSystemName"),
            region_id=system.get("region_id"),
            region_name=system.get("regionName"),
            security=system.get("system_security"),
            type_id=structure.type_id,
        )

    async def _resolve_structure_coalesced(
        self, structure_id: int, owner_id: int
    ) -> LocationInfoDetail:
        """Coalesce concurrent lookups of one structure by the same owner.

        Only one cache read / ESI request is in flight per structure and
        owner; later callers await the first caller's result or error. If the
        first caller is cancelled, a waiting caller takes the lookup over.
        """
        key = (structure_id, owner_id)
        while (existing := self._pending_structures.get(key)) is not None:
            try:
                return await asyncio.shield(existing)
            except asyncio.CancelledError:
                if not existing.cancelled():
                    raise

        loop = asyncio.get_running_loop()
        fut: asyncio.Future[LocationInfoDetail] = loop.create_future()
        self._pending_structures[key] = fut
        try:
            detail = await self._resolve_structure(structure_id, owner_id)
            fut.set_result(detail)
            return detail
        except asyncio.CancelledError:
            fut.cancel()
            raise
        except Exception as exc:
            fut.set_exception(exc)
            # Mark retrieved so a future nobody else awaited does not log
            fut.exception()
            raise
        finally:
            self._pending_structures.pop(key, None)
