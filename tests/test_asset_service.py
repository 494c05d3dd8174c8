"""Tests for AssetService end-to-end loading, refresh, search and grouping."""

import asyncio
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest
from conftest import AMARR_SYSTEM_ID, JITA_STATION_ID

from data import DEFAULT_ICON, AssetSnapshotCache
from data.clients import FileTier, MemoryTier, TieredCache
from models.eve import EveStructure
from services import AssetService, AssetTreeBuilder, LocationResolver
from utils.exceptions import (
    HTTPError,
    MaxRetriesExceededError,
    OperationCancelledError,
    ServiceError,
    TokenExpiredError,
)
from utils.progress_callback import CancelToken, ProgressPhase

OWNER_ID = 90000001
STRUCTURE_ID = 1035466617946
UNKNOWN_LOCATION_ID = 999999


class FakeAssets:
    """Asset endpoints serving canned records per owner."""

    def __init__(self, records_by_owner, names=None):
        self.records_by_owner = records_by_owner
        self.names = names or {}
        self.errors: dict[int, Exception] = {}
        self.names_error: Exception | None = None
        self.delay = 0.0
        self.calls: list[int] = []
        self.name_requests: list[list[int]] = []
        self.active = 0
        self.max_active = 0

    async def get_assets(self, character_id, on_page=None, cancel_token=None):
        self.calls.append(character_id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if cancel_token is not None and cancel_token.is_cancelled:
                raise OperationCancelledError("cancelled between page rounds")
            if character_id in self.errors:
                raise self.errors[character_id]
            if on_page is not None:
                on_page(1)
            return list(self.records_by_owner.get(character_id, []))
        finally:
            self.active -= 1

    async def get_asset_names(self, character_id, item_ids):
        self.name_requests.append(list(item_ids))
        if self.names_error is not None:
            raise self.names_error
        return {i: self.names[i] for i in item_ids if i in self.names}


class FakeUniverse:
    async def get_structure_info(self, structure_id, character_id):
        return EveStructure(
            name="Amarr - Imperial Palace Annex",
            owner_id=98000001,
            solar_system_id=AMARR_SYSTEM_ID,
        )


class _Clock:
    def __init__(self):
        self.now = datetime(2025, 11, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def records(make_asset):
    return [
        make_asset(100, JITA_STATION_ID, location_type="station", type_id=587,
                   is_singleton=True),
        make_asset(101, 100, location_flag="Cargo", type_id=3293, is_singleton=True),
        make_asset(102, 101, location_flag="Unlocked", quantity=500),
        make_asset(200, STRUCTURE_ID, location_type="item", quantity=10),
        make_asset(300, UNKNOWN_LOCATION_ID, location_type="other", type_id=99999),
    ]


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
def assets(records):
    return FakeAssets({OWNER_ID: records}, names={100: "My Rifter", 101: "Loot Box"})


@pytest.fixture
def service(tmp_path, assets, static_lookup, clock):
    fetcher = SimpleNamespace(assets=assets, universe=FakeUniverse())
    structure_cache = TieredCache(
        FileTier(tmp_path / "structures", EveStructure), memory=MemoryTier(16)
    )
    resolver = LocationResolver(
        fetcher, static_lookup, structure_cache, batch_size=5, batch_delay=0.0
    )
    snapshots = AssetSnapshotCache(
        tmp_path / "snapshots", ttl=timedelta(hours=8), clock=clock
    )
    yield AssetService(
        fetcher,
        resolver,
        AssetTreeBuilder(),
        static_lookup,
        snapshots,
        owner_batch_size=2,
    )
    snapshots.close()


def _find(forest, item_id):
    for location in forest:
        for node in location.iter_nodes():
            if node.item_id == item_id and not node.is_location_node:
                return node
    raise AssertionError(f"item {item_id} not in forest")


class TestLoadAssetTree:
    @pytest.mark.asyncio
    async def test_full_load(self, service, assets):
        updates = []

        snapshot = await service.load_asset_tree(OWNER_ID, progress=updates.append)

        assert snapshot.owner_id == OWNER_ID
        assert snapshot.stale is False
        forest = snapshot.forest
        assert [node.item_id for node in forest] == [
            JITA_STATION_ID,
            STRUCTURE_ID,
            UNKNOWN_LOCATION_ID,
        ]
        station, structure, unknown = forest
        assert station.name.startswith("Jita IV")
        assert station.region_name == "The Forge"
        assert structure.name == "Amarr - Imperial Palace Annex"
        assert structure.region_name == "Domain"
        assert unknown.location_unknown is True

        ship = _find(forest, 100)
        assert ship.name == "My Rifter"
        assert ship.type_name == "Rifter"
        assert ship.icon_name == "icon_587.png"
        box = _find(forest, 101)
        assert box.name == "Loot Box"
        assert box.icon_name == DEFAULT_ICON
        ore = _find(forest, 102)
        assert ore.type_name == "Tritanium"
        assert ore.name is None
        mystery = _find(forest, 300)
        assert mystery.type_name is None
        assert mystery.icon_name == DEFAULT_ICON

        assert sorted(assets.name_requests[0]) == [100, 101]

        phases = [update.phase for update in updates]
        assert phases[0] == ProgressPhase.FETCHING_PAGE
        assert phases[-1] == ProgressPhase.COMPLETE
        assert ProgressPhase.FETCHING_NAMES in phases
        assert ProgressPhase.RESOLVING_LOCATIONS in phases
        steps = [u.current for u in updates if u.phase == ProgressPhase.BUILDING_TREE]
        assert steps == [1, 2, 3, 4]
        assert updates[-1].current == 5

    @pytest.mark.asyncio
    async def test_fresh_snapshot_is_reused(self, service, assets):
        first = await service.load_asset_tree(OWNER_ID)
        updates = []

        second = await service.load_asset_tree(OWNER_ID, progress=updates.append)

        assert assets.calls == [OWNER_ID]
        assert [n.to_dict() for n in second.forest] == [
            n.to_dict() for n in first.forest
        ]
        assert [u.phase for u in updates] == [ProgressPhase.COMPLETE]
        assert updates[0].current == 5

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_snapshot(self, service, assets):
        await service.load_asset_tree(OWNER_ID)

        await service.load_asset_tree(OWNER_ID, force_refresh=True)

        assert assets.calls == [OWNER_ID, OWNER_ID]

    @pytest.mark.asyncio
    async def test_expired_snapshot_triggers_fetch(self, service, assets, clock):
        await service.load_asset_tree(OWNER_ID)
        clock.now += timedelta(hours=9)

        await service.load_asset_tree(OWNER_ID)

        assert len(assets.calls) == 2

    @pytest.mark.asyncio
    async def test_stale_snapshot_served_when_fetch_fails(self, service, assets, clock):
        await service.load_asset_tree(OWNER_ID)
        clock.now += timedelta(hours=9)
        assets.errors[OWNER_ID] = MaxRetriesExceededError(HTTPError(503), 3)
        updates = []

        snapshot = await service.load_asset_tree(
            OWNER_ID, progress=updates.append, allow_stale=True
        )

        assert snapshot.stale is True
        assert len(snapshot.forest) == 3
        assert updates[-1].phase == ProgressPhase.COMPLETE

    @pytest.mark.asyncio
    async def test_fetch_failure_without_fallback_raises(self, service, assets):
        assets.errors[OWNER_ID] = TokenExpiredError(OWNER_ID)
        updates = []

        with pytest.raises(TokenExpiredError):
            await service.load_asset_tree(
                OWNER_ID, progress=updates.append, allow_stale=True
            )

        assert updates[-1].phase == ProgressPhase.ERROR

    @pytest.mark.asyncio
    async def test_fetch_failure_raises_when_stale_not_allowed(
        self, service, assets, clock
    ):
        await service.load_asset_tree(OWNER_ID)
        clock.now += timedelta(hours=9)
        assets.errors[OWNER_ID] = HTTPError(404, "Character not found")

        with pytest.raises(HTTPError):
            await service.load_asset_tree(OWNER_ID)

    @pytest.mark.asyncio
    async def test_name_failure_is_tolerated(self, service, assets):
        assets.names_error = MaxRetriesExceededError(HTTPError(502), 3)

        snapshot = await service.load_asset_tree(OWNER_ID)

        ship = _find(snapshot.forest, 100)
        assert ship.name is None
        assert ship.type_name == "Rifter"

    @pytest.mark.asyncio
    async def test_cancelled_load_raises(self, service):
        token = CancelToken()
        token.cancel()

        with pytest.raises(ServiceError):
            await service.load_asset_tree(OWNER_ID, cancel_token=token)

    @pytest.mark.asyncio
    async def test_empty_owner(self, service, assets):
        assets.records_by_owner[42] = []

        snapshot = await service.load_asset_tree(42)

        assert snapshot.forest == []
        assert assets.name_requests == []


class TestRefreshOwners:
    @pytest.mark.asyncio
    async def test_failures_are_isolated_and_concurrency_bounded(
        self, service, assets, records
    ):
        owners = [1, 2, 3, 4, 5]
        for owner in owners:
            assets.records_by_owner[owner] = records[:1]
        assets.errors[3] = TokenExpiredError(3)
        assets.delay = 0.01

        results = await service.refresh_owners(owners)

        assert list(results) == owners
        assert isinstance(results[3], TokenExpiredError)
        assert all(len(results[o].forest) == 1 for o in (1, 2, 4, 5))
        assert assets.max_active <= 2

    @pytest.mark.asyncio
    async def test_cancelled_refresh_skips_pending_batches(self, service, assets):
        token = CancelToken()
        token.cancel()

        results = await service.refresh_owners([1, 2, 3], cancel_token=token)

        assert results == {}
        assert assets.calls == []

    @pytest.mark.asyncio
    async def test_cancel_reaches_owners_already_running(
        self, service, assets, records
    ):
        for owner in (1, 2, 3, 4):
            assets.records_by_owner[owner] = records[:1]
        assets.delay = 0.05
        token = CancelToken()

        refresh = asyncio.create_task(
            service.refresh_owners([1, 2, 3, 4], cancel_token=token)
        )
        await asyncio.sleep(0.01)
        token.cancel()
        results = await refresh

        assert list(results) == [1, 2]
        assert all(isinstance(r, OperationCancelledError) for r in results.values())
        assert assets.calls == [1, 2]


class TestQueries:
    @pytest.mark.asyncio
    async def test_search_by_type_name(self, service):
        snapshot = await service.load_asset_tree(OWNER_ID)

        results = AssetService.search_assets(snapshot.forest, "trit")

        assert [r.target.item_id for r in results] == [102, 200]
        first = results[0]
        assert [node.item_id for node in first.path] == [JITA_STATION_ID, 100, 101, 102]
        assert first.location_node.item_id == JITA_STATION_ID

    @pytest.mark.asyncio
    async def test_search_by_custom_name_is_case_insensitive(self, service):
        snapshot = await service.load_asset_tree(OWNER_ID)

        results = AssetService.search_assets(snapshot.forest, "LOOT")

        assert [r.target.item_id for r in results] == [101]

    @pytest.mark.asyncio
    async def test_search_skips_location_nodes(self, service):
        snapshot = await service.load_asset_tree(OWNER_ID)

        assert AssetService.search_assets(snapshot.forest, "Jita") == []
        assert AssetService.search_assets(snapshot.forest, "   ") == []

    @pytest.mark.asyncio
    async def test_locations_by_region(self, service):
        snapshot = await service.load_asset_tree(OWNER_ID)

        regions = AssetService.locations_by_region(snapshot.forest)

        assert list(regions) == ["Domain", "The Forge", "Unknown Region"]
        assert [n.item_id for n in regions["Domain"]] == [STRUCTURE_ID]
        assert [n.item_id for n in regions["Unknown Region"]] == [UNKNOWN_LOCATION_ID]
