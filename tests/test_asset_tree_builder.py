"""Tests for building the ownership forest and grouping it by location."""

import random

import pytest
from conftest import JITA_STATION_ID, JITA_SYSTEM_ID

from models.app import LocationInfoDetail
from services.asset_tree_builder import AssetTreeBuilder

STRUCTURE_ID = 1035466617946


@pytest.fixture
def builder():
    return AssetTreeBuilder()


def _ids(nodes):
    return [node.item_id for node in nodes]


def _all_ids(roots):
    return [node.item_id for root in roots for node in root.iter_nodes()]


class TestBuild:
    def test_orphan_becomes_unknown_root(self, builder, make_asset):
        records = [
            make_asset(1, JITA_STATION_ID, location_type="station"),
            make_asset(2, 999999, location_type="other"),
        ]

        roots = builder.build(records)

        assert _ids(roots) == [1, 2]
        assert roots[0].location_unknown is False
        assert roots[1].location_unknown is True
        assert all(not root.items for root in roots)

    def test_nested_containers(self, builder, make_asset):
        records = [
            make_asset(100, JITA_STATION_ID, location_type="station", type_id=587,
                       is_singleton=True),
            make_asset(101, 100, location_flag="HiSlot0", type_id=3001),
            make_asset(102, 100, location_flag="Cargo", type_id=3293, is_singleton=True),
            make_asset(103, 102, location_flag="Unlocked", quantity=5000),
            make_asset(104, 100, location_flag="Cargo", quantity=20),
        ]

        roots = builder.build(records)

        assert _ids(roots) == [100]
        ship = roots[0]
        assert _ids(ship.items) == [101, 102, 104]
        container = ship.items[1]
        assert container.is_container
        assert _ids(container.items) == [103]
        assert ship.count_nodes() == 5
        assert ship.get_item_count() == 1 + 1 + 1 + 5000 + 20

    def test_children_keep_input_order(self, builder, make_asset):
        records = [make_asset(50, JITA_STATION_ID, location_type="station")]
        records += [make_asset(item_id, 50) for item_id in (9, 3, 7, 1)]

        roots = builder.build(records)

        assert _ids(roots[0].items) == [9, 3, 7, 1]

    def test_child_listed_before_parent(self, builder, make_asset):
        records = [
            make_asset(2, 1),
            make_asset(1, JITA_STATION_ID, location_type="station"),
        ]

        roots = builder.build(records)

        assert _ids(roots) == [1]
        assert _ids(roots[0].items) == [2]

    def test_completeness_on_random_forest(self, builder, make_asset):
        rng = random.Random(42)
        records = []
        for item_id in range(1, 301):
            if item_id == 1 or rng.random() < 0.2:
                records.append(
                    make_asset(item_id, JITA_STATION_ID, location_type="station")
                )
            else:
                records.append(make_asset(item_id, rng.randint(1, item_id - 1)))
        rng.shuffle(records)

        roots = builder.build(records)

        ids = _all_ids(roots)
        assert len(ids) == len(records)
        assert sorted(ids) == list(range(1, 301))
        assert not any(root.location_unknown for root in roots)

    def test_build_is_idempotent_and_does_not_mutate_records(self, builder, make_asset):
        records = [
            make_asset(1, JITA_STATION_ID, location_type="station"),
            make_asset(2, 1),
            make_asset(3, 2),
            make_asset(4, 888, location_type="other"),
        ]
        before = [record.model_dump() for record in records]

        first = [root.to_dict() for root in builder.build(records)]
        second = [root.to_dict() for root in builder.build(records)]

        assert first == second
        assert [record.model_dump() for record in records] == before

    def test_duplicate_item_keeps_first_record(self, builder, make_asset):
        records = [
            make_asset(1, JITA_STATION_ID, location_type="station", quantity=3),
            make_asset(1, JITA_STATION_ID, location_type="station", quantity=99),
        ]

        roots = builder.build(records)

        assert len(roots) == 1
        assert roots[0].quantity == 3

    def test_cycle_is_broken_without_losing_nodes(self, builder, make_asset):
        records = [
            make_asset(1, JITA_STATION_ID, location_type="station"),
            make_asset(10, 11),
            make_asset(11, 10),
            make_asset(12, 10),
        ]

        roots = builder.build(records)

        assert _ids(roots) == [1, 10]
        assert roots[1].location_unknown is True
        assert _ids(roots[1].items) == [11, 12]
        assert sorted(_all_ids(roots)) == [1, 10, 11, 12]

    def test_self_reference_becomes_unknown_root(self, builder, make_asset):
        roots = builder.build([make_asset(5, 5)])

        assert _ids(roots) == [5]
        assert roots[0].location_unknown is True
        assert roots[0].items == []

    def test_depth_bound_demotes_deep_nodes(self, make_asset):
        builder = AssetTreeBuilder(max_depth=2)
        records = [make_asset(1, JITA_STATION_ID, location_type="station")]
        records += [make_asset(item_id, item_id - 1) for item_id in range(2, 6)]

        roots = builder.build(records)

        assert _ids(roots) == [1, 4]
        assert roots[1].location_unknown is True
        assert _ids(roots[0].items) == [2]
        assert _ids(roots[0].items[0].items) == [3]
        assert _ids(roots[1].items) == [5]
        assert sorted(_all_ids(roots)) == [1, 2, 3, 4, 5]

    def test_deep_chain_does_not_recurse(self, builder, make_asset):
        records = [make_asset(1, JITA_STATION_ID, location_type="station")]
        records += [make_asset(item_id, item_id - 1) for item_id in range(2, 5001)]

        roots = builder.build(records)

        assert len(_all_ids(roots)) == 5000

    def test_structure_root_is_classified_by_id(self, builder, make_asset):
        roots = builder.build([make_asset(1, STRUCTURE_ID, location_type="item")])

        assert roots[0].location_unknown is False
        assert builder.location_requests(roots) == [(STRUCTURE_ID, "item")]

    def test_location_requests_are_deduplicated(self, builder, make_asset):
        roots = builder.build(
            [
                make_asset(1, JITA_STATION_ID, location_type="station"),
                make_asset(2, JITA_SYSTEM_ID, location_type="solar_system"),
                make_asset(3, JITA_STATION_ID, location_type="station"),
                make_asset(4, 999999, location_type="other"),
            ]
        )

        assert builder.location_requests(roots) == [
            (JITA_STATION_ID, "station"),
            (JITA_SYSTEM_ID, "solar_system"),
        ]


class TestGroupByLocation:
    def _station_detail(self):
        return LocationInfoDetail(
            location_id=JITA_STATION_ID,
            display_name="Jita IV - Moon 4 - Caldari Navy Assembly Plant",
            category="station",
            solar_system_id=JITA_SYSTEM_ID,
            solar_system_name="Jita",
            region_id=10000002,
            region_name="The Forge",
            security=0.9459,
            type_id=1529,
        )

    def test_groups_roots_under_location_nodes(self, builder, make_asset):
        roots = builder.build(
            [
                make_asset(1, JITA_STATION_ID, location_type="station"),
                make_asset(2, STRUCTURE_ID, location_type="item"),
                make_asset(3, 999999, location_type="other"),
                make_asset(4, JITA_STATION_ID, location_type="station"),
            ]
        )
        details = {JITA_STATION_ID: self._station_detail(), STRUCTURE_ID: None}

        forest = builder.group_by_location(roots, details)

        assert _ids(forest) == [JITA_STATION_ID, STRUCTURE_ID, 999999]
        station, structure, unknown = forest

        assert station.is_location_node
        assert station.location_unknown is False
        assert station.name.startswith("Jita IV")
        assert station.system_name == "Jita"
        assert station.region_name == "The Forge"
        assert station.security_status == pytest.approx(0.9459)
        assert station.type_id == 1529
        assert station.location_type == "station"
        assert _ids(station.items) == [1, 4]

        for placeholder in (structure, unknown):
            assert placeholder.is_location_node
            assert placeholder.location_unknown is True
            assert placeholder.type_id == 0
            assert placeholder.name is None
            assert placeholder.region_name is None
        assert _ids(structure.items) == [2]
        assert _ids(unknown.items) == [3]

    def test_missing_detail_counts_as_unresolved(self, builder, make_asset):
        roots = builder.build([make_asset(1, JITA_STATION_ID, location_type="station")])

        forest = builder.group_by_location(roots, {})

        assert forest[0].location_unknown is True
        assert forest[0].item_id == JITA_STATION_ID

    def test_every_item_survives_grouping(self, builder, make_asset):
        records = [
            make_asset(1, JITA_STATION_ID, location_type="station"),
            make_asset(2, 1),
            make_asset(3, 424242, location_type="other"),
            make_asset(4, 4),
        ]
        roots = builder.build(records)

        forest = builder.group_by_location(
            roots, {JITA_STATION_ID: self._station_detail()}
        )

        item_ids = [
            node.item_id
            for location in forest
            for root in location.items
            for node in root.iter_nodes()
        ]
        assert sorted(item_ids) == [1, 2, 3, 4]
