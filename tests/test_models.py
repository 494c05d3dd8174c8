"""Tests for tree nodes and location detail models."""

import pytest

from models.app import AssetTreeNode, LocationInfoDetail, security_color, truncate_security
from models.eve import EveAsset


def _asset(**overrides):
    values = {
        "item_id": 1,
        "type_id": 34,
        "quantity": 100,
        "location_id": 60003760,
        "location_type": "station",
        "location_flag": "Hangar",
        "is_singleton": False,
    }
    values.update(overrides)
    return EveAsset(**values)


class TestAssetTreeNode:
    def test_from_asset_copies_record_fields(self):
        node = AssetTreeNode.from_asset(_asset(is_blueprint_copy=True, name="Stash"))

        assert node.item_id == 1
        assert node.quantity == 100
        assert node.location_flag == "Hangar"
        assert node.is_blueprint_copy is True
        assert node.name == "Stash"
        assert node.items == []
        assert not node.is_container
        assert not node.is_location_node

    def test_display_name_prefers_custom_name(self):
        node = AssetTreeNode.from_asset(_asset())
        assert node.display_name == ""

        node.type_name = "Tritanium"
        assert node.display_name == "Tritanium"

        node.name = "Mine"
        assert node.display_name == "Mine"

    def test_iter_nodes_is_pre_order(self):
        root = AssetTreeNode.from_asset(_asset(item_id=1))
        a = AssetTreeNode.from_asset(_asset(item_id=2, location_id=1))
        b = AssetTreeNode.from_asset(_asset(item_id=3, location_id=2))
        c = AssetTreeNode.from_asset(_asset(item_id=4, location_id=1))
        root.add_child(a)
        a.add_child(b)
        root.add_child(c)

        assert [n.item_id for n in root.iter_nodes()] == [1, 2, 3, 4]
        assert root.count_nodes() == 4
        assert root.get_item_count() == 400
        assert root.is_container

    def test_dict_round_trip_keeps_structure(self):
        root = AssetTreeNode.from_asset(_asset(item_id=1))
        root.add_child(AssetTreeNode.from_asset(_asset(item_id=2, location_id=1)))
        root.security_status = 0.5

        rebuilt = AssetTreeNode.from_dict(root.to_dict())

        assert rebuilt.to_dict() == root.to_dict()
        assert rebuilt.items[0].item_id == 2

    def test_copy_replaces_fields_only_on_copy(self):
        node = AssetTreeNode.from_asset(_asset(quantity=1, is_singleton=True))

        stacked = node.copy(quantity=5, is_singleton=False)

        assert (stacked.quantity, stacked.is_singleton) == (5, False)
        assert (node.quantity, node.is_singleton) == (1, True)


class TestSecurity:
    @pytest.mark.parametrize(
        ("security", "expected"),
        [(0.9459, 0.9), (0.45, 0.4), (1.0, 1.0), (-0.35, -0.4), (0.05, 0.0)],
    )
    def test_truncate_floors_to_one_decimal(self, security, expected):
        assert truncate_security(security) == pytest.approx(expected)

    @pytest.mark.parametrize(
        ("security", "expected"),
        [
            (1.0, "#4173D4"),
            (0.9459, "#559AEF"),
            (0.85, "#72CCED"),
            (0.7, "#81D8A9"),
            (0.55, "#8FE167"),
            (0.45, "#D0712D"),
            (0.1, "#D0712D"),
            (0.05, "#833764"),
            (-0.9, "#833764"),
        ],
    )
    def test_colour_bands(self, security, expected):
        assert security_color(security) == expected

    def test_detail_display_properties(self):
        detail = LocationInfoDetail(
            location_id=30000142,
            display_name="Jita",
            category="solar_system",
            security=0.9459,
        )
        unknown = LocationInfoDetail(
            location_id=1, display_name="?", category="structure"
        )

        assert detail.security_display == "0.9"
        assert detail.security_color == "#559AEF"
        assert unknown.security_display is None
        assert unknown.security_color is None
