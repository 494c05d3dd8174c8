"""Asset tree node model for hierarchical asset organization."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from models.eve import EveAsset

ROOT_LOCATION_FLAG = "root"


class AssetTreeNode:
    """Represents a node in the asset ownership hierarchy.

    A node is either an owned item (built from one asset record) or a
    synthetic location node that groups the items sitting directly in a
    station, structure or solar system. Children live in ``items`` in the
    order they were attached.
    """

    def __init__(
        self,
        item_id: int,
        type_id: int,
        quantity: int,
        location_id: int,
        location_type: str,
        location_flag: str,
        is_singleton: bool,
        is_blueprint_copy: bool | None = None,
        name: str | None = None,
        type_name: str | None = None,
        icon_name: str | None = None,
        system_name: str | None = None,
        region_name: str | None = None,
        security_status: float | None = None,
        location_unknown: bool = False,
        items: list[AssetTreeNode] | None = None,
    ):
        """Initialize an asset tree node.

        Args:
            item_id: Unique item ID (location ID for synthetic location nodes)
            type_id: Type ID of the item
            quantity: Stack size
            location_id: Item or place this node is held by
            location_type: station, structure, solar_system, item or other
            location_flag: Slot tag such as Hangar or HiSlot3
            is_singleton: Whether the item is assembled/unique
            is_blueprint_copy: Blueprint copy flag, if a blueprint
            name: Custom name (containers, ships) or location display name
            type_name: Resolved type name
            icon_name: Icon file name for the type
            system_name: Resolved solar system name (location nodes)
            region_name: Resolved region name (location nodes)
            security_status: Raw security status (location nodes)
            location_unknown: True when the location could not be resolved
            items: Child nodes
        """
        self.item_id = item_id
        self.type_id = type_id
        self.quantity = quantity
        self.location_id = location_id
        self.location_type = location_type
        self.location_flag = location_flag
        self.is_singleton = is_singleton
        self.is_blueprint_copy = is_blueprint_copy
        self.name = name
        self.type_name = type_name
        self.icon_name = icon_name
        self.system_name = system_name
        self.region_name = region_name
        self.security_status = security_status
        self.location_unknown = location_unknown
        self.items: list[AssetTreeNode] = list(items) if items else []

    @classmethod
    def from_asset(cls, asset: EveAsset) -> AssetTreeNode:
        """Create a leaf node from a raw asset record."""
        return cls(
            item_id=asset.item_id,
            type_id=asset.type_id,
            quantity=asset.quantity,
            location_id=asset.location_id,
            location_type=asset.location_type,
            location_flag=asset.location_flag,
            is_singleton=asset.is_singleton,
            is_blueprint_copy=asset.is_blueprint_copy,
            name=asset.name,
        )

    @property
    def is_container(self) -> bool:
        return bool(self.items)

    @property
    def is_location_node(self) -> bool:
        return self.location_flag == ROOT_LOCATION_FLAG

    @property
    def display_name(self) -> str:
        """Custom name if set, otherwise the resolved type name ('' if neither)."""
        return self.name or self.type_name or ""

    def add_child(self, child: AssetTreeNode) -> None:
        """Add a child node to this node.

        Args:
            child: Child node to add
        """
        self.items.append(child)

    def iter_nodes(self) -> Iterator[AssetTreeNode]:
        """Yield this node and every descendant in pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.items))

    def count_nodes(self) -> int:
        """Number of nodes in this subtree, including this one."""
        return sum(1 for _ in self.iter_nodes())

    def get_item_count(self) -> int:
        """Get total quantity including all children.

        Returns:
            Sum of quantities of this node and all descendants
        """
        return sum(node.quantity for node in self.iter_nodes())

    def copy(self, **changes: Any) -> AssetTreeNode:
        """Return a shallow copy with selected attributes replaced.

        The child list is copied, the child nodes themselves are shared.
        """
        values = {
            "item_id": self.item_id,
            "type_id": self.type_id,
            "quantity": self.quantity,
            "location_id": self.location_id,
            "location_type": self.location_type,
            "location_flag": self.location_flag,
            "is_singleton": self.is_singleton,
            "is_blueprint_copy": self.is_blueprint_copy,
            "name": self.name,
            "type_name": self.type_name,
            "icon_name": self.icon_name,
            "system_name": self.system_name,
            "region_name": self.region_name,
            "security_status": self.security_status,
            "location_unknown": self.location_unknown,
            "items": self.items,
        }
        values.update(changes)
        return AssetTreeNode(**values)

    def to_dict(self) -> dict[str, Any]:
        """Serialize this subtree to plain JSON-compatible data."""
        data: dict[str, Any] = {
            "item_id": self.item_id,
            "type_id": self.type_id,
            "quantity": self.quantity,
            "location_id": self.location_id,
            "location_type": self.location_type,
            "location_flag": self.location_flag,
            "is_singleton": self.is_singleton,
            "is_blueprint_copy": self.is_blueprint_copy,
            "name": self.name,
            "type_name": self.type_name,
            "icon_name": self.icon_name,
            "system_name": self.system_name,
            "region_name": self.region_name,
            "security_status": self.security_status,
            "location_unknown": self.location_unknown,
        }
        data["items"] = [child.to_dict() for child in self.items]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AssetTreeNode:
        """Rebuild a subtree produced by ``to_dict``."""
        values = dict(data)
        children = values.pop("items", None) or []
        node = cls(**values)
        node.items = [cls.from_dict(child) for child in children]
        return node

    def __repr__(self) -> str:
        return (
            f"AssetTreeNode(id={self.item_id}, "
            f"type={self.type_id}, "
            f"name='{self.display_name}', "
            f"flag={self.location_flag}, "
            f"qty={self.quantity}, "
            f"children={len(self.items)})"
        )


@dataclass
class AssetSearchResult:
    """A search hit with the path of nodes leading to it.

    Attributes:
        path: Nodes from the root down to and including the target.
        target: The matching node.
    """

    path: list[AssetTreeNode] = field(default_factory=list)
    target: AssetTreeNode | None = None

    @property
    def location_node(self) -> AssetTreeNode | None:
        return self.path[0] if self.path else None
