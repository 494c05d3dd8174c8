"""Builds the ownership forest from flat asset records.

Every record becomes exactly one node. A record whose ``location_id`` is the
``item_id`` of another record is attached under that record; every other
record is a root sitting in a station, structure or solar system (or in a
place that cannot be identified, in which case it is tagged unknown).

Parent chains are walked iteratively with a depth bound, and records that
can never be reached from a genuine root (ownership cycles) are demoted to
unknown-location roots so nothing is lost.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

from models.app import ROOT_LOCATION_FLAG, AssetTreeNode
from services.location_service import classify_location

if TYPE_CHECKING:
    from models.app import LocationInfoDetail
    from models.eve import EveAsset

logger = logging.getLogger(__name__)

MAX_DEPTH = 64


class AssetTreeBuilder:
    """Pure, synchronous builder for asset ownership forests.

    Example:
        ```python
        builder = AssetTreeBuilder()
        roots = builder.build(records)
        details = await resolver.resolve_many(builder.location_requests(roots), owner_id)
        forest = builder.group_by_location(roots, details)
        ```
    """

    def __init__(self, max_depth: int = MAX_DEPTH):
        """Initialize the builder.

        Args:
            max_depth: Deepest nesting attached below a root; deeper nodes are
                demoted to unknown-location roots
        """
        self.max_depth = max_depth

    def build(self, records: Iterable[EveAsset]) -> list[AssetTreeNode]:
        """Build the item-level forest.

        Args:
            records: Raw asset records (not modified)

        Returns:
            Root nodes in input order, followed by any demoted roots. Children
            keep the input order of their records.
        """
        nodes: dict[int, AssetTreeNode] = {}
        for record in records:
            if record.item_id in nodes:
                logger.warning("Ignoring duplicate asset record %d", record.item_id)
                continue
            nodes[record.item_id] = AssetTreeNode.from_asset(record)

        children: dict[int, list[int]] = defaultdict(list)
        root_ids: list[int] = []
        for item_id, node in nodes.items():
            if node.location_id in nodes:
                children[node.location_id].append(item_id)
            else:
                root_ids.append(item_id)

        roots: list[AssetTreeNode] = []
        visited: set[int] = set()

        for item_id in root_ids:
            root = nodes[item_id]
            if classify_location(root.location_id, root.location_type) is None:
                logger.debug(
                    "Asset %d sits in unknown location %d", item_id, root.location_id
                )
                root.location_unknown = True
            roots.append(root)
            self._attach_subtree(item_id, nodes, children, visited, roots)

        # Anything not reached from a genuine root is part of a cycle
        for item_id, node in nodes.items():
            if item_id in visited:
                continue
            logger.warning(
                "Breaking ownership cycle at asset %d (location %d)",
                item_id,
                node.location_id,
            )
            node.location_unknown = True
            roots.append(node)
            self._attach_subtree(item_id, nodes, children, visited, roots)

        logger.debug("Built %d roots from %d asset records", len(roots), len(nodes))
        return roots

    def _attach_subtree(
        self,
        root_id: int,
        nodes: dict[int, AssetTreeNode],
        children: dict[int, list[int]],
        visited: set[int],
        roots: list[AssetTreeNode],
    ) -> None:
        visited.add(root_id)
        stack: list[tuple[int, int]] = [(root_id, 0)]
        while stack:
            parent_id, depth = stack.pop()
            parent = nodes[parent_id]
            for child_id in children.get(parent_id, ()):
                if child_id in visited:
                    continue
                visited.add(child_id)
                child = nodes[child_id]
                if depth + 1 > self.max_depth:
                    logger.warning(
                        "Asset %d is nested deeper than %d levels, treating as root",
                        child_id,
                        self.max_depth,
                    )
                    child.location_unknown = True
                    roots.append(child)
                    stack.append((child_id, 0))
                    continue
                parent.add_child(child)
                stack.append((child_id, depth + 1))

    @staticmethod
    def location_requests(roots: Iterable[AssetTreeNode]) -> list[tuple[int, str]]:
        """Deduplicated (location_id, location_type) pairs of the known roots."""
        seen: dict[int, str] = {}
        for root in roots:
            if not root.location_unknown:
                seen.setdefault(root.location_id, root.location_type)
        return list(seen.items())

    def group_by_location(
        self,
        roots: Iterable[AssetTreeNode],
        locations: Mapping[int, LocationInfoDetail | None],
    ) -> list[AssetTreeNode]:
        """Wrap item roots into one synthetic node per location.

        Roots tagged unknown, and roots whose location did not resolve, go
        under a placeholder node with ``location_unknown`` set and no display
        fields. Location nodes keep the first-seen order of their IDs.

        Args:
            roots: Item-level roots from ``build``
            locations: Resolved details keyed by location ID

        Returns:
            Location-level forest
        """
        groups: dict[tuple[bool, int], AssetTreeNode] = {}
        for root in roots:
            detail = None if root.location_unknown else locations.get(root.location_id)
            key = (detail is None, root.location_id)
            location_node = groups.get(key)
            if location_node is None:
                location_node = self._make_location_node(root, detail)
                groups[key] = location_node
            location_node.add_child(root)
        return list(groups.values())

    @staticmethod
    def _make_location_node(
        root: AssetTreeNode, detail: LocationInfoDetail | None
    ) -> AssetTreeNode:
        if detail is None:
            return AssetTreeNode(
                item_id=root.location_id,
                type_id=0,
                quantity=1,
                location_id=root.location_id,
                location_type=root.location_type,
                location_flag=ROOT_LOCATION_FLAG,
                is_singleton=True,
                location_unknown=True,
            )
        return AssetTreeNode(
            item_id=detail.location_id,
            type_id=detail.type_id or 0,
            quantity=1,
            location_id=detail.location_id,
            location_type=detail.category,
            location_flag=ROOT_LOCATION_FLAG,
            is_singleton=True,
            name=detail.display_name,
            system_name=detail.solar_system_name,
            region_name=detail.region_name,
            security_status=detail.security,
        )
