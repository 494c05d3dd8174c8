"""Flag-grouped, merged and sorted view of a node's direct children."""

from __future__ import annotations

import logging
import re

from models.app import AssetTreeNode

logger = logging.getLogger(__name__)

_NUMBERED_SLOT = re.compile(
    r"^(HiSlot|MedSlot|LoSlot|RigSlot|SubSystemSlot|FighterTube)\d+$"
)

# Normalized flags in display order; each inner tuple is one priority tier
FLAG_PRIORITY: tuple[tuple[str, ...], ...] = (
    ("HiSlots", "MedSlots", "LoSlots", "RigSlots", "SubSystemSlots"),
    ("DroneBay", "FighterBay", "FighterTubes"),
    (
        "SpecializedAmmoHold",
        "SpecializedCommandCenterHold",
        "SpecializedFuelBay",
        "SpecializedGasHold",
        "SpecializedIndustrialShipHold",
        "SpecializedLargeShipHold",
        "SpecializedMaterialBay",
        "SpecializedMediumShipHold",
        "SpecializedMineralHold",
        "SpecializedOreHold",
        "SpecializedPlanetaryCommoditiesHold",
        "SpecializedSalvageHold",
        "SpecializedShipHold",
        "SpecializedSmallShipHold",
        "SubSystemBay",
    ),
    ("Cargo", "Hangar", "ShipHangar", "FleetHangar"),
    tuple(f"CorpSAG{i}" for i in range(1, 8)),
    ("CorpDeliveries", "Deliveries"),
)

_FLAG_RANK: dict[str, int] = {
    flag: rank
    for rank, flag in enumerate(flag for tier in FLAG_PRIORITY for flag in tier)
}

FlagGroup = tuple[str, list[AssetTreeNode]]


def normalize_flag(flag: str) -> str:
    """Collapse numbered slot flags to their family name.

    Example:
        ``"HiSlot3"`` becomes ``"HiSlots"``; ``"Cargo"`` is returned unchanged.
    """
    match = _NUMBERED_SLOT.match(flag)
    if match:
        return f"{match.group(1)}s"
    return flag


def _sort_key(node: AssetTreeNode) -> tuple[str, int]:
    return (node.display_name.casefold(), node.item_id)


class DisplayGrouper:
    """Groups a node's children by normalized flag for presentation.

    Within a group, identical non-container items are stacked into one node.
    The merge key is (type_id, custom name). Blueprint copies and originals
    of the same type share a key and therefore stack together.
    """

    def group(self, node: AssetTreeNode) -> list[FlagGroup]:
        """Group, merge and sort the direct children of ``node``.

        The input node and its children are not modified.

        Returns:
            (normalized_flag, items) pairs in display order
        """
        groups: dict[str, list[AssetTreeNode]] = {}
        for child in node.items:
            groups.setdefault(normalize_flag(child.location_flag), []).append(child)

        first_seen = {flag: index for index, flag in enumerate(groups)}
        ordered_flags = sorted(
            groups,
            key=lambda flag: (_FLAG_RANK.get(flag, len(_FLAG_RANK)), first_seen[flag]),
        )

        result: list[FlagGroup] = []
        for flag in ordered_flags:
            items = sorted(self.merge(groups[flag]), key=_sort_key)
            result.append((flag, items))
        return result

    @staticmethod
    def merge(items: list[AssetTreeNode]) -> list[AssetTreeNode]:
        """Stack mergeable items, keeping containers untouched.

        A stack takes its fields from the first item encountered, with the
        summed quantity and ``is_singleton`` cleared.
        """
        stacks: dict[tuple[int, str | None], list[AssetTreeNode]] = {}
        merged: list[AssetTreeNode] = []
        for item in items:
            if item.is_container:
                merged.append(item)
                continue
            key = (item.type_id, item.name)
            stack = stacks.get(key)
            if stack is None:
                stacks[key] = [item]
                merged.append(item)
            else:
                stack.append(item)

        for index, item in enumerate(merged):
            if item.is_container:
                continue
            stack = stacks[(item.type_id, item.name)]
            if len(stack) > 1 or item.quantity > 1:
                merged[index] = item.copy(
                    quantity=sum(part.quantity for part in stack),
                    is_singleton=False,
                )
                if len(stack) > 1:
                    logger.debug(
                        "Stacked %d items of type %d", len(stack), item.type_id
                    )
        return merged
