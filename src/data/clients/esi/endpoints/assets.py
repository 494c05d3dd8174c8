"""Assets-related ESI endpoints."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from pydantic import ValidationError

from models.eve import EveAsset, EveAssetName
from utils.exceptions import DecodingError

if TYPE_CHECKING:
    from data.clients import NetworkFetcher
    from utils.progress_callback import CancelToken

logger = logging.getLogger(__name__)

# ESI accepts at most this many item IDs per names request
NAMES_CHUNK_SIZE = 1000
# Placeholder ESI returns for items without a custom name
UNNAMED = "None"


class AssetsEndpoints:
    """Handles all assets-related ESI endpoints.

    Example:
        ```python
        assets: list[EveAsset] = await fetcher.assets.get_assets(character_id)
        names = await fetcher.assets.get_asset_names(character_id, [item_id])
        ```
    """

    def __init__(self, client: NetworkFetcher):
        """Initialize assets endpoints with the network fetcher.

        Args:
            client: Fetcher instance for HTTP operations
        """
        self._client = client

    async def get_assets(
        self,
        character_id: int,
        on_page: Callable[[int], None] | None = None,
        cancel_token: CancelToken | None = None,
    ) -> list[EveAsset]:
        """Get all assets for a character (all pages combined).

        Args:
            character_id: Character ID
            on_page: Called with each page number as it arrives
            cancel_token: Checked between page rounds

        Returns:
            Validated asset records in page order

        Raises:
            DecodingError: If a record does not match the asset model
        """
        path = f"/characters/{character_id}/assets/"
        records = await self._client.fetch_paginated(
            path,
            owner_id=character_id,
            on_page=on_page,
            cancel_token=cancel_token,
        )

        logger.info("Retrieved %d assets for character %d", len(records), character_id)
        try:
            return [EveAsset.model_validate(record) for record in records]
        except ValidationError as e:
            raise DecodingError(f"Unexpected asset payload: {e}") from e

    async def get_asset_names(
        self, character_id: int, item_ids: Iterable[int]
    ) -> dict[int, str]:
        """Get custom names for items (containers, ships).

        Args:
            character_id: Character ID owning the items
            item_ids: Items to look up

        Returns:
            Mapping of item ID to custom name (unnamed items omitted)
        """
        ids = sorted(set(item_ids))
        if not ids:
            return {}

        path = f"/characters/{character_id}/assets/names/"
        names: dict[int, str] = {}
        for start in range(0, len(ids), NAMES_CHUNK_SIZE):
            chunk = ids[start : start + NAMES_CHUNK_SIZE]
            data = await self._client.post(path, chunk, owner_id=character_id)
            try:
                entries = [EveAssetName.model_validate(entry) for entry in data or []]
            except (TypeError, ValidationError) as e:
                raise DecodingError(f"Unexpected asset names payload: {e}") from e
            for entry in entries:
                if entry.name and entry.name != UNNAMED:
                    names[entry.item_id] = entry.name

        logger.debug(
            "Resolved %d/%d item names for character %d",
            len(names),
            len(ids),
            character_id,
        )
        return names
