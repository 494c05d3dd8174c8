"""Structure-related ESI endpoints."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from models.eve import EveStructure

if TYPE_CHECKING:
    from data.clients import NetworkFetcher

logger = logging.getLogger(__name__)

# Access-denied responses never succeed on retry
STRUCTURE_NO_RETRY_KEYWORDS = ("Forbidden",)


class UniverseEndpoints:
    """Handles all universe-related ESI endpoints.

    Example:
        ```python
        structure_info: EveStructure = await fetcher.universe.get_structure_info(
            structure_id=1234567890, character_id=123456789
        )
        ```
    """

    def __init__(self, client: NetworkFetcher):
        """Initialize structure endpoints with the network fetcher.

        Args:
            client: Fetcher instance for HTTP operations
        """
        self._client = client

    async def get_structure_info(
        self,
        structure_id: int,
        character_id: int,
    ) -> EveStructure:
        """Get information about a structure.

        This endpoint requires authentication and the character must be on
        the structure's ACL (access control list) to view its information.

        Args:
            structure_id: Structure ID to get information for
            character_id: Character ID for authentication

        Returns:
            Validated EveStructure model with structure information

        Raises:
            NonRetryableError: If the character has no access to the structure
            DecodingError: If the payload does not match the structure model
        """
        path = f"/universe/structures/{structure_id}/"
        structure = await self._client.fetch_entity(
            path,
            EveStructure,
            owner_id=character_id,
            no_retry_keywords=STRUCTURE_NO_RETRY_KEYWORDS,
        )
        logger.debug("Retrieved structure info for structure %d", structure_id)
        return structure
