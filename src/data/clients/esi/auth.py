"""Access token providers for authenticated ESI requests.

The OAuth login and refresh flow lives outside this package; requests only
need a bearer token for the owner whose data they read. Anything with an
``async get_access_token(owner_id) -> str`` method can be plugged in.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable

from utils.exceptions import TokenExpiredError

logger = logging.getLogger(__name__)

# Tokens this close to expiry are treated as expired
EXPIRY_BUFFER = timedelta(minutes=5)


@runtime_checkable
class TokenProvider(Protocol):
    """Supplies bearer tokens for an owner (character)."""

    async def get_access_token(self, owner_id: int) -> str: ...


class StaticTokenProvider:
    """In-memory token store fed by an external login/refresh flow.

    Example:
        ```python
        tokens = StaticTokenProvider()
        tokens.set_token(90000001, "eyJ...", expires_at=expiry)
        fetcher = NetworkFetcher(tokens, rate_limiter, retrier)
        ```
    """

    def __init__(self, tokens: dict[int, str] | None = None):
        """Initialize the provider.

        Args:
            tokens: Optional mapping of owner ID to access token (no expiry)
        """
        self._tokens: dict[int, tuple[str, datetime | None]] = {}
        self._lock = asyncio.Lock()
        for owner_id, token in (tokens or {}).items():
            self.set_token(owner_id, token)

    def set_token(
        self, owner_id: int, access_token: str, expires_at: datetime | None = None
    ) -> None:
        """Store or replace the token for an owner."""
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        self._tokens[int(owner_id)] = (access_token, expires_at)
        logger.debug("Stored access token for owner %s", owner_id)

    def remove_token(self, owner_id: int) -> bool:
        """Remove an owner's token.

        Returns:
            True if a token was removed
        """
        return self._tokens.pop(int(owner_id), None) is not None

    def list_owner_ids(self) -> list[int]:
        return sorted(self._tokens)

    async def get_access_token(self, owner_id: int) -> str:
        """Return a valid access token for the owner.

        Raises:
            TokenExpiredError: If no token is stored or it is (nearly) expired
        """
        async with self._lock:
            entry = self._tokens.get(int(owner_id))
        if entry is None:
            raise TokenExpiredError(owner_id)

        token, expires_at = entry
        if expires_at is not None and datetime.now(UTC) >= expires_at - EXPIRY_BUFFER:
            logger.debug("Access token for owner %s has expired", owner_id)
            raise TokenExpiredError(owner_id)
        return token
