"""Custom exception hierarchy for EVE Asset Tree.

Provides structured exception classes for different error scenarios.
"""

from __future__ import annotations

RETRYABLE_STATUS_CODES = frozenset({408, 500, 502, 503, 504})


class AssetTreeError(Exception):
    """Base exception for all EVE Asset Tree errors."""

    pass


class ConfigurationError(AssetTreeError):
    """Exception raised for configuration-related errors."""

    pass


class ESIError(AssetTreeError):
    """Base exception for ESI API errors."""

    pass


class InvalidURLError(ESIError):
    """Exception raised when a request URL cannot be built."""

    pass


class InvalidResponseError(ESIError):
    """Exception raised for a malformed transport response."""

    pass


class HTTPError(ESIError):
    """Exception raised for a non-success HTTP status.

    Attributes:
        status: HTTP status code
        body: Response body text, if any
    """

    def __init__(self, status: int, body: str | None = None):
        self.status = status
        self.body = body
        preview = (body or "")[:200]
        super().__init__(f"HTTP {status}: {preview}" if preview else f"HTTP {status}")

    @property
    def is_retryable(self) -> bool:
        """Whether the status is one of the transient server conditions."""
        return self.status in RETRYABLE_STATUS_CODES


class DecodingError(ESIError):
    """Exception raised when a payload does not match the expected model."""

    pass


class TokenExpiredError(ESIError):
    """Exception raised when no valid access token exists for an owner."""

    def __init__(self, owner_id: int):
        self.owner_id = owner_id
        super().__init__(f"No valid access token for owner {owner_id}")


class MaxRetriesExceededError(ESIError):
    """Exception raised when every retry attempt failed.

    Attributes:
        last_error: Underlying error of the final attempt
        attempts: Number of attempts made
    """

    def __init__(self, last_error: BaseException | None, attempts: int):
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(f"Max retries exceeded after {attempts} attempts: {last_error}")


class NonRetryableError(ESIError):
    """Exception raised when a response body contains a non-retryable keyword."""

    def __init__(self, keyword: str, last_error: BaseException):
        self.keyword = keyword
        self.last_error = last_error
        super().__init__(f"Non-retryable response ({keyword!r}): {last_error}")


class CacheError(AssetTreeError):
    """Exception raised for unreadable cache entries (handled internally)."""

    pass


class LocationResolutionError(AssetTreeError):
    """Exception raised when a location identifier cannot be resolved."""

    def __init__(self, location_id: int, message: str | None = None):
        self.location_id = location_id
        detail = f": {message}" if message else ""
        super().__init__(f"Could not resolve location {location_id}{detail}")


class ServiceError(AssetTreeError):
    """Base exception for service layer errors."""

    pass


class OperationCancelledError(ServiceError):
    """Exception raised when a CancelToken stops an operation between steps."""

    pass
