"""Utility functions and classes for EVE Asset Tree."""

from .config import get_config, reload_config, reset_config
from .di_container import (
    DIContainer,
    DIContainerError,
    ServiceKeys,
    configure_container,
    get_container,
    reset_container,
)
from .exceptions import (
    AssetTreeError,
    CacheError,
    ConfigurationError,
    DecodingError,
    ESIError,
    HTTPError,
    InvalidResponseError,
    InvalidURLError,
    LocationResolutionError,
    MaxRetriesExceededError,
    NonRetryableError,
    OperationCancelledError,
    ServiceError,
    TokenExpiredError,
)
from .logging_setup import setup_logging
from .progress_callback import (
    CancelToken,
    ProgressCallback,
    ProgressPhase,
    ProgressUpdate,
)

__all__ = [
    "AssetTreeError",
    "CacheError",
    "CancelToken",
    "ConfigurationError",
    "DIContainer",
    "DIContainerError",
    "DecodingError",
    "ESIError",
    "HTTPError",
    "InvalidResponseError",
    "InvalidURLError",
    "LocationResolutionError",
    "MaxRetriesExceededError",
    "NonRetryableError",
    "OperationCancelledError",
    "ProgressCallback",
    "ProgressPhase",
    "ProgressUpdate",
    "ServiceError",
    "ServiceKeys",
    "TokenExpiredError",
    "configure_container",
    "get_config",
    "get_container",
    "reload_config",
    "reset_config",
    "reset_container",
    "setup_logging",
]
