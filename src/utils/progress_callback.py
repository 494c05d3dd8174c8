"""Progress callback infrastructure for async operations.

This module provides:
- ProgressPhase enum for tracking asset tree loading stages
- ProgressUpdate dataclass for structured progress information
- CancelToken for signaling cancellation between batches
- ProgressCallback type alias for progress handler functions

Usage:
    from utils.progress_callback import ProgressCallback, ProgressPhase, ProgressUpdate

    def my_progress_handler(update: ProgressUpdate) -> None:
        print(f"{update.operation}: {update.current}/{update.total} - {update.message}")
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum


class ProgressPhase(Enum):
    """Phases of an asset tree load for progress tracking."""

    FETCHING_PAGE = "fetching_page"
    FETCHING_NAMES = "fetching_names"
    RESOLVING_LOCATIONS = "resolving_locations"
    BUILDING_TREE = "building_tree"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class ProgressUpdate:
    """Structured progress information for async operations.

    Attributes:
        operation: Name of the operation being performed.
        owner_id: ID of the owner involved, or None if not owner-specific.
        phase: Current phase of the operation.
        current: Current progress value (page number, tree step, ...).
        total: Total expected steps (0 if indeterminate).
        message: Human-readable status message.
        detail: Optional additional detail string.
    """

    operation: str
    owner_id: int | None
    phase: ProgressPhase
    current: int
    total: int
    message: str
    detail: str | None = None

    @classmethod
    def fetching_page(cls, owner_id: int | None, page: int) -> ProgressUpdate:
        return cls(
            operation="assets",
            owner_id=owner_id,
            phase=ProgressPhase.FETCHING_PAGE,
            current=page,
            total=0,
            message=f"Fetched asset page {page}",
        )

    @classmethod
    def building_tree(
        cls, owner_id: int | None, step: int, total: int, detail: str | None = None
    ) -> ProgressUpdate:
        return cls(
            operation="assets",
            owner_id=owner_id,
            phase=ProgressPhase.BUILDING_TREE,
            current=step,
            total=total,
            message=f"Building asset tree ({step}/{total})",
            detail=detail,
        )

    @classmethod
    def fetching_names(cls, owner_id: int | None, count: int) -> ProgressUpdate:
        return cls(
            operation="assets",
            owner_id=owner_id,
            phase=ProgressPhase.FETCHING_NAMES,
            current=0,
            total=count,
            message=f"Fetching names for {count} containers",
        )

    @classmethod
    def resolving_locations(
        cls, owner_id: int | None, done: int, total: int
    ) -> ProgressUpdate:
        return cls(
            operation="assets",
            owner_id=owner_id,
            phase=ProgressPhase.RESOLVING_LOCATIONS,
            current=done,
            total=total,
            message=f"Resolved {done}/{total} locations",
        )

    @classmethod
    def error(cls, owner_id: int | None, message: str) -> ProgressUpdate:
        return cls(
            operation="assets",
            owner_id=owner_id,
            phase=ProgressPhase.ERROR,
            current=0,
            total=0,
            message=message,
        )

    @classmethod
    def complete(cls, owner_id: int | None, item_count: int) -> ProgressUpdate:
        return cls(
            operation="assets",
            owner_id=owner_id,
            phase=ProgressPhase.COMPLETE,
            current=item_count,
            total=item_count,
            message=f"Loaded {item_count} assets",
        )


# Type alias for progress callback functions
ProgressCallback = Callable[[ProgressUpdate], None]


class CancelToken:
    """Token to signal cancellation to async operations.

    Operations check ``is_cancelled`` between page rounds and batches;
    requests already in flight are allowed to finish.

    Example:
        token = CancelToken()

        async def my_operation(token: CancelToken):
            for batch in batches:
                if token.is_cancelled:
                    return
                await process(batch)

        # To cancel from another context:
        token.cancel()
    """

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        """Signal cancellation to the operation."""
        self._cancelled = True

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation has been requested."""
        return self._cancelled

    def reset(self) -> None:
        """Reset the cancellation state for reuse."""
        self._cancelled = False
