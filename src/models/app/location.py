"""Location information models."""

from __future__ import annotations

import math
from typing import Literal

from pydantic import BaseModel, Field

# Colour bands keyed by the upper bound of the truncated security value
SECURITY_COLORS: tuple[tuple[float, str], ...] = (
    (1.0, "#4173D4"),
    (0.9, "#559AEF"),
    (0.8, "#72CCED"),
    (0.7, "#81D8A9"),
    (0.6, "#8FE167"),
    (0.4, "#D0712D"),
)
NULL_SEC_COLOR = "#833764"


def truncate_security(security: float) -> float:
    """Floor a security status to one decimal place."""
    return math.floor(security * 10) / 10


def security_color(security: float) -> str:
    """Return the hex colour band for a security status.

    Bands are evaluated on the truncated value, each covering the half-open
    range (lower, upper].
    """
    value = truncate_security(security)
    lower_bounds = [bound for bound, _ in SECURITY_COLORS[1:]] + [0.0]
    for (upper, color), lower in zip(SECURITY_COLORS, lower_bounds, strict=True):
        if lower < value <= upper:
            return color
    return NULL_SEC_COLOR


class LocationInfoDetail(BaseModel):
    """Resolved, human-readable detail for a location identifier."""

    location_id: int = Field(...)
    display_name: str = Field(..., description="Station, structure or system name")
    category: Literal["station", "structure", "solar_system"] = Field(
        ..., description="Kind of place the identifier refers to"
    )
    solar_system_id: int | None = Field(default=None)
    solar_system_name: str | None = Field(default=None)
    region_id: int | None = Field(default=None)
    region_name: str | None = Field(default=None)
    security: float | None = Field(
        default=None, description="Raw security status of the owning solar system"
    )
    type_id: int | None = Field(
        default=None, description="Station or structure type, when known"
    )

    @property
    def security_display(self) -> str | None:
        """Security truncated to one decimal for display."""
        if self.security is None:
            return None
        return f"{truncate_security(self.security):.1f}"

    @property
    def security_color(self) -> str | None:
        """Hex colour band for the security status."""
        if self.security is None:
            return None
        return security_color(self.security)
