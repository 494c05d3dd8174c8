"""EVE Online asset data models."""

from pydantic import BaseModel, Field


class EveAsset(BaseModel):
    """Represents a character or corporation asset record from ESI."""

    item_id: int = Field(..., description="Unique ID for this asset")
    type_id: int = Field(..., description="Type ID of the item")
    quantity: int = Field(..., ge=1, description="Quantity of items")
    location_id: int = Field(
        ..., description="Item, station, structure or solar system holding the asset"
    )
    location_type: str = Field(
        ..., description="Type of location (station, structure, solar_system, item, other)"
    )
    location_flag: str = Field(
        ..., description="Specific location flag (Hangar, Cargo, HiSlot3, etc)"
    )
    is_singleton: bool = Field(..., description="Whether this is a unique item")
    is_blueprint_copy: bool | None = Field(
        None, description="If blueprint, whether it's a copy"
    )
    name: str | None = Field(None, description="Custom name given by the owner")


class EveAssetName(BaseModel):
    """Custom item name returned by the asset names endpoint."""

    item_id: int = Field(..., description="Item the name belongs to")
    name: str = Field(..., description="Custom name (may be 'None' for unnamed items)")
