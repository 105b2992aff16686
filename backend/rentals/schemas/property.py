"""Pydantic v2 request/response schemas for property endpoints."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rentals.models.property import PET_TYPES, PROPERTY_STATUSES, PROPERTY_TYPES

_TYPE_PATTERN = f"^({'|'.join(PROPERTY_TYPES)})$"
_STATUS_PATTERN = f"^({'|'.join(PROPERTY_STATUSES)})$"


def _clean_values(values: list[str] | None) -> list[str] | None:
    """Strip blanks and duplicates while keeping submission order."""
    if values is None:
        return None
    seen: dict[str, None] = {}
    for value in values:
        value = value.strip()
        if value:
            seen.setdefault(value, None)
    return list(seen)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class PropertyCreate(BaseModel):
    """Schema for creating a new property."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str | None = Field(None, max_length=100)
    zip_code: str | None = Field(None, max_length=20)
    price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    bedrooms: int | None = Field(None, ge=0)
    bathrooms: Decimal | None = Field(None, ge=0, max_digits=3, decimal_places=1)
    square_feet: Decimal | None = Field(None, ge=0)
    property_type: str = Field(..., pattern=_TYPE_PATTERN)
    status: str = Field("for-rent", pattern=_STATUS_PATTERN)
    is_new: bool = False
    is_featured: bool = False
    is_verified: bool = False
    parking_spaces: int = Field(0, ge=0)
    lat: float | None = Field(None, ge=-90, le=90)
    lng: float | None = Field(None, ge=-180, le=180)
    amenities: list[str] = Field(default_factory=list)
    pets_allowed: list[str] = Field(default_factory=list)

    @field_validator("amenities")
    @classmethod
    def _normalise_amenities(cls, v: list[str]) -> list[str]:
        return _clean_values(v) or []

    @field_validator("pets_allowed")
    @classmethod
    def _check_pets(cls, v: list[str]) -> list[str]:
        v = _clean_values(v) or []
        unknown = [p for p in v if p not in PET_TYPES]
        if unknown:
            raise ValueError(f"Unsupported pet types: {', '.join(unknown)}")
        return v


class PropertyUpdate(BaseModel):
    """Partial update. Amenities and pets, when present, replace the full set."""

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, min_length=1)
    address: str | None = Field(None, min_length=1, max_length=255)
    city: str | None = Field(None, min_length=1, max_length=100)
    state: str | None = Field(None, max_length=100)
    zip_code: str | None = Field(None, max_length=20)
    price: Decimal | None = Field(None, gt=0, max_digits=12, decimal_places=2)
    bedrooms: int | None = Field(None, ge=0)
    bathrooms: Decimal | None = Field(None, ge=0, max_digits=3, decimal_places=1)
    square_feet: Decimal | None = Field(None, ge=0)
    property_type: str | None = Field(None, pattern=_TYPE_PATTERN)
    status: str | None = Field(None, pattern=_STATUS_PATTERN)
    is_new: bool | None = None
    is_featured: bool | None = None
    is_verified: bool | None = None
    parking_spaces: int | None = Field(None, ge=0)
    lat: float | None = Field(None, ge=-90, le=90)
    lng: float | None = Field(None, ge=-180, le=180)
    amenities: list[str] | None = None
    pets_allowed: list[str] | None = None

    @field_validator("amenities")
    @classmethod
    def _normalise_amenities(cls, v: list[str] | None) -> list[str] | None:
        return _clean_values(v)

    @field_validator("pets_allowed")
    @classmethod
    def _check_pets(cls, v: list[str] | None) -> list[str] | None:
        v = _clean_values(v)
        if v is not None:
            unknown = [p for p in v if p not in PET_TYPES]
            if unknown:
                raise ValueError(f"Unsupported pet types: {', '.join(unknown)}")
        return v


class ArchiveRequest(BaseModel):
    reason: str | None = Field(None, max_length=255)


class RestoreRequest(BaseModel):
    status: str = Field("for-rent", pattern=_STATUS_PATTERN)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class PropertyResponse(BaseModel):
    """A property with its satellite rows and host summary denormalised in."""

    id: uuid.UUID
    title: str
    description: str
    address: str
    city: str
    state: str | None = None
    zip_code: str | None = None
    price: Decimal
    bedrooms: int | None = None
    bathrooms: Decimal | None = None
    square_feet: Decimal | None = None
    property_type: str
    status: str
    image: str | None = None
    additional_images: list[str] = []
    amenities: list[str] = []
    pets_allowed: list[str] = []
    is_new: bool
    is_featured: bool
    is_verified: bool
    parking_spaces: int
    host_id: uuid.UUID | None = None
    host_name: str = "Host"
    host_average_rating: float = 0.0
    host_review_count: int = 0
    average_rating: Decimal
    views: int
    lat: float | None = None
    lng: float | None = None
    archived: bool
    archived_at: datetime | None = None
    archived_reason: str | None = None
    created_at: datetime
    updated_at: datetime
    matches_found_in: list[str] | None = None

    model_config = ConfigDict(from_attributes=True)


class CityCount(BaseModel):
    city: str
    count: int


class PropertyImageResponse(BaseModel):
    id: uuid.UUID
    property_id: uuid.UUID
    image_url: str
    is_primary: bool

    model_config = ConfigDict(from_attributes=True)
