"""Pydantic v2 request/response schemas for review endpoints."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class ReviewCreate(BaseModel):
    property_id: uuid.UUID
    booking_id: uuid.UUID | None = None
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = Field(None, max_length=2000)


class ReviewUpdate(BaseModel):
    rating: int | None = Field(None, ge=1, le=5)
    comment: str | None = Field(None, max_length=2000)


class ReviewResponse(BaseModel):
    id: uuid.UUID
    property_id: uuid.UUID
    booking_id: uuid.UUID | None = None
    reviewer_id: uuid.UUID
    reviewer_name: str | None = None
    rating: int
    comment: str | None = None
    likes: int
    dislikes: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PropertyRatingResponse(BaseModel):
    property_id: uuid.UUID
    average_rating: Decimal
    review_count: int


class RecalculateResult(BaseModel):
    total_properties: int
    updated_properties: int
