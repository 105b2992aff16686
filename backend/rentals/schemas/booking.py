"""Pydantic v2 request/response schemas for booking endpoints."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationInfo, field_validator

from rentals.models.booking import BOOKING_STATUSES

# Longest allowed stay, counted as 36 months of 30 days.
MAX_STAY_DAYS = 36 * 30

PHONE_PATTERN = r"^[\d\s\+\(\)\-]{8,15}$"

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class BookingCreate(BaseModel):
    """Schema for creating a new booking."""

    property_id: uuid.UUID
    guest_name: str = Field(..., min_length=3, max_length=255)
    guest_email: EmailStr
    guest_phone: str | None = Field(None, pattern=PHONE_PATTERN)
    check_in_date: date
    check_out_date: date
    guests: int = Field(1, ge=1)
    total_price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    special_requests: str | None = Field(None, max_length=500)

    @field_validator("guest_name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Guest name must be at least 3 characters")
        return v

    @field_validator("check_out_date")
    @classmethod
    def _check_stay(cls, v: date, info: ValidationInfo) -> date:
        """Check-out must follow check-in and the stay may not exceed 36 months."""
        check_in = info.data.get("check_in_date")
        if check_in is None:
            return v
        if v <= check_in:
            raise ValueError("Check-out date must be after check-in date")
        if (v - check_in).days > MAX_STAY_DAYS:
            raise ValueError("Booking cannot exceed 36 months")
        return v


class BookingStatusUpdate(BaseModel):
    status: str = Field(..., pattern=f"^({'|'.join(BOOKING_STATUSES)})$")


class BookingCancel(BaseModel):
    reason: str | None = Field(None, max_length=500)


class BatchCancelRequest(BaseModel):
    booking_ids: list[uuid.UUID] = Field(..., min_length=1, max_length=100)
    reason: str | None = Field(None, max_length=500)


class CancelExpiredRequest(BaseModel):
    timeout_minutes: int = Field(30, ge=1)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BookingResponse(BaseModel):
    """Standard booking response returned from lifecycle operations."""

    id: uuid.UUID
    property_id: uuid.UUID
    user_id: uuid.UUID | None = None
    guest_name: str
    guest_email: str
    guest_phone: str | None = None
    check_in_date: date
    check_out_date: date
    guests: int
    total_price: Decimal
    special_requests: str | None = None
    cancellation_reason: str | None = None
    status: str
    payment_status: str
    payment_method: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingDetailResponse(BookingResponse):
    """Booking plus the title and city of the booked property."""

    property_title: str | None = None
    property_city: str | None = None
    property_image: str | None = None


class PlaceholderBooking(BaseModel):
    """Stand-in returned for checkout ids that have no row yet."""

    id: str
    property_id: uuid.UUID | None = None
    guest_name: str = "Pending guest"
    guest_email: str = ""
    check_in_date: date
    check_out_date: date
    guests: int = 1
    total_price: Decimal = Decimal("0")
    status: str = "pending"


class BatchCancelResult(BaseModel):
    total: int
    succeeded: list[uuid.UUID]
    failed: dict[str, str]


class BookingStats(BaseModel):
    property_id: uuid.UUID
    total_bookings: int
    completed_bookings: int
    cancelled_bookings: int
    upcoming_bookings: int
    total_revenue: Decimal
    occupancy_rate: float
    average_rating: Decimal
