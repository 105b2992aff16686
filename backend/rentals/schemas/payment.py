"""Pydantic v2 request/response schemas for payment endpoints."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from rentals.models.payment import PAYMENT_METHODS
from rentals.schemas.booking import BookingCreate

TEMP_BOOKING_PREFIX = "temp-"


class PaymentCreate(BaseModel):
    """Pay for an existing booking, or for a checkout that has no booking row yet.

    When ``booking_id`` is a client-side ``temp-`` id the ``booking`` details
    are required and a booking is materialised before the payment is stored.
    """

    booking_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    payment_method: str = Field(..., pattern=f"^({'|'.join(PAYMENT_METHODS)})$")
    currency: str | None = Field(None, min_length=3, max_length=3)
    payment_token: str | None = Field(None, max_length=255, description="Processor payment method id")
    booking: BookingCreate | None = None

    @property
    def is_temporary(self) -> bool:
        return self.booking_id.startswith(TEMP_BOOKING_PREFIX)

    @model_validator(mode="after")
    def _check_booking_reference(self) -> "PaymentCreate":
        if self.is_temporary:
            if self.booking is None:
                raise ValueError("Booking details are required when paying for a temporary booking")
        else:
            try:
                uuid.UUID(self.booking_id)
            except ValueError:
                raise ValueError("booking_id must be a booking UUID or a temp- checkout id") from None
        return self


class PaymentResponse(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    amount: Decimal
    currency: str
    payment_method: str
    status: str
    transaction_id: str | None = None
    payment_date: datetime
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentWithBookingResponse(PaymentResponse):
    """Payment plus the booking state it produced."""

    booking_status: str
    booking_payment_status: str
