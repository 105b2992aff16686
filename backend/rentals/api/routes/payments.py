"""Payments API routes — checkout, history and refunds."""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rentals.api.deps import get_current_active_user, get_db, get_gateway, get_optional_user
from rentals.billing.gateway import PaymentGateway
from rentals.models.booking import Booking
from rentals.models.payment import PAYMENT_STATUSES, Payment
from rentals.models.user import User
from rentals.schemas.common import ApiResponse, Page
from rentals.schemas.payment import PaymentCreate, PaymentResponse, PaymentWithBookingResponse
from rentals.services import payment_service
from rentals.services.property_query import page_window

router = APIRouter(prefix="/api/payments", tags=["payments"])


def _with_booking(payment: Payment, booking: Booking) -> PaymentWithBookingResponse:
    return PaymentWithBookingResponse(
        **PaymentResponse.model_validate(payment).model_dump(),
        booking_status=booking.status,
        booking_payment_status=booking.payment_status,
    )


@router.get("", response_model=ApiResponse[Page[PaymentResponse]])
async def list_payments(
    status_filter: str | None = Query(None, alias="status", pattern=f"^({'|'.join(PAYMENT_STATUSES)})$"),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    page: str | None = Query(None),
    limit: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ApiResponse[Page[PaymentResponse]]:
    page_no, size = page_window(page, limit)
    items, total = await payment_service.list_payments(
        db, current_user, status_filter, date_from, date_to, page=page_no, limit=size
    )
    payments = [PaymentResponse.model_validate(p) for p in items]
    return ApiResponse(data=Page.build(payments, total, page_no, size))


@router.get("/{payment_id}", response_model=ApiResponse[PaymentResponse])
async def get_payment(
    payment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ApiResponse[PaymentResponse]:
    payment = await payment_service.get_payment(db, payment_id, current_user)
    return ApiResponse(data=PaymentResponse.model_validate(payment))


@router.post("", response_model=ApiResponse[PaymentWithBookingResponse], status_code=status.HTTP_201_CREATED)
async def create_payment(
    body: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
    gateway: PaymentGateway = Depends(get_gateway),
) -> ApiResponse[PaymentWithBookingResponse]:
    """Pay for a booking. A ``temp-`` booking id creates the booking as part of the payment."""
    payment, booking = await payment_service.create_payment(db, body, current_user, gateway)
    return ApiResponse(data=_with_booking(payment, booking), message="Payment completed")


@router.post("/{payment_id}/refund", response_model=ApiResponse[PaymentWithBookingResponse])
async def refund_payment(
    payment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    gateway: PaymentGateway = Depends(get_gateway),
) -> ApiResponse[PaymentWithBookingResponse]:
    """Refund a completed payment; the booking is cancelled with it."""
    payment, booking = await payment_service.refund_payment(db, payment_id, current_user, gateway)
    return ApiResponse(data=_with_booking(payment, booking), message="Payment refunded")
