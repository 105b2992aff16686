"""Bookings API routes — guest checkout, host status management, cancellation."""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rentals.api.deps import get_current_active_user, get_db, get_optional_user, require_admin
from rentals.config import settings
from rentals.errors import ValidationError
from rentals.models.user import User
from rentals.schemas.booking import (
    BatchCancelRequest,
    BatchCancelResult,
    BookingCancel,
    BookingCreate,
    BookingDetailResponse,
    BookingResponse,
    BookingStatusUpdate,
    CancelExpiredRequest,
    PlaceholderBooking,
)
from rentals.schemas.common import ApiResponse, MessageResponse, Page
from rentals.schemas.payment import TEMP_BOOKING_PREFIX
from rentals.services import booking_service
from rentals.services.property_query import page_window, split_values

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


def _booking_uuid(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise ValidationError("Invalid booking id", errors=[f"booking_id: {raw!r} is not a valid id"]) from None


@router.get("", response_model=ApiResponse[Page[BookingDetailResponse]], summary="List visible bookings")
async def list_bookings(
    status_filter: list[str] | None = Query(None, alias="status"),
    property_id: uuid.UUID | None = Query(None),
    user_id: uuid.UUID | None = Query(None),
    payment_status: list[str] | None = Query(None),
    page: str | None = Query(None),
    limit: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ApiResponse[Page[BookingDetailResponse]]:
    """Admins see every booking; others see their own and those on properties they host."""
    page_no, size = page_window(page, limit)
    items, total = await booking_service.list_bookings(
        db,
        current_user,
        statuses=split_values(status_filter),
        property_id=property_id,
        user_id=user_id,
        page=page_no,
        limit=size,
        payment_statuses=split_values(payment_status),
    )
    details = [booking_service.to_detail(b) for b in items]
    return ApiResponse(data=Page.build(details, total, page_no, size))


@router.get("/{booking_id}", response_model=ApiResponse[BookingDetailResponse | PlaceholderBooking])
async def get_booking(
    booking_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
) -> ApiResponse[BookingDetailResponse | PlaceholderBooking]:
    """A booking visible to the caller. Checkout ids (``temp-…``) return a placeholder."""
    if booking_id.startswith(TEMP_BOOKING_PREFIX):
        return ApiResponse(data=booking_service.placeholder_booking(booking_id))
    return ApiResponse(data=await booking_service.get_booking(db, _booking_uuid(booking_id), current_user))


@router.post(
    "",
    response_model=ApiResponse[BookingResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create a booking",
)
async def create_booking(
    body: BookingCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
) -> ApiResponse[BookingResponse]:
    """Book a property. Anonymous guests may book; signed-in guests own the booking."""
    booking = await booking_service.create_booking(db, body, current_user)
    return ApiResponse(data=BookingResponse.model_validate(booking), message="Booking created successfully")


@router.put("/{booking_id}/status", response_model=ApiResponse[BookingResponse])
async def update_status(
    booking_id: uuid.UUID,
    body: BookingStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ApiResponse[BookingResponse]:
    booking = await booking_service.update_booking_status(db, booking_id, body.status, current_user)
    return ApiResponse(data=BookingResponse.model_validate(booking), message=f"Booking {booking.status}")


@router.patch("/{booking_id}/cancel", response_model=ApiResponse[BookingResponse | PlaceholderBooking])
async def cancel_booking(
    booking_id: str,
    body: BookingCancel | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
) -> ApiResponse[BookingResponse | PlaceholderBooking]:
    reason = body.reason if body is not None else None
    if booking_id.startswith(TEMP_BOOKING_PREFIX):
        # Nothing was ever stored for an abandoned checkout.
        placeholder = booking_service.placeholder_booking(booking_id)
        placeholder.status = "cancelled"
        return ApiResponse(data=placeholder, message="Booking cancelled")

    booking = await booking_service.cancel_booking(db, _booking_uuid(booking_id), current_user, reason)
    return ApiResponse(data=BookingResponse.model_validate(booking), message="Booking cancelled")


@router.post("/batch-cancel", response_model=ApiResponse[BatchCancelResult])
async def batch_cancel(
    body: BatchCancelRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ApiResponse[BatchCancelResult]:
    result = await booking_service.batch_cancel(db, body.booking_ids, current_user, body.reason)
    return ApiResponse(data=BatchCancelResult(**result))


@router.post("/cancel-expired", response_model=ApiResponse[dict])
async def cancel_expired(
    body: CancelExpiredRequest | None = None,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> ApiResponse[dict]:
    """Cancel pending bookings whose payment never arrived."""
    timeout = body.timeout_minutes if body is not None else settings.pending_booking_timeout_minutes
    cancelled = await booking_service.cancel_expired_bookings(db, timeout)
    return ApiResponse(data={"cancelled": cancelled})


@router.delete("/{booking_id}", response_model=MessageResponse)
async def delete_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> MessageResponse:
    await booking_service.soft_delete_booking(db, booking_id, current_user)
    return MessageResponse(message="Booking deleted successfully")
