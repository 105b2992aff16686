"""Booking lifecycle — creation, visibility, status transitions, and cancellation."""

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rentals.auth.policy import policy
from rentals.errors import AppError, AuthorizationError, ConflictError, NotFoundError, ValidationError, wrap_db_errors
from rentals.models.booking import ACTIVE_BOOKING_STATUSES, BOOKING_PAYMENT_STATUSES, Booking
from rentals.models.property import Property
from rentals.models.review import Review
from rentals.models.user import User
from rentals.schemas.booking import BookingCreate, BookingDetailResponse, BookingStats, PlaceholderBooking
from rentals.services.booking_states import INITIAL_STATUS, ensure_transition
from rentals.services.property_query import page_window
from rentals.services.rating_service import quantize_rating

logger = logging.getLogger(__name__)

EXPIRED_PAYMENT_REASON = "Payment not received in time"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def load_booking(db: AsyncSession, booking_id: uuid.UUID) -> Booking:
    """Fetch a non-deleted booking (with its property) or raise 404."""
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id, Booking.deleted_at.is_(None))
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


def _host_id(booking: Booking) -> uuid.UUID | None:
    return booking.property.host_id if booking.property is not None else None


def can_view(booking: Booking, user: User | None) -> bool:
    """Guest owner, host of the booked property, or admin."""
    return policy.is_owner(booking.user_id, user) or policy.can_manage(_host_id(booking), user)


def is_party(booking: Booking, user: User | None) -> bool:
    """Anyone tied to the booking; guest bookings without an account are cancellable by id alone."""
    return booking.user_id is None or can_view(booking, user)


async def ensure_available(
    db: AsyncSession,
    property_id: uuid.UUID,
    check_in: date,
    check_out: date,
    exclude_booking_id: uuid.UUID | None = None,
) -> None:
    """Raise :class:`ConflictError` if the dates overlap a pending or confirmed booking."""
    query = select(Booking.id).where(
        Booking.property_id == property_id,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        Booking.deleted_at.is_(None),
        Booking.check_in_date < check_out,
        Booking.check_out_date > check_in,
    )
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)

    if await db.scalar(query.limit(1)) is not None:
        raise ConflictError("The property is not available for the selected dates")


def to_detail(booking: Booking) -> BookingDetailResponse:
    detail = BookingDetailResponse.model_validate(booking)
    if booking.property is not None:
        detail.property_title = booking.property.title
        detail.property_city = booking.property.city
        detail.property_image = booking.property.image
    return detail


def placeholder_booking(
    temp_id: str,
    property_id: uuid.UUID | None = None,
    check_in: date | None = None,
    check_out: date | None = None,
    guests: int = 1,
    amount: Decimal | None = None,
) -> PlaceholderBooking:
    """Stand-in for a checkout whose booking row has not been materialised yet."""
    today = date.today()
    return PlaceholderBooking(
        id=temp_id,
        property_id=property_id,
        check_in_date=check_in or today,
        check_out_date=check_out or today,
        guests=guests,
        total_price=amount or Decimal("0"),
    )


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


@wrap_db_errors
async def create_booking(db: AsyncSession, data: BookingCreate, user: User | None) -> Booking:
    """Validate availability and persist a new ``pending`` booking.

    Field-level rules (name, email, phone, dates, guests, price, special
    requests) are enforced by :class:`BookingCreate` before this runs.
    """
    prop = await db.get(Property, data.property_id)
    if prop is None:
        raise NotFoundError("Property not found")
    if prop.archived or prop.status == "unavailable":
        raise ValidationError("Property is not available for booking")

    await ensure_available(db, data.property_id, data.check_in_date, data.check_out_date)

    booking = Booking(
        **data.model_dump(),
        user_id=user.id if user is not None else None,
        status=INITIAL_STATUS,
        payment_status="pending",
    )
    db.add(booking)
    await db.flush()
    logger.info(
        "Booking %s created for property %s (%s to %s)",
        booking.id,
        data.property_id,
        data.check_in_date,
        data.check_out_date,
    )
    return await load_booking(db, booking.id)


@wrap_db_errors
async def get_booking(db: AsyncSession, booking_id: uuid.UUID, user: User | None) -> BookingDetailResponse:
    booking = await load_booking(db, booking_id)
    if not can_view(booking, user):
        # Same answer as a missing row so ids cannot be enumerated.
        raise NotFoundError("Booking not found")
    return to_detail(booking)


@wrap_db_errors
async def list_bookings(
    db: AsyncSession,
    user: User,
    statuses: list[str] | None = None,
    property_id: uuid.UUID | None = None,
    user_id: uuid.UUID | None = None,
    page: int = 1,
    limit: int = 10,
    payment_statuses: list[str] | None = None,
) -> tuple[list[Booking], int]:
    """Bookings visible to the caller: all for admins, otherwise their own plus those on their listings."""
    unknown = [s for s in payment_statuses or [] if s not in BOOKING_PAYMENT_STATUSES]
    if unknown:
        raise ValidationError(
            "Invalid payment status filter",
            errors=[f"payment_status: expected one of {', '.join(BOOKING_PAYMENT_STATUSES)}"],
        )

    page, limit = page_window(page, limit)
    where = [Booking.deleted_at.is_(None)]
    if not policy.has_role(user, policy.admin_roles):
        where.append(or_(Booking.user_id == user.id, Property.host_id == user.id))
    if statuses:
        where.append(Booking.status.in_(statuses))
    if property_id is not None:
        where.append(Booking.property_id == property_id)
    if user_id is not None:
        where.append(Booking.user_id == user_id)
    if payment_statuses:
        where.append(Booking.payment_status.in_(payment_statuses))

    base = select(Booking).join(Property, Booking.property_id == Property.id).where(*where)
    total = await db.scalar(select(func.count()).select_from(base.subquery()))
    result = await db.execute(
        base.order_by(Booking.created_at.desc(), Booking.id).offset((page - 1) * limit).limit(limit)
    )
    return list(result.scalars().all()), total or 0


# ---------------------------------------------------------------------------
# Status changes
# ---------------------------------------------------------------------------


@wrap_db_errors
async def update_booking_status(db: AsyncSession, booking_id: uuid.UUID, target: str, user: User) -> Booking:
    """Move a booking along the state machine. Host of the property or admin only."""
    booking = await load_booking(db, booking_id)
    policy.ensure_can_manage(_host_id(booking), user, "change the status of this booking")
    ensure_transition(booking.status, target)

    previous = booking.status
    booking.status = target
    await db.flush()
    logger.info("Booking %s moved from %s to %s by %s", booking_id, previous, target, user.id)
    return await load_booking(db, booking_id)


async def _cancel(booking: Booking, user: User | None, reason: str | None) -> None:
    if not is_party(booking, user):
        raise AuthorizationError("You are not allowed to cancel this booking")
    ensure_transition(booking.status, "cancelled")
    booking.status = "cancelled"
    booking.cancellation_reason = reason


@wrap_db_errors
async def cancel_booking(
    db: AsyncSession, booking_id: uuid.UUID, user: User | None, reason: str | None = None
) -> Booking:
    """Self-service cancellation of a pending or confirmed booking."""
    booking = await load_booking(db, booking_id)
    await _cancel(booking, user, reason)
    await db.flush()
    logger.info("Booking %s cancelled by %s", booking_id, user.id if user is not None else "guest")
    return await load_booking(db, booking_id)


@wrap_db_errors
async def batch_cancel(
    db: AsyncSession, booking_ids: list[uuid.UUID], user: User, reason: str | None = None
) -> dict:
    """Cancel several bookings, reporting per-id failures instead of aborting."""
    succeeded: list[uuid.UUID] = []
    failed: dict[str, str] = {}
    for booking_id in dict.fromkeys(booking_ids):
        try:
            booking = await load_booking(db, booking_id)
            await _cancel(booking, user, reason)
        except AppError as exc:
            failed[str(booking_id)] = exc.message
            continue
        succeeded.append(booking_id)

    await db.flush()
    logger.info("Batch cancel by %s: %d succeeded, %d failed", user.id, len(succeeded), len(failed))
    return {"total": len(succeeded) + len(failed), "succeeded": succeeded, "failed": failed}


@wrap_db_errors
async def cancel_expired_bookings(db: AsyncSession, timeout_minutes: int = 30) -> int:
    """Cancel pending bookings whose payment never completed within the timeout."""
    cutoff = _utcnow() - timedelta(minutes=timeout_minutes)
    result = await db.execute(
        select(Booking).where(
            Booking.status == "pending",
            Booking.payment_status != "completed",
            Booking.deleted_at.is_(None),
            Booking.created_at < cutoff,
        )
    )
    expired = list(result.scalars().all())
    for booking in expired:
        booking.status = "cancelled"
        booking.cancellation_reason = EXPIRED_PAYMENT_REASON
    await db.flush()
    if expired:
        logger.info("Cancelled %d pending bookings older than %d minutes", len(expired), timeout_minutes)
    return len(expired)


@wrap_db_errors
async def soft_delete_booking(db: AsyncSession, booking_id: uuid.UUID, user: User) -> None:
    """Hide a booking from every listing without removing the row."""
    booking = await load_booking(db, booking_id)
    policy.ensure_can_manage(_host_id(booking), user, "delete this booking")
    booking.deleted_at = _utcnow()
    await db.flush()
    logger.info("Booking %s soft-deleted by %s", booking_id, user.id)


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


@wrap_db_errors
async def property_booking_stats(db: AsyncSession, property_id: uuid.UUID, user: User) -> BookingStats:
    prop = await db.get(Property, property_id)
    if prop is None:
        raise NotFoundError("Property not found")
    policy.ensure_can_manage(prop.host_id, user, "view statistics for this property")

    today = date.today()
    row = (
        await db.execute(
            select(
                func.count(Booking.id),
                func.count(case((Booking.status == "completed", 1))),
                func.count(case((Booking.status == "cancelled", 1))),
                func.count(case(((Booking.status == "confirmed") & (Booking.check_in_date > today), 1))),
                func.coalesce(
                    func.sum(case((Booking.status.in_(("confirmed", "completed")), Booking.total_price))), 0
                ),
            ).where(Booking.property_id == property_id, Booking.deleted_at.is_(None))
        )
    ).one()
    total, completed, cancelled, upcoming, revenue = row
    average = await db.scalar(select(func.avg(Review.rating)).where(Review.property_id == property_id))

    return BookingStats(
        property_id=property_id,
        total_bookings=total,
        completed_bookings=completed,
        cancelled_bookings=cancelled,
        upcoming_bookings=upcoming,
        total_revenue=Decimal(str(revenue)),
        occupancy_rate=round(completed / total * 100, 2) if total else 0.0,
        average_rating=quantize_rating(average),
    )
