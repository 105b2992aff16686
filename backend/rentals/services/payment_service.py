"""Payments: charge a booking (materialising it first if needed) and refund it."""

import logging
import uuid
from datetime import date, datetime, time, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rentals.auth.policy import policy
from rentals.billing.gateway import PaymentGateway
from rentals.config import settings
from rentals.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError, wrap_db_errors
from rentals.models.booking import Booking
from rentals.models.payment import Payment
from rentals.models.property import Property
from rentals.models.user import User
from rentals.schemas.payment import PaymentCreate
from rentals.services import booking_service
from rentals.services.booking_states import ensure_transition
from rentals.services.property_query import page_window

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def _load_payment(db: AsyncSession, payment_id: uuid.UUID) -> Payment:
    result = await db.execute(
        select(Payment).where(Payment.id == payment_id).execution_options(populate_existing=True)
    )
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFoundError("Payment not found")
    return payment


def _can_view(payment: Payment, user: User) -> bool:
    booking = payment.booking
    return booking is not None and booking_service.can_view(booking, user)


@wrap_db_errors
async def is_booking_paid(db: AsyncSession, booking_id: uuid.UUID) -> bool:
    """True when at least one completed payment exists for the booking."""
    paid = await db.scalar(
        select(Payment.id).where(Payment.booking_id == booking_id, Payment.status == "completed").limit(1)
    )
    return paid is not None


# ---------------------------------------------------------------------------
# Charge
# ---------------------------------------------------------------------------


@wrap_db_errors
async def create_payment(
    db: AsyncSession,
    data: PaymentCreate,
    user: User | None,
    gateway: PaymentGateway,
) -> tuple[Payment, Booking]:
    """Charge a booking and confirm it.

    A ``temp-`` booking id means the guest is paying for a checkout that was
    never saved: the booking row is created first, with the same validation
    as a regular booking, and the payment is attached to it.

    Returns:
        The completed payment and the updated booking.
    """
    if data.is_temporary:
        booking = await booking_service.create_booking(db, data.booking, user)
        logger.info("Materialised booking %s for checkout %s", booking.id, data.booking_id)
    else:
        booking = await booking_service.load_booking(db, uuid.UUID(data.booking_id))
        if not booking_service.is_party(booking, user):
            raise AuthorizationError("You are not allowed to pay for this booking")

    if booking.status not in ("pending", "confirmed"):
        raise ValidationError(f"A {booking.status} booking cannot be paid")
    if await is_booking_paid(db, booking.id):
        raise ConflictError("This booking has already been paid")
    if data.amount != booking.total_price:
        raise ValidationError(
            "Payment amount does not match the booking total",
            errors=[f"amount: expected {booking.total_price}"],
        )

    currency = (data.currency or settings.payment_currency).upper()
    payment = Payment(
        booking_id=booking.id,
        amount=data.amount,
        currency=currency,
        payment_method=data.payment_method,
        status="pending",
    )
    db.add(payment)
    await db.flush()

    # A declined charge raises and the request transaction rolls back the pending row.
    payment.transaction_id = await gateway.charge(
        data.amount, currency, data.payment_method, str(booking.id), data.payment_token
    )
    payment.status = "completed"
    payment.payment_date = _utcnow()

    if booking.status == "pending":
        ensure_transition(booking.status, "confirmed")
        booking.status = "confirmed"
    booking.payment_status = "completed"
    booking.payment_method = data.payment_method
    await db.flush()

    logger.info(
        "Payment %s (%s %s, %s) completed for booking %s",
        payment.id,
        payment.amount,
        currency,
        payment.transaction_id,
        booking.id,
    )
    return await _load_payment(db, payment.id), await booking_service.load_booking(db, booking.id)


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


@wrap_db_errors
async def list_payments(
    db: AsyncSession,
    user: User,
    status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Payment], int]:
    """Payments visible to the caller, newest first.

    Admins see every payment; others see payments for their own bookings
    and for bookings on properties they host.
    """
    page, limit = page_window(page, limit)
    base = (
        select(Payment)
        .join(Booking, Payment.booking_id == Booking.id)
        .join(Property, Booking.property_id == Property.id)
    )
    if not policy.has_role(user, policy.admin_roles):
        base = base.where(or_(Booking.user_id == user.id, Property.host_id == user.id))
    if status:
        base = base.where(Payment.status == status)
    if date_from is not None:
        base = base.where(Payment.payment_date >= datetime.combine(date_from, time.min))
    if date_to is not None:
        base = base.where(Payment.payment_date <= datetime.combine(date_to, time.max))

    total = await db.scalar(select(func.count()).select_from(base.subquery()))
    result = await db.execute(
        base.order_by(Payment.payment_date.desc(), Payment.id).offset((page - 1) * limit).limit(limit)
    )
    return list(result.scalars().all()), total or 0


@wrap_db_errors
async def get_payment(db: AsyncSession, payment_id: uuid.UUID, user: User) -> Payment:
    payment = await _load_payment(db, payment_id)
    if not _can_view(payment, user):
        raise NotFoundError("Payment not found")
    return payment


# ---------------------------------------------------------------------------
# Refund
# ---------------------------------------------------------------------------


@wrap_db_errors
async def refund_payment(
    db: AsyncSession,
    payment_id: uuid.UUID,
    user: User,
    gateway: PaymentGateway,
) -> tuple[Payment, Booking]:
    """Refund a completed payment and cancel its booking in one transaction.

    Only completed payments can be refunded; anything else is reported as
    not found and leaves the booking untouched.
    """
    result = await db.execute(
        select(Payment)
        .where(Payment.id == payment_id, Payment.status == "completed")
        .execution_options(populate_existing=True)
    )
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFoundError("Completed payment not found")

    booking = await booking_service.load_booking(db, payment.booking_id)
    policy.ensure_can_manage(booking.user_id, user, "refund this payment")

    if payment.transaction_id:
        await gateway.refund(payment.transaction_id, payment.amount)

    payment.status = "refunded"
    # A refund cancels the stay from any state, including completed.
    if booking.status != "cancelled":
        booking.status = "cancelled"
        booking.cancellation_reason = booking.cancellation_reason or "Payment refunded"
    booking.payment_status = "refunded"
    await db.flush()

    logger.info("Payment %s refunded by %s; booking %s cancelled", payment_id, user.id, booking.id)
    return await _load_payment(db, payment_id), await booking_service.load_booking(db, booking.id)
