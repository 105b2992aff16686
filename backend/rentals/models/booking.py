"""Booking model — tracks property reservations."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentals.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

BOOKING_STATUSES = ("pending", "confirmed", "completed", "cancelled")
ACTIVE_BOOKING_STATUSES = ("pending", "confirmed")
BOOKING_PAYMENT_STATUSES = ("pending", "completed", "refunded", "failed")


class Booking(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A reservation of a property by a registered user or an anonymous guest."""

    __tablename__ = "bookings"

    property_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    guest_name: Mapped[str] = mapped_column(String(255), nullable=False)
    guest_email: Mapped[str] = mapped_column(String(255), nullable=False)
    guest_phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    check_in_date: Mapped[date] = mapped_column(Date, nullable=False)
    check_out_date: Mapped[date] = mapped_column(Date, nullable=False)
    guests: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False, index=True)
    payment_status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    payment_method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    property: Mapped["Property"] = relationship(  # type: ignore[name-defined]  # noqa: F821
        back_populates="bookings", lazy="selectin"
    )
    payments: Mapped[list["Payment"]] = relationship(  # type: ignore[name-defined]  # noqa: F821
        back_populates="booking", lazy="raise", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint("check_out_date > check_in_date", name="ck_bookings_dates_ordered"),
        CheckConstraint("guests >= 1", name="ck_bookings_guests_positive"),
        CheckConstraint("total_price > 0", name="ck_bookings_total_positive"),
        Index("ix_bookings_property_dates", "property_id", "check_in_date", "check_out_date"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, property_id={self.property_id}, user_id={self.user_id}, status={self.status})>"
