"""Payment model — one row per booking payment attempt."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentals.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

PAYMENT_METHODS = ("credit_card", "debit_card", "paypal", "bank_transfer")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")


class Payment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Money received (or refunded) against a booking."""

    __tablename__ = "payments"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False, index=True)
    transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    payment_date: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    booking: Mapped["Booking"] = relationship(  # type: ignore[name-defined]  # noqa: F821
        back_populates="payments", lazy="selectin"
    )

    __table_args__ = (CheckConstraint("amount > 0", name="ck_payments_amount_positive"),)

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, booking_id={self.booking_id}, status={self.status}, amount={self.amount})>"
