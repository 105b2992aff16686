"""Review model — guest ratings of a property."""

import uuid

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentals.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

# Reviewer id used for anonymous or imported reviews. Not a foreign key.
ANONYMOUS_REVIEWER_ID = uuid.UUID(int=0)

# Uuid columns are stored natively on PostgreSQL and as 32-char hex on SQLite.
_NAMED_REVIEWER_PG = text(f"reviewer_id <> '{ANONYMOUS_REVIEWER_ID}'::uuid")
_NAMED_REVIEWER_SQLITE = text(f"reviewer_id <> '{ANONYMOUS_REVIEWER_ID.hex}'")


class Review(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A 1-5 star rating with an optional comment."""

    __tablename__ = "reviews"

    property_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    booking_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True,
    )
    reviewer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    reviewer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    likes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    dislikes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    property: Mapped["Property"] = relationship(  # type: ignore[name-defined]  # noqa: F821
        back_populates="reviews", lazy="raise"
    )

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
        CheckConstraint("likes >= 0 AND dislikes >= 0", name="ck_reviews_counters_non_negative"),
        # One review per reviewer and property; anonymous rows are exempt.
        Index(
            "uq_reviews_property_reviewer",
            "property_id",
            "reviewer_id",
            unique=True,
            postgresql_where=_NAMED_REVIEWER_PG,
            sqlite_where=_NAMED_REVIEWER_SQLITE,
        ),
    )

    @classmethod
    def is_anonymous_id(cls, reviewer_id: uuid.UUID) -> bool:
        return reviewer_id == ANONYMOUS_REVIEWER_ID

    def __repr__(self) -> str:
        return f"<Review(id={self.id}, property_id={self.property_id}, rating={self.rating})>"
