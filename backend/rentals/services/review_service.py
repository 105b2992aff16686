"""Review CRUD and reactions. Every rating change re-syncs the property average."""

import logging
import uuid

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rentals.auth.policy import policy
from rentals.errors import ConflictError, NotFoundError, ValidationError, wrap_db_errors
from rentals.models.booking import Booking
from rentals.models.property import Property
from rentals.models.review import Review
from rentals.models.user import User
from rentals.schemas.review import ReviewCreate, ReviewUpdate
from rentals.services.property_query import page_window
from rentals.services.rating_service import recompute_property_rating

logger = logging.getLogger(__name__)

DUPLICATE_REVIEW_MESSAGE = "You have already reviewed this property"

# reaction -> (column, delta)
REACTIONS: dict[str, tuple[str, int]] = {
    "like": ("likes", 1),
    "unlike": ("likes", -1),
    "dislike": ("dislikes", 1),
    "undislike": ("dislikes", -1),
}


async def _load_review(db: AsyncSession, review_id: uuid.UUID) -> Review:
    result = await db.execute(
        select(Review).where(Review.id == review_id).execution_options(populate_existing=True)
    )
    review = result.scalar_one_or_none()
    if review is None:
        raise NotFoundError("Review not found")
    return review


async def _already_reviewed(db: AsyncSession, property_id: uuid.UUID, reviewer_id: uuid.UUID) -> bool:
    if Review.is_anonymous_id(reviewer_id):
        return False
    existing = await db.scalar(
        select(Review.id).where(Review.property_id == property_id, Review.reviewer_id == reviewer_id)
    )
    return existing is not None


@wrap_db_errors
async def create_review(db: AsyncSession, data: ReviewCreate, user: User) -> Review:
    """Store a review and update the property's average rating.

    Raises:
        NotFoundError: The property (or referenced booking) does not exist.
        ConflictError: The caller already reviewed this property.
    """
    if await db.get(Property, data.property_id) is None:
        raise NotFoundError("Property not found")

    if data.booking_id is not None:
        booking = await db.get(Booking, data.booking_id)
        if booking is None or booking.property_id != data.property_id:
            raise ValidationError("Booking does not belong to this property", errors=["booking_id: invalid"])

    if await _already_reviewed(db, data.property_id, user.id):
        raise ConflictError(DUPLICATE_REVIEW_MESSAGE)

    review = Review(
        **data.model_dump(),
        reviewer_id=user.id,
        reviewer_name=user.display_name,
        email=user.email,
    )
    db.add(review)
    try:
        await db.flush()
    except IntegrityError:
        # A concurrent request inserted the same reviewer first.
        raise ConflictError(DUPLICATE_REVIEW_MESSAGE) from None
    await recompute_property_rating(db, data.property_id)
    logger.info("Review %s (%d stars) added to property %s by %s", review.id, data.rating, data.property_id, user.id)
    return await _load_review(db, review.id)


@wrap_db_errors
async def list_reviews(
    db: AsyncSession,
    property_id: uuid.UUID | None = None,
    reviewer_id: uuid.UUID | None = None,
    min_rating: int | None = None,
    max_rating: int | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Review], int]:
    page, limit = page_window(page, limit)
    query = select(Review)
    if property_id is not None:
        query = query.where(Review.property_id == property_id)
    if reviewer_id is not None:
        query = query.where(Review.reviewer_id == reviewer_id)
    if min_rating is not None:
        query = query.where(Review.rating >= min_rating)
    if max_rating is not None:
        query = query.where(Review.rating <= max_rating)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(Review.created_at.desc(), Review.id).offset((page - 1) * limit).limit(limit)
    )
    return list(result.scalars().all()), total or 0


@wrap_db_errors
async def get_review(db: AsyncSession, review_id: uuid.UUID) -> Review:
    return await _load_review(db, review_id)


@wrap_db_errors
async def update_review(db: AsyncSession, review_id: uuid.UUID, data: ReviewUpdate, user: User) -> Review:
    """Edit a review (author or admin). The average is recomputed only if the rating changed."""
    review = await _load_review(db, review_id)
    policy.ensure_can_manage(review.reviewer_id, user, "edit this review")

    changes = data.model_dump(exclude_unset=True)
    if changes.get("rating", review.rating) is None:
        raise ValidationError("Rating cannot be removed", errors=["rating: must be between 1 and 5"])

    rating_changed = "rating" in changes and changes["rating"] != review.rating
    for field, value in changes.items():
        setattr(review, field, value)
    await db.flush()

    if rating_changed:
        await recompute_property_rating(db, review.property_id)
    logger.info("Review %s updated by %s", review_id, user.id)
    return await _load_review(db, review_id)


@wrap_db_errors
async def delete_review(db: AsyncSession, review_id: uuid.UUID, user: User) -> None:
    review = await _load_review(db, review_id)
    policy.ensure_can_manage(review.reviewer_id, user, "delete this review")

    property_id = review.property_id
    await db.delete(review)
    await db.flush()
    await recompute_property_rating(db, property_id)
    logger.info("Review %s deleted by %s", review_id, user.id)


@wrap_db_errors
async def react(db: AsyncSession, review_id: uuid.UUID, reaction: str) -> Review:
    """Apply a like/dislike (or its undo) as a single UPDATE; counters never drop below 0."""
    try:
        column_name, delta = REACTIONS[reaction]
    except KeyError:
        raise ValidationError(f"Unknown reaction: {reaction}") from None

    column = getattr(Review, column_name)
    stmt = update(Review).where(Review.id == review_id).values({column_name: column + delta})
    if delta < 0:
        stmt = stmt.where(column > 0)
    await db.execute(stmt.execution_options(synchronize_session=False))

    return await _load_review(db, review_id)
