"""Keeps ``properties.average_rating`` equal to the mean of its reviews.

Recomputation always runs on the caller's session, so the new average is
committed (or rolled back) together with the review change that caused it.
"""

import logging
import uuid
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rentals.errors import NotFoundError, wrap_db_errors
from rentals.models.property import Property
from rentals.models.review import Review

logger = logging.getLogger(__name__)

_TWO_PLACES = Decimal("0.01")


def quantize_rating(value: float | Decimal | None) -> Decimal:
    """Round a mean rating to two decimals; ``None`` (no reviews) becomes 0."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


async def _rating_summary(db: AsyncSession, property_id: uuid.UUID) -> tuple[Decimal, int]:
    result = await db.execute(
        select(func.avg(Review.rating), func.count(Review.id)).where(Review.property_id == property_id)
    )
    average, count = result.one()
    return quantize_rating(average), count


@wrap_db_errors
async def recompute_property_rating(db: AsyncSession, property_id: uuid.UUID) -> Decimal:
    """Recalculate and store one property's average rating.

    Returns:
        The stored value, ``Decimal("0.00")`` when the property has no reviews.
    """
    await db.flush()
    prop = await db.get(Property, property_id)
    if prop is None:
        raise NotFoundError("Property not found")

    average, count = await _rating_summary(db, property_id)
    prop.average_rating = average
    await db.flush()
    logger.info("Property %s average rating is now %s over %d reviews", property_id, average, count)
    return average


@wrap_db_errors
async def get_property_rating(db: AsyncSession, property_id: uuid.UUID) -> dict:
    """Return the live average and review count, re-syncing the stored column."""
    average = await recompute_property_rating(db, property_id)
    _, count = await _rating_summary(db, property_id)
    return {"property_id": property_id, "average_rating": average, "review_count": count}


@wrap_db_errors
async def recalculate_all_ratings(db: AsyncSession) -> dict[str, int]:
    """Recompute every property's average rating in one pass.

    Properties without reviews are reset to 0. Returns the number of
    properties examined and how many stored values actually changed.
    """
    averages = dict(
        (await db.execute(select(Review.property_id, func.avg(Review.rating)).group_by(Review.property_id))).all()
    )
    rows = (await db.execute(select(Property.id, Property.average_rating))).all()

    updated = 0
    for property_id, stored in rows:
        fresh = quantize_rating(averages.get(property_id))
        if quantize_rating(stored) != fresh:
            await db.execute(
                update(Property)
                .where(Property.id == property_id)
                .values(average_rating=fresh)
                .execution_options(synchronize_session=False)
            )
            updated += 1

    logger.info("Recalculated ratings: %d properties, %d updated", len(rows), updated)
    return {"total_properties": len(rows), "updated_properties": updated}
