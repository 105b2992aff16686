"""Property repository — search, CRUD, archive/restore, images, view counts and favorites."""

import logging
import uuid
from datetime import datetime, timezone

from fastapi import UploadFile
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rentals.auth.policy import policy
from rentals.config import settings
from rentals.errors import NotFoundError, ValidationError, wrap_db_errors
from rentals.models.booking import ACTIVE_BOOKING_STATUSES, Booking
from rentals.models.favorite import Favorite
from rentals.models.property import Property, PropertyAmenity, PropertyImage, PropertyPetAllowed
from rentals.models.review import Review
from rentals.models.user import User
from rentals.schemas.property import CityCount, PropertyCreate, PropertyResponse, PropertyUpdate
from rentals.services.geo import GeoService
from rentals.services.property_query import (
    PropertyFilters,
    build_predicates,
    compile_predicates,
    matched_fields,
    order_by_clauses,
    page_window,
)
from rentals.services.storage import ImageStorage, delete_image_quietly

logger = logging.getLogger(__name__)

DEFAULT_ARCHIVE_REASON = "Not specified"

# Scalar columns copied verbatim from create/update payloads.
_SCALAR_FIELDS = (
    "title",
    "description",
    "address",
    "city",
    "state",
    "zip_code",
    "price",
    "bedrooms",
    "bathrooms",
    "square_feet",
    "property_type",
    "status",
    "is_new",
    "is_featured",
    "is_verified",
    "parking_spaces",
    "lat",
    "lng",
)
_REQUIRED_FIELDS = ("title", "description", "address", "city", "price", "property_type", "status")

# Column attributes copied straight into PropertyResponse.
_RESPONSE_COLUMNS = _SCALAR_FIELDS + (
    "id",
    "image",
    "host_id",
    "average_rating",
    "views",
    "archived",
    "archived_at",
    "archived_reason",
    "created_at",
    "updated_at",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Loading and serialisation helpers
# ---------------------------------------------------------------------------


async def _load_property(db: AsyncSession, property_id: uuid.UUID) -> Property:
    """Fetch a property with fresh column and collection state, or raise 404."""
    result = await db.execute(
        select(Property).where(Property.id == property_id).execution_options(populate_existing=True)
    )
    prop = result.scalar_one_or_none()
    if prop is None:
        raise NotFoundError("Property not found")
    return prop


async def _host_rating_stats(db: AsyncSession, host_ids: set[uuid.UUID]) -> dict[uuid.UUID, tuple[float, int]]:
    """Average rating and review count across every property of each host."""
    if not host_ids:
        return {}
    result = await db.execute(
        select(Property.host_id, func.avg(Review.rating), func.count(Review.id))
        .join(Review, Review.property_id == Property.id)
        .where(Property.host_id.in_(host_ids))
        .group_by(Property.host_id)
    )
    return {host_id: (round(float(avg or 0), 2), count) for host_id, avg, count in result.all()}


def _serialize(
    prop: Property,
    host_stats: dict[uuid.UUID, tuple[float, int]],
    search_term: str | None = None,
) -> PropertyResponse:
    average, count = host_stats.get(prop.host_id, (0.0, 0)) if prop.host_id else (0.0, 0)
    payload = {name: getattr(prop, name) for name in _RESPONSE_COLUMNS}
    payload.update(
        amenities=prop.amenity_values,
        pets_allowed=prop.pet_values,
        additional_images=prop.additional_images,
        host_name=prop.host.display_name if prop.host is not None else "Host",
        host_average_rating=average,
        host_review_count=count,
        matches_found_in=matched_fields(prop, search_term) if search_term else None,
    )
    return PropertyResponse.model_validate(payload)


async def _serialize_many(
    db: AsyncSession, props: list[Property], search_term: str | None = None
) -> list[PropertyResponse]:
    stats = await _host_rating_stats(db, {p.host_id for p in props if p.host_id is not None})
    return [_serialize(p, stats, search_term) for p in props]


async def _replace_side_rows(
    db: AsyncSession,
    property_id: uuid.UUID,
    table: type[PropertyAmenity] | type[PropertyPetAllowed],
    column: str,
    values: list[str],
) -> None:
    """Delete every row of ``table`` for the property, then bulk-insert ``values``."""
    # The caller reloads the property afterwards, so the session is left untouched here.
    await db.execute(
        delete(table).where(table.property_id == property_id).execution_options(synchronize_session=False)
    )
    if values:
        await db.execute(insert(table), [{"property_id": property_id, column: value} for value in values])


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@wrap_db_errors
async def search_properties(db: AsyncSession, filters: PropertyFilters) -> tuple[list[PropertyResponse], int]:
    """Filtered, sorted, paginated listing plus the total number of matches."""
    where = compile_predicates(build_predicates(filters))
    page, limit = page_window(filters.page, filters.limit)

    total = await db.scalar(select(func.count()).select_from(Property).where(*where))

    result = await db.execute(
        select(Property)
        .where(*where)
        .order_by(*order_by_clauses(filters))
        .offset((page - 1) * limit)
        .limit(limit)
    )
    props = list(result.scalars().all())
    search_term = filters.search.strip() if filters.search and filters.search.strip() else None
    return await _serialize_many(db, props, search_term), total or 0


@wrap_db_errors
async def get_property(db: AsyncSession, property_id: uuid.UUID) -> PropertyResponse:
    prop = await _load_property(db, property_id)
    return (await _serialize_many(db, [prop]))[0]


async def _listing(db: AsyncSession, order: list, limit: int, status: str | None, featured: bool = False):
    query = select(Property).where(Property.archived.is_(False))
    if status:
        query = query.where(Property.status == status)
    if featured:
        query = query.where(Property.is_featured.is_(True))
    result = await db.execute(query.order_by(*order).limit(max(1, min(limit, 50))))
    return await _serialize_many(db, list(result.scalars().all()))


@wrap_db_errors
async def featured_properties(db: AsyncSession, limit: int = 6, status: str | None = None) -> list[PropertyResponse]:
    return await _listing(db, [Property.created_at.desc()], limit, status, featured=True)


@wrap_db_errors
async def recent_properties(db: AsyncSession, limit: int = 6, status: str | None = None) -> list[PropertyResponse]:
    return await _listing(db, [Property.created_at.desc()], limit, status)


@wrap_db_errors
async def most_viewed_properties(db: AsyncSession, limit: int = 6, status: str | None = None) -> list[PropertyResponse]:
    return await _listing(db, [Property.views.desc(), Property.created_at.desc()], limit, status)


@wrap_db_errors
async def property_count_by_city(db: AsyncSession) -> list[CityCount]:
    result = await db.execute(
        select(Property.city, func.count(Property.id).label("count"))
        .where(Property.archived.is_(False))
        .group_by(Property.city)
        .order_by(func.count(Property.id).desc(), Property.city)
    )
    return [CityCount(city=city, count=count) for city, count in result.all()]


@wrap_db_errors
async def list_archived_properties(
    db: AsyncSession, user: User, page: int = 1, limit: int = 10
) -> tuple[list[PropertyResponse], int]:
    """Archived listings of the caller (every archived listing for admins), newest archive first."""
    page, limit = page_window(page, limit)
    where = [Property.archived.is_(True)]
    if not policy.has_role(user, policy.admin_roles):
        where.append(Property.host_id == user.id)

    total = await db.scalar(select(func.count()).select_from(Property).where(*where))
    result = await db.execute(
        select(Property)
        .where(*where)
        .order_by(Property.archived_at.desc(), Property.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return await _serialize_many(db, list(result.scalars().all())), total or 0


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


async def _geocode_quietly(geo: GeoService, data: PropertyCreate) -> tuple[float | None, float | None]:
    address = ", ".join(part for part in (data.address, data.city, data.state, data.zip_code) if part)
    try:
        location = await geo.geocode_address(address)
    except ValidationError as exc:
        logger.warning("Geocoding skipped for %r: %s", address, exc.message)
        return None, None
    return location["lat"], location["lng"]


@wrap_db_errors
async def create_property(
    db: AsyncSession,
    data: PropertyCreate,
    host: User,
    storage: ImageStorage,
    image: UploadFile | None = None,
    additional_images: list[UploadFile] | None = None,
    geo: GeoService | None = None,
) -> PropertyResponse:
    """Create a listing with its images, amenities and pet policy in one unit of work.

    The id is generated up front so every image is stored under its final
    key. A failed upload aborts the whole creation; blobs already stored by
    then are left behind.
    """
    property_id = uuid.uuid4()
    prop = Property(id=property_id, host_id=host.id, **data.model_dump(include=set(_SCALAR_FIELDS)))

    if prop.lat is None and prop.lng is None and geo is not None and settings.geocoding_enabled:
        prop.lat, prop.lng = await _geocode_quietly(geo, data)

    images: list[PropertyImage] = []
    if image is not None:
        prop.image = await storage.upload_image(image, str(property_id))
        images.append(PropertyImage(image_url=prop.image, is_primary=True))
    for extra in additional_images or []:
        url = await storage.upload_image(extra, str(property_id))
        images.append(PropertyImage(image_url=url, is_primary=False))

    prop.images = images
    prop.amenities = [PropertyAmenity(amenity=value) for value in data.amenities]
    prop.pets_allowed = [PropertyPetAllowed(pet_type=value) for value in data.pets_allowed]

    if host.role == "user":
        host.role = "host"
        logger.info("User %s promoted to host", host.id)

    db.add(prop)
    await db.flush()
    logger.info("Property %s created by host %s with %d images", property_id, host.id, len(images))
    return await get_property(db, property_id)


@wrap_db_errors
async def update_property(
    db: AsyncSession,
    property_id: uuid.UUID,
    data: PropertyUpdate,
    user: User,
    storage: ImageStorage,
    image: UploadFile | None = None,
) -> PropertyResponse:
    """Apply a partial update.

    ``amenities`` and ``pets_allowed`` are non-incremental: when present the
    existing rows are deleted and the submitted set is inserted. A replaced
    primary image is deleted from storage only after the commit.
    """
    prop = await _load_property(db, property_id)
    policy.ensure_can_manage(prop.host_id, user, "update this property")

    changes = data.model_dump(exclude_unset=True)
    nulled = [name for name in _REQUIRED_FIELDS if name in changes and changes[name] is None]
    if nulled:
        raise ValidationError("Invalid property data", errors=[f"{name}: cannot be null" for name in nulled])
    for name in _SCALAR_FIELDS:
        if name in changes:
            setattr(prop, name, changes[name])

    if changes.get("amenities") is not None:
        await _replace_side_rows(db, property_id, PropertyAmenity, "amenity", changes["amenities"])
    if changes.get("pets_allowed") is not None:
        await _replace_side_rows(db, property_id, PropertyPetAllowed, "pet_type", changes["pets_allowed"])

    old_image: str | None = None
    if image is not None:
        new_url = await storage.upload_image(image, str(property_id))
        old_primary = prop.primary_image
        if old_primary is not None:
            old_image = old_primary.image_url
            prop.images.remove(old_primary)
        else:
            old_image = prop.image
        prop.images.append(PropertyImage(image_url=new_url, is_primary=True))
        prop.image = new_url

    await db.flush()
    if old_image and old_image != prop.image:
        # The replaced blob goes only once the new URL is durably stored.
        await db.commit()
        await delete_image_quietly(storage, old_image)

    logger.info("Property %s updated by %s (%s)", property_id, user.id, ", ".join(sorted(changes)) or "image")
    return await get_property(db, property_id)


@wrap_db_errors
async def delete_property(db: AsyncSession, property_id: uuid.UUID, user: User, storage: ImageStorage) -> None:
    """Hard-delete a property that has no pending or confirmed bookings.

    The row delete is committed before blob cleanup starts; blob failures
    are logged and ignored.
    """
    prop = await _load_property(db, property_id)
    policy.ensure_can_manage(prop.host_id, user, "delete this property")

    active = await db.scalar(
        select(func.count(Booking.id)).where(
            Booking.property_id == property_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.deleted_at.is_(None),
        )
    )
    if active:
        raise ValidationError(
            "Cannot delete a property with active bookings",
            errors=[f"property: {active} pending or confirmed booking(s) reference this property"],
        )

    urls = {img.image_url for img in prop.images}
    if prop.image:
        urls.add(prop.image)

    await db.delete(prop)
    await db.commit()
    logger.info("Property %s deleted by %s", property_id, user.id)

    for url in urls:
        await delete_image_quietly(storage, url)


@wrap_db_errors
async def archive_property(
    db: AsyncSession, property_id: uuid.UUID, user: User, reason: str | None = None
) -> PropertyResponse:
    """Soft-delete a listing. Archiving an archived listing changes nothing."""
    prop = await _load_property(db, property_id)
    policy.ensure_can_manage(prop.host_id, user, "archive this property")

    if prop.archived:
        return (await _serialize_many(db, [prop]))[0]

    prop.archived = True
    prop.archived_at = _utcnow()
    prop.archived_reason = reason.strip() if reason and reason.strip() else DEFAULT_ARCHIVE_REASON
    prop.status = "unavailable"
    await db.flush()
    logger.info("Property %s archived by %s: %s", property_id, user.id, prop.archived_reason)
    return await get_property(db, property_id)


@wrap_db_errors
async def restore_property(
    db: AsyncSession, property_id: uuid.UUID, user: User, status: str = "for-rent"
) -> PropertyResponse:
    prop = await _load_property(db, property_id)
    policy.ensure_can_manage(prop.host_id, user, "restore this property")

    prop.archived = False
    prop.archived_at = None
    prop.archived_reason = None
    prop.status = status
    await db.flush()
    logger.info("Property %s restored by %s as %s", property_id, user.id, status)
    return await get_property(db, property_id)


@wrap_db_errors
async def increment_views(db: AsyncSession, property_id: uuid.UUID) -> int:
    """Atomically add one view and return the new total."""
    views = await db.scalar(
        update(Property)
        .where(Property.id == property_id)
        .values(views=Property.views + 1)
        .returning(Property.views)
        .execution_options(synchronize_session=False)
    )
    if views is None:
        raise NotFoundError("Property not found")
    return views


@wrap_db_errors
async def add_property_image(
    db: AsyncSession,
    property_id: uuid.UUID,
    user: User,
    file: UploadFile,
    storage: ImageStorage,
    is_primary: bool = False,
) -> PropertyImage:
    """Attach an image. A new primary image replaces the previous one."""
    prop = await _load_property(db, property_id)
    policy.ensure_can_manage(prop.host_id, user, "add images to this property")

    url = await storage.upload_image(file, str(property_id))
    new_image = PropertyImage(image_url=url, is_primary=is_primary)

    old_url: str | None = None
    if is_primary:
        old_primary = prop.primary_image
        if old_primary is not None:
            old_url = old_primary.image_url
            prop.images.remove(old_primary)
        else:
            old_url = prop.image
        prop.image = url

    prop.images.append(new_image)
    await db.flush()

    if old_url and old_url != url:
        await db.commit()
        await delete_image_quietly(storage, old_url)
    logger.info("Image added to property %s (primary=%s)", property_id, is_primary)
    return new_image


# ---------------------------------------------------------------------------
# Favorites
# ---------------------------------------------------------------------------


@wrap_db_errors
async def list_favorite_properties(
    db: AsyncSession, user: User, page: int = 1, limit: int = 10
) -> tuple[list[PropertyResponse], int]:
    """Properties the user saved, most recently saved first."""
    page, limit = page_window(page, limit)
    total = await db.scalar(select(func.count()).select_from(Favorite).where(Favorite.user_id == user.id))
    result = await db.execute(
        select(Property)
        .join(Favorite, Favorite.property_id == Property.id)
        .where(Favorite.user_id == user.id)
        .order_by(Favorite.created_at.desc(), Property.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return await _serialize_many(db, list(result.scalars().all())), total or 0


@wrap_db_errors
async def add_favorite(db: AsyncSession, property_id: uuid.UUID, user: User) -> PropertyResponse:
    """Save a property for the user. Saving it twice is a no-op."""
    prop = await _load_property(db, property_id)
    if await db.get(Favorite, (user.id, property_id)) is None:
        db.add(Favorite(user_id=user.id, property_id=property_id))
        try:
            await db.flush()
        except IntegrityError:
            # Saved by a concurrent request; nothing else is pending in this session.
            await db.rollback()
            prop = await _load_property(db, property_id)
        else:
            logger.info("User %s saved property %s", user.id, property_id)
    return (await _serialize_many(db, [prop]))[0]


@wrap_db_errors
async def remove_favorite(db: AsyncSession, property_id: uuid.UUID, user: User) -> None:
    """Forget a saved property. Removing one that was never saved succeeds."""
    result = await db.execute(
        delete(Favorite).where(Favorite.user_id == user.id, Favorite.property_id == property_id)
    )
    if result.rowcount:
        logger.info("User %s removed property %s from favorites", user.id, property_id)
