"""Properties API routes — public search and listings, host-scoped mutations."""

import uuid
from typing import TypeVar

import pydantic
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from rentals.api.deps import get_current_active_user, get_db, get_geo_service, get_storage
from rentals.errors import ValidationError, describe_validation_errors
from rentals.models.user import User
from rentals.schemas.booking import BookingStats
from rentals.schemas.common import ApiResponse, MessageResponse, Page
from rentals.schemas.property import (
    ArchiveRequest,
    CityCount,
    PropertyCreate,
    PropertyImageResponse,
    PropertyResponse,
    PropertyUpdate,
    RestoreRequest,
)
from rentals.services import booking_service, property_service
from rentals.services.geo import GeoService
from rentals.services.property_query import PropertyFilters, page_window, split_values
from rentals.services.storage import ImageStorage

router = APIRouter(prefix="/api/properties", tags=["properties"])

M = TypeVar("M", bound=pydantic.BaseModel)


def _parse_form_json(model: type[M], raw: str) -> M:
    """Validate the JSON ``data`` field of a multipart request."""
    try:
        return model.model_validate_json(raw)
    except pydantic.ValidationError as exc:
        raise ValidationError("Invalid property data", errors=describe_validation_errors(exc.errors())) from None


def _present(file: UploadFile | None) -> UploadFile | None:
    # Browsers send an empty part with no filename when no file was chosen.
    if file is None or not file.filename:
        return None
    return file


# ---------------------------------------------------------------------------
# Search and listings
# ---------------------------------------------------------------------------


@router.get("", response_model=ApiResponse[Page[PropertyResponse]], summary="Search properties")
async def search_properties(
    status_filter: str | None = Query(None, alias="status"),
    property_type: list[str] | None = Query(None, alias="type"),
    city: str | None = Query(None),
    min_price: str | None = Query(None, alias="minPrice"),
    max_price: str | None = Query(None, alias="maxPrice"),
    bedrooms: str | None = Query(None),
    bathrooms: str | None = Query(None),
    min_area: str | None = Query(None, alias="minArea"),
    max_area: str | None = Query(None, alias="maxArea"),
    verified: bool | None = Query(None),
    featured: bool | None = Query(None),
    host_id: uuid.UUID | None = Query(None),
    amenities: list[str] | None = Query(None),
    pets: list[str] | None = Query(None),
    search: str | None = Query(None),
    sort: str = Query("newest"),
    order: str | None = Query(None, pattern="^(asc|desc)$"),
    page: str | None = Query(None),
    limit: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[Page[PropertyResponse]]:
    """Filtered, sorted and paginated listing of non-archived properties.

    Numeric filters that do not parse are ignored rather than rejected.
    ``type``, ``amenities`` and ``pets`` accept repeated or comma-separated values.
    """
    page_no, size = page_window(page, limit)
    filters = PropertyFilters(
        status=status_filter,
        property_types=split_values(property_type),
        city=city,
        min_price=min_price,
        max_price=max_price,
        min_bedrooms=bedrooms,
        min_bathrooms=bathrooms,
        min_area=min_area,
        max_area=max_area,
        verified=verified,
        featured=featured,
        host_id=host_id,
        amenities=split_values(amenities),
        pets=split_values(pets),
        search=search,
        sort=sort,
        order=order,
        page=page_no,
        limit=size,
    )
    items, total = await property_service.search_properties(db, filters)
    return ApiResponse(data=Page.build(items, total, page_no, size))


@router.get("/search", response_model=ApiResponse[Page[PropertyResponse]], summary="Free-text search")
async def text_search(
    q: str = Query(..., min_length=1),
    page: str | None = Query(None),
    limit: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[Page[PropertyResponse]]:
    """Relevance-ranked search over title, description, address and city."""
    page_no, size = page_window(page, limit)
    filters = PropertyFilters(search=q, page=page_no, limit=size)
    items, total = await property_service.search_properties(db, filters)
    return ApiResponse(data=Page.build(items, total, page_no, size))


@router.get("/featured", response_model=ApiResponse[list[PropertyResponse]])
async def featured(
    limit: int = Query(6, ge=1, le=50),
    status_filter: str | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[list[PropertyResponse]]:
    return ApiResponse(data=await property_service.featured_properties(db, limit, status_filter))


@router.get("/recent", response_model=ApiResponse[list[PropertyResponse]])
async def recent(
    limit: int = Query(6, ge=1, le=50),
    status_filter: str | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[list[PropertyResponse]]:
    return ApiResponse(data=await property_service.recent_properties(db, limit, status_filter))


@router.get("/most-viewed", response_model=ApiResponse[list[PropertyResponse]])
async def most_viewed(
    limit: int = Query(6, ge=1, le=50),
    status_filter: str | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[list[PropertyResponse]]:
    return ApiResponse(data=await property_service.most_viewed_properties(db, limit, status_filter))


@router.get("/stats", response_model=ApiResponse[list[CityCount]], summary="Listings per city")
async def city_stats(db: AsyncSession = Depends(get_db)) -> ApiResponse[list[CityCount]]:
    return ApiResponse(data=await property_service.property_count_by_city(db))


@router.get("/archived", response_model=ApiResponse[Page[PropertyResponse]])
async def archived(
    page: str | None = Query(None),
    limit: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ApiResponse[Page[PropertyResponse]]:
    """The caller's archived listings (all archived listings for admins)."""
    page_no, size = page_window(page, limit)
    items, total = await property_service.list_archived_properties(db, current_user, page_no, size)
    return ApiResponse(data=Page.build(items, total, page_no, size))


# ---------------------------------------------------------------------------
# Single property
# ---------------------------------------------------------------------------


@router.get("/{property_id}", response_model=ApiResponse[PropertyResponse])
async def get_property(property_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> ApiResponse[PropertyResponse]:
    return ApiResponse(data=await property_service.get_property(db, property_id))


@router.get("/{property_id}/stats", response_model=ApiResponse[BookingStats])
async def property_stats(
    property_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ApiResponse[BookingStats]:
    """Booking statistics for a property (host or admin)."""
    return ApiResponse(data=await booking_service.property_booking_stats(db, property_id, current_user))


@router.post("/{property_id}/view", response_model=ApiResponse[dict])
async def record_view(property_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> ApiResponse[dict]:
    views = await property_service.increment_views(db, property_id)
    return ApiResponse(data={"id": str(property_id), "views": views})


@router.post(
    "",
    response_model=ApiResponse[PropertyResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create a new property",
)
async def create_property(
    data: str = Form(..., description="PropertyCreate as JSON"),
    image: UploadFile | None = File(None),
    additional_images: list[UploadFile] | None = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    storage: ImageStorage = Depends(get_storage),
    geo: GeoService = Depends(get_geo_service),
) -> ApiResponse[PropertyResponse]:
    """Create a listing owned by the caller. Images are sent as multipart parts."""
    body = _parse_form_json(PropertyCreate, data)
    extras = [f for f in additional_images or [] if _present(f) is not None]
    prop = await property_service.create_property(
        db, body, current_user, storage, image=_present(image), additional_images=extras, geo=geo
    )
    return ApiResponse(data=prop, message="Property created successfully")


@router.put("/{property_id}", response_model=ApiResponse[PropertyResponse], summary="Update a property")
async def update_property(
    property_id: uuid.UUID,
    data: str = Form("{}", description="PropertyUpdate as JSON"),
    image: UploadFile | None = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    storage: ImageStorage = Depends(get_storage),
) -> ApiResponse[PropertyResponse]:
    """Partially update a listing. Only fields present in ``data`` change."""
    body = _parse_form_json(PropertyUpdate, data)
    prop = await property_service.update_property(db, property_id, body, current_user, storage, image=_present(image))
    return ApiResponse(data=prop, message="Property updated successfully")


@router.delete("/{property_id}", response_model=MessageResponse)
async def delete_property(
    property_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    storage: ImageStorage = Depends(get_storage),
) -> MessageResponse:
    await property_service.delete_property(db, property_id, current_user, storage)
    return MessageResponse(message="Property deleted successfully")


@router.patch("/{property_id}/archive", response_model=ApiResponse[PropertyResponse])
async def archive_property(
    property_id: uuid.UUID,
    body: ArchiveRequest | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ApiResponse[PropertyResponse]:
    reason = body.reason if body is not None else None
    prop = await property_service.archive_property(db, property_id, current_user, reason)
    return ApiResponse(data=prop, message="Property archived")


@router.patch("/{property_id}/restore", response_model=ApiResponse[PropertyResponse])
async def restore_property(
    property_id: uuid.UUID,
    body: RestoreRequest | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ApiResponse[PropertyResponse]:
    target = body.status if body is not None else "for-rent"
    prop = await property_service.restore_property(db, property_id, current_user, target)
    return ApiResponse(data=prop, message="Property restored")


@router.post(
    "/{property_id}/images",
    response_model=ApiResponse[PropertyImageResponse],
    status_code=status.HTTP_201_CREATED,
)
async def upload_image(
    property_id: uuid.UUID,
    image: UploadFile = File(...),
    is_primary: bool = Form(False),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    storage: ImageStorage = Depends(get_storage),
) -> ApiResponse[PropertyImageResponse]:
    if _present(image) is None:
        raise ValidationError("An image file is required", errors=["image: missing"])
    created = await property_service.add_property_image(db, property_id, current_user, image, storage, is_primary)
    return ApiResponse(data=PropertyImageResponse.model_validate(created))
