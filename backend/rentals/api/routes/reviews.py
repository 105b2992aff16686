"""Reviews API routes — ratings, reactions and rating maintenance."""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rentals.api.deps import get_current_active_user, get_db, require_admin
from rentals.models.user import User
from rentals.schemas.common import ApiResponse, MessageResponse, Page
from rentals.schemas.review import (
    PropertyRatingResponse,
    RecalculateResult,
    ReviewCreate,
    ReviewResponse,
    ReviewUpdate,
)
from rentals.services import rating_service, review_service
from rentals.services.property_query import page_window

router = APIRouter(prefix="/api/reviews", tags=["reviews"])


@router.get("", response_model=ApiResponse[Page[ReviewResponse]])
async def list_reviews(
    property_id: uuid.UUID | None = Query(None),
    reviewer_id: uuid.UUID | None = Query(None),
    min_rating: int | None = Query(None, ge=1, le=5),
    max_rating: int | None = Query(None, ge=1, le=5),
    page: str | None = Query(None),
    limit: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[Page[ReviewResponse]]:
    page_no, size = page_window(page, limit)
    items, total = await review_service.list_reviews(
        db, property_id, reviewer_id, min_rating, max_rating, page=page_no, limit=size
    )
    reviews = [ReviewResponse.model_validate(r) for r in items]
    return ApiResponse(data=Page.build(reviews, total, page_no, size))


@router.get("/property/{property_id}/rating", response_model=ApiResponse[PropertyRatingResponse])
async def property_rating(
    property_id: uuid.UUID, db: AsyncSession = Depends(get_db)
) -> ApiResponse[PropertyRatingResponse]:
    summary = await rating_service.get_property_rating(db, property_id)
    return ApiResponse(data=PropertyRatingResponse(**summary))


@router.post("/recalculate-ratings", response_model=ApiResponse[RecalculateResult])
async def recalculate_ratings(
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> ApiResponse[RecalculateResult]:
    """Re-sync every property's stored average with its reviews."""
    result = await rating_service.recalculate_all_ratings(db)
    return ApiResponse(data=RecalculateResult(**result), message="Ratings recalculated")


@router.get("/{review_id}", response_model=ApiResponse[ReviewResponse])
async def get_review(review_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> ApiResponse[ReviewResponse]:
    return ApiResponse(data=ReviewResponse.model_validate(await review_service.get_review(db, review_id)))


@router.post("", response_model=ApiResponse[ReviewResponse], status_code=status.HTTP_201_CREATED)
async def create_review(
    body: ReviewCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ApiResponse[ReviewResponse]:
    review = await review_service.create_review(db, body, current_user)
    return ApiResponse(data=ReviewResponse.model_validate(review), message="Review created successfully")


@router.put("/{review_id}", response_model=ApiResponse[ReviewResponse])
async def update_review(
    review_id: uuid.UUID,
    body: ReviewUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ApiResponse[ReviewResponse]:
    review = await review_service.update_review(db, review_id, body, current_user)
    return ApiResponse(data=ReviewResponse.model_validate(review), message="Review updated successfully")


@router.delete("/{review_id}", response_model=MessageResponse)
async def delete_review(
    review_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> MessageResponse:
    await review_service.delete_review(db, review_id, current_user)
    return MessageResponse(message="Review deleted successfully")


# ---------------------------------------------------------------------------
# Reactions
# ---------------------------------------------------------------------------


async def _react(db: AsyncSession, review_id: uuid.UUID, reaction: str) -> ApiResponse[ReviewResponse]:
    review = await review_service.react(db, review_id, reaction)
    return ApiResponse(data=ReviewResponse.model_validate(review))


@router.post("/{review_id}/like", response_model=ApiResponse[ReviewResponse])
async def like(review_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> ApiResponse[ReviewResponse]:
    return await _react(db, review_id, "like")


@router.post("/{review_id}/dislike", response_model=ApiResponse[ReviewResponse])
async def dislike(review_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> ApiResponse[ReviewResponse]:
    return await _react(db, review_id, "dislike")


@router.post("/{review_id}/unlike", response_model=ApiResponse[ReviewResponse])
async def unlike(review_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> ApiResponse[ReviewResponse]:
    return await _react(db, review_id, "unlike")


@router.post("/{review_id}/undislike", response_model=ApiResponse[ReviewResponse])
async def undislike(review_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> ApiResponse[ReviewResponse]:
    return await _react(db, review_id, "undislike")
