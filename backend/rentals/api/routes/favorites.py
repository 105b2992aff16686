"""Favorites API routes — properties a signed-in user has saved."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rentals.api.deps import get_current_active_user, get_db
from rentals.models.user import User
from rentals.schemas.common import ApiResponse, MessageResponse, Page
from rentals.schemas.property import PropertyResponse
from rentals.services import property_service
from rentals.services.property_query import page_window

router = APIRouter(prefix="/api/users/favorites", tags=["favorites"])


@router.get("", response_model=ApiResponse[Page[PropertyResponse]])
async def list_favorites(
    page: str | None = Query(None),
    limit: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ApiResponse[Page[PropertyResponse]]:
    page_no, size = page_window(page, limit)
    items, total = await property_service.list_favorite_properties(db, current_user, page=page_no, limit=size)
    return ApiResponse(data=Page.build(items, total, page_no, size))


@router.post("/{property_id}", response_model=ApiResponse[PropertyResponse])
async def add_favorite(
    property_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ApiResponse[PropertyResponse]:
    prop = await property_service.add_favorite(db, property_id, current_user)
    return ApiResponse(data=prop, message="Property added to favorites")


@router.delete("/{property_id}", response_model=MessageResponse)
async def remove_favorite(
    property_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> MessageResponse:
    await property_service.remove_favorite(db, property_id, current_user)
    return MessageResponse(message="Property removed from favorites")
