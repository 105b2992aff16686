"""Response envelopes shared by every router."""

import math
from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope: ``{"success": true, "data": ..., "message": ...}``."""

    success: bool = True
    message: str | None = None
    data: T | None = None


class Page(BaseModel, Generic[T]):
    """One page of a filtered listing plus pagination metadata."""

    items: list[T]
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, items: list[T], total: int, page: int, limit: int) -> "Page[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if limit else 0,
        )


class MessageResponse(BaseModel):
    """Generic message response."""

    success: bool = True
    message: str
