from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.common import RequestModel


class FavoriteCreate(RequestModel):
    restaurant_id: int = Field(gt=0)


class FavoriteResponse(BaseModel):
    restaurant_id: int
    name: str
    description: str | None
    cuisine_type: str | None
    price_range: str | None
    address: str | None
    average_rating: float
    total_reviews: int
    favorited_at: datetime


class FavoriteStatusResponse(BaseModel):
    restaurant_id: int
    is_favorite: bool
