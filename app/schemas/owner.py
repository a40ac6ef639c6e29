from __future__ import annotations

from pydantic import BaseModel

from app.schemas.reviews import ReviewResponse


class RatingBucket(BaseModel):
    rating: int
    count: int


class OwnerStatsResponse(BaseModel):
    restaurant_id: int
    average_rating: float
    total_reviews: int
    total_menu_items: int
    rating_distribution: list[RatingBucket]
    recent_reviews: list[ReviewResponse]
