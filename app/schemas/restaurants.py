from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from app.models.enums import PriceRange
from app.schemas.common import RequestModel


class RestaurantResponse(BaseModel):
    id: int
    owner_id: int | None
    name: str
    description: str | None
    address: str | None
    phone: str | None
    email: str | None
    cuisine_type: str | None
    price_range: str | None
    opening_hours: str | None
    average_rating: float
    total_reviews: int
    is_active: bool
    created_at: datetime


class RestaurantListResponse(BaseModel):
    items: list[RestaurantResponse]
    total: int


class RestaurantUpdate(RequestModel):
    # Rating fields are derived and deliberately absent.
    name: str | None = Field(default=None, min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    address: str | None = Field(default=None, max_length=250)
    phone: str | None = Field(default=None, pattern=r"^\+?[0-9\s\-()]{7,20}$")
    email: EmailStr | None = None
    cuisine_type: str | None = Field(default=None, max_length=80)
    price_range: PriceRange | None = None
    opening_hours: str | None = Field(default=None, max_length=250)


class MenuItemResponse(BaseModel):
    id: int
    restaurant_id: int
    name: str
    description: str | None
    price: float
    category: str | None
    is_available: bool
    created_at: datetime


class MenuItemCreate(RequestModel):
    name: str = Field(min_length=2, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    price: float = Field(gt=0, le=1_000_000)
    category: str | None = Field(default=None, max_length=60)
    is_available: bool = True


class MenuItemUpdate(RequestModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    price: float | None = Field(default=None, gt=0, le=1_000_000)
    category: str | None = Field(default=None, max_length=60)
    is_available: bool | None = None
