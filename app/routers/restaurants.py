from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.models.restaurants import MenuItem, Restaurant
from app.schemas.restaurants import MenuItemResponse, RestaurantListResponse, RestaurantResponse

router = APIRouter(prefix="/api/restaurants", tags=["restaurants"])


def _to_restaurant_response(r: Restaurant) -> RestaurantResponse:
    return RestaurantResponse(
        id=r.id,
        owner_id=r.owner_id,
        name=r.name,
        description=r.description,
        address=r.address,
        phone=r.phone,
        email=r.email,
        cuisine_type=r.cuisine_type,
        price_range=r.price_range,
        opening_hours=r.opening_hours,
        average_rating=round(r.average_rating, 2),
        total_reviews=r.total_reviews,
        is_active=r.is_active,
        created_at=r.created_at,
    )


def _to_menu_item_response(m: MenuItem) -> MenuItemResponse:
    return MenuItemResponse(
        id=m.id,
        restaurant_id=m.restaurant_id,
        name=m.name,
        description=m.description,
        price=float(m.price),
        category=m.category,
        is_available=m.is_available,
        created_at=m.created_at,
    )


def get_active_restaurant(db: Session, restaurant_id: int) -> Restaurant:
    restaurant = db.get(Restaurant, restaurant_id)
    if not restaurant or not restaurant.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Restaurant not found")
    return restaurant


@router.get("", response_model=RestaurantListResponse)
def list_restaurants(
    db: Session = Depends(get_db),
    q: str | None = Query(default=None, max_length=200),
    cuisine: str | None = Query(default=None, max_length=80),
    min_rating: float | None = Query(default=None, ge=0, le=5),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> RestaurantListResponse:
    stmt = select(Restaurant).where(Restaurant.is_active.is_(True))

    if q:
        stmt = stmt.where(func.lower(Restaurant.name).like(f"%{q.lower()}%"))
    if cuisine:
        stmt = stmt.where(func.lower(Restaurant.cuisine_type) == cuisine.strip().lower())
    if min_rating is not None:
        stmt = stmt.where(Restaurant.average_rating >= min_rating)

    total = db.scalar(select(func.count()).select_from(stmt.subquery()))
    items = list(
        db.scalars(
            stmt.order_by(Restaurant.average_rating.desc(), Restaurant.total_reviews.desc(), Restaurant.name)
            .limit(limit)
            .offset(offset)
        ).all()
    )
    return RestaurantListResponse(items=[_to_restaurant_response(r) for r in items], total=int(total or 0))


@router.get("/{restaurant_id}", response_model=RestaurantResponse)
def get_restaurant(restaurant_id: int, db: Session = Depends(get_db)) -> RestaurantResponse:
    return _to_restaurant_response(get_active_restaurant(db, restaurant_id))


@router.get("/{restaurant_id}/menu", response_model=list[MenuItemResponse])
def get_menu(
    restaurant_id: int,
    db: Session = Depends(get_db),
    category: str | None = Query(default=None, max_length=60),
    available_only: bool = Query(default=False),
) -> list[MenuItemResponse]:
    get_active_restaurant(db, restaurant_id)

    stmt = select(MenuItem).where(MenuItem.restaurant_id == restaurant_id)
    if category:
        stmt = stmt.where(MenuItem.category == category)
    if available_only:
        stmt = stmt.where(MenuItem.is_available.is_(True))

    items = db.scalars(stmt.order_by(MenuItem.category, MenuItem.name)).all()
    return [_to_menu_item_response(m) for m in items]
