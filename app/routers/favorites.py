from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.deps import get_current_user
from app.db.session import get_db
from app.models.favorites import Favorite
from app.models.restaurants import Restaurant
from app.models.users import User
from app.routers.restaurants import get_active_restaurant
from app.schemas.common import MessageResponse
from app.schemas.favorites import FavoriteCreate, FavoriteResponse, FavoriteStatusResponse

router = APIRouter(prefix="/api/favorites", tags=["favorites"])


def _find(db: Session, user_id: int, restaurant_id: int) -> Favorite | None:
    return db.scalar(select(Favorite).where(Favorite.user_id == user_id, Favorite.restaurant_id == restaurant_id))


@router.get("", response_model=list[FavoriteResponse])
def list_favorites(
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[FavoriteResponse]:
    rows = db.execute(
        select(Restaurant, Favorite.created_at)
        .join(Favorite, Favorite.restaurant_id == Restaurant.id)
        .where(Favorite.user_id == current.id, Restaurant.is_active.is_(True))
        .order_by(Favorite.created_at.desc(), Favorite.id.desc())
    ).all()
    return [
        FavoriteResponse(
            restaurant_id=r.id,
            name=r.name,
            description=r.description,
            cuisine_type=r.cuisine_type,
            price_range=r.price_range,
            address=r.address,
            average_rating=round(r.average_rating, 2),
            total_reviews=r.total_reviews,
            favorited_at=favorited_at,
        )
        for r, favorited_at in rows
    ]


@router.post("", response_model=MessageResponse, status_code=201)
def add_favorite(
    payload: FavoriteCreate,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    get_active_restaurant(db, payload.restaurant_id)
    if _find(db, current.id, payload.restaurant_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Restaurant already in favorites")

    db.add(Favorite(user_id=current.id, restaurant_id=payload.restaurant_id))
    db.commit()
    return MessageResponse(message="Restaurant added to favorites")


@router.delete("/{restaurant_id}", response_model=MessageResponse)
def remove_favorite(
    restaurant_id: int,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    favorite = _find(db, current.id, restaurant_id)
    if not favorite:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Restaurant is not in favorites")

    db.delete(favorite)
    db.commit()
    return MessageResponse(message="Restaurant removed from favorites")


@router.get("/{restaurant_id}", response_model=FavoriteStatusResponse)
def check_favorite(
    restaurant_id: int,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> FavoriteStatusResponse:
    return FavoriteStatusResponse(
        restaurant_id=restaurant_id,
        is_favorite=_find(db, current.id, restaurant_id) is not None,
    )
