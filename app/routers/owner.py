from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.deps import require_role
from app.db.session import get_db
from app.models.enums import ReportStatus, UserRole
from app.models.restaurants import MenuItem, Restaurant
from app.models.reviews import Review, ReviewReport
from app.models.users import User
from app.routers.restaurants import _to_menu_item_response, _to_restaurant_response
from app.routers.reviews import _to_review_response
from app.schemas.common import MessageResponse
from app.schemas.owner import OwnerStatsResponse, RatingBucket
from app.schemas.restaurants import MenuItemCreate, MenuItemResponse, MenuItemUpdate, RestaurantResponse, RestaurantUpdate
from app.schemas.reviews import ReportCreate, ReportCreatedResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/owner", tags=["owner"])

require_owner = require_role(UserRole.owner)


def _my_restaurant(db: Session, owner: User) -> Restaurant:
    restaurant = db.scalar(select(Restaurant).where(Restaurant.owner_id == owner.id).order_by(Restaurant.id))
    if not restaurant:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="You have no restaurant")
    return restaurant


def _my_menu_item(db: Session, owner: User, item_id: int) -> MenuItem:
    item = db.scalar(
        select(MenuItem)
        .join(Restaurant, MenuItem.restaurant_id == Restaurant.id)
        .where(MenuItem.id == item_id, Restaurant.owner_id == owner.id)
    )
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Menu item not found")
    return item


@router.get("/restaurant", response_model=RestaurantResponse)
def get_my_restaurant(
    owner: User = Depends(require_owner),
    db: Session = Depends(get_db),
) -> RestaurantResponse:
    return _to_restaurant_response(_my_restaurant(db, owner))


@router.put("/restaurant", response_model=RestaurantResponse)
def update_my_restaurant(
    payload: RestaurantUpdate,
    owner: User = Depends(require_owner),
    db: Session = Depends(get_db),
) -> RestaurantResponse:
    restaurant = _my_restaurant(db, owner)

    changes = payload.model_dump(exclude_unset=True, mode="json")
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    for field, value in changes.items():
        setattr(restaurant, field, value.strip() if isinstance(value, str) else value)

    db.add(restaurant)
    db.commit()
    db.refresh(restaurant)

    logger.info("Restaurant updated id=%s owner=%s fields=%s", restaurant.id, owner.id, sorted(changes))
    return _to_restaurant_response(restaurant)


@router.get("/menu", response_model=list[MenuItemResponse])
def get_my_menu(
    owner: User = Depends(require_owner),
    db: Session = Depends(get_db),
) -> list[MenuItemResponse]:
    restaurant = _my_restaurant(db, owner)
    items = db.scalars(
        select(MenuItem).where(MenuItem.restaurant_id == restaurant.id).order_by(MenuItem.category, MenuItem.name)
    ).all()
    return [_to_menu_item_response(m) for m in items]


@router.post("/menu", response_model=MenuItemResponse, status_code=201)
def add_menu_item(
    payload: MenuItemCreate,
    owner: User = Depends(require_owner),
    db: Session = Depends(get_db),
) -> MenuItemResponse:
    restaurant = _my_restaurant(db, owner)
    item = MenuItem(restaurant_id=restaurant.id, **payload.model_dump())
    db.add(item)
    db.commit()
    db.refresh(item)

    logger.info("Menu item added id=%s restaurant=%s", item.id, restaurant.id)
    return _to_menu_item_response(item)


@router.put("/menu/{item_id}", response_model=MenuItemResponse)
def update_menu_item(
    item_id: int,
    payload: MenuItemUpdate,
    owner: User = Depends(require_owner),
    db: Session = Depends(get_db),
) -> MenuItemResponse:
    item = _my_menu_item(db, owner, item_id)
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    for field, value in changes.items():
        setattr(item, field, value)

    db.add(item)
    db.commit()
    db.refresh(item)
    return _to_menu_item_response(item)


@router.delete("/menu/{item_id}", response_model=MessageResponse)
def delete_menu_item(
    item_id: int,
    owner: User = Depends(require_owner),
    db: Session = Depends(get_db),
) -> MessageResponse:
    item = _my_menu_item(db, owner, item_id)
    db.delete(item)
    db.commit()

    logger.info("Menu item deleted id=%s owner=%s", item_id, owner.id)
    return MessageResponse(message="Menu item deleted")


@router.post("/reviews/{review_id}/report", response_model=ReportCreatedResponse, status_code=201)
def report_review(
    review_id: int,
    payload: ReportCreate,
    owner: User = Depends(require_owner),
    db: Session = Depends(get_db),
) -> ReportCreatedResponse:
    review = db.scalar(
        select(Review)
        .join(Restaurant, Review.restaurant_id == Restaurant.id)
        .where(Review.id == review_id, Review.is_active.is_(True), Restaurant.owner_id == owner.id)
    )
    if not review:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review not found on your restaurant")

    already = db.scalar(
        select(ReviewReport.id).where(ReviewReport.review_id == review_id, ReviewReport.reporter_id == owner.id)
    )
    if already:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You already reported this review")

    report = ReviewReport(
        review_id=review_id,
        reporter_id=owner.id,
        reason=payload.reason.value,
        description=payload.description,
        status=ReportStatus.pendiente.value,
    )
    db.add(report)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You already reported this review")
    db.refresh(report)

    logger.info("Review reported review=%s owner=%s reason=%s", review_id, owner.id, report.reason)
    return ReportCreatedResponse(report_id=report.id, message="Review reported, an administrator will look at it")


@router.get("/stats", response_model=OwnerStatsResponse)
def get_my_stats(
    owner: User = Depends(require_owner),
    db: Session = Depends(get_db),
) -> OwnerStatsResponse:
    restaurant = _my_restaurant(db, owner)

    menu_count = db.scalar(select(func.count(MenuItem.id)).where(MenuItem.restaurant_id == restaurant.id))
    distribution = db.execute(
        select(Review.rating, func.count(Review.id))
        .where(Review.restaurant_id == restaurant.id, Review.is_active.is_(True))
        .group_by(Review.rating)
        .order_by(Review.rating.desc())
    ).all()
    recent = db.execute(
        select(Review, User)
        .join(User, Review.user_id == User.id)
        .where(Review.restaurant_id == restaurant.id, Review.is_active.is_(True))
        .order_by(Review.created_at.desc(), Review.id.desc())
        .limit(5)
    ).all()

    return OwnerStatsResponse(
        restaurant_id=restaurant.id,
        average_rating=round(restaurant.average_rating, 2),
        total_reviews=restaurant.total_reviews,
        total_menu_items=int(menu_count or 0),
        rating_distribution=[RatingBucket(rating=rating, count=count) for rating, count in distribution],
        recent_reviews=[_to_review_response(r, u) for r, u in recent],
    )
