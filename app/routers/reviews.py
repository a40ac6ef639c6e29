from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.deps import get_current_user
from app.db.session import get_db
from app.models.reviews import Review
from app.models.users import User
from app.routers.restaurants import get_active_restaurant
from app.schemas.common import MessageResponse
from app.schemas.reviews import ReviewCreate, ReviewListResponse, ReviewResponse, ReviewUpdate
from app.services.access import can_modify_content
from app.services.ratings import recompute_restaurant_rating

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["reviews"])


def _to_review_response(r: Review, author: User | None = None) -> ReviewResponse:
    return ReviewResponse(
        id=r.id,
        restaurant_id=r.restaurant_id,
        user_id=r.user_id,
        author_name=author.full_name if author else None,
        rating=r.rating,
        comment=r.comment,
        visit_date=r.visit_date,
        created_at=r.created_at,
        updated_at=r.updated_at,
    )


def _get_active_review(db: Session, review_id: int) -> Review:
    review = db.get(Review, review_id)
    if not review or not review.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review not found")
    return review


@router.post("/restaurants/{restaurant_id}/reviews", response_model=ReviewResponse, status_code=201)
def create_review(
    restaurant_id: int,
    payload: ReviewCreate,
    response: Response,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ReviewResponse:
    get_active_restaurant(db, restaurant_id)

    # One active review per user and restaurant: a second post edits the first.
    review = db.scalar(
        select(Review).where(
            Review.restaurant_id == restaurant_id,
            Review.user_id == current.id,
            Review.is_active.is_(True),
        )
    )
    if review:
        review.rating = payload.rating
        review.comment = payload.comment.strip()
        review.visit_date = payload.visit_date
        response.status_code = status.HTTP_200_OK
    else:
        review = Review(
            restaurant_id=restaurant_id,
            user_id=current.id,
            rating=payload.rating,
            comment=payload.comment.strip(),
            visit_date=payload.visit_date,
        )
    db.add(review)
    recompute_restaurant_rating(db, restaurant_id=restaurant_id)
    db.commit()
    db.refresh(review)

    logger.info("Review saved id=%s restaurant=%s user=%s", review.id, restaurant_id, current.id)
    return _to_review_response(review, current)


@router.get("/restaurants/{restaurant_id}/reviews", response_model=ReviewListResponse)
def list_reviews(
    restaurant_id: int,
    db: Session = Depends(get_db),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> ReviewListResponse:
    get_active_restaurant(db, restaurant_id)

    stmt = (
        select(Review, User)
        .join(User, Review.user_id == User.id)
        .where(Review.restaurant_id == restaurant_id, Review.is_active.is_(True))
    )
    total = int(
        db.scalar(
            select(func.count(Review.id)).where(Review.restaurant_id == restaurant_id, Review.is_active.is_(True))
        )
        or 0
    )
    rows = db.execute(stmt.order_by(Review.created_at.desc(), Review.id.desc()).limit(limit).offset(offset)).all()
    return ReviewListResponse(
        items=[_to_review_response(r, u) for r, u in rows],
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + limit < total,
    )


@router.put("/reviews/{review_id}", response_model=ReviewResponse)
def update_review(
    review_id: int,
    payload: ReviewUpdate,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ReviewResponse:
    review = _get_active_review(db, review_id)
    decision = can_modify_content(current.id, current.role, content_owner_id=review.user_id, allow_admin=False)
    if not decision:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=decision.reason)

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    if "comment" in changes:
        changes["comment"] = changes["comment"].strip()
    for field, value in changes.items():
        setattr(review, field, value)

    db.add(review)
    recompute_restaurant_rating(db, restaurant_id=review.restaurant_id)
    db.commit()
    db.refresh(review)
    return _to_review_response(review, current)


@router.delete("/reviews/{review_id}", response_model=MessageResponse)
def delete_review(
    review_id: int,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    review = _get_active_review(db, review_id)
    decision = can_modify_content(current.id, current.role, content_owner_id=review.user_id)
    if not decision:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=decision.reason)

    review.is_active = False
    db.add(review)
    recompute_restaurant_rating(db, restaurant_id=review.restaurant_id)
    db.commit()

    logger.info("Review deleted id=%s by user=%s", review_id, current.id)
    return MessageResponse(message="Review deleted")
