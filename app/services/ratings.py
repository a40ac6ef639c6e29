from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.restaurants import Restaurant
from app.models.reviews import Review

logger = logging.getLogger(__name__)


def recompute_restaurant_rating(db: Session, *, restaurant_id: int) -> tuple[int, float]:
    """Recompute (total_reviews, average_rating) of a restaurant from its active reviews.

    Only flushes: the caller owns the transaction, so the new numbers land in
    the same commit as the review change that triggered them.
    """

    db.flush()
    stmt = select(func.count(Review.id), func.avg(Review.rating)).where(
        Review.restaurant_id == restaurant_id,
        Review.is_active.is_(True),
    )
    cnt, avg = db.execute(stmt).one()

    restaurant = db.get(Restaurant, restaurant_id)
    if not restaurant:
        return 0, 0.0

    restaurant.total_reviews = int(cnt or 0)
    restaurant.average_rating = float(avg or 0.0)
    db.add(restaurant)
    db.flush()

    logger.debug(
        "Rating updated restaurant=%s total=%s avg=%.2f",
        restaurant_id,
        restaurant.total_reviews,
        restaurant.average_rating,
    )
    return restaurant.total_reviews, restaurant.average_rating


def recompute_many(db: Session, restaurant_ids: Iterable[int]) -> None:
    for restaurant_id in sorted(set(restaurant_ids)):
        recompute_restaurant_rating(db, restaurant_id=restaurant_id)
