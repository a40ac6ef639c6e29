from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from app.models.enums import ReportReason
from app.schemas.common import RequestModel


class ReviewCreate(RequestModel):
    rating: int = Field(ge=1, le=5)
    comment: str = Field(min_length=1, max_length=1000)
    visit_date: date | None = None


class ReviewUpdate(RequestModel):
    rating: int | None = Field(default=None, ge=1, le=5)
    comment: str | None = Field(default=None, min_length=1, max_length=1000)
    visit_date: date | None = None


class ReviewResponse(BaseModel):
    id: int
    restaurant_id: int
    user_id: int
    author_name: str | None = None
    rating: int
    comment: str
    visit_date: date | None
    created_at: datetime
    updated_at: datetime


class ReviewListResponse(BaseModel):
    items: list[ReviewResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


class ReportCreate(RequestModel):
    reason: ReportReason
    description: str | None = Field(default=None, max_length=500)


class ReportCreatedResponse(BaseModel):
    report_id: int
    message: str
