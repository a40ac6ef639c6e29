from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.common import RequestModel


class ReportReporter(BaseModel):
    id: int
    name: str
    email: str


class ReportReview(BaseModel):
    id: int
    rating: int
    comment: str
    user_id: int
    is_active: bool


class ReportRestaurant(BaseModel):
    id: int
    name: str


class ReportResponse(BaseModel):
    id: int
    reason: str
    description: str | None
    status: str
    created_at: datetime
    resolved_at: datetime | None
    resolved_by: int | None
    reporter: ReportReporter
    review: ReportReview
    restaurant: ReportRestaurant


class ReportListResponse(BaseModel):
    items: list[ReportResponse]
    total: int
    page: int
    pages: int


class RejectWithStrikeBody(RequestModel):
    user_id: int | None = Field(default=None, gt=0)


class BanBody(RequestModel):
    reason: str | None = Field(default=None, max_length=500)


class UnbanBody(RequestModel):
    reset_strikes: bool = False


class ModerationResponse(BaseModel):
    message: str
    report_id: int | None = None
    user_id: int | None = None
    strikes: int | None = None
    banned: bool = False
    reviews_deactivated: int = 0


class AdminStatsResponse(BaseModel):
    total_users: int
    total_restaurants: int
    total_reviews: int
    pending_reports: int
    banned_users: int


class AdminRestaurantResponse(BaseModel):
    id: int
    name: str
    cuisine_type: str | None
    address: str | None
    average_rating: float
    total_reviews: int
    is_active: bool
    created_at: datetime
    owner_id: int | None
    owner_name: str | None
    owner_email: str | None


class AdminRestaurantListResponse(BaseModel):
    items: list[AdminRestaurantResponse]
    total: int
    page: int
    pages: int


class AuditEntryResponse(BaseModel):
    id: int
    admin_id: int | None
    action: str
    target_user_id: int
    reason: str | None
    created_at: datetime


class AuditListResponse(BaseModel):
    items: list[AuditEntryResponse]
    total: int
    page: int
    pages: int
