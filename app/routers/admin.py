from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, aliased

from app.core.deps import require_role
from app.core.errors import unwrap
from app.db.session import get_db
from app.models.enums import ReportStatus, UserRole
from app.models.restaurants import Restaurant
from app.models.reviews import Review, ReviewReport
from app.models.security import AdminAuditEntry
from app.models.users import User
from app.schemas.admin import (
    AdminRestaurantListResponse,
    AdminRestaurantResponse,
    AdminStatsResponse,
    AuditEntryResponse,
    AuditListResponse,
    BanBody,
    ModerationResponse,
    RejectWithStrikeBody,
    ReportListResponse,
    ReportReporter,
    ReportResponse,
    ReportRestaurant,
    ReportReview,
    UnbanBody,
)
from app.schemas.common import page_count
from app.schemas.users import AdminUserListResponse, AdminUserResponse
from app.services.moderation import (
    BanRequest,
    ModerationOutcome,
    ModerationService,
    RejectWithStrikeRequest,
    ResolveReportRequest,
    UnbanRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

require_admin = require_role(UserRole.admin)


def get_moderation_service(db: Session = Depends(get_db)) -> ModerationService:
    return ModerationService(db)


def _to_moderation_response(outcome: ModerationOutcome) -> ModerationResponse:
    return ModerationResponse(
        message=outcome.message,
        report_id=outcome.report_id,
        user_id=outcome.user_id,
        strikes=outcome.strikes,
        banned=outcome.banned,
        reviews_deactivated=outcome.reviews_deactivated,
    )


# Reports


@router.get("/reports", response_model=ReportListResponse)
def list_reports(
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
    status_filter: ReportStatus = Query(default=ReportStatus.pendiente, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> ReportListResponse:
    reporter = aliased(User)
    stmt = (
        select(ReviewReport, reporter, Review, Restaurant)
        .join(reporter, ReviewReport.reporter_id == reporter.id)
        .join(Review, ReviewReport.review_id == Review.id)
        .join(Restaurant, Review.restaurant_id == Restaurant.id)
        .where(ReviewReport.status == status_filter.value)
    )
    total = int(
        db.scalar(select(func.count(ReviewReport.id)).where(ReviewReport.status == status_filter.value)) or 0
    )
    rows = db.execute(
        stmt.order_by(ReviewReport.created_at.desc(), ReviewReport.id.desc()).limit(limit).offset((page - 1) * limit)
    ).all()

    items = [
        ReportResponse(
            id=report.id,
            reason=report.reason,
            description=report.description,
            status=report.status,
            created_at=report.created_at,
            resolved_at=report.resolved_at,
            resolved_by=report.resolved_by,
            reporter=ReportReporter(id=who.id, name=who.full_name, email=who.email),
            review=ReportReview(
                id=review.id,
                rating=review.rating,
                comment=review.comment,
                user_id=review.user_id,
                is_active=review.is_active,
            ),
            restaurant=ReportRestaurant(id=restaurant.id, name=restaurant.name),
        )
        for report, who, review, restaurant in rows
    ]
    return ReportListResponse(items=items, total=total, page=page, pages=page_count(total, limit))


@router.post("/reports/{report_id}/approve", response_model=ModerationResponse)
def approve_report(
    report_id: int,
    admin: User = Depends(require_admin),
    service: ModerationService = Depends(get_moderation_service),
) -> ModerationResponse:
    outcome = unwrap(service.approve_report(ResolveReportRequest(report_id=report_id, admin_id=admin.id)))
    return _to_moderation_response(outcome)


@router.post("/reports/{report_id}/reject-review", response_model=ModerationResponse)
def reject_review(
    report_id: int,
    admin: User = Depends(require_admin),
    service: ModerationService = Depends(get_moderation_service),
) -> ModerationResponse:
    outcome = unwrap(service.reject_review(ResolveReportRequest(report_id=report_id, admin_id=admin.id)))
    return _to_moderation_response(outcome)


@router.post("/reports/{report_id}/reject-with-strike", response_model=ModerationResponse)
def reject_with_strike(
    report_id: int,
    body: RejectWithStrikeBody | None = None,
    admin: User = Depends(require_admin),
    service: ModerationService = Depends(get_moderation_service),
) -> ModerationResponse:
    req = RejectWithStrikeRequest(
        report_id=report_id,
        admin_id=admin.id,
        target_user_id=body.user_id if body else None,
    )
    return _to_moderation_response(unwrap(service.reject_with_strike(req)))


# Users


@router.get("/users", response_model=AdminUserListResponse)
def list_users(
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: str | None = Query(default=None, max_length=120),
    filter_by: str = Query(default="all", alias="filter", pattern="^(all|banned|with-strikes)$"),
) -> AdminUserListResponse:
    stmt = select(User)
    if filter_by == "banned":
        stmt = stmt.where(User.is_active.is_(False))
    elif filter_by == "with-strikes":
        stmt = stmt.where(User.strikes > 0)
    if search and search.strip():
        like = f"%{search.strip().lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(User.first_name + " " + User.last_name).like(like),
                func.lower(User.email).like(like),
            )
        )

    total = int(db.scalar(select(func.count()).select_from(stmt.subquery())) or 0)
    users = db.scalars(stmt.order_by(User.created_at.desc(), User.id.desc()).limit(limit).offset((page - 1) * limit)).all()
    items = [
        AdminUserResponse(
            id=u.id,
            email=u.email,
            first_name=u.first_name,
            last_name=u.last_name,
            role=u.role,
            strikes=u.strikes,
            is_active=u.is_active,
            created_at=u.created_at,
        )
        for u in users
    ]
    return AdminUserListResponse(items=items, total=total, page=page, pages=page_count(total, limit))


@router.post("/users/{user_id}/ban", response_model=ModerationResponse)
def ban_user(
    user_id: int,
    body: BanBody | None = None,
    admin: User = Depends(require_admin),
    service: ModerationService = Depends(get_moderation_service),
) -> ModerationResponse:
    req = BanRequest(admin_id=admin.id, target_user_id=user_id, reason=body.reason if body else None)
    return _to_moderation_response(unwrap(service.ban_user(req)))


@router.post("/users/{user_id}/unban", response_model=ModerationResponse)
def unban_user(
    user_id: int,
    body: UnbanBody | None = None,
    admin: User = Depends(require_admin),
    service: ModerationService = Depends(get_moderation_service),
) -> ModerationResponse:
    req = UnbanRequest(admin_id=admin.id, target_user_id=user_id, reset_strikes=body.reset_strikes if body else False)
    return _to_moderation_response(unwrap(service.unban_user(req)))


# Overview


@router.get("/stats", response_model=AdminStatsResponse)
def get_stats(
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AdminStatsResponse:
    def count(stmt) -> int:
        return int(db.scalar(stmt) or 0)

    return AdminStatsResponse(
        total_users=count(select(func.count(User.id))),
        total_restaurants=count(select(func.count(Restaurant.id))),
        total_reviews=count(select(func.count(Review.id)).where(Review.is_active.is_(True))),
        pending_reports=count(
            select(func.count(ReviewReport.id)).where(ReviewReport.status == ReportStatus.pendiente.value)
        ),
        banned_users=count(select(func.count(User.id)).where(User.is_active.is_(False))),
    )


@router.get("/restaurants", response_model=AdminRestaurantListResponse)
def list_restaurants(
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: str | None = Query(default=None, max_length=120),
    owner_id: int | None = Query(default=None, ge=1),
) -> AdminRestaurantListResponse:
    stmt = select(Restaurant, User).outerjoin(User, Restaurant.owner_id == User.id)
    if owner_id is not None:
        stmt = stmt.where(Restaurant.owner_id == owner_id)
    if search and search.strip():
        like = f"%{search.strip().lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(Restaurant.name).like(like),
                func.lower(Restaurant.cuisine_type).like(like),
                func.lower(Restaurant.address).like(like),
            )
        )

    total = int(db.scalar(select(func.count()).select_from(stmt.subquery())) or 0)
    rows = db.execute(
        stmt.order_by(Restaurant.created_at.desc(), Restaurant.id.desc()).limit(limit).offset((page - 1) * limit)
    ).all()
    items = [
        AdminRestaurantResponse(
            id=r.id,
            name=r.name,
            cuisine_type=r.cuisine_type,
            address=r.address,
            average_rating=round(r.average_rating, 2),
            total_reviews=r.total_reviews,
            is_active=r.is_active,
            created_at=r.created_at,
            owner_id=r.owner_id,
            owner_name=owner.full_name if owner else None,
            owner_email=owner.email if owner else None,
        )
        for r, owner in rows
    ]
    return AdminRestaurantListResponse(items=items, total=total, page=page, pages=page_count(total, limit))


@router.get("/audit", response_model=AuditListResponse)
def list_audit(
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> AuditListResponse:
    total = int(db.scalar(select(func.count(AdminAuditEntry.id))) or 0)
    entries = db.scalars(
        select(AdminAuditEntry)
        .order_by(AdminAuditEntry.created_at.desc(), AdminAuditEntry.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    ).all()
    items = [
        AuditEntryResponse(
            id=e.id,
            admin_id=e.admin_id,
            action=e.action,
            target_user_id=e.target_user_id,
            reason=e.reason,
            created_at=e.created_at,
        )
        for e in entries
    ]
    return AuditListResponse(items=items, total=total, page=page, pages=page_count(total, limit))
