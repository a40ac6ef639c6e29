"""Review-report resolution, strikes and bans.

Report lifecycle: ``pendiente -> aprobado | rechazado``, both terminal. Closing
a report is a conditional UPDATE on ``status = 'pendiente'`` so two admins
resolving the same report cannot both apply its consequences; whoever loses
gets a conflict and nothing of theirs is persisted.

Every action runs as one unit of work: report status, strike count, ban flag,
review visibility and restaurant ratings are committed together or not at
all. The admin audit row is the exception: it is written in a SAVEPOINT and
its failure is only logged.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging_config import security_logger
from app.models.enums import AuditAction, ReportStatus, UserRole
from app.models.restaurants import Restaurant
from app.models.reviews import Review, ReviewReport
from app.models.security import AdminAuditEntry
from app.models.users import User
from app.services.access import ModerationTarget, can_moderate
from app.services.ratings import recompute_many, recompute_restaurant_rating
from app.services.result import Err, Ok, Result, conflict, forbidden, invalid, not_found

logger = logging.getLogger(__name__)
audit_log = security_logger()

ALREADY_PROCESSED = "Report already processed"


@dataclass(frozen=True)
class ResolveReportRequest:
    report_id: int
    admin_id: int


@dataclass(frozen=True)
class RejectWithStrikeRequest:
    report_id: int
    admin_id: int
    # Defaults to the author of the reported review.
    target_user_id: int | None = None


@dataclass(frozen=True)
class BanRequest:
    admin_id: int
    target_user_id: int
    reason: str | None = None


@dataclass(frozen=True)
class UnbanRequest:
    admin_id: int
    target_user_id: int
    reset_strikes: bool = False


@dataclass(frozen=True)
class ModerationOutcome:
    message: str
    report_id: int | None = None
    user_id: int | None = None
    strikes: int | None = None
    banned: bool = False
    reviews_deactivated: int = 0


class _ReportAlreadyResolved(Exception):
    pass


class ModerationService:
    def __init__(
        self,
        db: Session,
        *,
        strike_ban_threshold: int | None = None,
        purge_reviews_on_auto_ban: bool | None = None,
        protect_restaurant_owner: bool | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.db = db
        self.strike_ban_threshold = (
            strike_ban_threshold if strike_ban_threshold is not None else settings.strike_ban_threshold
        )
        self.purge_reviews_on_auto_ban = (
            purge_reviews_on_auto_ban if purge_reviews_on_auto_ban is not None else settings.strike_ban_purges_reviews
        )
        self.protect_restaurant_owner = (
            protect_restaurant_owner if protect_restaurant_owner is not None else settings.protect_restaurant_owner
        )
        self._clock = clock

    # Reports

    def approve_report(self, req: ResolveReportRequest) -> Result[ModerationOutcome]:
        """Mark the report approved; the review and its author stay untouched."""
        actor = self._load_admin(req.admin_id)
        if isinstance(actor, Err):
            return actor
        loaded = self._load_pending(req.report_id)
        if isinstance(loaded, Err):
            return loaded

        try:
            with self._transaction():
                self._close_report(req.report_id, ReportStatus.aprobado, req.admin_id)
        except _ReportAlreadyResolved:
            return conflict(ALREADY_PROCESSED)

        logger.info("Report %s approved by admin=%s", req.report_id, req.admin_id)
        return Ok(ModerationOutcome(message="Report approved", report_id=req.report_id))

    def reject_review(self, req: ResolveReportRequest) -> Result[ModerationOutcome]:
        """Hide the reported review and close the report as rejected."""
        actor = self._load_admin(req.admin_id)
        if isinstance(actor, Err):
            return actor
        loaded = self._load_pending(req.report_id)
        if isinstance(loaded, Err):
            return loaded
        _, review = loaded.value

        was_active = review.is_active
        try:
            with self._transaction():
                self._close_report(req.report_id, ReportStatus.rechazado, req.admin_id)
                if was_active:
                    review.is_active = False
                    self.db.add(review)
                    recompute_restaurant_rating(self.db, restaurant_id=review.restaurant_id)
        except _ReportAlreadyResolved:
            return conflict(ALREADY_PROCESSED)

        logger.info(
            "Report %s rejected by admin=%s review=%s (was_active=%s)",
            req.report_id,
            req.admin_id,
            review.id,
            was_active,
        )
        message = "Review removed and report rejected" if was_active else "Report rejected (review already inactive)"
        return Ok(
            ModerationOutcome(message=message, report_id=req.report_id, reviews_deactivated=1 if was_active else 0)
        )

    def reject_with_strike(self, req: RejectWithStrikeRequest) -> Result[ModerationOutcome]:
        """Hide the review and give its author (or ``target_user_id``) a strike.

        Reaching the strike threshold bans the user once; depending on
        configuration the ban also hides all of their reviews.
        """
        actor = self._load_admin(req.admin_id)
        if isinstance(actor, Err):
            return actor
        loaded = self._load_pending(req.report_id)
        if isinstance(loaded, Err):
            return loaded
        _, review = loaded.value

        target_id = req.target_user_id or review.user_id
        if not target_id:
            return invalid("Could not determine the user to strike")
        target = self.db.get(User, target_id)
        if not target:
            return not_found("User not found")

        restaurant = self.db.get(Restaurant, review.restaurant_id)
        owns_restaurant = bool(restaurant and restaurant.owner_id is not None and restaurant.owner_id == target.id)
        decision = can_moderate(
            actor.value.role,
            ModerationTarget(user_id=target.id, role=target.role, owns_reviewed_restaurant=owns_restaurant),
            actor_id=req.admin_id,
            protect_restaurant_owner=self.protect_restaurant_owner,
        )
        if not decision:
            return forbidden(decision.reason or "Forbidden")

        if not review.is_active:
            # Nothing left to punish: close the report without a second strike.
            try:
                with self._transaction():
                    self._close_report(req.report_id, ReportStatus.rechazado, req.admin_id)
            except _ReportAlreadyResolved:
                return conflict(ALREADY_PROCESSED)
            return Ok(
                ModerationOutcome(
                    message="Report rejected (review already inactive)",
                    report_id=req.report_id,
                    user_id=target.id,
                    strikes=target.strikes,
                )
            )

        affected: set[int] = {review.restaurant_id}
        banned = False
        hidden = 1
        try:
            with self._transaction():
                self._close_report(req.report_id, ReportStatus.rechazado, req.admin_id)

                review.is_active = False
                self.db.add(review)
                # The purge below is a bulk UPDATE; it must already see this review hidden.
                self.db.flush()

                self.db.execute(update(User).where(User.id == target.id).values(strikes=User.strikes + 1))
                strikes = int(self.db.scalar(select(User.strikes).where(User.id == target.id)) or 0)

                if strikes >= self.strike_ban_threshold:
                    res = self.db.execute(
                        update(User).where(User.id == target.id, User.is_active.is_(True)).values(is_active=False)
                    )
                    banned = res.rowcount == 1
                    if banned:
                        if self.purge_reviews_on_auto_ban:
                            purged, restaurant_ids = self._hide_reviews_of(target.id)
                            hidden += purged
                            affected.update(restaurant_ids)
                        if target.role == UserRole.owner.value:
                            self._set_owned_restaurants_active(target.id, False)

                recompute_many(self.db, affected)
        except _ReportAlreadyResolved:
            return conflict(ALREADY_PROCESSED)

        self.db.refresh(target)
        logger.info(
            "Strike applied report=%s admin=%s user=%s strikes=%s banned=%s",
            req.report_id,
            req.admin_id,
            target.id,
            strikes,
            banned,
        )
        if banned:
            audit_log.warning("User %s auto-banned after %s strikes (admin=%s)", target.id, strikes, req.admin_id)

        return Ok(
            ModerationOutcome(
                message="Review removed and strike applied" + (", user banned" if banned else ""),
                report_id=req.report_id,
                user_id=target.id,
                strikes=strikes,
                banned=banned,
                reviews_deactivated=hidden,
            )
        )

    # Users

    def ban_user(self, req: BanRequest) -> Result[ModerationOutcome]:
        actor = self._load_admin(req.admin_id)
        if isinstance(actor, Err):
            return actor
        if req.admin_id == req.target_user_id:
            return forbidden("You cannot ban your own account")
        target = self.db.get(User, req.target_user_id)
        if not target:
            return not_found("User not found")
        decision = can_moderate(
            actor.value.role,
            ModerationTarget(user_id=target.id, role=target.role),
            actor_id=req.admin_id,
        )
        if not decision:
            return forbidden(decision.reason or "Forbidden")

        with self._transaction():
            self.db.execute(
                update(User)
                .where(User.id == target.id)
                .values(is_active=False, strikes=self.strike_ban_threshold)
            )
            hidden, restaurant_ids = self._hide_reviews_of(target.id)
            if target.role == UserRole.owner.value:
                self._set_owned_restaurants_active(target.id, False)
            recompute_many(self.db, restaurant_ids)
            self._audit(admin_id=req.admin_id, action=AuditAction.ban, target_user_id=target.id, reason=req.reason)

        audit_log.warning("User %s banned by admin=%s reason=%s", target.id, req.admin_id, req.reason or "-")
        return Ok(
            ModerationOutcome(
                message="User banned",
                user_id=target.id,
                strikes=self.strike_ban_threshold,
                banned=True,
                reviews_deactivated=hidden,
            )
        )

    def unban_user(self, req: UnbanRequest) -> Result[ModerationOutcome]:
        """Reactivate a user. Reviews hidden by the ban stay hidden."""
        actor = self._load_admin(req.admin_id)
        if isinstance(actor, Err):
            return actor
        target = self.db.get(User, req.target_user_id)
        if not target:
            return not_found("User not found")
        decision = can_moderate(
            actor.value.role,
            ModerationTarget(user_id=target.id, role=target.role),
            actor_id=req.admin_id,
        )
        if not decision:
            return forbidden(decision.reason or "Forbidden")

        values: dict[str, object] = {"is_active": True}
        if req.reset_strikes:
            values["strikes"] = 0

        with self._transaction():
            self.db.execute(update(User).where(User.id == target.id).values(**values))
            if target.role == UserRole.owner.value:
                self._set_owned_restaurants_active(target.id, True)
            self._audit(
                admin_id=req.admin_id,
                action=AuditAction.unban,
                target_user_id=target.id,
                reason="unban_reset_strikes" if req.reset_strikes else "unban",
            )

        self.db.refresh(target)
        audit_log.info("User %s unbanned by admin=%s reset_strikes=%s", target.id, req.admin_id, req.reset_strikes)
        return Ok(ModerationOutcome(message="User reactivated", user_id=target.id, strikes=target.strikes))

    # Internals

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _load_admin(self, admin_id: int) -> Result[User]:
        admin = self.db.get(User, admin_id)
        if not admin or not admin.is_active or admin.role != UserRole.admin.value:
            return forbidden("Admin access required")
        return Ok(admin)

    def _load_pending(self, report_id: int) -> Result[tuple[ReviewReport, Review]]:
        report = self.db.get(ReviewReport, report_id)
        if not report:
            return not_found("Report not found")
        if report.status != ReportStatus.pendiente.value:
            return conflict(ALREADY_PROCESSED)
        review = self.db.get(Review, report.review_id)
        if not review:
            return not_found("Reported review not found")
        return Ok((report, review))

    def _close_report(self, report_id: int, status: ReportStatus, admin_id: int) -> None:
        res = self.db.execute(
            update(ReviewReport)
            .where(ReviewReport.id == report_id, ReviewReport.status == ReportStatus.pendiente.value)
            .values(status=status.value, resolved_at=self._clock(), resolved_by=admin_id)
        )
        if res.rowcount != 1:
            raise _ReportAlreadyResolved(report_id)

    def _hide_reviews_of(self, user_id: int) -> tuple[int, set[int]]:
        restaurant_ids = set(
            self.db.scalars(
                select(Review.restaurant_id).where(Review.user_id == user_id, Review.is_active.is_(True))
            ).all()
        )
        res = self.db.execute(
            update(Review)
            .where(Review.user_id == user_id, Review.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )
        return int(res.rowcount or 0), restaurant_ids

    def _set_owned_restaurants_active(self, owner_id: int, active: bool) -> None:
        self.db.execute(update(Restaurant).where(Restaurant.owner_id == owner_id).values(is_active=active))

    def _audit(self, *, admin_id: int, action: AuditAction, target_user_id: int, reason: str | None) -> None:
        try:
            with self.db.begin_nested():
                self._write_audit(admin_id=admin_id, action=action, target_user_id=target_user_id, reason=reason)
        except SQLAlchemyError:
            logger.warning(
                "admin_audit insert failed action=%s target=%s", action.value, target_user_id, exc_info=True
            )

    def _write_audit(self, *, admin_id: int, action: AuditAction, target_user_id: int, reason: str | None) -> None:
        self.db.add(
            AdminAuditEntry(
                admin_id=admin_id,
                action=action.value,
                target_user_id=target_user_id,
                reason=reason,
                created_at=self._clock(),
            )
        )
        self.db.flush()
