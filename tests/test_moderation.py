import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.db.session import SessionLocal
from app.models.enums import ReportStatus
from app.models.restaurants import Restaurant
from app.models.reviews import Review, ReviewReport
from app.models.security import AdminAuditEntry
from app.models.users import User
from app.services.moderation import (
    ALREADY_PROCESSED,
    BanRequest,
    ModerationService,
    RejectWithStrikeRequest,
    ResolveReportRequest,
    UnbanRequest,
)
from app.services.result import Err, ErrorKind, Ok


@pytest.fixture()
def world(make_user, make_restaurant, make_review, make_report):
    """Admin, an owner with a restaurant, a reviewer with one reported review."""
    admin = make_user("admin@example.com", role="admin")
    owner = make_user("owner@example.com", role="owner")
    author = make_user("author@example.com")
    other = make_user("other@example.com")
    restaurant = make_restaurant("El Buho", owner=owner)
    bad = make_review(restaurant, author, 1, comment="awful, spam spam")
    make_review(restaurant, other, 5)
    report = make_report(bad, owner)
    return {
        "admin": admin,
        "owner": owner,
        "author": author,
        "other": other,
        "restaurant": restaurant,
        "review": bad,
        "report": report,
    }


def _fresh(db, model, pk):
    db.expire_all()
    return db.get(model, pk)


def _assert_rating_matches_active_reviews(db, restaurant_id):
    db.expire_all()
    restaurant = db.get(Restaurant, restaurant_id)
    cnt, avg = db.execute(
        select(func.count(Review.id), func.avg(Review.rating)).where(
            Review.restaurant_id == restaurant_id, Review.is_active.is_(True)
        )
    ).one()
    assert restaurant.total_reviews == cnt
    assert restaurant.average_rating == pytest.approx(float(avg or 0.0))


def test_approve_report_only_closes_it(db, world):
    service = ModerationService(db)
    result = service.approve_report(ResolveReportRequest(report_id=world["report"].id, admin_id=world["admin"].id))

    assert isinstance(result, Ok)
    report = _fresh(db, ReviewReport, world["report"].id)
    assert report.status == ReportStatus.aprobado.value
    assert report.resolved_by == world["admin"].id
    assert report.resolved_at is not None
    assert _fresh(db, Review, world["review"].id).is_active is True
    assert _fresh(db, Restaurant, world["restaurant"].id).total_reviews == 2


def test_second_resolution_is_a_conflict(db, world):
    service = ModerationService(db)
    req = ResolveReportRequest(report_id=world["report"].id, admin_id=world["admin"].id)
    assert isinstance(service.reject_review(req), Ok)

    for again in (service.approve_report(req), service.reject_review(req)):
        assert again == Err(ErrorKind.conflict, ALREADY_PROCESSED)

    strike = service.reject_with_strike(RejectWithStrikeRequest(report_id=req.report_id, admin_id=req.admin_id))
    assert strike == Err(ErrorKind.conflict, ALREADY_PROCESSED)
    assert _fresh(db, User, world["author"].id).strikes == 0


def test_missing_report_is_not_found(db, world):
    result = ModerationService(db).approve_report(ResolveReportRequest(report_id=9999, admin_id=world["admin"].id))
    assert isinstance(result, Err)
    assert result.kind is ErrorKind.not_found


def test_reject_review_hides_review_and_recomputes_rating(db, world):
    result = ModerationService(db).reject_review(
        ResolveReportRequest(report_id=world["report"].id, admin_id=world["admin"].id)
    )

    assert isinstance(result, Ok)
    assert result.value.reviews_deactivated == 1
    assert _fresh(db, ReviewReport, world["report"].id).status == ReportStatus.rechazado.value
    assert _fresh(db, Review, world["review"].id).is_active is False
    restaurant = _fresh(db, Restaurant, world["restaurant"].id)
    assert restaurant.total_reviews == 1
    assert restaurant.average_rating == pytest.approx(5.0)
    _assert_rating_matches_active_reviews(db, world["restaurant"].id)


def test_reject_review_when_review_already_inactive(db, world):
    review = _fresh(db, Review, world["review"].id)
    review.is_active = False
    db.commit()

    result = ModerationService(db).reject_review(
        ResolveReportRequest(report_id=world["report"].id, admin_id=world["admin"].id)
    )

    assert isinstance(result, Ok)
    assert result.value.reviews_deactivated == 0
    assert _fresh(db, ReviewReport, world["report"].id).status == ReportStatus.rechazado.value


def test_strike_scenario_bans_at_threshold(db, make_user, make_restaurant, make_review, make_report):
    admin = make_user("root@example.com", role="admin")
    owner = make_user("boss@example.com", role="owner")
    troll = make_user("troll@example.com", strikes=2)
    restaurant = make_restaurant("Casa Pepe", owner=owner)
    make_review(restaurant, owner, 4)
    bad = make_review(restaurant, troll, 1)
    report = make_report(bad, owner, report_id=42)

    result = ModerationService(db).reject_with_strike(
        RejectWithStrikeRequest(report_id=42, admin_id=admin.id, target_user_id=troll.id)
    )

    assert isinstance(result, Ok), result
    assert result.value.strikes == 3
    assert result.value.banned is True
    user = _fresh(db, User, troll.id)
    assert user.strikes == 3
    assert user.is_active is False
    assert _fresh(db, Review, bad.id).is_active is False
    assert _fresh(db, ReviewReport, report.id).status == ReportStatus.rechazado.value
    restaurant = _fresh(db, Restaurant, restaurant.id)
    assert restaurant.total_reviews == 1
    assert restaurant.average_rating == pytest.approx(4.0)


def test_strike_target_defaults_to_review_author(db, world):
    result = ModerationService(db).reject_with_strike(
        RejectWithStrikeRequest(report_id=world["report"].id, admin_id=world["admin"].id)
    )

    assert isinstance(result, Ok)
    author = _fresh(db, User, world["author"].id)
    assert author.strikes == 1
    assert author.is_active is True


def test_auto_ban_happens_once_and_purges_reviews(db, world, make_restaurant, make_review, make_report):
    admin, owner, author = world["admin"], world["owner"], world["author"]
    service = ModerationService(db, strike_ban_threshold=2)
    second_place = make_restaurant("Otro Sitio", owner=owner)
    elsewhere = make_review(second_place, author, 2)
    report2 = make_report(elsewhere, owner)

    service.reject_with_strike(RejectWithStrikeRequest(report_id=world["report"].id, admin_id=admin.id))
    extra = make_review(make_restaurant("Tercero"), author, 3)
    assert _fresh(db, User, author.id).strikes == 1

    second = service.reject_with_strike(RejectWithStrikeRequest(report_id=report2.id, admin_id=admin.id))
    assert isinstance(second, Ok)
    assert second.value.banned is True

    # The third restaurant review went with the auto-ban.
    assert _fresh(db, Review, extra.id).is_active is False
    assert _fresh(db, Restaurant, extra.restaurant_id).total_reviews == 0
    assert _fresh(db, Restaurant, extra.restaurant_id).average_rating == 0

    # Striking a banned user again does not re-ban or re-count.
    third_review = Review(restaurant_id=second_place.id, user_id=author.id, rating=1, comment="again", is_active=True)
    db.add(third_review)
    db.commit()
    report3 = ReviewReport(review_id=third_review.id, reporter_id=owner.id, reason="spam")
    db.add(report3)
    db.commit()

    third = service.reject_with_strike(RejectWithStrikeRequest(report_id=report3.id, admin_id=admin.id))
    assert isinstance(third, Ok)
    assert third.value.banned is False
    assert third.value.strikes == 3
    assert _fresh(db, User, author.id).is_active is False


def test_auto_ban_counts_each_hidden_review_once(db, world, make_restaurant, make_review):
    author = world["author"]
    make_review(make_restaurant("Aparte"), author, 4)

    result = ModerationService(db, strike_ban_threshold=1).reject_with_strike(
        RejectWithStrikeRequest(report_id=world["report"].id, admin_id=world["admin"].id)
    )

    assert isinstance(result, Ok)
    assert result.value.banned is True
    db.expire_all()
    hidden = db.scalar(
        select(func.count(Review.id)).where(Review.user_id == author.id, Review.is_active.is_(False))
    )
    assert hidden == 2
    assert result.value.reviews_deactivated == hidden


def test_concurrent_resolution_loses_at_the_status_guard(db, world):
    report_id, admin_id = world["report"].id, world["admin"].id
    # Load the pending report into this session before another admin resolves it.
    assert db.get(ReviewReport, report_id).status == ReportStatus.pendiente.value

    other = SessionLocal()
    try:
        first = ModerationService(other).approve_report(ResolveReportRequest(report_id=report_id, admin_id=admin_id))
        assert isinstance(first, Ok)
    finally:
        other.close()

    late = ModerationService(db).reject_with_strike(RejectWithStrikeRequest(report_id=report_id, admin_id=admin_id))

    assert late == Err(ErrorKind.conflict, ALREADY_PROCESSED)
    assert _fresh(db, User, world["author"].id).strikes == 0
    assert _fresh(db, Review, world["review"].id).is_active is True
    assert _fresh(db, ReviewReport, report_id).status == ReportStatus.aprobado.value


def test_auto_ban_can_keep_other_reviews(db, world, make_restaurant, make_review):
    author = world["author"]
    kept = make_review(make_restaurant("Aparte"), author, 4)

    service = ModerationService(db, strike_ban_threshold=1, purge_reviews_on_auto_ban=False)
    result = service.reject_with_strike(
        RejectWithStrikeRequest(report_id=world["report"].id, admin_id=world["admin"].id)
    )

    assert isinstance(result, Ok)
    assert result.value.banned is True
    assert _fresh(db, Review, kept.id).is_active is True


def test_admin_is_never_strikeable(db, world, make_user):
    other_admin = make_user("admin2@example.com", role="admin")
    result = ModerationService(db).reject_with_strike(
        RejectWithStrikeRequest(
            report_id=world["report"].id,
            admin_id=world["admin"].id,
            target_user_id=other_admin.id,
        )
    )

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.forbidden
    assert _fresh(db, User, other_admin.id).strikes == 0
    assert _fresh(db, ReviewReport, world["report"].id).status == ReportStatus.pendiente.value
    assert _fresh(db, Review, world["review"].id).is_active is True


def test_restaurant_owner_is_protected_by_policy(db, world):
    req = RejectWithStrikeRequest(
        report_id=world["report"].id,
        admin_id=world["admin"].id,
        target_user_id=world["owner"].id,
    )

    blocked = ModerationService(db).reject_with_strike(req)
    assert isinstance(blocked, Err)
    assert blocked.kind is ErrorKind.forbidden
    assert _fresh(db, User, world["owner"].id).strikes == 0

    allowed = ModerationService(db, protect_restaurant_owner=False).reject_with_strike(req)
    assert isinstance(allowed, Ok)
    assert _fresh(db, User, world["owner"].id).strikes == 1


def test_strike_on_inactive_review_only_closes_report(db, world):
    review = _fresh(db, Review, world["review"].id)
    review.is_active = False
    db.commit()

    result = ModerationService(db).reject_with_strike(
        RejectWithStrikeRequest(report_id=world["report"].id, admin_id=world["admin"].id)
    )

    assert isinstance(result, Ok)
    assert _fresh(db, User, world["author"].id).strikes == 0
    assert _fresh(db, ReviewReport, world["report"].id).status == ReportStatus.rechazado.value


def test_strike_rolls_back_everything_on_failure(db, world, monkeypatch):
    def explode(*args, **kwargs):
        raise OperationalError("UPDATE restaurants", {}, Exception("disk I/O error"))

    monkeypatch.setattr("app.services.moderation.recompute_many", explode)

    with pytest.raises(OperationalError):
        ModerationService(db).reject_with_strike(
            RejectWithStrikeRequest(report_id=world["report"].id, admin_id=world["admin"].id)
        )

    assert _fresh(db, ReviewReport, world["report"].id).status == ReportStatus.pendiente.value
    assert _fresh(db, Review, world["review"].id).is_active is True
    assert _fresh(db, User, world["author"].id).strikes == 0
    assert _fresh(db, Restaurant, world["restaurant"].id).total_reviews == 2


def test_ban_owner_cascades_and_audits(db, world, make_user, make_restaurant, make_review):
    owner = world["owner"]
    critic = make_review(make_restaurant("Competencia"), owner, 1)

    result = ModerationService(db).ban_user(
        BanRequest(admin_id=world["admin"].id, target_user_id=owner.id, reason="fake reviews")
    )

    assert isinstance(result, Ok)
    user = _fresh(db, User, owner.id)
    assert user.is_active is False
    assert user.strikes == 3
    assert _fresh(db, Restaurant, world["restaurant"].id).is_active is False
    assert _fresh(db, Review, critic.id).is_active is False
    _assert_rating_matches_active_reviews(db, critic.restaurant_id)

    entry = db.scalar(select(AdminAuditEntry))
    assert entry.action == "ban"
    assert entry.target_user_id == owner.id
    assert entry.reason == "fake reviews"


def test_ban_survives_audit_failure(db, world, monkeypatch):
    def broken_audit(self, **kwargs):
        raise OperationalError("INSERT INTO admin_audit", {}, Exception("no such table: admin_audit"))

    monkeypatch.setattr(ModerationService, "_write_audit", broken_audit)

    result = ModerationService(db).ban_user(BanRequest(admin_id=world["admin"].id, target_user_id=world["author"].id))

    assert isinstance(result, Ok)
    assert _fresh(db, User, world["author"].id).is_active is False
    assert _fresh(db, Review, world["review"].id).is_active is False
    assert db.scalar(select(func.count(AdminAuditEntry.id))) == 0


def test_ban_rejects_self_and_admins(db, world, make_user):
    service = ModerationService(db)
    admin = world["admin"]
    other_admin = make_user("admin2@example.com", role="admin")

    assert service.ban_user(BanRequest(admin_id=admin.id, target_user_id=admin.id)).kind is ErrorKind.forbidden
    assert service.ban_user(BanRequest(admin_id=admin.id, target_user_id=other_admin.id)).kind is ErrorKind.forbidden
    assert service.ban_user(BanRequest(admin_id=admin.id, target_user_id=4242)).kind is ErrorKind.not_found
    assert _fresh(db, User, other_admin.id).is_active is True


def test_non_admin_actor_is_refused(db, world):
    result = ModerationService(db).ban_user(BanRequest(admin_id=world["owner"].id, target_user_id=world["author"].id))
    assert isinstance(result, Err)
    assert result.kind is ErrorKind.forbidden


def test_unban_keeps_strikes_and_reviews_hidden(db, world):
    service = ModerationService(db)
    admin, owner = world["admin"], world["owner"]
    service.ban_user(BanRequest(admin_id=admin.id, target_user_id=owner.id))

    result = service.unban_user(UnbanRequest(admin_id=admin.id, target_user_id=owner.id, reset_strikes=False))

    assert isinstance(result, Ok)
    user = _fresh(db, User, owner.id)
    assert user.is_active is True
    assert user.strikes == 3
    assert _fresh(db, Restaurant, world["restaurant"].id).is_active is True

    actions = db.scalars(select(AdminAuditEntry.action).order_by(AdminAuditEntry.id)).all()
    assert actions == ["ban", "unban"]


def test_unban_with_reset_and_reviews_untouched(db, world):
    service = ModerationService(db)
    admin, author = world["admin"], world["author"]
    service.ban_user(BanRequest(admin_id=admin.id, target_user_id=author.id))

    service.unban_user(UnbanRequest(admin_id=admin.id, target_user_id=author.id, reset_strikes=True))

    user = _fresh(db, User, author.id)
    assert user.is_active is True
    assert user.strikes == 0
    assert _fresh(db, Review, world["review"].id).is_active is False
    reason = db.scalar(select(AdminAuditEntry.reason).where(AdminAuditEntry.action == "unban"))
    assert reason == "unban_reset_strikes"
