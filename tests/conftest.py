import os
import tempfile
from pathlib import Path

_tmpdir = Path(tempfile.mkdtemp(prefix="restaurant_reviews_test_"))
_db_path = _tmpdir / "test.db"

os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_db_path.as_posix()}")
os.environ.setdefault("APP_SECRET_KEY", "test-secret-key")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("MAINTENANCE_INTERVAL_MINUTES", "0")
os.environ.setdefault("LOG_DIR", (_tmpdir / "logs").as_posix())

import pytest
from fastapi.testclient import TestClient

from app.core.security import create_access_token, get_password_hash
from app.db.base import Base
from app.db.session import engine, SessionLocal
from app.main import create_app
from app.models.enums import ReportStatus
from app.models.restaurants import Restaurant
from app.models.reviews import Review, ReviewReport
from app.models.users import User
from app.services.ratings import recompute_restaurant_rating

PASSWORD = "password123"


@pytest.fixture()
def clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db(clean_db):
    session = SessionLocal()
    try:
        yield session
        session.commit()
    finally:
        session.close()


@pytest.fixture()
def client(clean_db):
    app = create_app()
    with TestClient(app) as c:
        yield c


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_user(db):
    def _make(email: str, *, role: str = "user", strikes: int = 0, is_active: bool = True) -> User:
        user = User(
            email=email,
            password_hash=get_password_hash(PASSWORD),
            first_name="Test",
            last_name=email.split("@")[0],
            role=role,
            strikes=strikes,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture()
def headers_for():
    def _headers(user: User) -> dict[str, str]:
        return auth_header(create_access_token(user.id, role=user.role))

    return _headers


@pytest.fixture()
def make_restaurant(db):
    def _make(name: str = "La Tasca", *, owner: User | None = None, **fields) -> Restaurant:
        fields.setdefault("cuisine_type", "tapas")
        restaurant = Restaurant(name=name, owner_id=owner.id if owner else None, **fields)
        db.add(restaurant)
        db.commit()
        db.refresh(restaurant)
        return restaurant

    return _make


@pytest.fixture()
def make_review(db):
    def _make(restaurant: Restaurant, author: User, rating: int, *, comment: str = "ok") -> Review:
        review = Review(restaurant_id=restaurant.id, user_id=author.id, rating=rating, comment=comment)
        db.add(review)
        recompute_restaurant_rating(db, restaurant_id=restaurant.id)
        db.commit()
        db.refresh(review)
        return review

    return _make


@pytest.fixture()
def make_report(db):
    def _make(review: Review, reporter: User, *, reason: str = "spam", report_id: int | None = None) -> ReviewReport:
        report = ReviewReport(
            review_id=review.id,
            reporter_id=reporter.id,
            reason=reason,
            status=ReportStatus.pendiente.value,
        )
        if report_id is not None:
            report.id = report_id
        db.add(report)
        db.commit()
        db.refresh(report)
        return report

    return _make
