from __future__ import annotations

import argparse

from sqlalchemy import select

from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.models.enums import UserRole
from app.models.restaurants import Restaurant
from app.models.users import User


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Change a user's role.")
    parser.add_argument("email")
    parser.add_argument("role", choices=[r.value for r in UserRole])
    parser.add_argument("--restaurant-id", type=int, default=None, help="attach this restaurant to the new owner")
    args = parser.parse_args(argv)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        user = db.scalar(select(User).where(User.email == args.email.lower()))
        if not user:
            print("User not found")
            return 1
        user.role = args.role
        db.add(user)

        if args.restaurant_id is not None:
            if args.role != UserRole.owner.value:
                print("--restaurant-id only makes sense for the owner role")
                return 2
            restaurant = db.get(Restaurant, args.restaurant_id)
            if not restaurant:
                print("Restaurant not found")
                return 1
            restaurant.owner_id = user.id
            db.add(restaurant)

        db.commit()
        print(f"Role updated: {user.email} -> {args.role}")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
