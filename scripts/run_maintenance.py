from __future__ import annotations

from app.core.config import settings
from app.core.logging_config import configure_logging
from app.db.session import SessionLocal
from app.services.maintenance import run_maintenance


def main() -> int:
    configure_logging(log_dir=settings.log_dir, level=settings.log_level)
    db = SessionLocal()
    try:
        removed = run_maintenance(db)
    finally:
        db.close()
    print(", ".join(f"{k}={v}" for k, v in removed.items()))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
