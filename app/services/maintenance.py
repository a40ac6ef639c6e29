from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

import anyio
from sqlalchemy import delete
from sqlalchemy.orm import Session

from app.core.rate_limit import LoginRateLimiter
from app.db.session import SessionLocal
from app.models.security import RevokedToken

logger = logging.getLogger(__name__)


def prune_revoked_tokens(db: Session, *, now: datetime | None = None) -> int:
    res = db.execute(delete(RevokedToken).where(RevokedToken.expires_at < (now or datetime.utcnow())))
    db.commit()
    return int(res.rowcount or 0)


def run_maintenance(db: Session, *, clock: Callable[[], datetime] = datetime.utcnow) -> dict[str, int]:
    """Drop login attempts past the lockout window and expired revoked tokens."""
    now = clock()
    attempts = LoginRateLimiter(db, clock=clock).prune_old(now=now)
    tokens = prune_revoked_tokens(db, now=now)
    logger.info("Maintenance done: login_attempts=%s revoked_tokens=%s removed", attempts, tokens)
    return {"login_attempts": attempts, "revoked_tokens": tokens}


def _run_once() -> None:
    db = SessionLocal()
    try:
        run_maintenance(db)
    except Exception:
        db.rollback()
        logger.exception("Maintenance run failed")
    finally:
        db.close()


async def maintenance_loop(interval_minutes: int) -> None:
    logger.info("Maintenance scheduled every %s minute(s)", interval_minutes)
    while True:
        # Blocking DB work (and SQLite lock waits) stays off the event loop.
        await anyio.to_thread.run_sync(_run_once)
        await asyncio.sleep(interval_minutes * 60)
