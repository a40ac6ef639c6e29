from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import datetime, timedelta

from fastapi import Depends, Request
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging_config import security_logger
from app.db.session import get_db
from app.models.security import LoginAttempt
from app.services.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)
audit = security_logger()


class LoginRateLimiter:
    """Failed-login throttling backed by the ``login_attempts`` table.

    Failures are counted per IP and per email inside the trailing lockout
    window; either dimension reaching ``max_attempts`` blocks the login until
    ``last attempt + lockout``. Internal errors never block a login.
    """

    def __init__(
        self,
        db: Session,
        *,
        max_attempts: int | None = None,
        lockout_seconds: int | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.db = db
        self.max_attempts = max_attempts if max_attempts is not None else settings.max_login_attempts
        self.lockout = timedelta(seconds=lockout_seconds if lockout_seconds is not None else settings.lockout_seconds)
        self._clock = clock

    def check(self, ip: str, email: str | None = None) -> Result[int]:
        """Ok(remaining attempts) or Err(rate_limited) with retry hints."""
        try:
            return self._check(ip, _normalize(email))
        except Exception:
            self.db.rollback()
            logger.exception("Login rate limit check failed, allowing attempt (ip=%s)", ip)
            return Ok(self.max_attempts)

    def _check(self, ip: str, email: str | None) -> Result[int]:
        now = self._clock()
        cutoff = now - self.lockout
        self.prune_old(now=now)

        dimensions = [("ip", LoginAttempt.ip_address == ip)]
        if email:
            dimensions.append(("email", LoginAttempt.email == email))

        remaining = self.max_attempts
        for name, condition in dimensions:
            failed = int(
                self.db.scalar(
                    select(func.count(LoginAttempt.id)).where(
                        condition,
                        LoginAttempt.success.is_(False),
                        LoginAttempt.attempt_time > cutoff,
                    )
                )
                or 0
            )

            if failed >= self.max_attempts:
                last = self.db.scalar(select(func.max(LoginAttempt.attempt_time)).where(condition))
                if last is not None:
                    lockout_end = last + self.lockout
                    if now < lockout_end:
                        seconds = (lockout_end - now).total_seconds()
                        audit.warning(
                            "Login blocked by=%s ip=%s email=%s failed=%s", name, ip, email or "-", failed
                        )
                        return Err(
                            ErrorKind.rate_limited,
                            "Too many failed login attempts",
                            extra={
                                "minutesRemaining": math.ceil(seconds / 60),
                                "retryAfter": math.ceil(seconds),
                                "blockedBy": name,
                            },
                        )

            remaining = min(remaining, self.max_attempts - failed)

        return Ok(max(0, remaining))

    def record(self, ip: str, email: str | None, success: bool) -> None:
        email = _normalize(email)
        try:
            self.db.add(LoginAttempt(ip_address=ip, email=email, success=success, attempt_time=self._clock()))
            if success:
                # A success wipes the failure trail of that ip and that email.
                self.db.execute(
                    delete(LoginAttempt).where(LoginAttempt.ip_address == ip, LoginAttempt.success.is_(False))
                )
                if email:
                    self.db.execute(
                        delete(LoginAttempt).where(LoginAttempt.email == email, LoginAttempt.success.is_(False))
                    )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Could not record login attempt (ip=%s)", ip)
            return

        audit.info("Login attempt email=%s ip=%s success=%s", email or "unknown", ip, success)

    def prune_old(self, *, now: datetime | None = None) -> int:
        cutoff = (now or self._clock()) - self.lockout
        res = self.db.execute(delete(LoginAttempt).where(LoginAttempt.attempt_time < cutoff))
        self.db.commit()
        return int(res.rowcount or 0)


def _normalize(email: str | None) -> str | None:
    if not email:
        return None
    return email.strip().lower() or None


def client_ip(request: Request) -> str:
    # Respect proxies if configured to pass X-Forwarded-For
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip() or "unknown"
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client:
        return request.client.host
    return "unknown"


def get_login_limiter(db: Session = Depends(get_db)) -> LoginRateLimiter:
    return LoginRateLimiter(db)
