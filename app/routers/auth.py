from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.deps import get_current_user, oauth2_scheme
from app.core.errors import ApiError, unwrap
from app.core.logging_config import security_logger
from app.core.rate_limit import LoginRateLimiter, client_ip, get_login_limiter
from app.core.security import create_access_token, decode_access_token, get_password_hash, token_fingerprint, verify_password
from app.db.session import get_db
from app.models.enums import UserRole
from app.models.security import RevokedToken
from app.models.users import User
from app.schemas.auth import LoginRequest, RegisterRequest, TokenResponse
from app.schemas.common import MessageResponse
from app.schemas.users import UserResponse

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)
security_log = security_logger()


def _to_user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        role=user.role,
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> TokenResponse:
    email = payload.email.lower()
    existing = db.scalar(select(User).where(User.email == email))
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    user = User(
        email=email,
        password_hash=get_password_hash(payload.password),
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        role=UserRole.user.value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("User registered id=%s email=%s", user.id, user.email)
    token = create_access_token(user.id, role=user.role)
    return TokenResponse(access_token=token, user=_to_user_response(user))


@router.post("/login", response_model=TokenResponse)
def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    limiter: LoginRateLimiter = Depends(get_login_limiter),
) -> TokenResponse:
    ip = client_ip(request)
    email = payload.email.lower()

    # Throttle before touching credentials.
    remaining = unwrap(limiter.check(ip, email))

    user = db.scalar(select(User).where(User.email == email))
    if not user or not verify_password(payload.password, user.password_hash):
        limiter.record(ip, email, False)
        security_log.warning("Login failed: invalid credentials email=%s", email)
        raise ApiError(
            status.HTTP_401_UNAUTHORIZED,
            "Invalid credentials",
            extra={"remainingAttempts": max(0, remaining - 1)},
        )

    if not user.is_active:
        limiter.record(ip, email, False)
        security_log.warning("Login failed: inactive account email=%s", email)
        raise ApiError(status.HTTP_403_FORBIDDEN, "Account disabled")

    limiter.record(ip, email, True)
    security_log.info("Login ok user=%s", user.id)

    token = create_access_token(user.id, role=user.role)
    return TokenResponse(access_token=token, user=_to_user_response(user))


@router.get("/verify", response_model=UserResponse)
def verify(current: User = Depends(get_current_user)) -> UserResponse:
    return _to_user_response(current)


@router.post("/logout", response_model=MessageResponse)
def logout(
    token: str = Depends(oauth2_scheme),
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    try:
        exp = decode_access_token(token).get("exp")
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    fingerprint = token_fingerprint(token)
    if not db.scalar(select(RevokedToken.id).where(RevokedToken.token_hash == fingerprint)):
        db.add(
            RevokedToken(
                token_hash=fingerprint,
                user_id=current.id,
                reason="logout",
                expires_at=datetime.utcfromtimestamp(int(exp)) if exp else datetime.utcnow(),
            )
        )
        db.commit()

    security_log.info("Token revoked on logout user=%s", current.id)
    return MessageResponse(message="Logged out")
