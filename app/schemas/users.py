from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.common import RequestModel


class UserResponse(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    role: str


class UserUpdate(RequestModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=60)
    last_name: str | None = Field(default=None, min_length=1, max_length=60)


class AdminUserResponse(UserResponse):
    strikes: int
    is_active: bool
    created_at: datetime


class AdminUserListResponse(BaseModel):
    items: list[AdminUserResponse]
    total: int
    page: int
    pages: int
