"""Explicit success/failure values returned by the core services.

Routers turn an ``Err`` into an HTTP error with :func:`app.core.errors.unwrap`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    validation = "validation"
    not_found = "not_found"
    conflict = "conflict"
    forbidden = "forbidden"
    rate_limited = "rate_limited"
    internal = "internal"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    extra: dict[str, Any] = field(default_factory=dict)


Result = Union[Ok[T], Err]


def not_found(message: str) -> Err:
    return Err(ErrorKind.not_found, message)


def conflict(message: str) -> Err:
    return Err(ErrorKind.conflict, message)


def forbidden(message: str) -> Err:
    return Err(ErrorKind.forbidden, message)


def invalid(message: str) -> Err:
    return Err(ErrorKind.validation, message)
