from __future__ import annotations

import logging
from typing import Any, TypeVar

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.services.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.validation: status.HTTP_400_BAD_REQUEST,
    ErrorKind.not_found: status.HTTP_404_NOT_FOUND,
    # "already processed" / duplicates stay distinguishable from 404
    ErrorKind.conflict: status.HTTP_400_BAD_REQUEST,
    ErrorKind.forbidden: status.HTTP_403_FORBIDDEN,
    ErrorKind.rate_limited: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.internal: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class ApiError(HTTPException):
    """HTTPException that also carries structured hints for the client."""

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        extra: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.extra = dict(extra or {})


def unwrap(result: Result[T]) -> T:
    if isinstance(result, Ok):
        return result.value

    assert isinstance(result, Err)
    headers = None
    if result.kind is ErrorKind.rate_limited and "retryAfter" in result.extra:
        headers = {"Retry-After": str(result.extra["retryAfter"])}
    raise ApiError(STATUS_BY_KIND[result.kind], result.message, extra=result.extra, headers=headers)


def install_error_handlers(app: FastAPI) -> None:
    """Render every error as ``{"error": message, ...hints}``."""

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        body: dict[str, Any] = {"error": exc.detail}
        body.update(getattr(exc, "extra", {}))
        return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        logger.info("Rejected invalid payload on %s %s: %s", request.method, request.url.path, errors)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid data", "errors": errors})
