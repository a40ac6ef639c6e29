from __future__ import annotations

import asyncio
import contextlib
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import install_error_handlers
from app.core.logging_config import configure_logging
from app.db.base import Base
from app.db.session import engine

import app.models

from app.routers import admin, auth, favorites, owner, restaurants, reviews, users
from app.services.maintenance import maintenance_loop

configure_logging(log_dir=settings.log_dir, level=settings.log_level)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="Restaurant Reviews API", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list or ["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    @app.on_event("startup")
    async def on_startup() -> None:
        Base.metadata.create_all(bind=engine)
        logger.info("DB ready")
        logger.info(
            "Login throttling: %s attempts, %s min lockout", settings.max_login_attempts, settings.lockout_minutes
        )

        if settings.maintenance_interval_minutes > 0:
            app.state.maintenance_task = asyncio.create_task(maintenance_loop(settings.maintenance_interval_minutes))

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        task = getattr(app.state, "maintenance_task", None)
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.time()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error")
            return JSONResponse(status_code=500, content={"error": "Internal server error"})
        duration_ms = int((time.time() - start) * 1000)
        logger.info("%s %s -> %s (%sms)", request.method, request.url.path, response.status_code, duration_ms)
        return response

    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(restaurants.router)
    app.include_router(reviews.router)
    app.include_router(favorites.router)
    app.include_router(owner.router)
    app.include_router(admin.router)

    @app.get("/api/health", include_in_schema=False)
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
