# backend/tutorbook/main.py
"""
FastAPI application entry point.

Mounts the v1 API, health and metrics routes, and, when configured, runs the
lapsed-hold sweep inside the API process for deployments without a Celery
worker.
"""

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, FastAPI

from .core.config import settings
from .database import SessionLocal, init_db
from .errors import register_error_handlers
from .routes import health, prometheus
from .routes.v1 import bookings as bookings_v1, slots as slots_v1
from .services.reservation_service import ReservationService

# Configure logging
logging.basicConfig(
    level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def _sweep_once() -> int:
    db = SessionLocal()
    try:
        return ReservationService(db).sweep_expired()
    finally:
        db.close()


async def _hold_sweep_loop(interval_seconds: int) -> None:
    """Background task: release lapsed holds every ``interval_seconds``."""
    while True:
        try:
            released = await asyncio.to_thread(_sweep_once)
            if released:
                logger.info(f"In-process sweep released {released} lapsed hold(s)")
        except Exception:
            logger.exception("Error during lapsed-hold sweep")
        await asyncio.sleep(interval_seconds)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"tutorbook API starting up (environment={settings.environment})")
    init_db()

    sweep_task: Optional[asyncio.Task[None]] = None
    if settings.hold_sweep_in_process:
        sweep_task = asyncio.create_task(_hold_sweep_loop(settings.hold_sweep_interval_seconds))
        logger.info(
            f"In-process hold sweep every {settings.hold_sweep_interval_seconds}s"
        )

    yield

    logger.info("tutorbook API shutting down...")
    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass


def create_app() -> FastAPI:
    app = FastAPI(
        title="tutorbook API",
        description="Tutoring slot reservation and booking core",
        version="1.0.0",
        lifespan=app_lifespan,
    )
    register_error_handlers(app)

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(slots_v1.router, prefix="/tutors")
    api_v1.include_router(bookings_v1.router, prefix="/bookings")
    app.include_router(api_v1)

    app.include_router(health.router)
    app.include_router(prometheus.router)
    return app


app = create_app()
