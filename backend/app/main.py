"""
FastAPI Application Entry Point.

This is the main application file for the Lab Notifications Backend.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import Depends, FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError

from backend.app.core.config import settings
from backend.app.api.v1.router import router as api_v1_router
from backend.app.core.events import event_bus
from backend.app.core.observability import ObservabilityMiddleware, configure_logging
from backend.app.core.redis_client import get_redis, ping_redis, redis_client
from backend.app.db.session import engine, Base, AsyncSessionLocal
from backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    sqlalchemy_exception_handler,
    generic_exception_handler
)
from backend.app.services.activity_log import register_activity_logging
from backend.app.services.ttl_sweeper import run_ttl_sweeper

# Import models to ensure they are registered with Base
from backend.app.models.user import User
from backend.app.models.activity import Activity
from backend.app.models.notification import Notification

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Subscribes the activity logger to notification events.
    3. Starts the expired-notification sweeper.
    4. On shutdown, stops the sweeper and flushes pending activity writes.
    """
    configure_logging(settings.log_level)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    register_activity_logging(event_bus, AsyncSessionLocal)

    sweeper = None
    if settings.ttl_sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(
            run_ttl_sweeper(AsyncSessionLocal, settings.ttl_sweep_interval_seconds)
        )

    yield

    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper

    await event_bus.drain()
    event_bus.clear()
    await redis_client.aclose()
    await engine.dispose()
    logger.info("Shutdown complete")


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="In-app notifications for the lab management platform",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check(redis=Depends(get_redis)):
    """
    Health check endpoint.

    Returns:
        dict: Status, Redis reachability and application information
    """
    return {
        "status": "healthy",
        "redis": "connected" if await ping_redis(redis) else "unavailable",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Lab Notifications Backend API",
        "docs": "/docs",
        "health": "/health",
    }
