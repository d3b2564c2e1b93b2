"""
FastAPI Application Entry Point.

This is the main application file for the Tenancy Finance Backend.
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from backend.app.core.config import settings
from backend.app.api.v1.router import router as api_v1_router
from backend.app.db.session import engine, Base, get_session_factory
from backend.app.core.observability import ObservabilityMiddleware, configure_logging
from backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from backend.app.services.background_jobs import run_periodically

# Import models to ensure they are registered with Base
from backend.app.models.application import Application
from backend.app.models.property import Property, Bedroom
from backend.app.models.tenancy import Tenancy, TenancyMember
from backend.app.models.holding_deposit import HoldingDeposit
from backend.app.models.payment_schedule import PaymentSchedule, Payment
from backend.app.models.audit_log import AuditLog
from backend.app.models.notification import Notification

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Starts the maintenance jobs when enabled and stops them on shutdown.
    """
    configure_logging()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    jobs_task = None
    if settings.background_jobs_enabled:
        jobs_task = asyncio.create_task(
            run_periodically(get_session_factory(), settings.background_jobs_interval_seconds)
        )
    yield
    if jobs_task is not None:
        jobs_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await jobs_task

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Rent schedules, payments and holding deposits for letting agencies",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "background_jobs": settings.background_jobs_enabled,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to Tenancy Finance Backend API",
        "docs": "/docs",
        "health": "/health",
    }
