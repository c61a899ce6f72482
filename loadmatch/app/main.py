"""
FastAPI Application Entry Point.

This is the main application file for the Load Matching service.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from loadmatch.app.core.config import settings
from loadmatch.app.api.v1.router import router as api_v1_router
from loadmatch.app.core.observability import ObservabilityMiddleware, configure_logging
from loadmatch.app.core.redis_client import ping_redis
from loadmatch.app.db.session import engine, Base
from loadmatch.app.services.geocoding import close_http_client
from loadmatch.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from loadmatch.app.models.company import Company, CompanyPartnership, CompanyMatchingSettings
from loadmatch.app.models.user import User
from loadmatch.app.models.fleet import Driver, Trailer
from loadmatch.app.models.load import Load
from loadmatch.app.models.trip import Trip, TripLoad
from loadmatch.app.models.load_suggestion import LoadSuggestion
from loadmatch.app.models.audit_log import AuditLog

configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.
    
    1. Creates database tables on startup.
    2. Closes the shared geocoding HTTP client on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_http_client()

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Backhaul load matching for moving and freight carriers",
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
        dict: Status, application information and Redis reachability
    """
    redis_ok = await ping_redis()
    return {
        "status": "healthy" if redis_ok else "degraded",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "ok" if redis_ok else "unavailable",
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
        "message": "Welcome to the Load Matching API",
        "docs": "/docs",
        "health": "/health",
    }
