"""FastAPI application entry point for the convention survey service.

This module initializes the FastAPI application, sets up logging, creates
and seeds the database, registers routers, and handles global exceptions.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.logging_config import setup_logging, get_logger
from app.middleware.request_context import RequestContextMiddleware
from app.models.database import init_db, session_scope
from app.routes import admin, coupons, gm_interest, health, sessions, survey
from app.services.survey_loader import get_survey_loader

# Initialize logger (will be configured during startup)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Startup:
    - Configure logging (JSON in production)
    - Create missing tables (when create_tables is set)
    - Seed survey definitions (when seed_surveys is set)

    Shutdown:
    - Log shutdown event

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    settings = get_settings()
    setup_logging()

    logger.info(
        f"Convention Survey starting - "
        f"Environment: {settings.environment}, "
        f"Log Level: {settings.log_level}, "
        f"Database: {settings.database_url.split('@')[-1] if '@' in settings.database_url else 'configured'}"
    )

    if settings.create_tables:
        init_db()
        logger.info("Database tables ready")

    if settings.seed_surveys:
        with session_scope() as db:
            seeded = get_survey_loader().seed_all(db)
        logger.info(f"Survey definitions seeded: {[s.slug for s in seeded]}")

    yield

    logger.info("Convention Survey shutting down")


# Initialize FastAPI application
app = FastAPI(
    title="Convention Survey",
    description="Post-game convention survey with GM assignments, analytics and coupon rewards",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestContextMiddleware)


# Root endpoint
@app.get("/")
async def root() -> dict:
    """Root endpoint with basic API information.

    Returns:
        dict: API information and status
    """
    settings = get_settings()
    return {
        "service": "Convention Survey",
        "version": "1.0.0",
        "environment": settings.environment,
        "status": "operational"
    }


# Register routers
app.include_router(health.router, tags=["Health"])
app.include_router(survey.router, tags=["Survey"])
app.include_router(sessions.router, tags=["Sessions"])
app.include_router(coupons.router, tags=["Coupons"])
app.include_router(gm_interest.router, tags=["GM Interest"])
app.include_router(admin.router, tags=["Admin"])


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled exceptions.

    Logs all unhandled exceptions and returns a generic error response
    to prevent leaking sensitive information.

    Args:
        request: FastAPI request object
        exc: Exception that was raised

    Returns:
        JSONResponse: Generic error response
    """
    logger.error(
        f"Unhandled exception for {request.method} {request.url}: {exc}",
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later."
        }
    )
