"""FastAPI application entry point for the intake questionnaire API.

This module builds the FastAPI application, sets up logging and the
database, registers routers, and maps exceptions to JSON error responses.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from intake_api import __version__
from intake_api.config import get_settings
from intake_api.errors import IntakeError
from intake_api.logging_config import get_logger, setup_logging
from intake_api.models.database import Database, _mask_url
from intake_api.routes import admin, auth, health, questionnaires, responses
from intake_api.services.seed_loader import SeedLoader

# Initialize logger (will be configured during startup)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Startup:
    - Configure logging
    - Create the Database unless one was passed to ``create_app``
    - Create missing tables and apply the seed file, if configured

    Shutdown:
    - Dispose the Database if it was created here

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    # Startup
    settings = get_settings()
    setup_logging()

    owns_database = app.state.database is None
    if owns_database:
        app.state.database = Database.from_settings(settings)
    database: Database = app.state.database

    if settings.auto_create_tables:
        database.create_all()

    if settings.seed_file:
        db = database.session()
        try:
            SeedLoader(db).apply_file(settings.seed_file)
        finally:
            db.close()

    logger.info(
        f"Intake API starting - "
        f"Environment: {settings.environment}, "
        f"Log Level: {settings.log_level}, "
        f"Database: {_mask_url(database.url)}, "
        f"Version: {__version__}"
    )

    yield

    # Shutdown
    logger.info("Intake API shutting down")
    if owns_database:
        database.dispose()
        app.state.database = None


async def intake_error_handler(request: Request, exc: IntakeError) -> JSONResponse:
    """Render domain errors as ``{"error", "details", "code"}``."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.details})")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors (401, 403, ...) with the same ``error`` key."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Map request validation failures to 400 naming the offending field."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or "body"
    message = f"Invalid value for '{field}': {first.get('msg', 'invalid request')}"
    return JSONResponse(
        status_code=400,
        content={
            "error": message,
            "details": [
                {"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg")}
                for e in errors
            ],
        },
    )


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


def create_app(database: Optional[Database] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        database: Database to use; when omitted one is created from settings
            at startup and disposed at shutdown

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    app = FastAPI(
        title="Intake Questionnaire API",
        description="Medical-intake questionnaires with admin import and review",
        version=__version__,
        lifespan=lifespan
    )
    app.state.database = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Root endpoint
    @app.get("/")
    async def root() -> dict:
        """Root endpoint with basic API information."""
        return {
            "service": "Intake Questionnaire API",
            "version": __version__,
            "environment": get_settings().environment,
            "status": "operational"
        }

    # Register routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(auth.router, tags=["Auth"])
    app.include_router(questionnaires.router, tags=["Questionnaires"])
    app.include_router(responses.router, tags=["Responses"])
    app.include_router(admin.router, tags=["Admin"])

    app.add_exception_handler(IntakeError, intake_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    return app


app = create_app()
