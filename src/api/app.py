"""
Main FastAPI application factory.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .dependencies import get_logger, reset_dependencies
from .routes import accounts, claims, employees, health
from .services.employee_service import configure_collation
from .models import ErrorResponse
from ..errors import ClaimsServiceError, ClaimsAttachmentError


logger = get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting FastAPI application",
                environment=settings.environment,
                api_version=settings.api_version)

    yield

    logger.info("Shutting down FastAPI application")
    reset_dependencies()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    configure_collation()

    app = FastAPI(
        title=settings.app_name,
        description=settings.app_description,
        version=settings.app_version,
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(ClaimsServiceError)
    async def claims_error_handler(request: Request, exc: ClaimsServiceError):
        """Domain errors carry their own status and error code."""
        details = dict(exc.details)
        if isinstance(exc, ClaimsAttachmentError) and exc.result is not None:
            details["result"] = exc.result.to_dict()

        log = logger.error if exc.status_code >= 500 else logger.info
        log("Request failed", path=request.url.path, error_code=exc.error_code, error=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                success=False,
                message=exc.message,
                error_code=exc.error_code,
                details=details or None
            ).model_dump()
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled errors."""
        logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                success=False,
                message="Internal server error",
                error_code="INTERNAL_ERROR",
                details={"error": str(exc)}
            ).model_dump()
        )

    # Include routers with versioning
    for module in (health, employees, claims, accounts):
        app.include_router(module.router, prefix=f"{settings.api_prefix}/v1")

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "message": "Claims API is running",
            "version": settings.app_version,
            "environment": settings.environment,
            "docs": f"{settings.api_prefix}/docs"
        }

    return app
