"""
Playlist Export API - Main application entry point.
"""
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from structlog.contextvars import bind_contextvars, clear_contextvars

from playlist_export.api.router import api_router
from playlist_export.core.config import settings
from playlist_export.core.dependencies import ServiceContainer
from playlist_export.core.exceptions import PlaylistExportException
from playlist_export.core.logging import get_logger, setup_logging

# Setup logging
setup_logging()
logger = get_logger(__name__)


# Initialize Sentry if configured
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT or settings.ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
    )


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services: Pre-built service container; one is created from settings
            on startup when omitted

    Returns:
        Configured application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting Playlist Export API",
            version=settings.APP_VERSION,
            environment=settings.ENVIRONMENT,
        )
        app.state.services = services or ServiceContainer(settings)

        yield

        logger.info("Shutting down Playlist Export API")
        await app.state.services.shutdown()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        """Add unique request ID to each request."""
        request_id = request.headers.get("X-Request-ID", str(time.time_ns()))

        clear_contextvars()
        bind_contextvars(request_id=request_id)

        start_time = time.time()
        logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Request completed",
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(PlaylistExportException)
    async def playlist_export_exception_handler(request: Request, exc: PlaylistExportException):
        """Render application errors with their own status code."""
        logger.warning(
            "Request failed",
            error_type=type(exc).__name__,
            error_message=exc.message,
            status_code=exc.status_code,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "details": exc.details},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions."""
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )

        # Don't expose internal errors in production
        if settings.is_production:
            return JSONResponse(
                status_code=500,
                content={"detail": "An internal error occurred"},
            )

        return JSONResponse(
            status_code=500,
            content={"detail": str(exc)},
        )

    @app.get("/health")
    async def health_check() -> Dict[str, Any]:
        """
        Health check endpoint.

        Returns:
            Health status and application info
        """
        return {
            "status": "healthy",
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
        }

    @app.get("/")
    async def root() -> Dict[str, str]:
        """Landing point after the OAuth callback redirect."""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
        }

    app.include_router(api_router)
    return app


app = create_app()


def run() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "playlist_export.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.is_development,
    )


if __name__ == "__main__":
    run()
