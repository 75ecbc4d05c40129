"""Gradewise API - Main Application"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gradewise_api.config import settings
from gradewise_api.logging_config import configure_logging
from gradewise_api.middleware.metrics import setup_metrics
from gradewise_api.middleware.sentry import setup_sentry
from gradewise_api.routers import events, health, webhooks
from gradewise_api.services.container import Services, build_services

logger = structlog.get_logger()


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions."""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_error",
                "message": "An internal error occurred",
            }
        },
    )


def create_app(services: Services | None = None, instrument: bool = True) -> FastAPI:
    """Build the application. Tests pass their own service container."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting Gradewise API", environment=settings.ENVIRONMENT)
        yield
        await app.state.services.close()
        logger.info("Shutting down Gradewise API")

    app = FastAPI(
        title="Gradewise API",
        description="Automated AI code review for student submissions",
        version=settings.VERSION,
        docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
        redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
        lifespan=lifespan,
    )

    app.state.services = services or build_services(settings)
    app.state.session_factory = app.state.services.session_factory

    setup_sentry(app)
    if instrument:
        setup_metrics(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["health"])
    app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
    app.include_router(events.router, prefix="/api/v1/courses", tags=["live-updates"])

    app.add_exception_handler(Exception, global_exception_handler)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "service": "Gradewise API",
            "version": settings.VERSION,
            "status": "running",
        }

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    configure_logging()
    uvicorn.run(
        "gradewise_api.main:create_app",
        factory=True,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_config=None,
    )
