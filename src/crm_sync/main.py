"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS,
lifespan events that build the sync engine's client handles, and the v1
API router.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.crm_sync.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.crm_sync.api.v1.router import router as v1_router
from src.crm_sync.config import get_settings
from src.crm_sync.core.monitoring import MetricsMiddleware, get_metrics_response
from src.crm_sync.sync.factory import build_sync_services


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build sync clients on startup, close them on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()

    services = build_sync_services(settings)
    app.state.orchestrator = services.orchestrator
    app.state.mirror = services.mirror
    app.state.sync_lock = asyncio.Lock()
    log.info(
        "app.sync_engine_initialized",
        environment=settings.ENVIRONMENT.value,
        catalog_url=settings.CATALOG_BASE_URL,
        max_attempts=settings.RETRY_MAX_ATTEMPTS,
    )

    try:
        yield
    finally:
        await services.aclose()
        log.info("app.sync_engine_closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="CRM Sync API",
        version="0.1.0",
        description="Catalog-to-HubSpot migration and HubSpot account mirroring",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
