# ==============================================================================
# MAIN APPLICATION - FastAPI Entry Point
# ==============================================================================
# Application factory with lifespan events, middleware, and routing
# ==============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional, Union

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backoffice.api.router import api_router
from backoffice.audit.logger import AuditLogger
from backoffice.config.loader import load_app_config, load_backoffices
from backoffice.core.exceptions import AppException
from backoffice.core.settings import settings
from backoffice.datasources.registry import DataSourceRegistry
from backoffice.schemas.base import HealthResponse
from backoffice.utils.logger import setup_logging

logger = logging.getLogger(__name__)


def http_options() -> Dict[str, Any]:
    """Options handed to every HTTP-based adapter."""
    return {
        "timeout": settings.HTTP_TIMEOUT,
        "max_retries": settings.HTTP_MAX_RETRIES,
        "retry_base_delay": settings.HTTP_RETRY_BASE_DELAY,
        "retry_max_delay": settings.HTTP_RETRY_MAX_DELAY,
        "check_on_connect": settings.HTTP_CHECK_ON_CONNECT,
    }


# ==============================================================================
# STATE MANAGEMENT
# ==============================================================================

async def initialize_state(
    app: FastAPI,
    config_path: Optional[Union[str, Path]] = None,
    backoffices_dir: Optional[Union[str, Path]] = None,
    audit_log_dir: Optional[Union[str, Path]] = None,
    **registry_options: Any,
) -> None:
    """
    Load configuration and connect data sources into ``app.state``.

    Configuration errors propagate: the service does not start on a broken
    schema. Unreachable data sources are logged and retried on first use.
    """
    app_config = load_app_config(config_path or settings.CONFIG_PATH)
    backoffices = load_backoffices(backoffices_dir or settings.BACKOFFICES_DIR)

    registry = DataSourceRegistry(**{**http_options(), **registry_options})
    await registry.initialize(backoffices)

    audit_logger = AuditLogger(audit_log_dir or settings.AUDIT_LOG_DIR, enabled=settings.AUDIT_ENABLED)
    retention = [
        s.audit.retention_days
        for b in backoffices
        for s in b.sections
        if s.audit is not None and s.audit.retention_days
    ]
    if audit_logger.enabled and retention:
        # Files are shared by all sections; keep the longest retention
        await audit_logger.cleanup_old_logs(max(retention))

    app.state.app_config = app_config
    app.state.backoffices = {b.id: b for b in backoffices}
    app.state.registry = registry
    app.state.audit_logger = audit_logger

    logger.info(f"Loaded {len(backoffices)} backoffice(s)")


async def shutdown_state(app: FastAPI) -> None:
    registry: Optional[DataSourceRegistry] = getattr(app.state, "registry", None)
    if registry is not None:
        await registry.shutdown()


# ==============================================================================
# LIFESPAN MANAGEMENT
# ==============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: Load schemas, connect the adapter registry
    - Shutdown: Close pooled adapters
    """
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT.value}")

    await initialize_state(app)

    yield

    logger.info("Shutting down application...")
    await shutdown_state(app)
    logger.info("Application shutdown complete")


# ==============================================================================
# APPLICATION FACTORY
# ==============================================================================

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.API_TITLE,
        description=settings.API_DESCRIPTION,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(api_router)
    register_health_endpoints(app)

    return app


# ==============================================================================
# EXCEPTION HANDLERS
# ==============================================================================

def register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(AppException)
    async def app_exception_handler(
        request: Request,
        exc: AppException,
    ) -> JSONResponse:
        """Handle application exceptions."""
        if exc.status_code >= 500:
            logger.error(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception(f"Unexpected error: {exc}")

        if settings.DEBUG:
            detail = str(exc)
        else:
            detail = "An unexpected error occurred"

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": detail,
                }
            },
        )


# ==============================================================================
# HEALTH ENDPOINTS
# ==============================================================================

def register_health_endpoints(app: FastAPI) -> None:
    """Register health check endpoints."""

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["Health"],
        summary="Health check",
        description="Check application and data source health.",
    )
    async def health_check(request: Request) -> HealthResponse:
        """Application health check."""
        registry: Optional[DataSourceRegistry] = getattr(request.app.state, "registry", None)
        report = await registry.health() if registry is not None else {}

        return HealthResponse(
            status="healthy" if all(report.values()) else "degraded",
            version=settings.APP_VERSION,
            data_sources=report,
        )

    @app.get(
        "/",
        tags=["Health"],
        summary="Root endpoint",
        description="Welcome message and API information.",
    )
    async def root() -> dict:
        """Root endpoint with API info."""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs" if settings.DEBUG else "Disabled in production",
            "health": "/health",
            "api": settings.API_PREFIX,
        }


app = create_app()


# ==============================================================================
# RUNNER
# ==============================================================================

def run() -> None:
    """Serve the app on the bind address from the application config file."""
    import uvicorn

    app_config = load_app_config(settings.CONFIG_PATH)
    uvicorn.run(
        "backoffice.main:app",
        host=app_config.server.host,
        port=app_config.server.port,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
