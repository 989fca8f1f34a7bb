"""FastAPI application entry point and lifecycle management."""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dca_service.logging_config import configure_logging, get_logger
from dca_service.middleware import ContextMiddleware, RequestLoggingMiddleware

logger = get_logger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Builds the scheduler and its controller, starts the tick loop when enabled
    and stops it gracefully on shutdown.
    """
    from dca_service.config import get_config
    from dca_service.services.lifecycle import SchedulerController
    from dca_service.services.scheduler import DuePurchaseScheduler

    logger.info("service_starting", version=VERSION)

    settings = get_config().scheduler_settings
    controller = SchedulerController(
        DuePurchaseScheduler(),
        tick_interval_seconds=settings.tick_interval_seconds,
        drain_timeout_seconds=settings.drain_timeout_seconds,
    )
    app.state.scheduler_controller = controller

    try:
        if settings.enabled:
            await controller.start()
        else:
            logger.info("scheduler_disabled", message="Ticks run only when started explicitly")

        logger.info("service_started", status="ready", scheduler=controller.state.value)
        yield
    finally:
        logger.info("service_shutting_down")
        await controller.stop()
        logger.info("service_stopped")


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    log_level = os.getenv("LOG_LEVEL", "INFO")
    json_format = os.getenv("LOG_FORMAT", "json").lower() == "json"
    configure_logging(log_level=log_level, json_format=json_format)

    app = FastAPI(
        title="DCA Scheduler Service",
        description="Recurring dollar-cost-averaging purchases driven by a periodic scheduler",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Allow all origins for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    include_request_details = os.getenv("LOG_REQUEST_DETAILS", "true").lower() == "true"
    app.add_middleware(RequestLoggingMiddleware, include_request_details=include_request_details)
    app.add_middleware(ContextMiddleware)

    from dca_service.api.scheduler import router as scheduler_router
    from dca_service.api.schedules import router as schedules_router
    from dca_service.api.transactions import router as transactions_router

    app.include_router(schedules_router)
    app.include_router(transactions_router)
    app.include_router(scheduler_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Liveness endpoint."""
        logger.debug("root_endpoint_called")
        return {
            "service": "dca-scheduler-service",
            "status": "running",
            "version": VERSION,
        }

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Detailed health check."""
        from dca_service.repositories.purchase_ledger import get_purchase_ledger
        from dca_service.repositories.subscription_store import get_subscription_store

        controller = getattr(app.state, "scheduler_controller", None)
        return {
            "status": "healthy",
            "scheduler": controller.state.value if controller else "not_initialized",
            "subscriptions": get_subscription_store().get_statistics(),
            "purchases": get_purchase_ledger().get_statistics(),
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    logger.info("app_created", endpoints=len(app.routes))
    return app


app = create_app()
