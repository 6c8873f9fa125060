"""FastAPI Application Factory for the escalation service.

This module provides the FastAPI application factory and configuration
for the urgent notification escalation REST API.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Response  # type: ignore[import-not-found]
from fastapi.middleware.cors import CORSMiddleware  # type: ignore[import-not-found]
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest  # type: ignore[import-not-found]

from escalation_config import EngineConfig, load_config_from_yaml
from escalation_core import EscalationEngine

logger = logging.getLogger(__name__)


class AppState:
    """Application state container."""

    def __init__(self) -> None:
        """Initialize application state."""
        self.engine: Optional[EscalationEngine] = None
        self.config: Optional[EngineConfig] = None
        self.scheduler_task: Optional["asyncio.Task[None]"] = None


app_state = AppState()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan.

    Starts the scheduler loop when enabled and drains outstanding webhook
    deliveries on shutdown.

    Args:
        app: FastAPI application instance

    Yields:
        None during application lifetime
    """
    engine = app_state.engine
    if engine is not None and engine.config.scheduler.run_loop:
        interval = engine.config.scheduler.tick_interval_seconds
        app_state.scheduler_task = asyncio.create_task(engine.scheduler.run_forever(interval))

    yield

    if engine is not None:
        engine.scheduler.stop()
        if app_state.scheduler_task is not None:
            await app_state.scheduler_task
        await engine.aclose()
        logger.info("Escalation engine shut down")

    app_state.scheduler_task = None


def create_app(
    config: Optional[EngineConfig] = None,
    config_path: Optional[str] = None,
    cors_origins: Optional[list[str]] = None,
    engine: Optional[EscalationEngine] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Optional pre-loaded engine configuration
        config_path: Optional path to configuration file
        cors_origins: Optional list of allowed CORS origins
        engine: Optional pre-built engine (takes precedence over config)

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Urgent Notification Escalation Service",
        description="REST API for urgent keyword detection and multi-channel escalation",
        version="0.1.0",
        lifespan=lifespan,
    )

    if cors_origins is None:
        cors_origins = ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if engine is not None:
        app_state.engine = engine
        app_state.config = engine.config
    else:
        if config is not None:
            app_state.config = config
        elif config_path is not None:
            app_state.config = load_config_from_yaml(config_path)

        if app_state.config is not None:
            app_state.engine = EscalationEngine(app_state.config)

    _register_routes(app)

    return app


def _register_routes(app: FastAPI) -> None:
    """Register API routes.

    Args:
        app: FastAPI application instance
    """
    from .config_routes import config_router
    from .routes import router

    app.include_router(router)
    app.include_router(config_router)

    @app.get("/health")  # type: ignore[misc]
    async def health_check() -> dict[str, Any]:
        """Health check endpoint.

        Returns:
            Health status information
        """
        engine = app_state.engine
        return {
            "status": "healthy",
            "version": "0.1.0",
            "engine_configured": engine is not None,
            "scheduler_running": app_state.scheduler_task is not None
            and not app_state.scheduler_task.done(),
            "channels": sorted(
                c.value for c in engine.config.communication.configured_channels()
            )
            if engine is not None
            else [],
        }

    @app.get("/")  # type: ignore[misc]
    async def root() -> dict[str, Any]:
        """Root endpoint.

        Returns:
            Welcome message and API information
        """
        return {
            "message": "Welcome to the Urgent Notification Escalation Service API",
            "version": "0.1.0",
            "docs_url": "/docs",
        }

    @app.get("/metrics")  # type: ignore[misc]
    async def metrics() -> Response:
        """Prometheus scrape endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def get_app_state() -> AppState:
    """Get the application state.

    Returns:
        Current application state
    """
    return app_state
