"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from printbridge import __version__
from printbridge.api.router import router
from printbridge.config import get_config
from printbridge.services import BridgeServices, build_services

logger = logging.getLogger(__name__)


def create_app(services: BridgeServices | None = None) -> FastAPI:
    """Build the application.

    Args:
        services: Pre-built services (default: built from the environment at startup).

    Returns:
        FastAPI: The application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup and shutdown events.

        Args:
            app: FastAPI application instance.
        """
        # Startup
        app.state.services = services or build_services()
        monitor = app.state.services.monitor
        if app.state.services.config.spool_monitor_enabled:
            monitor.start()
        yield
        # Shutdown
        monitor.stop(timeout=5)

    config = services.config if services else get_config()
    app = FastAPI(
        title=config.app_name,
        description="Local print bridge with fit-to-page printing and spool recovery",
        version=__version__,
        lifespan=lifespan,
        debug=config.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api", tags=["print"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint.

        Returns:
            dict: Health status.
        """
        return {"status": "healthy", "version": __version__}

    return app


app = create_app()
