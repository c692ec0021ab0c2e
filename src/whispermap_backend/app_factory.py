"""
Application factory for the WhisperMap backend.

Creates and configures the FastAPI application with all routers, middleware,
service initialization and the background expiry sweep.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from whispermap_backend.config import get_cleanup_settings, get_storage_settings
from whispermap_backend.controllers.system_controller import PURGE_JOB_ID
from whispermap_backend.cron_scheduler import get_scheduler
from whispermap_backend.middleware.app_middleware import setup_middleware
from whispermap_backend.routers.api_router import router as api_router
from whispermap_backend.routers.modules.health_routes import router as health_router
from whispermap_backend.services import (
    WhisperServices,
    init_services,
    set_services,
    shutdown_services,
)
from whispermap_backend.workers.cleanup_jobs import purge_expired_whispers

logger = logging.getLogger(__name__)
application_logger = logging.getLogger("whisper_processing")


def _register_cleanup_job() -> None:
    cleanup = get_cleanup_settings()
    scheduler = get_scheduler()
    scheduler.add_job(
        PURGE_JOB_ID,
        purge_expired_whispers,
        cleanup.schedule,
        enabled=cleanup.enabled,
        description="Remove expired whispers and their audio",
    )


def create_app(services: Optional[WhisperServices] = None, enable_scheduler: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: Pre-built services (tests inject an in-memory store); when
            omitted they are built from configuration at startup
        enable_scheduler: Run the periodic expiry sweep
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        application_logger.info("Starting WhisperMap backend...")

        if services is not None:
            set_services(services)
        else:
            try:
                await init_services()
            except Exception as e:
                application_logger.error(f"Failed to initialize whisper services: {e}")
                raise

        if enable_scheduler:
            try:
                _register_cleanup_job()
                await get_scheduler().start()
            except Exception as e:
                # Reads re-check expiry, so the service stays correct without the sweep
                application_logger.warning(f"Cron scheduler failed to start: {e}")

        application_logger.info("Application ready")
        try:
            yield
        finally:
            application_logger.info("Shutting down application...")
            if enable_scheduler:
                try:
                    await get_scheduler().stop()
                except Exception as e:
                    application_logger.error(f"Error stopping cron scheduler: {e}")
            try:
                await shutdown_services()
            except Exception as e:
                application_logger.error(f"Error shutting down whisper services: {e}")
            application_logger.info("Shutdown complete.")

    app = FastAPI(title="WhisperMap", lifespan=lifespan)

    setup_middleware(app)

    app.include_router(api_router)

    # Health check also at root level (not under /api prefix)
    app.include_router(health_router)

    # Mount static files LAST (mounts are catch-all patterns)
    uploads_dir = Path(
        services.audio_storage.uploads_dir if services is not None else get_storage_settings().uploads_dir
    )
    uploads_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=uploads_dir), name="uploads")

    logger.info("FastAPI application created with all routers and middleware configured")

    return app
