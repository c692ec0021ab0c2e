"""
Admin routes: maintenance operations.

Access control is enforced by the fronting auth layer.
"""

import logging

from fastapi import APIRouter, Depends

from whispermap_backend.controllers import system_controller
from whispermap_backend.services import WhisperServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/cleanup")
async def run_cleanup(services: WhisperServices = Depends(get_services)):
    """Purge expired whispers now instead of waiting for the hourly sweep."""
    logger.info("Manual expiry sweep requested")
    return await system_controller.run_cleanup(services)


@router.get("/cron")
async def get_cron_jobs():
    """Status of scheduled background jobs."""
    return system_controller.get_cron_status()
