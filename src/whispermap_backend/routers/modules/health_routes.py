"""
Health check routes.
"""

from fastapi import APIRouter, Depends

from whispermap_backend.controllers import system_controller
from whispermap_backend.services import WhisperServices, get_services

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(services: WhisperServices = Depends(get_services)):
    """Liveness plus the active store backend and its record count."""
    return await system_controller.get_health(services)
