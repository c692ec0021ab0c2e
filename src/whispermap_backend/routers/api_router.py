"""
Main API router for the WhisperMap backend.

Aggregates the functional router modules under the ``/api`` prefix.
"""

import logging

from fastapi import APIRouter

from .modules import admin_router, health_router, whisper_router

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])

router.include_router(whisper_router)
router.include_router(admin_router)
router.include_router(health_router)  # Also under /api for frontend compatibility

logger.info("API router initialized with all sub-modules")
