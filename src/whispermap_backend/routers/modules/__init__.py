"""
Router modules for the WhisperMap API.

- whisper_routes: discovery, upload, replies, audio
- admin_routes: maintenance (expiry sweep, cron status)
- health_routes: health check endpoints
"""

from .admin_routes import router as admin_router
from .health_routes import router as health_router
from .whisper_routes import router as whisper_router

__all__ = [
    "admin_router",
    "health_router",
    "whisper_router",
]
