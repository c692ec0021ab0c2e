"""
Middleware and exception handlers for the WhisperMap API.

CORS allows any origin so the map frontend can be hosted anywhere. Domain
errors become ``{"error": ...}`` bodies with the status code carried by the
exception class; anything unexpected becomes a logged 500.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from whispermap_backend.exceptions import WhisperMapError

logger = logging.getLogger(__name__)


async def whisper_error_handler(request: Request, exc: WhisperMapError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc}")
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request parameters are client errors (400)."""
    details = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', []))}: {error.get('msg')}"
        for error in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {details}"})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def setup_middleware(app: FastAPI) -> None:
    """Install CORS and exception handlers."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "user-id", "x-premium-user"],
    )
    app.add_exception_handler(WhisperMapError, whisper_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
