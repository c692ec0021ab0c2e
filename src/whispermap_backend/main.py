"""
WhisperMap backend entrypoint.

Usage:
    python -m whispermap_backend.main
    uvicorn whispermap_backend.main:app --host 0.0.0.0 --port 9000
"""

import logging
import os

import uvicorn

from whispermap_backend.app_factory import create_app
from whispermap_backend.utils.logging_utils import configure_logging

configure_logging()
logger = logging.getLogger(__name__)

app = create_app()


def main() -> None:
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "9000"))
    logger.info(f"🚀 Starting WhisperMap backend on {host}:{port}")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
