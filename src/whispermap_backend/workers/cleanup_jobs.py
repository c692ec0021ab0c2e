"""
Expiry sweep for whispers.

Runs on the cron schedule (hourly by default) and on demand through the admin
API. Reads never depend on this job: stores re-check expiry on every query.
"""
import logging
import time
from typing import Optional

from whispermap_backend.services import WhisperServices, get_services

logger = logging.getLogger(__name__)


async def purge_expired_whispers(services: Optional[WhisperServices] = None) -> dict:
    """
    Remove expired whispers from the store and release their audio payloads.

    Args:
        services: Service container (defaults to the app-wide one)

    Returns:
        Dict with counts of purged whispers and deleted audio files
    """
    services = services or get_services()
    started = time.monotonic()

    expired = await services.store.purge_expired()

    deleted_audio = 0
    for whisper in expired:
        urls = [whisper.audio_url, *(reply.audio_url for reply in whisper.replies if reply.audio_url)]
        for url in urls:
            try:
                if await services.audio_storage.delete(url):
                    deleted_audio += 1
            except OSError as e:
                # One undeletable file must not abort the sweep
                logger.warning(f"Could not delete audio {url} for expired whisper {whisper.id}: {e}")

    remaining = await services.store.count()
    elapsed = time.monotonic() - started
    logger.info(
        f"Expiry sweep purged {len(expired)} whispers and {deleted_audio} audio files "
        f"in {elapsed:.2f}s ({remaining} remaining)"
    )

    return {
        "purged_whispers": len(expired),
        "deleted_audio_files": deleted_audio,
        "remaining_whispers": remaining,
        "elapsed_seconds": round(elapsed, 3),
    }
