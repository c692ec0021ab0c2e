"""
System controller: health reporting and maintenance triggers.
"""

import logging
import time

from whispermap_backend.cron_scheduler import get_scheduler
from whispermap_backend.services import WhisperServices
from whispermap_backend.workers.cleanup_jobs import purge_expired_whispers

logger = logging.getLogger(__name__)

PURGE_JOB_ID = "purge_expired_whispers"


async def get_health(services: WhisperServices) -> dict:
    return {
        "status": "healthy",
        "store_backend": services.store.backend_name,
        "whisper_count": await services.store.count(),
        "timestamp": int(time.time()),
    }


async def run_cleanup(services: WhisperServices) -> dict:
    """Run the expiry sweep now; goes through the scheduler when the job is registered."""
    scheduler = get_scheduler()
    if PURGE_JOB_ID in scheduler.jobs:
        return await scheduler.run_job_now(PURGE_JOB_ID)
    logger.info("Expiry sweep not scheduled; running it directly")
    return await purge_expired_whispers(services)


def get_cron_status() -> list:
    return get_scheduler().get_all_jobs_status()
