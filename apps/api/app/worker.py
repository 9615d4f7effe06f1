"""
Background worker for processing scheduled jobs.

Usage:
    python -m app.worker

The worker polls for pending jobs and processes them. Campaign sends are
normally dispatched in-process by the API; the worker runs any job the API
did not claim (inline dispatch disabled, or the API restarted before the
job started).
"""

import asyncio
import logging

from app.core.config import settings
from app.core.structured_logging import build_log_context
from app.db.session import SessionLocal
from app.jobs.dispatcher import run_job
from app.services import job_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


async def process_pending_jobs(batch_size: int | None = None) -> int:
    """Run one batch of due jobs. Returns how many this worker claimed."""
    with SessionLocal() as db:
        job_ids = [
            job.id
            for job in job_service.get_pending_jobs(
                db, limit=batch_size or settings.WORKER_BATCH_SIZE
            )
        ]

    if job_ids:
        logger.info("Found %s pending jobs", len(job_ids))

    processed = 0
    for job_id in job_ids:
        if await run_job(job_id):
            processed += 1
    return processed


async def worker_loop() -> None:
    """Main worker loop - polls for and processes pending jobs."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s)",
        settings.WORKER_POLL_INTERVAL,
        settings.WORKER_BATCH_SIZE,
    )

    if not settings.RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not set - emails will be logged but not sent")

    while True:
        try:
            await process_pending_jobs()
        except Exception as e:
            logger.error("Error in worker loop: %s", type(e).__name__)
        await asyncio.sleep(settings.WORKER_POLL_INTERVAL)


def main() -> None:
    """Entry point for the worker."""
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
    except Exception:
        logger.exception(
            "Worker crashed",
            extra=build_log_context(route="worker"),
        )
        raise


if __name__ == "__main__":
    main()
