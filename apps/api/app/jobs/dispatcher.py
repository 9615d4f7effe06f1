"""In-process job dispatch.

Send and resume requests create a Job row and hand its id to the dispatcher.
The send loop uses a synchronous Session, so each job runs on a worker thread
with its own event loop and the API's loop keeps serving requests. An asyncio
task wrapping that thread is kept per job id so callers can await
completion; everything else observes progress through the Job row
(GET /jobs/{id}). Jobs the dispatcher never claims (inline dispatch
disabled, or the process exited first) are picked up by the worker.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.structured_logging import build_log_context
from app.db.session import SessionLocal
from app.jobs.registry import resolve_job_handler
from app.jobs.utils import error_summary
from app.services import job_service

logger = logging.getLogger(__name__)


async def execute_job(db: Session, job) -> None:
    """Run a claimed job and record the outcome on its row."""
    log_context = build_log_context(org_id=job.organization_id, job_id=job.id)
    logger.info(
        "Processing job %s (type=%s, attempt=%s)",
        job.id,
        job.job_type,
        job.attempts,
        extra=log_context,
    )
    try:
        handler = resolve_job_handler(job.job_type)
        await handler(db, job)
    except Exception as e:
        db.rollback()
        job_service.mark_job_failed(db, job, error_summary(e))
        logger.error("Job %s failed: %s", job.id, type(e).__name__, extra=log_context)
        return
    job_service.mark_job_completed(db, job)
    logger.info("Job %s completed successfully", job.id, extra=log_context)


async def run_job(
    job_id: UUID,
    session_factory: Callable[[], Session] = SessionLocal,
) -> bool:
    """Claim and run one job. Returns False if someone else already claimed it."""
    with session_factory() as db:
        job = job_service.claim_job(db, job_id)
        if job is None:
            logger.info("Job %s already claimed, skipping", job_id)
            return False
        await execute_job(db, job)
        return True


def run_job_blocking(
    job_id: UUID,
    session_factory: Callable[[], Session] = SessionLocal,
) -> bool:
    """Run one job to completion on the calling thread."""
    return asyncio.run(run_job(job_id, session_factory))


class JobDispatcher:
    """Runs jobs as background tasks and keeps a handle per job id."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory
        self._tasks: dict[UUID, asyncio.Task] = {}

    def launch(self, job_id: UUID) -> asyncio.Task:
        """Start the job on a worker thread and return immediately."""
        task = asyncio.create_task(
            asyncio.to_thread(run_job_blocking, job_id, self._session_factory),
            name=f"job-{job_id}",
        )
        self._tasks[job_id] = task
        task.add_done_callback(lambda _t, key=job_id: self._tasks.pop(key, None))
        return task

    def is_running(self, job_id: UUID) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    async def wait(self, job_id: UUID, timeout: float | None = None) -> None:
        """Wait for a launched job to finish (no-op if it is not tracked)."""
        task = self._tasks.get(job_id)
        if task is None:
            return
        await asyncio.wait_for(asyncio.shield(task), timeout)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every in-flight job (used on shutdown)."""
        tasks = list(self._tasks.values())
        if not tasks:
            return
        logger.info("Waiting for %s in-flight jobs", len(tasks))
        await asyncio.wait(tasks, timeout=timeout)


dispatcher = JobDispatcher()
