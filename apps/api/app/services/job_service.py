"""Job rows: creation, claiming, progress and outcome."""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.db.models import Job
from app.db.enums import JobStatus, JobType


def schedule_job(
    db: Session,
    org_id: UUID,
    job_type: JobType,
    payload: dict,
    run_at: datetime | None = None,
    idempotency_key: str | None = None,
    max_attempts: int = 3,
    commit: bool = True,
) -> Job:
    """
    Create a pending job, due now unless run_at is given.

    A repeated idempotency_key raises IntegrityError. With commit=False the
    row is only flushed and becomes part of the caller's transaction.
    """
    job = Job(
        organization_id=org_id,
        job_type=job_type.value,
        payload=payload,
        run_at=run_at or datetime.now(timezone.utc),
        status=JobStatus.PENDING.value,
        max_attempts=max_attempts,
        idempotency_key=idempotency_key,
        progress={},
    )
    db.add(job)
    if commit:
        db.commit()
        db.refresh(job)
    else:
        db.flush()
    return job


def get_pending_jobs(db: Session, limit: int = 10) -> list[Job]:
    """Due pending jobs, oldest run_at first."""
    now = datetime.now(timezone.utc)
    return (
        db.query(Job)
        .filter(
            Job.status == JobStatus.PENDING.value,
            Job.run_at <= now,
        )
        .order_by(Job.run_at)
        .limit(limit)
        .all()
    )


def get_job(db: Session, job_id: UUID, org_id: UUID | None = None) -> Job | None:
    """Look up a job; pass org_id to keep the lookup inside one tenant."""
    query = db.query(Job).filter(Job.id == job_id)
    if org_id:
        query = query.filter(Job.organization_id == org_id)
    return query.first()


def list_jobs(
    db: Session,
    org_id: UUID,
    status: JobStatus | None = None,
    job_type: JobType | None = None,
    limit: int = 50,
) -> list[Job]:
    """Newest jobs of an organization."""
    query = db.query(Job).filter(Job.organization_id == org_id)
    if status:
        query = query.filter(Job.status == status.value)
    if job_type:
        query = query.filter(Job.job_type == job_type.value)
    return query.order_by(Job.created_at.desc()).limit(limit).all()


def claim_job(db: Session, job_id: UUID) -> Job | None:
    """
    Move a pending job to running (increment attempts).

    The conditional update makes the claim exclusive: when the in-process
    dispatcher and the worker race for the same job only one gets it.
    Returns None if the job was not pending.
    """
    result = db.execute(
        update(Job)
        .where(Job.id == job_id, Job.status == JobStatus.PENDING.value)
        .values(
            status=JobStatus.RUNNING.value,
            attempts=Job.attempts + 1,
            started_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        return None
    return get_job(db, job_id)


def update_job_progress(db: Session, job_id: UUID, progress: dict) -> None:
    """Overwrite the job's progress blob."""
    db.execute(
        update(Job)
        .where(Job.id == job_id)
        .values(progress=progress)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def mark_job_completed(db: Session, job: Job) -> Job:
    """Record success and clear any earlier error."""
    job.status = JobStatus.COMPLETED.value
    job.completed_at = datetime.now(timezone.utc)
    job.last_error = None
    db.commit()
    db.refresh(job)
    return job


def mark_job_failed(db: Session, job: Job, error: str) -> Job:
    """Record an error; the job goes back to pending while it has attempts left."""
    job.last_error = error
    if job.attempts < job.max_attempts:
        job.status = JobStatus.PENDING.value
    else:
        job.status = JobStatus.FAILED.value
        job.completed_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(job)
    return job
