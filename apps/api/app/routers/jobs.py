"""Jobs router - poll background jobs started by the organization."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.deps import get_current_session, get_db
from app.db.enums import JobStatus, JobType
from app.schemas.job import JobRead
from app.services import job_service

router = APIRouter(tags=["Jobs"])


@router.get("", response_model=list[JobRead])
def list_jobs(
    status: JobStatus | None = None,
    job_type: JobType | None = None,
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    session=Depends(get_current_session),
):
    """List recent jobs for the organization."""
    return job_service.list_jobs(
        db,
        org_id=session.org_id,
        status=status,
        job_type=job_type,
        limit=limit,
    )


@router.get("/{job_id}", response_model=JobRead)
def get_job(
    job_id: UUID,
    db: Session = Depends(get_db),
    session=Depends(get_current_session),
):
    """Get a job by ID (status and progress)."""
    job = job_service.get_job(db, job_id, org_id=session.org_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job
