"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from app.db.enums import JobType
from app.jobs.handlers import campaigns

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.CAMPAIGN_SEND.value: campaigns.process_campaign_send,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    try:
        return JOB_HANDLERS[job_type]
    except KeyError as exc:
        raise ValueError(f"Unknown job type: {job_type}") from exc
