"""Campaigns router - CRUD and send operations for bulk email campaigns."""

import logging
from typing import NoReturn
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.deps import (
    get_current_session,
    get_db,
    require_csrf_header,
    require_roles,
)
from app.core.rate_limit import SEND_RATE_LIMIT, limiter
from app.db.enums import Role
from app.jobs.dispatcher import dispatcher
from app.schemas.campaign import (
    CampaignCreate,
    CampaignListItem,
    CampaignListResponse,
    CampaignPreviewResponse,
    CampaignRecipientListResponse,
    CampaignRecipientResponse,
    CampaignResponse,
    CampaignScheduleRequest,
    CampaignSendResponse,
    CampaignUpdate,
    SendTestRequest,
    SendTestResponse,
)
from app.services import campaign_service
from app.services.campaign_service import (
    CampaignNotFoundError,
    CampaignServiceError,
    SendStarted,
    UsageLimitExceededError,
)
from app.services.email_transport import EmailTransportError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Campaigns"])

SEND_ROLES = [Role.MANAGER, Role.ADMIN]


def _raise_http(exc: CampaignServiceError | ValueError) -> NoReturn:
    """Translate service errors into HTTP responses."""
    if isinstance(exc, UsageLimitExceededError):
        raise HTTPException(status_code=429, detail=exc.to_detail())
    if isinstance(exc, CampaignNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    # State conflicts, empty audiences and validation errors
    raise HTTPException(status_code=400, detail=str(exc))


async def _dispatch(db: Session, started: SendStarted) -> CampaignSendResponse:
    response = CampaignSendResponse(
        message=started.message,
        campaign=CampaignResponse.model_validate(started.campaign),
        recipient_count=started.recipient_count,
        job_id=started.job.id if started.job else None,
    )
    if started.job is not None and settings.CAMPAIGN_INLINE_DISPATCH:
        # End the request transaction so its connection is back in the pool
        # before the job opens its own session
        await run_in_threadpool(db.commit)
        dispatcher.launch(started.job.id)
    return response


# =============================================================================
# Campaign CRUD
# =============================================================================


@router.get("", response_model=CampaignListResponse)
def list_campaigns(
    status: str | None = Query(None, description="Filter by status"),
    search: str | None = Query(None, description="Match name or subject"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    session=Depends(get_current_session),
):
    """List campaigns for the organization."""
    campaigns, total = campaign_service.list_campaigns(
        db,
        org_id=session.org_id,
        status=status,
        search=search,
        limit=limit,
        offset=(page - 1) * limit,
    )
    return CampaignListResponse(
        items=[CampaignListItem.model_validate(c) for c in campaigns],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("", response_model=CampaignResponse, status_code=status.HTTP_201_CREATED)
def create_campaign(
    data: CampaignCreate,
    db: Session = Depends(get_db),
    session=Depends(get_current_session),
    _csrf=Depends(require_csrf_header),
):
    """Create a new campaign (draft status)."""
    try:
        return campaign_service.create_campaign(
            db, org_id=session.org_id, user_id=session.user_id, data=data
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{campaign_id}", response_model=CampaignResponse)
def get_campaign(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    session=Depends(get_current_session),
):
    """Get a campaign by ID."""
    campaign = campaign_service.get_campaign(db, session.org_id, campaign_id)
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign


@router.put("/{campaign_id}", response_model=CampaignResponse)
def update_campaign(
    campaign_id: UUID,
    data: CampaignUpdate,
    db: Session = Depends(get_db),
    session=Depends(get_current_session),
    _csrf=Depends(require_csrf_header),
):
    """Update a draft or scheduled campaign."""
    try:
        return campaign_service.update_campaign(
            db, org_id=session.org_id, campaign_id=campaign_id, data=data
        )
    except (CampaignServiceError, ValueError) as e:
        _raise_http(e)


@router.delete("/{campaign_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_campaign(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    session=Depends(get_current_session),
    _csrf=Depends(require_csrf_header),
):
    """Delete a campaign that is not currently sending."""
    try:
        campaign_service.delete_campaign(db, session.org_id, campaign_id)
    except CampaignServiceError as e:
        _raise_http(e)


@router.post(
    "/{campaign_id}/duplicate",
    response_model=CampaignResponse,
    status_code=status.HTTP_201_CREATED,
)
def duplicate_campaign(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    session=Depends(get_current_session),
    _csrf=Depends(require_csrf_header),
):
    """Copy a campaign into a new draft."""
    try:
        return campaign_service.duplicate_campaign(
            db, session.org_id, campaign_id, session.user_id
        )
    except CampaignServiceError as e:
        _raise_http(e)


# =============================================================================
# Scheduling
# =============================================================================


@router.post("/{campaign_id}/schedule", response_model=CampaignResponse)
def schedule_campaign(
    campaign_id: UUID,
    data: CampaignScheduleRequest,
    db: Session = Depends(get_db),
    session=Depends(get_current_session),
    _csrf=Depends(require_csrf_header),
):
    """Schedule a campaign for a future time."""
    try:
        return campaign_service.schedule_campaign(
            db, session.org_id, campaign_id, data.scheduled_at, data.timezone
        )
    except (CampaignServiceError, ValueError) as e:
        _raise_http(e)


@router.post("/{campaign_id}/unschedule", response_model=CampaignResponse)
def unschedule_campaign(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    session=Depends(get_current_session),
    _csrf=Depends(require_csrf_header),
):
    """Move a scheduled campaign back to draft."""
    try:
        return campaign_service.unschedule_campaign(db, session.org_id, campaign_id)
    except CampaignServiceError as e:
        _raise_http(e)


# =============================================================================
# Preview & Send
# =============================================================================


@router.post("/{campaign_id}/send", response_model=CampaignSendResponse)
@limiter.limit(SEND_RATE_LIMIT)
async def send_campaign(
    request: Request,
    campaign_id: UUID,
    db: Session = Depends(get_db),
    session=Depends(require_roles(SEND_ROLES)),
    _csrf=Depends(require_csrf_header),
):
    """
    Start sending a campaign now.

    Returns as soon as the campaign is sending and its recipients are
    persisted; delivery continues in the background. Poll the campaign or
    GET /jobs/{job_id} for progress.
    """
    try:
        started = await run_in_threadpool(
            campaign_service.start_campaign_send,
            db,
            session.org_id,
            campaign_id,
            session.user_id,
        )
    except (CampaignServiceError, ValueError) as e:
        _raise_http(e)
    return await _dispatch(db, started)


@router.post("/{campaign_id}/pause", response_model=CampaignResponse)
def pause_campaign(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    session=Depends(require_roles(SEND_ROLES)),
    _csrf=Depends(require_csrf_header),
):
    """Pause a sending campaign."""
    try:
        return campaign_service.pause_campaign(db, session.org_id, campaign_id)
    except CampaignServiceError as e:
        _raise_http(e)


@router.post("/{campaign_id}/resume", response_model=CampaignSendResponse)
@limiter.limit(SEND_RATE_LIMIT)
async def resume_campaign(
    request: Request,
    campaign_id: UUID,
    db: Session = Depends(get_db),
    session=Depends(require_roles(SEND_ROLES)),
    _csrf=Depends(require_csrf_header),
):
    """Resume a paused campaign over its remaining pending recipients."""
    try:
        started = await run_in_threadpool(
            campaign_service.resume_campaign, db, session.org_id, campaign_id
        )
    except CampaignServiceError as e:
        _raise_http(e)
    return await _dispatch(db, started)


@router.get("/{campaign_id}/preview", response_model=CampaignPreviewResponse)
def preview_campaign(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    session=Depends(get_current_session),
):
    """Count the recipients the campaign would go to right now."""
    try:
        return campaign_service.preview_campaign(db, session.org_id, campaign_id)
    except CampaignServiceError as e:
        _raise_http(e)


@router.post("/{campaign_id}/send-test", response_model=SendTestResponse)
@limiter.limit(SEND_RATE_LIMIT)
async def send_test_email(
    request: Request,
    campaign_id: UUID,
    data: SendTestRequest,
    db: Session = Depends(get_db),
    session=Depends(get_current_session),
    _csrf=Depends(require_csrf_header),
):
    """Send a single test email using sample variables."""
    try:
        message_id = await campaign_service.send_test_email(
            db, session.org_id, campaign_id, data.email
        )
    except CampaignServiceError as e:
        _raise_http(e)
    except EmailTransportError as e:
        logger.warning("Test send failed for campaign %s: %s", campaign_id, e)
        raise HTTPException(status_code=502, detail=f"Failed to send test email: {e}")
    return SendTestResponse(message=f"Test email sent to {data.email}", message_id=message_id)


# =============================================================================
# Recipients
# =============================================================================


@router.get("/{campaign_id}/recipients", response_model=CampaignRecipientListResponse)
def list_campaign_recipients(
    campaign_id: UUID,
    status: str | None = Query(None, description="Filter by recipient status"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    session=Depends(get_current_session),
):
    """Per-recipient delivery status for a campaign."""
    try:
        recipients, total = campaign_service.list_campaign_recipients(
            db,
            session.org_id,
            campaign_id,
            status=status,
            limit=limit,
            offset=(page - 1) * limit,
        )
    except CampaignServiceError as e:
        _raise_http(e)
    return CampaignRecipientListResponse(
        items=[CampaignRecipientResponse.model_validate(r) for r in recipients],
        total=total,
        page=page,
        limit=limit,
    )
