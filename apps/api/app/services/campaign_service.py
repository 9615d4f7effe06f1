"""Campaign service for bulk email management."""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from app.core import campaign_transitions
from app.core.config import settings
from app.core.structured_logging import build_log_context
from app.db.enums import CampaignRecipientStatus, CampaignStatus, JobStatus, JobType, ResourceType
from app.db.models import Campaign, CampaignRecipient, Contact, EmailTemplate, Job
from app.schemas.campaign import CampaignCreate, CampaignUpdate, load_segment
from app.services import job_service, recipient_service, template_renderer, usage_service
from app.services.email_transport import MailTransport, OutboundEmail, get_transport

logger = logging.getLogger(__name__)


class CampaignServiceError(Exception):
    """Base error for campaign operations."""


class CampaignNotFoundError(CampaignServiceError):
    pass


class CampaignStateError(CampaignServiceError):
    """Operation not allowed in the campaign's current status."""


class NoRecipientsError(CampaignServiceError):
    pass


class UsageLimitExceededError(CampaignServiceError):
    """Sending would exceed the organization's email allowance."""

    def __init__(self, current: int, limit: int, requested: int, remaining: int | None):
        self.current = current
        self.limit = limit
        self.requested = requested
        self.remaining = remaining or 0
        super().__init__(
            f"Sending {requested} emails would exceed your monthly limit"
        )

    def to_detail(self) -> dict:
        return {
            "code": "USAGE_LIMIT_EXCEEDED",
            "message": str(self),
            "current": self.current,
            "limit": self.limit,
            "requested": self.requested,
            "remaining": self.remaining,
        }


@dataclass
class SendStarted:
    """Outcome of starting (or resuming) a send."""
    campaign: Campaign
    recipient_count: int
    job: Job | None
    message: str


# =============================================================================
# Campaign CRUD
# =============================================================================

def list_campaigns(
    db: Session,
    org_id: UUID,
    status: str | None = None,
    search: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Campaign], int]:
    """List campaigns for an organization, newest first."""
    query = db.query(Campaign).filter(Campaign.organization_id == org_id)

    if status and status != "all":
        query = query.filter(Campaign.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(Campaign.name.ilike(pattern), Campaign.subject.ilike(pattern))
        )

    total = query.count()
    campaigns = (
        query.order_by(Campaign.created_at.desc()).offset(offset).limit(limit).all()
    )
    return campaigns, total


def get_campaign(db: Session, org_id: UUID, campaign_id: UUID) -> Campaign | None:
    """Get a campaign by ID."""
    return db.query(Campaign).filter(
        Campaign.id == campaign_id,
        Campaign.organization_id == org_id,
    ).first()


def _require_campaign(db: Session, org_id: UUID, campaign_id: UUID) -> Campaign:
    campaign = get_campaign(db, org_id, campaign_id)
    if not campaign:
        raise CampaignNotFoundError("Campaign not found")
    return campaign


def _move(campaign: Campaign, target: CampaignStatus) -> None:
    if not campaign_transitions.can_transition(campaign.status, target):
        raise CampaignStateError(
            f"Cannot move campaign from {campaign.status} to {target.value}"
        )
    campaign.status = target.value


def _validate_template(db: Session, org_id: UUID, template_id: UUID | None) -> None:
    if template_id is None:
        return
    template = db.query(EmailTemplate).filter(
        EmailTemplate.id == template_id,
        EmailTemplate.organization_id == org_id,
    ).first()
    if not template:
        raise ValueError("Email template not found")


def create_campaign(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    data: CampaignCreate,
) -> Campaign:
    """Create a new campaign as a draft."""
    _validate_template(db, org_id, data.template_id)

    campaign = Campaign(
        organization_id=org_id,
        name=data.name,
        subject=data.subject,
        from_name=data.from_name,
        from_email=data.from_email,
        reply_to=data.reply_to,
        template_id=data.template_id,
        content_html=data.content_html,
        content_text=data.content_text,
        segment_type=data.segment.kind,
        segment=data.segment.model_dump(mode="json"),
        excluded_tag_ids=[str(tag_id) for tag_id in data.excluded_tag_ids],
        timezone=data.timezone,
        status=CampaignStatus.DRAFT.value,
        created_by_user_id=user_id,
    )
    db.add(campaign)
    db.commit()
    db.refresh(campaign)
    return campaign


def update_campaign(
    db: Session,
    org_id: UUID,
    campaign_id: UUID,
    data: CampaignUpdate,
) -> Campaign:
    """
    Update content and audience.

    Only draft and scheduled campaigns can be edited; anything else is
    rejected without touching the row.
    """
    campaign = _require_campaign(db, org_id, campaign_id)
    if not campaign_transitions.can_edit(campaign.status):
        raise CampaignStateError("Can only edit draft or scheduled campaigns")

    updates = data.model_dump(exclude_unset=True)
    if "template_id" in updates:
        _validate_template(db, org_id, data.template_id)

    for field in (
        "name",
        "subject",
        "from_name",
        "from_email",
        "reply_to",
        "template_id",
        "content_html",
        "content_text",
        "timezone",
    ):
        if field in updates:
            setattr(campaign, field, updates[field])

    if data.segment is not None:
        campaign.segment_type = data.segment.kind
        campaign.segment = data.segment.model_dump(mode="json")
    if data.excluded_tag_ids is not None:
        campaign.excluded_tag_ids = [str(tag_id) for tag_id in data.excluded_tag_ids]

    db.commit()
    db.refresh(campaign)
    return campaign


def delete_campaign(db: Session, org_id: UUID, campaign_id: UUID) -> None:
    """Delete a campaign (never while it is sending)."""
    campaign = _require_campaign(db, org_id, campaign_id)
    if not campaign_transitions.can_delete(campaign.status):
        raise CampaignStateError("Cannot delete a campaign that is currently sending")
    db.delete(campaign)
    db.commit()


def duplicate_campaign(
    db: Session,
    org_id: UUID,
    campaign_id: UUID,
    user_id: UUID,
) -> Campaign:
    """Copy content and audience into a new draft named "<name> (Copy)"."""
    source = _require_campaign(db, org_id, campaign_id)
    copy = Campaign(
        organization_id=org_id,
        name=f"{source.name} (Copy)",
        subject=source.subject,
        from_name=source.from_name,
        from_email=source.from_email,
        reply_to=source.reply_to,
        template_id=source.template_id,
        content_html=source.content_html,
        content_text=source.content_text,
        segment_type=source.segment_type,
        segment=dict(source.segment or {}),
        excluded_tag_ids=list(source.excluded_tag_ids or []),
        timezone=source.timezone,
        status=CampaignStatus.DRAFT.value,
        created_by_user_id=user_id,
    )
    db.add(copy)
    db.commit()
    db.refresh(copy)
    return copy


# =============================================================================
# Scheduling
# =============================================================================

def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def schedule_campaign(
    db: Session,
    org_id: UUID,
    campaign_id: UUID,
    scheduled_at: datetime,
    tz: str | None = None,
) -> Campaign:
    """Schedule a draft (or reschedule a scheduled) campaign for a future time."""
    when = _as_utc(scheduled_at)
    if when <= datetime.now(timezone.utc):
        raise ValueError("Scheduled time must be in the future")

    campaign = _require_campaign(db, org_id, campaign_id)
    if not campaign_transitions.can_schedule(campaign.status):
        raise CampaignStateError("Can only schedule draft or scheduled campaigns")

    _move(campaign, CampaignStatus.SCHEDULED)
    campaign.scheduled_at = when
    if tz:
        campaign.timezone = tz
    db.commit()
    db.refresh(campaign)
    return campaign


def unschedule_campaign(db: Session, org_id: UUID, campaign_id: UUID) -> Campaign:
    """Return a scheduled campaign to draft."""
    campaign = get_campaign(db, org_id, campaign_id)
    if not campaign or not campaign_transitions.can_unschedule(campaign.status):
        raise CampaignNotFoundError("Campaign not found or not scheduled")

    _move(campaign, CampaignStatus.DRAFT)
    campaign.scheduled_at = None
    db.commit()
    db.refresh(campaign)
    return campaign


# =============================================================================
# Content
# =============================================================================

def resolve_content(db: Session, campaign: Campaign) -> tuple[str, str, str]:
    """Subject, HTML and text for a campaign; inline content wins over the template."""
    template = None
    if campaign.template_id:
        template = db.query(EmailTemplate).filter(
            EmailTemplate.id == campaign.template_id
        ).first()
    html = campaign.content_html or (template.body_html if template else None) or ""
    text = campaign.content_text or (template.body_text if template else None) or ""
    return campaign.subject or "", html, text


def preview_campaign(db: Session, org_id: UUID, campaign_id: UUID) -> dict:
    """Recipient count for the campaign's current audience. Zero is a valid answer."""
    campaign = _require_campaign(db, org_id, campaign_id)
    excluded = [UUID(str(tag_id)) for tag_id in campaign.excluded_tag_ids or []]
    count = recipient_service.count_recipients(
        db, org_id, load_segment(campaign.segment), excluded
    )
    return {
        "recipient_count": count,
        "segment": campaign.segment,
        "excluded_tag_ids": list(campaign.excluded_tag_ids or []),
    }


async def send_test_email(
    db: Session,
    org_id: UUID,
    campaign_id: UUID,
    test_email: str,
    transport: MailTransport | None = None,
) -> str:
    """
    Send one rendered copy to an arbitrary address.

    Uses sample variables, prefixes the subject with [TEST], and does not
    touch usage counters or recipient rows.
    """
    campaign = _require_campaign(db, org_id, campaign_id)
    subject, html, text = resolve_content(db, campaign)
    variables = template_renderer.sample_variables(test_email)
    subject, html, text = template_renderer.render_content(subject, html, text, variables)

    transport = transport or get_transport()
    return await transport.send(
        OutboundEmail(
            to=test_email,
            subject=f"{template_renderer.TEST_SUBJECT_PREFIX}{subject}",
            html=html,
            text=text,
            from_name=campaign.from_name,
            from_email=campaign.from_email,
            reply_to=campaign.reply_to,
        )
    )


# =============================================================================
# Sending
# =============================================================================

def insert_recipients(
    db: Session,
    org_id: UUID,
    campaign_id: UUID,
    contacts: list[Contact],
) -> int:
    """Create pending recipient rows; pairs that already exist are skipped."""
    existing = {
        contact_id
        for (contact_id,) in db.query(CampaignRecipient.contact_id).filter(
            CampaignRecipient.campaign_id == campaign_id
        )
    }
    created = 0
    for position, contact in enumerate(contacts):
        if contact.id in existing:
            continue
        existing.add(contact.id)
        db.add(
            CampaignRecipient(
                campaign_id=campaign_id,
                contact_id=contact.id,
                organization_id=org_id,
                email=contact.email.strip(),
                first_name=contact.first_name,
                last_name=contact.last_name,
                position=position,
                status=CampaignRecipientStatus.PENDING.value,
            )
        )
        created += 1
    return created


def _admit(db: Session, org_id: UUID, requested: int) -> None:
    """Usage admission for a send of `requested` emails."""
    resource = ResourceType.EMAILS_PER_MONTH
    if settings.atomic_usage:
        check = usage_service.try_consume(db, org_id, resource, requested)
    else:
        check = usage_service.check_within_limits(db, org_id, resource, requested)
    if not check.within_limits:
        raise UsageLimitExceededError(
            current=check.current,
            limit=check.limit,
            requested=requested,
            remaining=check.remaining,
        )


def start_campaign_send(
    db: Session,
    org_id: UUID,
    campaign_id: UUID,
    user_id: UUID,
) -> SendStarted:
    """
    Start sending a draft or scheduled campaign now.

    Resolves recipients, runs the usage admission check, moves the campaign
    to sending, persists one pending row per recipient and creates the job
    that runs the send loop. The caller dispatches the job; this function
    never waits for delivery.

    Raises:
        CampaignNotFoundError, CampaignStateError, NoRecipientsError,
        UsageLimitExceededError
    """
    campaign = _require_campaign(db, org_id, campaign_id)
    if not campaign_transitions.can_send(campaign.status):
        raise CampaignStateError("Campaign cannot be sent")

    excluded = [UUID(str(tag_id)) for tag_id in campaign.excluded_tag_ids or []]
    contacts = recipient_service.resolve_recipients(
        db, org_id, load_segment(campaign.segment), excluded
    )
    if not contacts:
        raise NoRecipientsError("No recipients match the campaign criteria")

    requested = len(contacts)
    _admit(db, org_id, requested)

    try:
        _move(campaign, CampaignStatus.SENDING)
        campaign.started_at = datetime.now(timezone.utc)
        campaign.completed_at = None
        campaign.sent_by_user_id = user_id
        campaign.total_recipients = requested
        campaign.total_sent = 0
        campaign.total_failed = 0
        insert_recipients(db, org_id, campaign.id, contacts)
        job = job_service.schedule_job(
            db,
            org_id,
            JobType.CAMPAIGN_SEND,
            payload={"campaign_id": str(campaign.id), "user_id": str(user_id)},
            max_attempts=1,
            commit=False,
        )
        db.commit()
    except Exception:
        db.rollback()
        if settings.atomic_usage:
            usage_service.decrement_usage(db, org_id, ResourceType.EMAILS_PER_MONTH, requested)
        raise

    if not settings.atomic_usage:
        usage_service.commit_usage(db, org_id, ResourceType.EMAILS_PER_MONTH, requested)

    db.refresh(campaign)
    db.refresh(job)
    logger.info(
        "Campaign send started for %s recipients",
        requested,
        extra=build_log_context(org_id=org_id, campaign_id=campaign.id, job_id=job.id),
    )
    return SendStarted(
        campaign=campaign,
        recipient_count=requested,
        job=job,
        message="Campaign is now sending",
    )


def pause_campaign(db: Session, org_id: UUID, campaign_id: UUID) -> Campaign:
    """
    Pause a sending campaign.

    The running loop notices on its next iteration. Committed usage and
    already-sent recipients are left as they are.
    """
    result = db.execute(
        update(Campaign)
        .where(
            Campaign.id == campaign_id,
            Campaign.organization_id == org_id,
            Campaign.status.in_(campaign_transitions.sources_for(CampaignStatus.PAUSED)),
        )
        .values(status=CampaignStatus.PAUSED.value, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        raise CampaignNotFoundError("Campaign not found or not sending")
    campaign = _require_campaign(db, org_id, campaign_id)
    db.refresh(campaign)
    logger.info(
        "Campaign paused",
        extra=build_log_context(org_id=org_id, campaign_id=campaign_id),
    )
    return campaign


def count_recipients_by_status(db: Session, campaign_id: UUID) -> dict[str, int]:
    rows = (
        db.query(CampaignRecipient.status, func.count(CampaignRecipient.id))
        .filter(CampaignRecipient.campaign_id == campaign_id)
        .group_by(CampaignRecipient.status)
        .all()
    )
    counts = {status.value: 0 for status in CampaignRecipientStatus}
    counts.update({status: count for status, count in rows})
    return counts


def active_send_job(db: Session, org_id: UUID, campaign_id: UUID) -> Job | None:
    """The pending or running send job for a campaign, if there is one."""
    jobs = (
        db.query(Job)
        .filter(
            Job.organization_id == org_id,
            Job.job_type == JobType.CAMPAIGN_SEND.value,
            Job.status.in_([JobStatus.PENDING.value, JobStatus.RUNNING.value]),
        )
        .all()
    )
    for job in jobs:
        if (job.payload or {}).get("campaign_id") == str(campaign_id):
            return job
    return None


def resume_campaign(db: Session, org_id: UUID, campaign_id: UUID) -> SendStarted:
    """
    Resume a paused campaign over its remaining pending recipients.

    Recipients are not re-resolved. With nothing pending the campaign is
    marked sent right away and no job is created.

    A loop that was paused mid-delivery keeps running until its current
    transport call returns, so resume is refused while the previous job is
    still pending or running.
    """
    campaign = get_campaign(db, org_id, campaign_id)
    if not campaign or not campaign_transitions.can_resume(campaign.status):
        raise CampaignNotFoundError("Campaign not found or not paused")

    active = active_send_job(db, org_id, campaign.id)
    if active is not None:
        raise CampaignStateError(
            "The previous send for this campaign has not stopped yet; try again shortly"
        )

    pending = count_recipients_by_status(db, campaign.id)[
        CampaignRecipientStatus.PENDING.value
    ]
    now = datetime.now(timezone.utc)

    if pending == 0:
        _move(campaign, CampaignStatus.SENT)
        campaign.completed_at = now
        db.commit()
        db.refresh(campaign)
        return SendStarted(
            campaign=campaign,
            recipient_count=0,
            job=None,
            message="Campaign already fully sent",
        )

    _move(campaign, CampaignStatus.SENDING)
    job = job_service.schedule_job(
        db,
        org_id,
        JobType.CAMPAIGN_SEND,
        payload={"campaign_id": str(campaign.id), "resume": True},
        max_attempts=1,
        commit=False,
    )
    db.commit()
    db.refresh(campaign)
    db.refresh(job)
    logger.info(
        "Campaign resumed with %s pending recipients",
        pending,
        extra=build_log_context(org_id=org_id, campaign_id=campaign.id, job_id=job.id),
    )
    return SendStarted(
        campaign=campaign,
        recipient_count=pending,
        job=job,
        message="Campaign resumed",
    )


# =============================================================================
# Recipients
# =============================================================================

def list_campaign_recipients(
    db: Session,
    org_id: UUID,
    campaign_id: UUID,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[CampaignRecipient], int]:
    """Per-recipient delivery status, most recently sent first."""
    _require_campaign(db, org_id, campaign_id)

    query = db.query(CampaignRecipient).filter(
        CampaignRecipient.campaign_id == campaign_id
    )
    if status and status != "all":
        query = query.filter(CampaignRecipient.status == status)

    total = query.count()
    recipients = (
        query.order_by(
            CampaignRecipient.sent_at.is_(None),
            CampaignRecipient.sent_at.desc(),
            CampaignRecipient.position,
        )
        .offset(offset)
        .limit(limit)
        .all()
    )
    return recipients, total
