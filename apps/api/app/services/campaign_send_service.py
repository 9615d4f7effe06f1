"""Campaign send loop.

Delivers one email per pending recipient, in resolution order, one at a
time. Before each recipient the loop re-reads the campaign status and stops
as soon as it is no longer ``sending``; this is how pause works. A pause
therefore takes effect within one transport call (bounded by
RESEND_TIMEOUT_SECONDS x RESEND_MAX_ATTEMPTS plus retry backoff) and one
CAMPAIGN_SEND_DELAY_SECONDS sleep.

Individual failures are recorded on the recipient row and never abort the
batch. Failed recipients are not retried.

Each row is claimed (pending -> sending) before delivery, so two loops that
end up on the same campaign never deliver to the same recipient. Final
totals are counted from the rows, not from what this run saw.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.structured_logging import build_log_context
from app.db.enums import CampaignRecipientStatus, CampaignStatus
from app.db.models import Campaign, CampaignRecipient
from app.jobs.utils import error_summary, mask_email
from app.services import campaign_service, email_transport, job_service, template_renderer
from app.services.email_transport import EmailTransportError, MailTransport, OutboundEmail

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    campaign_id: UUID
    total_sent: int
    total_failed: int
    attempted: int
    stopped_early: bool
    final_status: str


def _campaign_status(db: Session, campaign_id: UUID) -> str | None:
    return db.query(Campaign.status).filter(Campaign.id == campaign_id).scalar()


def _pending_recipients(db: Session, campaign_id: UUID) -> list[tuple]:
    rows = (
        db.query(
            CampaignRecipient.id,
            CampaignRecipient.email,
            CampaignRecipient.first_name,
            CampaignRecipient.last_name,
        )
        .filter(
            CampaignRecipient.campaign_id == campaign_id,
            CampaignRecipient.status == CampaignRecipientStatus.PENDING.value,
        )
        .order_by(CampaignRecipient.position, CampaignRecipient.created_at)
        .all()
    )
    return [tuple(row) for row in rows]


def _claim_recipient(db: Session, recipient_id: UUID) -> bool:
    """pending -> sending; False if another loop got there first."""
    result = db.execute(
        update(CampaignRecipient)
        .where(
            CampaignRecipient.id == recipient_id,
            CampaignRecipient.status == CampaignRecipientStatus.PENDING.value,
        )
        .values(
            status=CampaignRecipientStatus.SENDING.value,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def _mark_recipient(db: Session, recipient_id: UUID, **values) -> None:
    now = datetime.now(timezone.utc)
    db.execute(
        update(CampaignRecipient)
        .where(CampaignRecipient.id == recipient_id)
        .values(updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def _progress(sent: int, failed: int, processed: int, total: int) -> dict:
    return {"sent": sent, "failed": failed, "processed": processed, "total": total}


def _checkpoint(
    db: Session,
    campaign_id: UUID,
    job_id: UUID | None,
    sent: int,
    failed: int,
    processed: int,
    total: int,
) -> None:
    db.execute(
        update(Campaign)
        .where(Campaign.id == campaign_id)
        .values(
            total_sent=sent,
            total_failed=failed,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if job_id:
        job_service.update_job_progress(db, job_id, _progress(sent, failed, processed, total))


def _finalize(db: Session, campaign_id: UUID) -> tuple[str, int, int]:
    """
    Write final counters; move to sent only if the campaign is still sending.

    A campaign paused (or otherwise moved) by someone else keeps that status.
    Returns (status, total_sent, total_failed).
    """
    counts = campaign_service.count_recipients_by_status(db, campaign_id)
    sent = counts[CampaignRecipientStatus.SENT.value]
    failed = counts[CampaignRecipientStatus.FAILED.value]
    now = datetime.now(timezone.utc)
    db.execute(
        update(Campaign)
        .where(Campaign.id == campaign_id)
        .values(total_sent=sent, total_failed=failed, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.execute(
        update(Campaign)
        .where(
            Campaign.id == campaign_id,
            Campaign.status == CampaignStatus.SENDING.value,
        )
        .values(status=CampaignStatus.SENT.value, completed_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    status = _campaign_status(db, campaign_id) or CampaignStatus.SENT.value
    return status, sent, failed


async def run_campaign_send(
    db: Session,
    campaign_id: UUID,
    *,
    job_id: UUID | None = None,
    transport: MailTransport | None = None,
    delay_seconds: float | None = None,
    checkpoint_interval: int | None = None,
) -> SendResult:
    """Deliver a sending campaign to its pending recipients."""
    campaign = db.query(Campaign).filter(Campaign.id == campaign_id).first()
    if not campaign:
        raise campaign_service.CampaignNotFoundError(f"Campaign {campaign_id} not found")

    transport = transport or email_transport.get_transport()
    delay = settings.CAMPAIGN_SEND_DELAY_SECONDS if delay_seconds is None else delay_seconds
    interval = max(1, checkpoint_interval or settings.CAMPAIGN_CHECKPOINT_INTERVAL)
    log_context = build_log_context(
        org_id=campaign.organization_id, campaign_id=campaign_id, job_id=job_id
    )

    subject, html, text = campaign_service.resolve_content(db, campaign)
    from_name, from_email, reply_to = campaign.from_name, campaign.from_email, campaign.reply_to

    # Resumed runs continue the campaign-wide totals
    counts = campaign_service.count_recipients_by_status(db, campaign_id)
    sent = counts[CampaignRecipientStatus.SENT.value]
    failed = counts[CampaignRecipientStatus.FAILED.value]
    pending = _pending_recipients(db, campaign_id)
    total = len(pending)

    logger.info("Sending campaign to %s pending recipients", total, extra=log_context)

    sent_this_run = 0
    attempted = 0
    stopped_early = False

    for index, (recipient_id, email, first_name, last_name) in enumerate(pending):
        try:
            status = _campaign_status(db, campaign_id)
            if status != CampaignStatus.SENDING.value:
                logger.info("Campaign stopped, status=%s", status, extra=log_context)
                stopped_early = True
                break

            variables = template_renderer.recipient_variables(first_name, last_name, email)
            r_subject, r_html, r_text = template_renderer.render_content(
                subject, html, text, variables
            )
            if not _claim_recipient(db, recipient_id):
                logger.info(
                    "Recipient %s already claimed, skipping", mask_email(email), extra=log_context
                )
                continue

            attempted += 1
            try:
                message_id = await transport.send(
                    OutboundEmail(
                        to=email,
                        subject=r_subject,
                        html=r_html,
                        text=r_text,
                        from_name=from_name,
                        from_email=from_email,
                        reply_to=reply_to,
                        idempotency_key=f"campaign-recipient/{recipient_id}",
                    )
                )
            except Exception as exc:
                if isinstance(exc, EmailTransportError):
                    logger.warning(
                        "Send failed for %s: %s", mask_email(email), exc, extra=log_context
                    )
                else:
                    logger.exception(
                        "Unexpected send error for %s", mask_email(email), extra=log_context
                    )
                _mark_recipient(
                    db,
                    recipient_id,
                    status=CampaignRecipientStatus.FAILED.value,
                    error_message=error_summary(exc),
                )
                failed += 1
            else:
                _mark_recipient(
                    db,
                    recipient_id,
                    status=CampaignRecipientStatus.SENT.value,
                    sent_at=datetime.now(timezone.utc),
                    external_message_id=message_id or None,
                    error_message=None,
                )
                sent += 1
                sent_this_run += 1
                if sent_this_run % interval == 0:
                    _checkpoint(db, campaign_id, job_id, sent, failed, index + 1, total)
        except Exception:
            db.rollback()
            logger.exception("Error processing campaign recipient", extra=log_context)
            continue

        if delay > 0 and index < total - 1:
            await asyncio.sleep(delay)

    final_status, sent, failed = _finalize(db, campaign_id)
    if job_id:
        job_service.update_job_progress(
            db, job_id, _progress(sent, failed, attempted, total)
        )

    logger.info(
        "Campaign send finished: sent=%s failed=%s status=%s",
        sent,
        failed,
        final_status,
        extra=log_context,
    )
    return SendResult(
        campaign_id=campaign_id,
        total_sent=sent,
        total_failed=failed,
        attempted=attempted,
        stopped_early=stopped_early,
        final_status=final_status,
    )
