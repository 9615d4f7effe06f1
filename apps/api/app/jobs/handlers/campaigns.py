"""Campaign job handlers."""

from __future__ import annotations

import logging
from uuid import UUID

logger = logging.getLogger(__name__)


async def process_campaign_send(db, job) -> None:
    """
    Process a CAMPAIGN_SEND job - run the send loop for one campaign.

    Payload:
        - campaign_id: UUID of the campaign
        - user_id: UUID of user who triggered the send (initial sends)
        - resume: True when restarted from a pause
    """
    from app.db.enums import CampaignStatus
    from app.db.models import Campaign
    from app.services import campaign_send_service

    payload = job.payload or {}
    campaign_id = payload.get("campaign_id")
    if not campaign_id:
        raise Exception("Missing campaign_id in campaign send job")

    campaign = db.query(Campaign).filter(Campaign.id == UUID(campaign_id)).first()
    if not campaign:
        raise Exception(f"Campaign {campaign_id} not found")

    if campaign.status != CampaignStatus.SENDING.value:
        logger.info(
            "Campaign %s is %s, skipping execution", campaign_id, campaign.status
        )
        return

    logger.info("Starting campaign send: campaign=%s job=%s", campaign_id, job.id)
    try:
        result = await campaign_send_service.run_campaign_send(
            db, UUID(campaign_id), job_id=job.id
        )
    except Exception as e:
        logger.error(
            "Campaign send failed: campaign=%s error=%s",
            campaign_id,
            type(e).__name__,
        )
        raise

    logger.info(
        "Campaign send completed: campaign=%s, sent=%s, failed=%s, status=%s",
        campaign_id,
        result.total_sent,
        result.total_failed,
        result.final_status,
    )
