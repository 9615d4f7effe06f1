"""Enum definitions for application constants."""

from app.db.enums.auth import Role
from app.db.enums.campaigns import CampaignRecipientStatus, CampaignStatus, SegmentType
from app.db.enums.contacts import ContactStatus
from app.db.enums.defaults import (
    DEFAULT_CAMPAIGN_STATUS,
    DEFAULT_CONTACT_STATUS,
    DEFAULT_JOB_STATUS,
    DEFAULT_RECIPIENT_STATUS,
    DEFAULT_SEGMENT_TYPE,
    DEFAULT_SUBSCRIPTION_STATUS,
)
from app.db.enums.jobs import JobStatus, JobType
from app.db.enums.subscriptions import (
    ACTIVE_SUBSCRIPTION_STATUSES,
    PlanName,
    ResourceType,
    SubscriptionStatus,
)

__all__ = [
    "ACTIVE_SUBSCRIPTION_STATUSES",
    "CampaignRecipientStatus",
    "CampaignStatus",
    "ContactStatus",
    "DEFAULT_CAMPAIGN_STATUS",
    "DEFAULT_CONTACT_STATUS",
    "DEFAULT_JOB_STATUS",
    "DEFAULT_RECIPIENT_STATUS",
    "DEFAULT_SEGMENT_TYPE",
    "DEFAULT_SUBSCRIPTION_STATUS",
    "JobStatus",
    "JobType",
    "PlanName",
    "ResourceType",
    "Role",
    "SegmentType",
    "SubscriptionStatus",
]
