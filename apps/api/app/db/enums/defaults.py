"""Default values shared by models and migrations."""

from app.db.enums.campaigns import CampaignRecipientStatus, CampaignStatus, SegmentType
from app.db.enums.contacts import ContactStatus
from app.db.enums.jobs import JobStatus
from app.db.enums.subscriptions import SubscriptionStatus

DEFAULT_CAMPAIGN_STATUS = CampaignStatus.DRAFT
DEFAULT_RECIPIENT_STATUS = CampaignRecipientStatus.PENDING
DEFAULT_SEGMENT_TYPE = SegmentType.ALL
DEFAULT_CONTACT_STATUS = ContactStatus.ACTIVE
DEFAULT_JOB_STATUS = JobStatus.PENDING
DEFAULT_SUBSCRIPTION_STATUS = SubscriptionStatus.TRIALING
