"""Campaign-related enums."""

from enum import Enum


class CampaignStatus(str, Enum):
    """Status of a campaign."""

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENDING = "sending"
    PAUSED = "paused"
    SENT = "sent"
    CANCELLED = "cancelled"
    FAILED = "failed"


class CampaignRecipientStatus(str, Enum):
    """Delivery status of a campaign recipient."""

    PENDING = "pending"
    SENDING = "sending"  # Claimed by a send loop, delivery in flight
    SENT = "sent"
    FAILED = "failed"


class SegmentType(str, Enum):
    """Audience selection kinds for a campaign."""

    ALL = "all"
    TAG = "tag"
    STATUS = "status"
