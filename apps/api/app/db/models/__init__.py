"""SQLAlchemy ORM models."""

from app.db.models.auth import Membership, Organization, User
from app.db.models.campaigns import Campaign, CampaignRecipient
from app.db.models.contacts import Contact, ContactTag, Tag
from app.db.models.email import EmailTemplate
from app.db.models.jobs import Job
from app.db.models.subscriptions import Subscription, SubscriptionPlan, UsageCounter

__all__ = [
    "Campaign",
    "CampaignRecipient",
    "Contact",
    "ContactTag",
    "EmailTemplate",
    "Job",
    "Membership",
    "Organization",
    "Subscription",
    "SubscriptionPlan",
    "Tag",
    "UsageCounter",
    "User",
]
