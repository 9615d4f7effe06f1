"""Subscription and usage enums."""

from enum import Enum


class PlanName(str, Enum):
    """Subscription plans, lowest tier first."""

    STARTER = "starter"
    UNLIMITED = "unlimited"
    PRO = "pro"


class SubscriptionStatus(str, Enum):
    """Status of an organization's subscription."""

    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"


class ResourceType(str, Enum):
    """Metered resources counted per billing period."""

    EMAILS_PER_MONTH = "emails_per_month"
    SMS_PER_MONTH = "sms_per_month"
    API_CALLS_PER_DAY = "api_calls_per_day"


ACTIVE_SUBSCRIPTION_STATUSES = frozenset(
    {SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value}
)
