"""Subscription plan registry.

Limits are per billing period. A limit of -1 is unlimited and 0 means the
resource is not included in the plan. Unknown plans and unknown resources
resolve to 0.
"""

from dataclasses import dataclass, field

from app.db.enums import PlanName, ResourceType

UNLIMITED = -1
NOT_INCLUDED = 0
APPROACHING_LIMIT_THRESHOLD = 80  # percent


@dataclass(frozen=True)
class PlanDef:
    """Plan definition seeded into subscription_plans."""
    name: PlanName
    display_name: str
    tier_level: int
    limits: dict[str, int] = field(default_factory=dict)
    features: dict[str, bool] = field(default_factory=dict)


# =============================================================================
# Plan Registry
# =============================================================================

PLAN_REGISTRY: dict[str, PlanDef] = {
    PlanName.STARTER.value: PlanDef(
        name=PlanName.STARTER,
        display_name="Starter",
        tier_level=1,
        limits={
            ResourceType.EMAILS_PER_MONTH.value: 1000,
            ResourceType.SMS_PER_MONTH.value: 500,
            ResourceType.API_CALLS_PER_DAY.value: NOT_INCLUDED,
        },
        features={
            "email_campaigns": True,
            "sms_campaigns": True,
            "api_access": False,
            "white_label": False,
        },
    ),
    PlanName.UNLIMITED.value: PlanDef(
        name=PlanName.UNLIMITED,
        display_name="Agency Unlimited",
        tier_level=2,
        limits={
            ResourceType.EMAILS_PER_MONTH.value: 10000,
            ResourceType.SMS_PER_MONTH.value: 5000,
            ResourceType.API_CALLS_PER_DAY.value: 10000,
        },
        features={
            "email_campaigns": True,
            "sms_campaigns": True,
            "api_access": True,
            "white_label": True,
        },
    ),
    PlanName.PRO.value: PlanDef(
        name=PlanName.PRO,
        display_name="SaaS Pro",
        tier_level=3,
        limits={
            ResourceType.EMAILS_PER_MONTH.value: 50000,
            ResourceType.SMS_PER_MONTH.value: 25000,
            ResourceType.API_CALLS_PER_DAY.value: 100000,
        },
        features={
            "email_campaigns": True,
            "sms_campaigns": True,
            "api_access": True,
            "white_label": True,
        },
    ),
}


def get_plan_def(plan_name: str | None) -> PlanDef | None:
    """Look up a plan definition by name."""
    if not plan_name:
        return None
    return PLAN_REGISTRY.get(plan_name)


def get_tier_level(plan_name: str | None) -> int:
    """Tier level for a plan (0 when unknown)."""
    plan = get_plan_def(plan_name)
    return plan.tier_level if plan else 0


def compare_plans(plan_a: str | None, plan_b: str | None) -> int:
    """Return -1, 0 or 1 comparing the tiers of two plans."""
    tier_a = get_tier_level(plan_a)
    tier_b = get_tier_level(plan_b)
    if tier_a < tier_b:
        return -1
    if tier_a > tier_b:
        return 1
    return 0
