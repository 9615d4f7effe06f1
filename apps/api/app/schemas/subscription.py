"""Subscription and usage schemas."""

from pydantic import BaseModel

from app.db.enums import PlanName


class ResourceUsage(BaseModel):
    """Usage of one metered resource in the current period."""
    resource_type: str
    current: int
    limit: int
    remaining: int | None
    percentage: float
    unlimited: bool


class UsageStatsResponse(BaseModel):
    """Usage summary for the organization."""
    plan: str | None
    tier_level: int
    resources: list[ResourceUsage]


class PlanChangeRequest(BaseModel):
    """Switch the organization to another plan."""
    plan: PlanName


class PlanChangeResponse(BaseModel):
    """Plan after the change."""
    plan: str
    tier_level: int
    status: str
