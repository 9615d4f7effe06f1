"""Pydantic schemas for API request/response models."""

from app.schemas.auth import TokenPayload, UserSession
from app.schemas.campaign import (
    AllSegment,
    CampaignCreate,
    CampaignListItem,
    CampaignListResponse,
    CampaignPreviewResponse,
    CampaignRecipientListResponse,
    CampaignRecipientResponse,
    CampaignResponse,
    CampaignScheduleRequest,
    CampaignSendResponse,
    CampaignUpdate,
    SendTestRequest,
    SendTestResponse,
    StatusSegment,
    TagSegment,
)
from app.schemas.job import JobRead
from app.schemas.subscription import (
    PlanChangeRequest,
    PlanChangeResponse,
    ResourceUsage,
    UsageStatsResponse,
)

__all__ = [
    "AllSegment",
    "CampaignCreate",
    "CampaignListItem",
    "CampaignListResponse",
    "CampaignPreviewResponse",
    "CampaignRecipientListResponse",
    "CampaignRecipientResponse",
    "CampaignResponse",
    "CampaignScheduleRequest",
    "CampaignSendResponse",
    "CampaignUpdate",
    "JobRead",
    "PlanChangeRequest",
    "PlanChangeResponse",
    "ResourceUsage",
    "SendTestRequest",
    "SendTestResponse",
    "StatusSegment",
    "TagSegment",
    "TokenPayload",
    "UsageStatsResponse",
    "UserSession",
]
