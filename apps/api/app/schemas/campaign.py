"""Campaign schemas for request/response validation."""
from datetime import datetime
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, TypeAdapter, field_validator

from app.db.enums import ContactStatus


# =============================================================================
# Segments
# =============================================================================

class AllSegment(BaseModel):
    """Every eligible contact in the organization."""
    kind: Literal["all"] = "all"


class TagSegment(BaseModel):
    """Contacts linked to at least one of the listed tags."""
    kind: Literal["tag"] = "tag"
    tag_ids: list[UUID] = Field(default_factory=list)


class StatusSegment(BaseModel):
    """Contacts whose status equals the given value; no status means no filter."""
    kind: Literal["status"] = "status"
    status: ContactStatus | None = None

    @field_validator("status", mode="before")
    @classmethod
    def blank_status_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


Segment = Annotated[
    Union[AllSegment, TagSegment, StatusSegment],
    Field(discriminator="kind"),
]

segment_adapter: TypeAdapter[Segment] = TypeAdapter(Segment)


def load_segment(data: dict | None) -> AllSegment | TagSegment | StatusSegment:
    """Parse a stored segment blob; missing data means all contacts."""
    if not data:
        return AllSegment()
    return segment_adapter.validate_python(data)


# =============================================================================
# Campaign CRUD
# =============================================================================

class CampaignCreate(BaseModel):
    """Create a new campaign (always starts as a draft)."""
    name: str = Field(..., min_length=1, max_length=255)
    subject: str = Field(..., min_length=1, max_length=500)
    from_name: str | None = Field(None, max_length=255)
    from_email: EmailStr | None = None
    reply_to: EmailStr | None = None
    template_id: UUID | None = None
    content_html: str | None = None
    content_text: str | None = None
    segment: Segment = Field(default_factory=AllSegment)
    excluded_tag_ids: list[UUID] = Field(default_factory=list)
    timezone: str = "UTC"

    @field_validator("name", "subject")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class CampaignUpdate(BaseModel):
    """Update a campaign (only draft or scheduled campaigns can be updated)."""
    name: str | None = Field(None, min_length=1, max_length=255)
    subject: str | None = Field(None, min_length=1, max_length=500)
    from_name: str | None = Field(None, max_length=255)
    from_email: EmailStr | None = None
    reply_to: EmailStr | None = None
    template_id: UUID | None = None
    content_html: str | None = None
    content_text: str | None = None
    segment: Segment | None = None
    excluded_tag_ids: list[UUID] | None = None
    timezone: str | None = None


class CampaignResponse(BaseModel):
    """Campaign response."""
    id: UUID
    name: str
    subject: str
    from_name: str | None
    from_email: str | None
    reply_to: str | None
    template_id: UUID | None
    content_html: str | None
    content_text: str | None
    segment_type: str
    segment: dict
    excluded_tag_ids: list
    scheduled_at: datetime | None
    timezone: str
    status: str
    total_recipients: int = 0
    total_sent: int = 0
    total_failed: int = 0
    started_at: datetime | None
    completed_at: datetime | None
    created_by_user_id: UUID | None
    sent_by_user_id: UUID | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CampaignListItem(BaseModel):
    """Campaign list item (lightweight)."""
    id: UUID
    name: str
    subject: str
    segment_type: str
    status: str
    scheduled_at: datetime | None
    total_recipients: int = 0
    total_sent: int = 0
    created_at: datetime

    model_config = {"from_attributes": True}


class CampaignListResponse(BaseModel):
    """Paginated campaign list."""
    items: list[CampaignListItem]
    total: int
    page: int
    limit: int


# =============================================================================
# Scheduling / Sending
# =============================================================================

class CampaignScheduleRequest(BaseModel):
    """Schedule a campaign for a future time."""
    scheduled_at: datetime
    timezone: str | None = None


class CampaignSendResponse(BaseModel):
    """Response after a send or resume has been started."""
    message: str
    campaign: CampaignResponse
    recipient_count: int
    job_id: UUID | None = None


class CampaignPreviewResponse(BaseModel):
    """Recipient count for the current segmentation."""
    recipient_count: int
    segment: dict
    excluded_tag_ids: list


class SendTestRequest(BaseModel):
    """Send a single test email."""
    email: EmailStr


class SendTestResponse(BaseModel):
    """Result of a test send."""
    message: str
    message_id: str | None = None


# =============================================================================
# Recipients
# =============================================================================

class CampaignRecipientResponse(BaseModel):
    """Campaign recipient response."""
    id: UUID
    contact_id: UUID
    email: str
    first_name: str | None
    last_name: str | None
    status: str
    sent_at: datetime | None
    external_message_id: str | None
    error_message: str | None

    model_config = {"from_attributes": True}


class CampaignRecipientListResponse(BaseModel):
    """Paginated recipient list."""
    items: list[CampaignRecipientResponse]
    total: int
    page: int
    limit: int
