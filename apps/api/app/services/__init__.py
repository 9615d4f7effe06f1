"""Service layer modules."""

# Import service modules (not individual functions) for cleaner access
from app.services import template_renderer
from app.services import recipient_service
from app.services import subscription_service
from app.services import usage_service
from app.services import job_service
from app.services import email_transport
from app.services import campaign_service
from app.services import campaign_send_service

__all__ = [
    "campaign_send_service",
    "campaign_service",
    "email_transport",
    "job_service",
    "recipient_service",
    "subscription_service",
    "template_renderer",
    "usage_service",
]
