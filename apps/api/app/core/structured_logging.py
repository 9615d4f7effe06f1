"""Structured logging helpers (PII-safe)."""

from typing import Any
from uuid import UUID


def build_log_context(
    *,
    org_id: UUID | str | None = None,
    user_id: UUID | str | None = None,
    campaign_id: UUID | str | None = None,
    job_id: UUID | str | None = None,
    route: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict with only the identifiers that are set."""
    context: dict[str, Any] = {}
    if org_id:
        context["org_id"] = str(org_id)
    if user_id:
        context["user_id"] = str(user_id)
    if campaign_id:
        context["campaign_id"] = str(campaign_id)
    if job_id:
        context["job_id"] = str(job_id)
    if route:
        context["route"] = route
    return context
