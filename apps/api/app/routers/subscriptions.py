"""Subscription router - usage overview and plan changes."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.deps import get_current_session, get_db, require_csrf_header, require_roles
from app.core.plans import get_tier_level
from app.db.enums import Role
from app.schemas.subscription import (
    PlanChangeRequest,
    PlanChangeResponse,
    UsageStatsResponse,
)
from app.services import subscription_service, usage_service

router = APIRouter(tags=["Subscription"])


@router.get("/usage", response_model=UsageStatsResponse)
def get_usage(
    db: Session = Depends(get_db),
    session=Depends(get_current_session),
):
    """Current-period usage against plan limits."""
    return usage_service.get_usage_stats(db, session.org_id)


@router.put("/plan", response_model=PlanChangeResponse)
def change_plan(
    data: PlanChangeRequest,
    db: Session = Depends(get_db),
    session=Depends(require_roles([Role.ADMIN])),
    _csrf=Depends(require_csrf_header),
):
    """Switch the organization's plan (admin only)."""
    try:
        subscription = subscription_service.change_plan(db, session.org_id, data.plan.value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PlanChangeResponse(
        plan=data.plan.value,
        tier_level=get_tier_level(data.plan.value),
        status=subscription.status,
    )
