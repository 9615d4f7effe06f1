"""
Usage accounting for metered resources.

Counters are kept per (organization, resource type, calendar month in UTC).
The default flow is optimistic: ``check_within_limits`` then
``commit_usage`` as two separate calls, so concurrent callers can overshoot
a limit. ``try_consume`` is the atomic alternative: a single conditional
increment that never exceeds the limit.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.core.plans import APPROACHING_LIMIT_THRESHOLD, NOT_INCLUDED, UNLIMITED
from app.db.enums import ResourceType
from app.db.models import UsageCounter
from app.services import subscription_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageCheck:
    """Result of an admission check."""
    within_limits: bool
    current: int
    limit: int
    requested: int
    remaining: int | None  # None when unlimited

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def not_allowed(self) -> bool:
        return self.limit == NOT_INCLUDED


def current_period(now: datetime | None = None) -> tuple[datetime, datetime]:
    """Start (inclusive) and end (exclusive) of the calendar month containing now."""
    now = now or datetime.now(timezone.utc)
    start = now.astimezone(timezone.utc).replace(
        day=1, hour=0, minute=0, second=0, microsecond=0
    )
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def evaluate_limit(current: int, limit: int, requested: int) -> UsageCheck:
    """Apply limit semantics: -1 always passes, 0 always fails, else current + requested <= limit."""
    if limit == UNLIMITED:
        return UsageCheck(True, current, limit, requested, None)
    remaining = max(limit - current, 0)
    if limit == NOT_INCLUDED:
        return UsageCheck(False, current, limit, requested, 0)
    return UsageCheck(current + requested <= limit, current, limit, requested, remaining)


def _insert_for(db: Session):
    if db.get_bind().dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


def get_current_usage(
    db: Session,
    org_id: UUID,
    resource_type: ResourceType | str,
    now: datetime | None = None,
) -> int:
    """Consumption for the current period (0 when no counter exists)."""
    period_start, _ = current_period(now)
    counter = (
        db.query(UsageCounter)
        .filter(
            UsageCounter.organization_id == org_id,
            UsageCounter.resource_type == ResourceType(resource_type).value,
            UsageCounter.period_start == period_start,
        )
        .first()
    )
    return counter.count if counter else 0


def check_within_limits(
    db: Session,
    org_id: UUID,
    resource_type: ResourceType | str,
    requested: int = 1,
) -> UsageCheck:
    """Admission check: would `requested` more units fit in the current period?"""
    resource = ResourceType(resource_type).value
    limit = subscription_service.get_usage_limit(db, org_id, resource)
    current = get_current_usage(db, org_id, resource)
    return evaluate_limit(current, limit, requested)


def commit_usage(
    db: Session,
    org_id: UUID,
    resource_type: ResourceType | str,
    amount: int = 1,
) -> None:
    """
    Increment the current-period counter unconditionally.

    Callers must run check_within_limits first.
    """
    if amount <= 0:
        return
    period_start, period_end = current_period()
    insert = _insert_for(db)
    stmt = insert(UsageCounter).values(
        organization_id=org_id,
        resource_type=ResourceType(resource_type).value,
        period_start=period_start,
        period_end=period_end,
        count=amount,
        updated_at=datetime.now(timezone.utc),
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["organization_id", "resource_type", "period_start"],
        set_={
            "count": UsageCounter.count + amount,
            "updated_at": datetime.now(timezone.utc),
        },
    )
    db.execute(stmt)
    db.commit()
    logger.info(
        "Usage committed org=%s resource=%s amount=%s",
        org_id,
        ResourceType(resource_type).value,
        amount,
    )


def try_consume(
    db: Session,
    org_id: UUID,
    resource_type: ResourceType | str,
    amount: int,
) -> UsageCheck:
    """
    Check and increment in one conditional UPDATE.

    The counter only moves when the new total stays within the limit, so
    concurrent callers cannot overshoot it.
    """
    resource = ResourceType(resource_type).value
    limit = subscription_service.get_usage_limit(db, org_id, resource)
    if limit == NOT_INCLUDED:
        return evaluate_limit(get_current_usage(db, org_id, resource), limit, amount)

    period_start, period_end = current_period()
    insert = _insert_for(db)
    db.execute(
        insert(UsageCounter)
        .values(
            organization_id=org_id,
            resource_type=resource,
            period_start=period_start,
            period_end=period_end,
            count=0,
            updated_at=datetime.now(timezone.utc),
        )
        .on_conflict_do_nothing(
            index_elements=["organization_id", "resource_type", "period_start"]
        )
    )

    stmt = (
        update(UsageCounter)
        .where(
            UsageCounter.organization_id == org_id,
            UsageCounter.resource_type == resource,
            UsageCounter.period_start == period_start,
        )
        .values(
            count=UsageCounter.count + amount,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    if limit != UNLIMITED:
        stmt = stmt.where(UsageCounter.count + amount <= limit)
    result = db.execute(stmt)
    db.commit()

    current = get_current_usage(db, org_id, resource)
    if result.rowcount == 1:
        # current already includes the amount just consumed
        check = evaluate_limit(current - amount, limit, amount)
        logger.info(
            "Usage consumed org=%s resource=%s amount=%s", org_id, resource, amount
        )
        return check
    return evaluate_limit(current, limit, amount)


def decrement_usage(
    db: Session,
    org_id: UUID,
    resource_type: ResourceType | str,
    amount: int = 1,
) -> None:
    """Decrease the current-period counter, never below zero."""
    period_start, _ = current_period()
    counter = (
        db.query(UsageCounter)
        .filter(
            UsageCounter.organization_id == org_id,
            UsageCounter.resource_type == ResourceType(resource_type).value,
            UsageCounter.period_start == period_start,
        )
        .first()
    )
    if not counter:
        return
    counter.count = max(counter.count - amount, 0)
    db.commit()


def _percentage(current: int, limit: int) -> float:
    if limit == UNLIMITED:
        return 0.0
    if limit == NOT_INCLUDED:
        return 100.0 if current > 0 else 0.0
    return round(current / limit * 100, 1)


def get_usage_stats(db: Session, org_id: UUID) -> dict:
    """Current-period usage for every metered resource."""
    snapshot = subscription_service.get_org_subscription(db, org_id)
    resources = []
    for resource in ResourceType:
        limit = subscription_service.get_usage_limit(db, org_id, resource.value)
        current = get_current_usage(db, org_id, resource)
        check = evaluate_limit(current, limit, 0)
        resources.append(
            {
                "resource_type": resource.value,
                "current": current,
                "limit": limit,
                "remaining": check.remaining,
                "percentage": _percentage(current, limit),
                "unlimited": check.unlimited,
            }
        )
    return {
        "plan": snapshot.plan_name if snapshot else None,
        "tier_level": snapshot.tier_level if snapshot and snapshot.is_active else 0,
        "resources": resources,
    }


def is_approaching_limit(
    db: Session,
    org_id: UUID,
    resource_type: ResourceType | str,
) -> dict:
    """Whether usage has reached the warning threshold of its limit."""
    resource = ResourceType(resource_type).value
    limit = subscription_service.get_usage_limit(db, org_id, resource)
    current = get_current_usage(db, org_id, resource)
    if limit in (UNLIMITED, NOT_INCLUDED):
        return {"approaching": False, "current": current, "limit": limit, "percentage": 0.0}
    percentage = _percentage(current, limit)
    return {
        "approaching": percentage >= APPROACHING_LIMIT_THRESHOLD,
        "current": current,
        "limit": limit,
        "percentage": percentage,
    }


def get_usage_history(
    db: Session,
    org_id: UUID,
    resource_type: ResourceType | str,
    months: int = 6,
) -> list[UsageCounter]:
    """Counters for the most recent periods, newest first."""
    return (
        db.query(UsageCounter)
        .filter(
            UsageCounter.organization_id == org_id,
            UsageCounter.resource_type == ResourceType(resource_type).value,
        )
        .order_by(UsageCounter.period_start.desc())
        .limit(months)
        .all()
    )
