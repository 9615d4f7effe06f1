"""Subscription lookup with an in-process cache.

Reads an organization's plan and its limits. Lookups go through
``SubscriptionCache``, a TTL cache keyed by organization id with an injectable
clock; plan changes invalidate the entry explicitly instead of waiting for
expiry.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.plans import NOT_INCLUDED, PLAN_REGISTRY
from app.db.enums import ACTIVE_SUBSCRIPTION_STATUSES, SubscriptionStatus
from app.db.models import Subscription, SubscriptionPlan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubscriptionSnapshot:
    """Detached view of an organization's subscription and plan."""
    organization_id: UUID
    plan_name: str
    tier_level: int
    status: str
    limits: dict[str, int] = field(default_factory=dict)
    features: dict[str, bool] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_SUBSCRIPTION_STATUSES


class SubscriptionCache:
    """TTL cache of subscription snapshots keyed by organization id."""

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[UUID, tuple[float, SubscriptionSnapshot]] = {}
        self._lock = threading.Lock()

    def get(self, org_id: UUID) -> SubscriptionSnapshot | None:
        """Return the cached snapshot, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(org_id)
            if entry is None:
                return None
            expires_at, snapshot = entry
            if self._clock() >= expires_at:
                del self._entries[org_id]
                return None
            return snapshot

    def set(self, org_id: UUID, snapshot: SubscriptionSnapshot) -> None:
        with self._lock:
            self._entries[org_id] = (self._clock() + self._ttl, snapshot)

    def invalidate(self, org_id: UUID) -> None:
        with self._lock:
            self._entries.pop(org_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


subscription_cache = SubscriptionCache(settings.SUBSCRIPTION_CACHE_TTL_SECONDS)


# =============================================================================
# Plans
# =============================================================================

def ensure_plans(db: Session) -> list[SubscriptionPlan]:
    """Create any registry plans missing from the database."""
    existing = {plan.name: plan for plan in db.query(SubscriptionPlan).all()}
    created = []
    for name, plan_def in PLAN_REGISTRY.items():
        if name in existing:
            continue
        plan = SubscriptionPlan(
            name=name,
            display_name=plan_def.display_name,
            tier_level=plan_def.tier_level,
            limits=dict(plan_def.limits),
            features=dict(plan_def.features),
        )
        db.add(plan)
        created.append(plan)
    if created:
        db.commit()
        logger.info("Seeded %s subscription plans", len(created))
    return created


def get_plan_by_name(db: Session, plan_name: str) -> SubscriptionPlan | None:
    return db.query(SubscriptionPlan).filter(SubscriptionPlan.name == plan_name).first()


# =============================================================================
# Lookups
# =============================================================================

def _load_snapshot(db: Session, org_id: UUID) -> SubscriptionSnapshot | None:
    row = (
        db.query(Subscription, SubscriptionPlan)
        .join(SubscriptionPlan, SubscriptionPlan.id == Subscription.plan_id)
        .filter(Subscription.organization_id == org_id)
        .first()
    )
    if not row:
        return None
    subscription, plan = row
    return SubscriptionSnapshot(
        organization_id=org_id,
        plan_name=plan.name,
        tier_level=plan.tier_level,
        status=subscription.status,
        limits=dict(plan.limits or {}),
        features=dict(plan.features or {}),
    )


def get_org_subscription(
    db: Session,
    org_id: UUID,
    cache: SubscriptionCache | None = None,
) -> SubscriptionSnapshot | None:
    """Get the organization's subscription, served from cache when fresh."""
    cache = cache or subscription_cache
    snapshot = cache.get(org_id)
    if snapshot is not None:
        return snapshot
    snapshot = _load_snapshot(db, org_id)
    if snapshot is not None:
        cache.set(org_id, snapshot)
    return snapshot


def get_usage_limit(
    db: Session,
    org_id: UUID,
    resource_type: str,
    cache: SubscriptionCache | None = None,
) -> int:
    """
    Limit for a resource in the current period.

    -1 is unlimited. No subscription, an inactive subscription or a resource
    missing from the plan all resolve to 0 (not included).
    """
    snapshot = get_org_subscription(db, org_id, cache)
    if snapshot is None or not snapshot.is_active:
        return NOT_INCLUDED
    return int(snapshot.limits.get(resource_type, NOT_INCLUDED))


def get_org_features(db: Session, org_id: UUID) -> dict[str, bool]:
    snapshot = get_org_subscription(db, org_id)
    if snapshot is None or not snapshot.is_active:
        return {}
    return dict(snapshot.features)


def has_feature(db: Session, org_id: UUID, feature: str) -> bool:
    return bool(get_org_features(db, org_id).get(feature, False))


def get_tier_level(db: Session, org_id: UUID) -> int:
    snapshot = get_org_subscription(db, org_id)
    if snapshot is None or not snapshot.is_active:
        return 0
    return snapshot.tier_level


# =============================================================================
# Changes
# =============================================================================

def change_plan(
    db: Session,
    org_id: UUID,
    plan_name: str,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    cache: SubscriptionCache | None = None,
) -> Subscription:
    """
    Move an organization to another plan and invalidate its cache entry.

    Creates the subscription when the organization has none.

    Raises:
        ValueError: Unknown plan
    """
    plan = get_plan_by_name(db, plan_name)
    if not plan:
        raise ValueError(f"Unknown plan '{plan_name}'")

    now = datetime.now(timezone.utc)
    subscription = (
        db.query(Subscription).filter(Subscription.organization_id == org_id).first()
    )
    if subscription is None:
        subscription = Subscription(organization_id=org_id, plan_id=plan.id)
        db.add(subscription)
    subscription.plan_id = plan.id
    subscription.status = status.value
    subscription.current_period_start = now
    subscription.current_period_end = now + timedelta(days=30)
    db.commit()
    db.refresh(subscription)

    (cache or subscription_cache).invalidate(org_id)
    logger.info("Organization %s moved to plan %s", org_id, plan_name)
    return subscription
