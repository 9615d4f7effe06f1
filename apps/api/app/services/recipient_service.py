"""Recipient resolution for campaigns.

Turns a campaign's segment into the concrete, ordered list of contacts that
should receive it. The full list is materialized; there is no paging.
"""

from uuid import UUID

from sqlalchemy import exists, func, or_, select
from sqlalchemy.orm import Query, Session

from app.db.models import Contact, ContactTag
from app.schemas.campaign import AllSegment, StatusSegment, TagSegment


def _has_any_tag(tag_ids: list[UUID]):
    return exists(
        select(ContactTag.contact_id).where(
            ContactTag.contact_id == Contact.id,
            ContactTag.tag_id.in_(tag_ids),
        )
    )


def _eligible_query(
    db: Session,
    org_id: UUID,
    segment: AllSegment | TagSegment | StatusSegment,
    excluded_tag_ids: list[UUID] | None = None,
) -> Query:
    """Build the contact query for a segment (filters AND together)."""
    query = db.query(Contact).filter(
        Contact.organization_id == org_id,
        Contact.email.is_not(None),
        func.trim(Contact.email) != "",
        or_(Contact.email_unsubscribed.is_(None), Contact.email_unsubscribed.is_(False)),
        or_(Contact.email_bounced.is_(None), Contact.email_bounced.is_(False)),
    )

    if isinstance(segment, TagSegment) and segment.tag_ids:
        query = query.filter(_has_any_tag(segment.tag_ids))
    elif isinstance(segment, StatusSegment) and segment.status is not None:
        query = query.filter(Contact.status == segment.status.value)

    if excluded_tag_ids:
        query = query.filter(~_has_any_tag(excluded_tag_ids))

    return query


def resolve_recipients(
    db: Session,
    org_id: UUID,
    segment: AllSegment | TagSegment | StatusSegment,
    excluded_tag_ids: list[UUID] | None = None,
) -> list[Contact]:
    """
    Resolve the contacts eligible for a campaign, oldest first.

    Base eligibility: belongs to the org, has a non-empty email, and is
    neither unsubscribed nor bounced.
    """
    query = _eligible_query(db, org_id, segment, excluded_tag_ids)
    return query.order_by(Contact.created_at, Contact.id).all()


def count_recipients(
    db: Session,
    org_id: UUID,
    segment: AllSegment | TagSegment | StatusSegment,
    excluded_tag_ids: list[UUID] | None = None,
) -> int:
    """Count eligible contacts without loading them (used by preview)."""
    return _eligible_query(db, org_id, segment, excluded_tag_ids).count()
