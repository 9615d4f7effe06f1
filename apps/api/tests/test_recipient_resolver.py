"""Tests for campaign recipient resolution."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from app.db.enums import ContactStatus
from app.db.models import Organization
from app.schemas.campaign import AllSegment, StatusSegment, TagSegment, load_segment
from app.services.recipient_service import count_recipients, resolve_recipients

from tests.conftest import make_contact, make_tag


def _emails(contacts):
    return sorted(c.email for c in contacts)


def test_all_segment_applies_base_eligibility(db, test_org):
    make_contact(db, test_org, "ok@example.com")
    make_contact(db, test_org, None)
    make_contact(db, test_org, "   ")
    make_contact(db, test_org, "unsub@example.com", unsubscribed=True)
    make_contact(db, test_org, "bounced@example.com", bounced=True)
    make_contact(db, test_org, "nullflags@example.com", unsubscribed=None, bounced=None)

    contacts = resolve_recipients(db, test_org.id, AllSegment())

    assert _emails(contacts) == ["nullflags@example.com", "ok@example.com"]


def test_other_organizations_are_excluded(db, test_org):
    other = Organization(name="Other", slug=f"other-{uuid4().hex[:8]}")
    db.add(other)
    db.commit()
    make_contact(db, test_org, "mine@example.com")
    make_contact(db, other, "theirs@example.com")

    contacts = resolve_recipients(db, test_org.id, AllSegment())

    assert _emails(contacts) == ["mine@example.com"]


def test_tag_segment_matches_any_listed_tag(db, test_org):
    vip = make_tag(db, test_org, "vip")
    beta = make_tag(db, test_org, "beta")
    other = make_tag(db, test_org, "other")
    make_contact(db, test_org, "vip@example.com", tags=[vip])
    make_contact(db, test_org, "both@example.com", tags=[vip, beta])
    make_contact(db, test_org, "beta@example.com", tags=[beta])
    make_contact(db, test_org, "other@example.com", tags=[other])
    make_contact(db, test_org, "none@example.com")

    contacts = resolve_recipients(db, test_org.id, TagSegment(tag_ids=[vip.id, beta.id]))

    assert _emails(contacts) == ["beta@example.com", "both@example.com", "vip@example.com"]


def test_tag_segment_without_tags_falls_back_to_all(db, test_org):
    make_contact(db, test_org, "a@example.com")
    make_contact(db, test_org, "b@example.com")

    assert len(resolve_recipients(db, test_org.id, TagSegment(tag_ids=[]))) == 2


def test_status_segment(db, test_org):
    make_contact(db, test_org, "lead@example.com", status=ContactStatus.LEAD.value)
    make_contact(db, test_org, "customer@example.com", status=ContactStatus.CUSTOMER.value)

    contacts = resolve_recipients(db, test_org.id, StatusSegment(status=ContactStatus.LEAD))

    assert _emails(contacts) == ["lead@example.com"]


def test_status_segment_without_status_does_not_filter(db, test_org):
    make_contact(db, test_org, "lead@example.com", status=ContactStatus.LEAD.value)
    make_contact(db, test_org, "customer@example.com", status=ContactStatus.CUSTOMER.value)

    for stored in ({"kind": "status"}, {"kind": "status", "status": None}, {"kind": "status", "status": ""}):
        segment = load_segment(stored)
        assert segment.status is None
        assert len(resolve_recipients(db, test_org.id, segment)) == 2


def test_excluded_tags_remove_contacts(db, test_org):
    vip = make_tag(db, test_org, "vip")
    blocked = make_tag(db, test_org, "do-not-mail")
    make_contact(db, test_org, "keep@example.com", tags=[vip])
    make_contact(db, test_org, "drop@example.com", tags=[vip, blocked])
    make_contact(db, test_org, "plain@example.com")

    contacts = resolve_recipients(
        db, test_org.id, TagSegment(tag_ids=[vip.id]), excluded_tag_ids=[blocked.id]
    )
    assert _emails(contacts) == ["keep@example.com"]

    contacts = resolve_recipients(db, test_org.id, AllSegment(), excluded_tag_ids=[blocked.id])
    assert _emails(contacts) == ["keep@example.com", "plain@example.com"]


def test_results_are_ordered_oldest_first(db, test_org):
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    newest = make_contact(db, test_org, "newest@example.com")
    oldest = make_contact(db, test_org, "oldest@example.com")
    middle = make_contact(db, test_org, "middle@example.com")
    newest.created_at = base + timedelta(days=2)
    oldest.created_at = base
    middle.created_at = base + timedelta(days=1)
    db.commit()

    contacts = resolve_recipients(db, test_org.id, AllSegment())

    assert [c.email for c in contacts] == [
        "oldest@example.com",
        "middle@example.com",
        "newest@example.com",
    ]


def test_count_matches_resolution(db, test_org):
    vip = make_tag(db, test_org, "vip")
    make_contact(db, test_org, "a@example.com", tags=[vip])
    make_contact(db, test_org, "b@example.com")
    make_contact(db, test_org, "c@example.com", bounced=True, tags=[vip])

    segment = TagSegment(tag_ids=[vip.id])
    assert count_recipients(db, test_org.id, segment) == 1
    assert count_recipients(db, test_org.id, AllSegment()) == 2


def test_count_is_zero_for_empty_audience(db, test_org):
    assert count_recipients(db, test_org.id, AllSegment()) == 0


def test_load_segment_parses_stored_blobs():
    assert isinstance(load_segment(None), AllSegment)
    assert isinstance(load_segment({"kind": "all"}), AllSegment)
    tag_id = uuid4()
    segment = load_segment({"kind": "tag", "tag_ids": [str(tag_id)]})
    assert isinstance(segment, TagSegment)
    assert segment.tag_ids == [tag_id]
    segment = load_segment({"kind": "status", "status": "customer"})
    assert isinstance(segment, StatusSegment)
    assert segment.status == ContactStatus.CUSTOMER
