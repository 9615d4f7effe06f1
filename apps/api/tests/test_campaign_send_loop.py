"""
Tests for the campaign send loop.

The loop is driven directly with a fake transport and no inter-send delay.
"""

import asyncio

import pytest
from sqlalchemy import update

from app.core.config import settings
from app.db.enums import CampaignRecipientStatus, CampaignStatus, JobType
from app.db.models import Campaign, CampaignRecipient, Job
from app.services import campaign_send_service, campaign_service, job_service
from app.services.campaign_send_service import run_campaign_send

from tests.conftest import FakeTransport, make_campaign, make_contacts, set_plan


def _sending_campaign(db, org, contacts, **kwargs):
    campaign = make_campaign(db, org, status=CampaignStatus.SENDING, **kwargs)
    campaign_service.insert_recipients(db, org.id, campaign.id, contacts)
    campaign.total_recipients = len(contacts)
    db.commit()
    return campaign


def _recipients(db, campaign):
    return (
        db.query(CampaignRecipient)
        .filter(CampaignRecipient.campaign_id == campaign.id)
        .order_by(CampaignRecipient.position)
        .all()
    )


def _set_status(db, campaign_id, status: CampaignStatus):
    db.execute(
        update(Campaign)
        .where(Campaign.id == campaign_id)
        .values(status=status.value)
        .execution_options(synchronize_session=False)
    )
    db.commit()


async def test_sends_to_every_pending_recipient(db, test_org):
    contacts = make_contacts(db, test_org, 3)
    campaign = _sending_campaign(db, test_org, contacts)
    transport = FakeTransport()

    result = await run_campaign_send(db, campaign.id, transport=transport, delay_seconds=0)

    assert result.total_sent == 3
    assert result.total_failed == 0
    assert result.final_status == CampaignStatus.SENT.value
    assert not result.stopped_early
    assert [m.to for m in transport.sent] == [c.email for c in contacts]

    db.expire_all()
    assert campaign.status == CampaignStatus.SENT.value
    assert campaign.total_sent == 3
    assert campaign.completed_at is not None
    for row in _recipients(db, campaign):
        assert row.status == CampaignRecipientStatus.SENT.value
        assert row.sent_at is not None
        assert row.external_message_id.startswith("msg-")


async def test_renders_per_recipient_content(db, test_org):
    contacts = make_contacts(db, test_org, 1)
    campaign = _sending_campaign(db, test_org, contacts)
    transport = FakeTransport()

    await run_campaign_send(db, campaign.id, transport=transport, delay_seconds=0)

    message = transport.sent[0]
    assert message.subject == "Hello Person0"
    assert message.html == "<p>Hi Person0 Doe</p>"
    assert message.text == "Hi Person0"
    recipient = _recipients(db, campaign)[0]
    assert message.idempotency_key == f"campaign-recipient/{recipient.id}"


async def test_transport_failure_is_recorded_and_batch_continues(db, test_org):
    contacts = make_contacts(db, test_org, 3)
    campaign = _sending_campaign(db, test_org, contacts)
    transport = FakeTransport(fail_for={contacts[1].email})

    result = await run_campaign_send(db, campaign.id, transport=transport, delay_seconds=0)

    assert result.total_sent == 2
    assert result.total_failed == 1
    assert result.final_status == CampaignStatus.SENT.value

    rows = _recipients(db, campaign)
    assert [r.status for r in rows] == ["sent", "failed", "sent"]
    assert "422" in rows[1].error_message
    assert rows[1].sent_at is None

    db.expire_all()
    assert campaign.status == CampaignStatus.SENT.value
    assert campaign.total_sent == 2
    assert campaign.total_failed == 1


async def test_unexpected_transport_error_marks_recipient_failed(db, test_org):
    contacts = make_contacts(db, test_org, 2)
    campaign = _sending_campaign(db, test_org, contacts)

    class BrokenTransport:
        async def send(self, message):
            raise RuntimeError("socket closed")

    result = await run_campaign_send(db, campaign.id, transport=BrokenTransport(), delay_seconds=0)

    assert result.total_failed == 2
    assert all(r.error_message == "socket closed" for r in _recipients(db, campaign))


async def test_pause_mid_run_stops_loop_and_keeps_status(db, test_org):
    contacts = make_contacts(db, test_org, 4)
    campaign = _sending_campaign(db, test_org, contacts)
    campaign_id = campaign.id

    def pause_on_second(message):
        if message.to == contacts[1].email:
            _set_status(db, campaign_id, CampaignStatus.PAUSED)

    transport = FakeTransport(on_send=pause_on_second)

    result = await run_campaign_send(db, campaign_id, transport=transport, delay_seconds=0)

    assert result.stopped_early
    assert result.attempted == 2
    assert result.total_sent == 2
    assert result.final_status == CampaignStatus.PAUSED.value

    db.expire_all()
    assert campaign.status == CampaignStatus.PAUSED.value
    assert campaign.total_sent == 2
    assert campaign.completed_at is None
    statuses = [r.status for r in _recipients(db, campaign)]
    assert statuses == ["sent", "sent", "pending", "pending"]


async def test_not_sending_campaign_sends_nothing(db, test_org):
    contacts = make_contacts(db, test_org, 2)
    campaign = _sending_campaign(db, test_org, contacts)
    _set_status(db, campaign.id, CampaignStatus.PAUSED)
    transport = FakeTransport()

    result = await run_campaign_send(db, campaign.id, transport=transport, delay_seconds=0)

    assert transport.sent == []
    assert result.attempted == 0
    assert result.final_status == CampaignStatus.PAUSED.value


async def test_resume_processes_only_pending_rows(db, test_org, test_user):
    """Paused after 5 of 10; resuming sends the other 5 and totals reach 10."""
    contacts = make_contacts(db, test_org, 10)
    campaign = _sending_campaign(db, test_org, contacts)
    rows = _recipients(db, campaign)
    for row in rows[:5]:
        row.status = CampaignRecipientStatus.SENT.value
    campaign.total_sent = 5
    campaign.status = CampaignStatus.PAUSED.value
    db.commit()

    started = campaign_service.resume_campaign(db, test_org.id, campaign.id)
    assert started.recipient_count == 5
    assert started.job is not None
    assert started.campaign.status == CampaignStatus.SENDING.value

    transport = FakeTransport()
    result = await run_campaign_send(
        db, campaign.id, job_id=started.job.id, transport=transport, delay_seconds=0
    )

    assert [m.to for m in transport.sent] == [c.email for c in contacts[5:]]
    assert result.total_sent == 10
    db.expire_all()
    assert campaign.total_sent == 10
    assert campaign.status == CampaignStatus.SENT.value
    assert all(r.status == "sent" for r in _recipients(db, campaign))


async def test_checkpoints_counters_during_run(db, test_org):
    contacts = make_contacts(db, test_org, 5)
    campaign = _sending_campaign(db, test_org, contacts)
    campaign_id = campaign.id
    observed = []

    def record_counter(message):
        observed.append(db.query(Campaign.total_sent).filter(Campaign.id == campaign_id).scalar())

    await run_campaign_send(
        db,
        campaign_id,
        transport=FakeTransport(on_send=record_counter),
        delay_seconds=0,
        checkpoint_interval=2,
    )

    assert observed == [0, 0, 2, 2, 4]


async def test_job_progress_is_written(db, test_org):
    contacts = make_contacts(db, test_org, 3)
    campaign = _sending_campaign(db, test_org, contacts)
    job = job_service.schedule_job(
        db, test_org.id, JobType.CAMPAIGN_SEND, payload={"campaign_id": str(campaign.id)}
    )
    transport = FakeTransport(fail_for={contacts[0].email})

    await run_campaign_send(
        db, campaign.id, job_id=job.id, transport=transport, delay_seconds=0, checkpoint_interval=1
    )

    job = db.query(Job).filter(Job.id == job.id).one()
    db.refresh(job)
    assert job.progress == {"sent": 2, "failed": 1, "processed": 3, "total": 3}


async def test_rows_already_sent_are_never_resent(db, test_org):
    contacts = make_contacts(db, test_org, 2)
    campaign = _sending_campaign(db, test_org, contacts)
    transport = FakeTransport()
    await run_campaign_send(db, campaign.id, transport=transport, delay_seconds=0)

    _set_status(db, campaign.id, CampaignStatus.SENDING)
    await run_campaign_send(db, campaign.id, transport=transport, delay_seconds=0)

    assert len(transport.sent) == 2


async def test_resume_does_not_re_resolve_audience(db, test_org):
    contacts = make_contacts(db, test_org, 2)
    campaign = _sending_campaign(db, test_org, contacts)
    _set_status(db, campaign.id, CampaignStatus.PAUSED)
    make_contacts(db, test_org, 3)

    started = campaign_service.resume_campaign(db, test_org.id, campaign.id)
    transport = FakeTransport()
    await run_campaign_send(db, campaign.id, transport=transport, delay_seconds=0)

    assert started.recipient_count == 2
    assert len(_recipients(db, campaign)) == 2
    assert len(transport.sent) == 2


def _set_recipient_status(db, recipient_id, status: CampaignRecipientStatus):
    db.execute(
        update(CampaignRecipient)
        .where(CampaignRecipient.id == recipient_id)
        .values(status=status.value)
        .execution_options(synchronize_session=False)
    )
    db.commit()


async def test_row_claimed_elsewhere_is_skipped(db, test_org):
    contacts = make_contacts(db, test_org, 3)
    campaign = _sending_campaign(db, test_org, contacts)
    second = _recipients(db, campaign)[1]

    def other_loop_takes_second(message):
        if message.to == contacts[0].email:
            _set_recipient_status(db, second.id, CampaignRecipientStatus.SENDING)

    transport = FakeTransport(on_send=other_loop_takes_second)
    result = await run_campaign_send(db, campaign.id, transport=transport, delay_seconds=0)

    assert [m.to for m in transport.sent] == [contacts[0].email, contacts[2].email]
    assert result.attempted == 2
    statuses = [r.status for r in _recipients(db, campaign)]
    assert statuses == ["sent", "sending", "sent"]


async def test_final_totals_are_counted_from_rows(db, test_org):
    contacts = make_contacts(db, test_org, 3)
    campaign = _sending_campaign(db, test_org, contacts)
    last = _recipients(db, campaign)[2]

    def other_loop_delivers_last(message):
        if message.to == contacts[0].email:
            _set_recipient_status(db, last.id, CampaignRecipientStatus.SENT)

    transport = FakeTransport(on_send=other_loop_delivers_last)
    result = await run_campaign_send(db, campaign.id, transport=transport, delay_seconds=0)

    assert len(transport.sent) == 2
    assert result.total_sent == 3
    db.expire_all()
    assert campaign.total_sent == 3
    assert campaign.status == CampaignStatus.SENT.value


class GatedTransport:
    """Holds the first delivery open until released."""

    def __init__(self):
        self.sent: list[str] = []
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def send(self, message):
        self.sent.append(message.to)
        if len(self.sent) == 1:
            self.entered.set()
            await self.release.wait()
        return f"msg-{len(self.sent)}"


async def test_resume_refused_while_paused_run_is_mid_delivery(db, test_org, test_user):
    set_plan(db, test_org, "starter")
    contacts = make_contacts(db, test_org, 3)
    campaign = make_campaign(db, test_org)
    started = campaign_service.start_campaign_send(db, test_org.id, campaign.id, test_user.id)
    job = job_service.claim_job(db, started.job.id)
    gated = GatedTransport()

    first_run = asyncio.create_task(
        run_campaign_send(db, campaign.id, job_id=job.id, transport=gated, delay_seconds=0)
    )
    await asyncio.wait_for(gated.entered.wait(), timeout=5)

    campaign_service.pause_campaign(db, test_org.id, campaign.id)
    with pytest.raises(campaign_service.CampaignStateError):
        campaign_service.resume_campaign(db, test_org.id, campaign.id)

    gated.release.set()
    first = await asyncio.wait_for(first_run, timeout=5)
    assert first.stopped_early
    assert gated.sent == [contacts[0].email]
    job_service.mark_job_completed(db, db.get(Job, job.id))

    resumed = campaign_service.resume_campaign(db, test_org.id, campaign.id)
    assert resumed.recipient_count == 2
    transport = FakeTransport()
    second = await run_campaign_send(
        db, campaign.id, job_id=resumed.job.id, transport=transport, delay_seconds=0
    )

    assert [m.to for m in transport.sent] == [c.email for c in contacts[1:]]
    assert second.total_sent == 3
    db.expire_all()
    assert campaign.total_sent == 3
    assert campaign.total_recipients == 3
    assert campaign.status == CampaignStatus.SENT.value


@pytest.fixture
def recorded_sleeps(monkeypatch):
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr(campaign_send_service.asyncio, "sleep", fake_sleep)
    monkeypatch.setattr(settings, "CAMPAIGN_SEND_DELAY_SECONDS", 0.1)
    return delays


async def test_fixed_delay_between_sends(db, test_org, recorded_sleeps):
    contacts = make_contacts(db, test_org, 4)
    campaign = _sending_campaign(db, test_org, contacts)

    await run_campaign_send(db, campaign.id, transport=FakeTransport())

    assert recorded_sleeps == [0.1, 0.1, 0.1]


async def test_delay_also_follows_failed_sends(db, test_org, recorded_sleeps):
    contacts = make_contacts(db, test_org, 3)
    campaign = _sending_campaign(db, test_org, contacts)
    transport = FakeTransport(fail_for={contacts[0].email, contacts[1].email})

    result = await run_campaign_send(db, campaign.id, transport=transport)

    assert result.total_failed == 2
    assert recorded_sleeps == [settings.CAMPAIGN_SEND_DELAY_SECONDS] * 2


async def test_no_delay_after_loop_stops(db, test_org, recorded_sleeps):
    contacts = make_contacts(db, test_org, 3)
    campaign = _sending_campaign(db, test_org, contacts)
    campaign_id = campaign.id

    def pause_on_first(message):
        _set_status(db, campaign_id, CampaignStatus.PAUSED)

    await run_campaign_send(db, campaign_id, transport=FakeTransport(on_send=pause_on_first))

    assert recorded_sleeps == [0.1]
