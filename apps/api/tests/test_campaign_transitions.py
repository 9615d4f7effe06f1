"""Tests for campaign lifecycle rules."""

import pytest

from app.core import campaign_transitions as rules
from app.db.enums import CampaignStatus as S


@pytest.mark.parametrize(
    "current,target",
    [
        (S.DRAFT, S.SCHEDULED),
        (S.DRAFT, S.SENDING),
        (S.SCHEDULED, S.SCHEDULED),
        (S.SCHEDULED, S.DRAFT),
        (S.SCHEDULED, S.SENDING),
        (S.SENDING, S.PAUSED),
        (S.SENDING, S.SENT),
        (S.PAUSED, S.SENDING),
        (S.PAUSED, S.SENT),
    ],
)
def test_allowed_transitions(current, target):
    assert rules.can_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (S.DRAFT, S.PAUSED),
        (S.DRAFT, S.SENT),
        (S.SENDING, S.DRAFT),
        (S.PAUSED, S.DRAFT),
        (S.SENT, S.SENDING),
        (S.SENT, S.DRAFT),
    ],
)
def test_rejected_transitions(current, target):
    assert not rules.can_transition(current, target)


def test_sent_is_terminal():
    assert all(not rules.can_transition(S.SENT, target) for target in S)


def test_edit_only_before_sending():
    assert rules.can_edit("draft")
    assert rules.can_edit("scheduled")
    for status in ("sending", "paused", "sent"):
        assert not rules.can_edit(status)


def test_delete_blocked_only_while_sending():
    assert not rules.can_delete(S.SENDING)
    for status in (S.DRAFT, S.SCHEDULED, S.PAUSED, S.SENT):
        assert rules.can_delete(status)


def test_action_predicates():
    assert rules.can_send(S.DRAFT) and rules.can_send(S.SCHEDULED)
    assert not rules.can_send(S.PAUSED)
    assert rules.can_pause(S.SENDING) and not rules.can_pause(S.PAUSED)
    assert rules.can_resume(S.PAUSED) and not rules.can_resume(S.SENDING)
    assert rules.can_unschedule(S.SCHEDULED) and not rules.can_unschedule(S.DRAFT)
    assert rules.can_schedule(S.DRAFT) and not rules.can_schedule(S.SENT)


def test_unknown_status_raises():
    with pytest.raises(ValueError):
        rules.can_edit("archived")


def test_sources_for_reads_the_transition_table():
    assert rules.sources_for(S.PAUSED) == ["sending"]
    assert rules.sources_for(S.SENT) == ["paused", "sending"]
    assert rules.sources_for(S.DRAFT) == ["scheduled"]
    assert rules.sources_for(S.SENDING) == ["draft", "paused", "scheduled"]


@pytest.mark.parametrize("status", list(S))
def test_predicates_agree_with_transition_table(status):
    assert rules.can_schedule(status) == rules.can_transition(status, S.SCHEDULED)
    assert rules.can_pause(status) == rules.can_transition(status, S.PAUSED)
    assert rules.can_unschedule(status) == rules.can_transition(status, S.DRAFT)
    if rules.can_send(status):
        assert rules.can_transition(status, S.SENDING)
