"""Campaign lifecycle rules.

draft -> scheduled -> sending -> {paused, sent}; paused -> sending.
Unschedule returns a scheduled campaign to draft. Resume with nothing left
to send goes straight from paused to sent. Sent is terminal.

Every status change in the services goes through this table, either via
can_transition on a loaded row or via sources_for in a conditional UPDATE.
"""

from app.db.enums import CampaignStatus

ALLOWED_TRANSITIONS: dict[CampaignStatus, frozenset[CampaignStatus]] = {
    CampaignStatus.DRAFT: frozenset({CampaignStatus.SCHEDULED, CampaignStatus.SENDING}),
    CampaignStatus.SCHEDULED: frozenset(
        {CampaignStatus.SCHEDULED, CampaignStatus.DRAFT, CampaignStatus.SENDING}
    ),
    CampaignStatus.SENDING: frozenset({CampaignStatus.PAUSED, CampaignStatus.SENT}),
    CampaignStatus.PAUSED: frozenset({CampaignStatus.SENDING, CampaignStatus.SENT}),
    CampaignStatus.SENT: frozenset(),
    CampaignStatus.CANCELLED: frozenset(),
    CampaignStatus.FAILED: frozenset(),
}

EDITABLE_STATUSES = frozenset({CampaignStatus.DRAFT, CampaignStatus.SCHEDULED})
UNDELETABLE_STATUSES = frozenset({CampaignStatus.SENDING})


def _status(value: str | CampaignStatus) -> CampaignStatus:
    return CampaignStatus(value)


def can_transition(current: str | CampaignStatus, target: str | CampaignStatus) -> bool:
    return _status(target) in ALLOWED_TRANSITIONS[_status(current)]


def sources_for(target: str | CampaignStatus) -> list[str]:
    """Status values that may move to target, for WHERE status IN (...)."""
    target = _status(target)
    return sorted(
        current.value
        for current, targets in ALLOWED_TRANSITIONS.items()
        if target in targets
    )


def can_edit(status: str | CampaignStatus) -> bool:
    """Content and audience may change only while draft or scheduled."""
    return _status(status) in EDITABLE_STATUSES


def can_delete(status: str | CampaignStatus) -> bool:
    return _status(status) not in UNDELETABLE_STATUSES


def can_schedule(status: str | CampaignStatus) -> bool:
    return can_transition(status, CampaignStatus.SCHEDULED)


def can_send(status: str | CampaignStatus) -> bool:
    # Paused campaigns also reach sending, but only through resume
    return can_edit(status) and can_transition(status, CampaignStatus.SENDING)


def can_pause(status: str | CampaignStatus) -> bool:
    return can_transition(status, CampaignStatus.PAUSED)


def can_resume(status: str | CampaignStatus) -> bool:
    return _status(status) == CampaignStatus.PAUSED


def can_unschedule(status: str | CampaignStatus) -> bool:
    return can_transition(status, CampaignStatus.DRAFT)
