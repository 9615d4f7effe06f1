"""Background job enums."""

from enum import Enum


class JobType(str, Enum):
    CAMPAIGN_SEND = "campaign_send"  # Send loop for one campaign (initial send or resume)


class JobStatus(str, Enum):
    """pending -> running -> completed | failed (failed with attempts left goes back to pending)."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
