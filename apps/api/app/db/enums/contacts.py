"""Contact-related enums."""

from enum import Enum


class ContactStatus(str, Enum):
    """Lifecycle status of a CRM contact."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    LEAD = "lead"
    CUSTOMER = "customer"
    ARCHIVED = "archived"
