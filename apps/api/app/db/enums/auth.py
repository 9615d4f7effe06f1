"""Auth-related enums."""

from enum import Enum


class Role(str, Enum):
    """
    Organization membership roles with increasing privilege levels.

    - MEMBER: Day-to-day CRM usage (contacts, campaigns)
    - MANAGER: Team lead (campaign sends, reporting)
    - ADMIN: Business admin (billing, plan changes, invites)
    """

    MEMBER = "member"
    MANAGER = "manager"
    ADMIN = "admin"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_
