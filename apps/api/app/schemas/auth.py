"""Session schemas."""

from uuid import UUID

from pydantic import BaseModel

from app.db.enums import Role


class TokenPayload(BaseModel):
    """Claims carried by the session cookie."""
    sub: UUID
    org_id: UUID
    role: str
    token_version: int


class UserSession(BaseModel):
    """Who is calling, for which organization, with which membership role."""
    user_id: UUID
    org_id: UUID
    role: Role
    email: str
    display_name: str
