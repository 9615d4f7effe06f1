"""Session token encoding (HS256 JWT stored in the session cookie)."""

from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from app.core.config import settings

SESSION_ALGORITHM = "HS256"


def create_session_token(
    user_id: UUID,
    org_id: UUID,
    role: str,
    token_version: int,
) -> str:
    """
    Mint a session token for a user within one organization.

    Login lives in the auth service; the CLI and tests use this to act as a
    known user.
    """
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "org_id": str(org_id),
        "role": role,
        "token_version": token_version,
        "iat": now,
        "exp": now + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=SESSION_ALGORITHM)


def decode_session_token(token: str) -> dict:
    """
    Verify a session token against the current secret, then the previous one.

    Raises:
        jwt.InvalidTokenError: No configured secret accepts the token
    """
    secrets = settings.jwt_secrets
    for secret in secrets[:-1]:
        try:
            return jwt.decode(token, secret, algorithms=[SESSION_ALGORITHM])
        except jwt.InvalidSignatureError:
            continue
    return jwt.decode(token, secrets[-1], algorithms=[SESSION_ALGORITHM])
