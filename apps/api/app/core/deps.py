"""FastAPI dependencies: database session, caller identity and role checks."""

from typing import Generator

import jwt
from fastapi import Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.security import decode_session_token
from app.db.enums import Role
from app.db.session import SessionLocal
from app.schemas.auth import TokenPayload, UserSession


COOKIE_NAME = "itemize_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """One session per request, closed when the response is done."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _read_token(request: Request) -> TokenPayload:
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return TokenPayload.model_validate(decode_session_token(token))
    except (jwt.InvalidTokenError, ValidationError):
        raise HTTPException(status_code=401, detail="Invalid session")


def get_current_user(request: Request, db: Session = Depends(get_db)):
    """
    The user behind the session cookie.

    Rejects missing or invalid tokens, unknown or disabled users, and tokens
    minted before the user's token_version was bumped.
    """
    from app.db.models import User

    payload = _read_token(request)
    user = db.get(User, payload.sub)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account disabled")
    if user.token_version != payload.token_version:
        raise HTTPException(status_code=401, detail="Session revoked")
    return user


def get_current_session(request: Request, db: Session = Depends(get_db)) -> UserSession:
    """
    Caller context for org-scoped endpoints.

    The organization comes from the token; the role always comes from the
    live membership row so demotions apply immediately.
    """
    from app.db.models import Membership

    user = get_current_user(request, db)
    payload = _read_token(request)

    membership = (
        db.query(Membership)
        .filter(
            Membership.user_id == user.id,
            Membership.organization_id == payload.org_id,
            Membership.is_active.is_(True),
        )
        .first()
    )
    if not membership:
        raise HTTPException(status_code=403, detail="No organization membership")
    if not Role.has_value(membership.role):
        raise HTTPException(status_code=403, detail=f"Unknown role '{membership.role}'")

    return UserSession(
        user_id=user.id,
        org_id=membership.organization_id,
        role=Role(membership.role),
        email=user.email,
        display_name=user.display_name,
    )


def require_roles(allowed_roles: list[Role]):
    """
    Dependency factory: the session, if its role is one of allowed_roles.

        session=Depends(require_roles([Role.MANAGER, Role.ADMIN]))
    """
    def dependency(request: Request, db: Session = Depends(get_db)) -> UserSession:
        session = get_current_session(request, db)
        if session.role not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{session.role.value}' not authorized for this action",
            )
        return session
    return dependency


def require_csrf_header(request: Request) -> None:
    """Mutations must carry X-Requested-With: XMLHttpRequest."""
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'",
        )
