"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, recreated for every test
- JWT token minting for authenticated tests
- HTTPX AsyncClient with proper headers
- Factories for contacts, tags, campaigns and subscriptions
"""
import os
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Generator

# Must be set before app modules read settings
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["RESEND_API_KEY"] = ""
os.environ["CAMPAIGN_SEND_DELAY_SECONDS"] = "0"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from app.main import app
from app.core.deps import COOKIE_NAME, get_db
from app.core.rate_limit import limiter
from app.core.security import create_session_token
from app.db.base import Base
from app.db.enums import CampaignStatus, Role
from app.db.models import (
    Campaign,
    Contact,
    ContactTag,
    Membership,
    Organization,
    SubscriptionPlan,
    Tag,
    User,
)
from app.db.session import SessionLocal, engine
from app.services import subscription_service
from app.services.email_transport import EmailTransportError, OutboundEmail


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Fresh schema per test.

    App code commits freely; isolation comes from dropping every table
    afterwards rather than rolling back a savepoint.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_subscription_cache():
    subscription_service.subscription_cache.clear()
    yield
    subscription_service.subscription_cache.clear()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Limits are per client address, and every test client shares one."""
    limiter.reset()
    yield


@pytest.fixture(scope="function")
def test_org(db: Session) -> Organization:
    """Create a test organization."""
    org = Organization(
        id=uuid.uuid4(),
        name="Test Organization",
        slug=f"test-org-{uuid.uuid4().hex[:8]}",
    )
    db.add(org)
    db.commit()
    return org


def create_user(db: Session, org: Organization, role: Role) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"test-{uuid.uuid4().hex[:8]}@test.com",
        display_name="Test User",
    )
    db.add(user)
    db.flush()
    db.add(
        Membership(
            id=uuid.uuid4(),
            user_id=user.id,
            organization_id=org.id,
            role=role.value,
        )
    )
    db.commit()
    return user


@pytest.fixture(scope="function")
def test_user(db: Session, test_org: Organization) -> User:
    """Create a test user with admin membership in test_org."""
    return create_user(db, test_org, Role.ADMIN)


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user: User
    org: Organization
    token: str
    cookie_name: str = COOKIE_NAME


def mint_auth(user: User, org: Organization, role: Role) -> TestAuth:
    token = create_session_token(
        user_id=user.id,
        org_id=org.id,
        role=role.value,
        token_version=user.token_version,
    )
    return TestAuth(user=user, org=org, token=token)


@pytest.fixture(scope="function")
def test_auth(test_user: User, test_org: Organization) -> TestAuth:
    """Create JWT token for test user."""
    return mint_auth(test_user, test_org, Role.ADMIN)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """
    Create unauthenticated AsyncClient for testing public endpoints.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as c:
        yield c

    app.dependency_overrides.clear()


def build_client(db: Session, auth: TestAuth) -> AsyncClient:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    return AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={auth.cookie_name: auth.token},
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    )


@pytest.fixture(scope="function")
async def authed_client(
    db: Session,
    test_auth: TestAuth
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create authenticated AsyncClient with JWT cookie and CSRF header.
    """
    async with build_client(db, test_auth) as c:
        yield c

    app.dependency_overrides.clear()


# =============================================================================
# Domain Factories
# =============================================================================

def make_contact(
    db: Session,
    org: Organization,
    email: str | None = "contact@example.com",
    *,
    first_name: str | None = "Pat",
    last_name: str | None = "Doe",
    status: str = "active",
    tags: list[Tag] | None = None,
    unsubscribed: bool | None = False,
    bounced: bool | None = False,
    commit: bool = True,
) -> Contact:
    contact = Contact(
        organization_id=org.id,
        first_name=first_name,
        last_name=last_name,
        email=email,
        status=status,
        email_unsubscribed=unsubscribed,
        email_bounced=bounced,
    )
    db.add(contact)
    db.flush()
    for tag in tags or []:
        db.add(ContactTag(contact_id=contact.id, tag_id=tag.id))
    if commit:
        db.commit()
    return contact


def make_contacts(db: Session, org: Organization, count: int, **kwargs) -> list[Contact]:
    contacts = [
        make_contact(db, org, f"person{i}@example.com", first_name=f"Person{i}", commit=False, **kwargs)
        for i in range(count)
    ]
    db.commit()
    return contacts


def make_tag(db: Session, org: Organization, name: str) -> Tag:
    tag = Tag(organization_id=org.id, name=name)
    db.add(tag)
    db.commit()
    return tag


def make_campaign(
    db: Session,
    org: Organization,
    *,
    status: CampaignStatus = CampaignStatus.DRAFT,
    subject: str = "Hello {{first_name}}",
    content_html: str = "<p>Hi {{ first_name }} {{last_name}}</p>",
    content_text: str | None = "Hi {{first_name}}",
    segment: dict | None = None,
    excluded_tag_ids: list | None = None,
    user: User | None = None,
) -> Campaign:
    segment = segment or {"kind": "all"}
    campaign = Campaign(
        organization_id=org.id,
        name="Spring Newsletter",
        subject=subject,
        content_html=content_html,
        content_text=content_text,
        segment_type=segment["kind"],
        segment=segment,
        excluded_tag_ids=excluded_tag_ids or [],
        status=status.value,
        created_by_user_id=user.id if user else None,
    )
    db.add(campaign)
    db.commit()
    db.refresh(campaign)
    return campaign


def set_plan(db: Session, org: Organization, plan_name: str = "starter") -> None:
    subscription_service.ensure_plans(db)
    subscription_service.change_plan(db, org.id, plan_name)


def set_custom_email_limit(db: Session, org: Organization, limit: int) -> None:
    """Attach a one-off plan whose monthly email allowance is `limit`."""
    plan = SubscriptionPlan(
        name=f"custom-{uuid.uuid4().hex[:8]}",
        display_name="Custom",
        tier_level=1,
        limits={"emails_per_month": limit},
        features={},
    )
    db.add(plan)
    db.commit()
    subscription_service.change_plan(db, org.id, plan.name)


# =============================================================================
# Transport Fakes
# =============================================================================

class FakeTransport:
    """Records outbound mail; fails for addresses listed in fail_for."""

    def __init__(self, fail_for: set[str] | None = None, on_send=None):
        self.sent: list[OutboundEmail] = []
        self.fail_for = fail_for or set()
        self.on_send = on_send

    async def send(self, message: OutboundEmail) -> str:
        if self.on_send is not None:
            self.on_send(message)
        if message.to in self.fail_for:
            raise EmailTransportError("Resend API error: 422 (invalid recipient)")
        self.sent.append(message)
        return f"msg-{len(self.sent)}"


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()
