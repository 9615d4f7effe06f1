"""CLI tools for itemize administration."""

import click

from app.core.security import create_session_token
from app.db.base import Base
from app.db.enums import PlanName, Role
from app.db.models import Membership, Organization, User
from app.db.session import SessionLocal, engine
from app.services import subscription_service, usage_service


@click.group()
def cli():
    """Itemize CLI tools."""
    pass


@cli.command("init-db")
def init_db():
    """
    Create tables and seed the subscription plans.

    Intended for local development and tests; production schemas are
    managed outside this service.
    """
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        created = subscription_service.ensure_plans(db)
        click.echo(f"✓ Tables ready, {len(created)} plans seeded")
    finally:
        db.close()


@cli.command("create-org")
@click.option("--name", required=True, help="Organization name")
@click.option("--slug", required=True, help="URL-friendly slug (lowercase, no spaces)")
@click.option("--admin-email", required=True, help="Admin email address")
@click.option(
    "--plan",
    type=click.Choice([p.value for p in PlanName]),
    default=PlanName.STARTER.value,
    show_default=True,
)
def create_org(name: str, slug: str, admin_email: str, plan: str):
    """
    Create an organization, its admin user and an active subscription.

    Example:
        python -m app.cli create-org --name "Acme Corp" --slug "acme" --admin-email "admin@acme.com"
    """
    db = SessionLocal()
    try:
        slug = slug.lower().strip()
        if not slug.replace("-", "").replace("_", "").isalnum():
            click.echo("❌ Slug must be alphanumeric (with optional hyphens/underscores)")
            return

        if db.query(Organization).filter(Organization.slug == slug).first():
            click.echo(f"❌ Organization with slug '{slug}' already exists")
            return

        org = Organization(name=name, slug=slug)
        db.add(org)
        db.flush()

        email = admin_email.lower()
        user = db.query(User).filter(User.email == email).first()
        if not user:
            user = User(email=email, display_name=email.split("@")[0])
            db.add(user)
            db.flush()
        db.add(Membership(user_id=user.id, organization_id=org.id, role=Role.ADMIN.value))
        db.commit()

        subscription_service.ensure_plans(db)
        subscription_service.change_plan(db, org.id, plan)

        click.echo(f"✓ Created organization: {name}")
        click.echo(f"  ID: {org.id}")
        click.echo(f"✓ {email} is admin, plan: {plan}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command("set-plan")
@click.option("--slug", required=True, help="Organization slug")
@click.option("--plan", required=True, type=click.Choice([p.value for p in PlanName]))
def set_plan(slug: str, plan: str):
    """Move an organization to another plan."""
    db = SessionLocal()
    try:
        org = db.query(Organization).filter(Organization.slug == slug).first()
        if not org:
            click.echo(f"❌ Organization '{slug}' not found")
            return
        subscription_service.change_plan(db, org.id, plan)
        click.echo(f"✓ {slug} is now on {plan}")
    except ValueError as e:
        click.echo(f"❌ {e}")
    finally:
        db.close()


@cli.command("usage")
@click.option("--slug", required=True, help="Organization slug")
def show_usage(slug: str):
    """Print current-period usage for an organization."""
    db = SessionLocal()
    try:
        org = db.query(Organization).filter(Organization.slug == slug).first()
        if not org:
            click.echo(f"❌ Organization '{slug}' not found")
            return
        stats = usage_service.get_usage_stats(db, org.id)
        click.echo(f"Plan: {stats['plan'] or '-'} (tier {stats['tier_level']})")
        for resource in stats["resources"]:
            limit = "unlimited" if resource["unlimited"] else resource["limit"]
            click.echo(f"  {resource['resource_type']}: {resource['current']} / {limit}")
    finally:
        db.close()


@cli.command("issue-token")
@click.option("--email", required=True, help="User email")
def issue_token(email: str):
    """Print a session token for a user (local development)."""
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email.lower()).first()
        if not user or not user.memberships:
            click.echo(f"❌ No user with a membership for {email}")
            return
        membership = user.memberships[0]
        click.echo(
            create_session_token(
                user.id, membership.organization_id, membership.role, user.token_version
            )
        )
    finally:
        db.close()


if __name__ == "__main__":
    cli()
