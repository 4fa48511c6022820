# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockroom/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Prefer `flask db upgrade` once migrations are in use.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization inspection:
# - python -m flask orgs list
#   List all organizations with member, warehouse and product counts.
#
# Product cache:
# - python -m flask cache warm --org-id 1
#   Recompute and store the product listing for one organization.
#
# Invitations:
# - python -m flask invites expired --org-id 1
#   Report pending invitations past their expiry. Nothing is changed.

import click
from flask.cli import with_appcontext

from .extensions import db, product_cache
from .models import Organization, OrganizationMember, Warehouse, Product


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema is in place.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('orgs')
def orgs_group():
    """Organization (tenant) inspection commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id.asc()).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Creator':<8} {'Members':<9} {'Warehouses':<12} {'Products'}")
    click.echo("="*80)

    for org in orgs:
        member_count = db.session.query(OrganizationMember).filter_by(org_id=org.id).count()
        warehouse_count = db.session.query(Warehouse).filter_by(org_id=org.id).count()
        product_count = db.session.query(Product).filter_by(org_id=org.id).count()

        click.echo(
            f"{org.id:<5} {org.name[:30]:<30} {org.created_by:<8} {member_count:<9} "
            f"{warehouse_count:<12} {product_count}"
        )

    click.echo("="*80 + "\n")


@click.group('cache')
def cache_group():
    """Product listing cache commands."""


@cache_group.command('warm')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@with_appcontext
def warm_cache(org_id):
    """Recompute the product listing for an organization and store it."""
    from .services.products_service import warm_cache_for_org

    org = db.session.get(Organization, org_id)
    if not org:
        raise click.ClickException(f"Organization {org_id} not found")

    if not product_cache.enabled:
        click.echo("WARN CACHE_REDIS_URL is not set; nothing will be stored.")

    result = warm_cache_for_org(org.id)
    if product_cache.enabled and not result["cached"]:
        raise click.ClickException("Cache write failed; see the application log.")

    click.echo(f"PASS {result['message']}")


@click.group('invites')
def invites_group():
    """Invitation reporting commands."""


@invites_group.command('expired')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@with_appcontext
def expired_invites(org_id):
    """List pending invitations that can no longer be accepted."""
    from .services.invite_service import expired_pending_invites

    invites = expired_pending_invites(org_id)
    if not invites:
        click.echo("No expired pending invitations.")
        return

    click.echo(f"{'ID':<6} {'Email':<40} {'Role':<12} {'Expired at'}")
    for invite in invites:
        click.echo(f"{invite.id:<6} {invite.email[:40]:<40} {invite.role:<12} {invite.to_dict()['expires_at']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(cache_group)
    app.cli.add_command(invites_group)
