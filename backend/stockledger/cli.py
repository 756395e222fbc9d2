# Overview: Flask CLI command groups for bootstrap and ledger repair.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--org "Org Name"] [--org-code DEFAULT] [--timezone UTC]
#   Idempotent bootstrap: creates a default organization, branch and admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Ledger repair/inspection:
# - python -m flask ledger recalculate --date 2026-01-31 --user-id 1 [--branch-id 2]
#   Re-close every item for one date (no cascade).
# - python -m flask ledger cascade --from 2026-01-01 --user-id 1 [--branch-id 2]
#   Re-close and re-open every day from the date up to today.
# - python -m flask ledger report --date 2026-01-31 --user-id 1 [--branch-id 2]
#   Print the daily stock report.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, Branch, User
from .models.users import ROLE_ADMIN
from .services.cascade_service import cascade_update_from_date
from .services.closing_service import recalculate_closing_stock
from .services.report_service import daily_stock_report
from .services.scope_service import ScopeResolutionError, resolve_scope
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@click.option('--timezone', 'tz_name', default='UTC', help='IANA timezone of the organization calendar')
@click.option('--admin-email', default='admin@stockledger.local', help='Tenant admin email')
@with_appcontext
def init_system(org_name, org_code, tz_name, admin_email):
    """
    Initialize a default organization, branch and tenant admin.

    Safe to run repeatedly; existing rows are reused.
    """
    click.echo("START Initializing stock ledger...")

    org = db.session.query(Organization).filter_by(code=org_code).first()
    if not org:
        org = Organization(name=org_name, code=org_code, timezone=tz_name, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    branch = db.session.query(Branch).filter_by(org_id=org.id).first()
    if not branch:
        branch = Branch(org_id=org.id, name="Main Branch", code="MAIN")
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    admin = db.session.query(User).filter_by(email=admin_email).first()
    if not admin:
        admin = User(org_id=org.id, branch_id=None, email=admin_email, full_name="Administrator", role=ROLE_ADMIN)
        db.session.add(admin)
        db.session.commit()
        click.echo(f"PASS Created tenant admin: {admin.email} (ID: {admin.id})")
    else:
        click.echo(f"WARN  User '{admin_email}' already exists, skipping...")

    click.echo("DONE Stock ledger initialized.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


# =============================================================================
# LEDGER COMMANDS
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Daily stock ledger repair and inspection commands."""


def _scope_or_exit(user_id, branch_id):
    try:
        return resolve_scope(user_id, requested_branch_id=branch_id)
    except ScopeResolutionError as e:
        raise click.ClickException(f"Scope error: {e}")


@ledger_group.command('recalculate')
@click.option('--date', 'day', required=True, help='Ledger date (YYYY-MM-DD)')
@click.option('--user-id', type=int, required=True, help='Acting user ID')
@click.option('--branch-id', type=int, default=None, help='Branch (tenant admins only)')
@with_appcontext
def recalculate_cli(day, user_id, branch_id):
    """Re-close every item of the scope for one date."""
    scope = _scope_or_exit(user_id, branch_id)
    try:
        results = recalculate_closing_stock(day, user_id, scope)
    except ValidationError as e:
        raise click.ClickException(str(e))

    for r in results:
        marker = "REPLACED MANUAL" if r.replaced_manual else ("UPDATED" if r.changed else "same")
        click.echo(f"{r.item_id:<6} {r.day.isoformat():<12} {str(r.quantity):>14}  {marker}")
    click.echo(f"PASS Recalculated {len(results)} item(s), {sum(1 for r in results if r.changed)} changed")


@ledger_group.command('cascade')
@click.option('--from', 'start', required=True, help='First ledger date to re-settle (YYYY-MM-DD)')
@click.option('--user-id', type=int, required=True, help='Acting user ID')
@click.option('--branch-id', type=int, default=None, help='Branch (tenant admins only)')
@with_appcontext
def cascade_cli(start, user_id, branch_id):
    """Walk every item forward from a date up to today."""
    scope = _scope_or_exit(user_id, branch_id)
    try:
        result = cascade_update_from_date(start, user_id, scope)
    except ValidationError as e:
        raise click.ClickException(str(e))

    for line in result.updates:
        click.echo(line)
    click.echo(
        f"Items: {result.items_processed}  Steps: {result.steps}  Days updated: {result.days_updated}"
    )
    for err in result.errors:
        click.echo(f"FAIL Item {err.item_id} at {err.day.isoformat()}: {err.error}")
    for item_id in result.truncated_item_ids:
        click.echo(f"WARN  Item {item_id} truncated at the step limit")

    if not result.ok:
        raise click.ClickException(str(result.failure))
    click.echo("PASS Cascade complete")


@ledger_group.command('report')
@click.option('--date', 'day', required=True, help='Ledger date (YYYY-MM-DD)')
@click.option('--user-id', type=int, required=True, help='Acting user ID')
@click.option('--branch-id', type=int, default=None, help='Branch (tenant admins only)')
@with_appcontext
def report_cli(day, user_id, branch_id):
    """Print the daily stock report."""
    scope = _scope_or_exit(user_id, branch_id)
    try:
        report = daily_stock_report(day, scope)
    except ValidationError as e:
        raise click.ClickException(str(e))

    click.echo("\n" + "="*100)
    click.echo(
        f"{'ID':<6} {'Item':<28} {'Opening':>12} {'Restock':>12} {'Sales':>12} {'Waste':>12} {'Closing':>12}"
    )
    click.echo("="*100)
    for row in report["items"]:
        flag = " M" if row["manual_closing"] else ""
        click.echo(
            f"{row['item_id']:<6} {row['item_name'][:28]:<28} {row['opening_stock']:>12} "
            f"{row['restocking']:>12} {row['sales']:>12} {row['waste_spoilage']:>12} "
            f"{row['closing_stock']:>12}{flag}"
        )
    click.echo("="*100 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
