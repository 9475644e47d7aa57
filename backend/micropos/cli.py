# Overview: Flask CLI command groups for bootstrap, drawer sessions, audits and the outbox.

# backend/micropos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: flask --app micropos <group> <command> [options]
#
# System bootstrap/repair:
# - flask --app micropos system init --org "Corner Shop"
#   Idempotent bootstrap: creates the organization and its default warehouse.
# - flask --app micropos system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Cash sessions:
# - flask --app micropos sessions list [--org-id ID] [--status OPEN]
# - flask --app micropos sessions open --user cashier-1 --opening-cents 20000
# - flask --app micropos sessions close SESSION_ID --counted-cents 32000
#
# Ledger audits (exit code 1 when drift is found):
# - flask --app micropos ledger audit-stock
# - flask --app micropos ledger audit-sessions
#
# Outbox:
# - flask --app micropos outbox status

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, Warehouse
from .services import cash_session_service, reconciliation_service, sync_service
from .validation import LedgerError


DEFAULT_WAREHOUSE_NAME = "Main Warehouse"


def _resolve_org(org_id: str | None) -> Organization:
    """Explicit --org-id, or the only organization when there is exactly one."""
    if org_id:
        org = db.session.get(Organization, org_id)
        if not org:
            raise click.ClickException(f"Organization {org_id} not found")
        return org

    orgs = db.session.query(Organization).order_by(Organization.created_at.asc()).limit(2).all()
    if not orgs:
        raise click.ClickException("No organization yet. Run 'flask system init' first.")
    if len(orgs) > 1:
        raise click.ClickException("Several organizations exist; pass --org-id")
    return orgs[0]


# =============================================================================
# SYSTEM
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--warehouse', 'warehouse_name', default=DEFAULT_WAREHOUSE_NAME, help='Default warehouse name')
@click.option('--currency', default='USD', help='ISO currency code')
@with_appcontext
def init_system(org_name, warehouse_name, currency):
    """
    Create the organization and its default warehouse.

    Safe to re-run: existing rows with the same names are reused.
    """
    db.create_all()

    org = db.session.query(Organization).filter_by(name=org_name).first()
    if not org:
        org = Organization(name=org_name, currency=currency.upper()[:3])
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    warehouse = db.session.query(Warehouse).filter_by(org_id=org.id, name=warehouse_name).first()
    if not warehouse:
        warehouse = Warehouse(org_id=org.id, name=warehouse_name)
        db.session.add(warehouse)
        db.session.commit()
        click.echo(f"PASS Created warehouse: {warehouse.name} (ID: {warehouse.id})")
    else:
        click.echo(f"PASS Using existing warehouse: {warehouse.name} (ID: {warehouse.id})")


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

    click.echo("PASS Database reset complete. Run 'flask system init' to initialize.")


# =============================================================================
# CASH SESSIONS
# =============================================================================

@click.group('sessions')
def sessions_group():
    """Cash drawer session commands."""


@sessions_group.command('list')
@click.option('--org-id', help='Organization ID (defaults to the only organization)')
@click.option('--status', type=click.Choice(['OPEN', 'CLOSED']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max sessions to show')
@with_appcontext
def list_sessions_cli(org_id, status, limit):
    """List cash sessions, newest first."""
    org = _resolve_org(org_id)
    sessions = cash_session_service.list_sessions(org.id, status=status, limit=limit)

    if not sessions:
        click.echo("No sessions found.")
        return

    click.echo("\n" + "=" * 110)
    click.echo(f"{'ID':<38} {'User':<15} {'Status':<8} {'Opened':<22} {'Expected':>10} {'Variance':>10}")
    click.echo("=" * 110)
    for session in sessions:
        data = session.to_dict()
        expected = "" if session.expected_amount_cents is None else str(session.expected_amount_cents)
        variance = "" if session.variance_cents is None else str(session.variance_cents)
        click.echo(
            f"{session.id:<38} {session.user_id[:15]:<15} {session.status:<8} "
            f"{data['opened_at']:<22} {expected:>10} {variance:>10}"
        )


@sessions_group.command('open')
@click.option('--org-id', help='Organization ID (defaults to the only organization)')
@click.option('--user', 'user_id', required=True, help='Cashier identifier')
@click.option('--opening-cents', type=int, default=0, help='Opening float in cents')
@with_appcontext
def open_session_cli(org_id, user_id, opening_cents):
    """Open the drawer for an organization."""
    org = _resolve_org(org_id)
    try:
        session = cash_session_service.open_cash_session(org.id, user_id, opening_cents)
    except LedgerError as exc:
        raise click.ClickException(str(exc))
    click.echo(f"PASS Opened session {session.id} with float {session.opening_amount_cents}")


@sessions_group.command('close')
@click.argument('session_id')
@click.option('--counted-cents', type=int, required=True, help='Physical cash count in cents')
@click.option('--notes', default=None, help='Closing notes')
@with_appcontext
def close_session_cli(session_id, counted_cents, notes):
    """Close a session with the physical count and print the Z-report."""
    try:
        session = cash_session_service.close_cash_session(session_id, counted_cents, notes=notes)
    except LedgerError as exc:
        raise click.ClickException(str(exc))

    summary = cash_session_service.get_session_summary(session.id)
    click.echo(f"PASS Closed session {session.id}")
    click.echo(f"   Cash in:   {summary['total_in_cents']}")
    click.echo(f"   Cash out:  {summary['total_out_cents']}")
    click.echo(f"   Expected:  {session.expected_amount_cents}")
    click.echo(f"   Counted:   {session.closing_amount_cents}")
    click.echo(f"   Variance:  {session.variance_cents}")


# =============================================================================
# LEDGER AUDITS
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Reconciliation audits over the append-only logs."""


@ledger_group.command('audit-stock')
@click.option('--org-id', help='Organization ID (defaults to the only organization)')
@with_appcontext
def audit_stock_cli(org_id):
    """Compare products.stock with the sum of stock movements."""
    org = _resolve_org(org_id)
    drift = reconciliation_service.audit_stock(org.id)
    if not drift:
        click.echo("PASS Stock matches movement history")
        return
    for row in drift:
        click.echo(
            f"FAIL {row['name']} ({row['product_id']}): stored={row['stored_stock']} "
            f"movements={row['movement_stock']} drift={row['drift']}"
        )
    raise SystemExit(1)


@ledger_group.command('audit-sessions')
@click.option('--org-id', help='Organization ID (defaults to the only organization)')
@with_appcontext
def audit_sessions_cli(org_id):
    """Recompute expected balance and variance of closed sessions."""
    org = _resolve_org(org_id)
    mismatches = reconciliation_service.audit_sessions(org.id)
    if not mismatches:
        click.echo("PASS Closed sessions reconcile")
        return
    for row in mismatches:
        click.echo(
            f"FAIL session {row['session_id']}: expected stored={row['stored_expected_cents']} "
            f"recomputed={row['recomputed_expected_cents']}, variance stored={row['stored_variance_cents']} "
            f"recomputed={row['recomputed_variance_cents']}"
        )
    raise SystemExit(1)


# =============================================================================
# OUTBOX
# =============================================================================

@click.group('outbox')
def outbox_group():
    """Remote sync outbox commands."""


@outbox_group.command('status')
@click.option('--org-id', help='Limit to one organization')
@with_appcontext
def outbox_status_cli(org_id):
    """Show outbox row counts per status."""
    counts = sync_service.outbox_status(org_id)
    for status, count in counts.items():
        click.echo(f"{status:<8} {count}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sessions_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(outbox_group)
