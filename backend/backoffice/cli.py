# Overview: Flask CLI command groups for bootstrap, ledger verification, and rollup repair.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app backoffice <group> <command> [options]
#
# System bootstrap:
# - python -m flask --app backoffice system init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
# - python -m flask --app backoffice system seed --tenant "Acme" --outlet "Main Street"
#   Idempotently create a tenant, an outlet, an owner user and both wallets.
#
# Stock ledger:
# - python -m flask --app backoffice stock verify [--outlet-id 1]
#   Compare every item's current stock with the sum of its stock moves.
#   Exits non-zero when any item drifted.
#
# Rollups:
# - python -m flask --app backoffice rollups refresh --outlet-id 1 [--month 2026-03]
#   Recompute monthly summaries from daily closures (all months when omitted).
#
# Manager PINs:
# - python -m flask --app backoffice pins set --user-id 2
#   Set a manager's approval PIN (prompts, hidden input).

import click
from flask.cli import with_appcontext

from .extensions import db
from .context import RequestContext
from .errors import LedgerError
from .models import Outlet, Tenant, User
from .services import pin_service, rollup_service, stock_service, wallet_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('seed')
@click.option('--tenant', 'tenant_name', default='Default Tenant', help='Tenant name')
@click.option('--outlet', 'outlet_name', default='Main Outlet', help='Outlet name')
@click.option('--owner', 'owner_name', default='Owner', help='Owner display name')
@with_appcontext
def seed(tenant_name, outlet_name, owner_name):
    """Create a tenant, an outlet, an owner and the outlet's wallets (idempotent)."""
    tenant = db.session.query(Tenant).filter_by(name=tenant_name).first()
    if not tenant:
        tenant = Tenant(name=tenant_name, is_active=True)
        db.session.add(tenant)
        db.session.commit()
        click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id})")
    else:
        click.echo(f"PASS Using existing tenant: {tenant.name} (ID: {tenant.id})")

    outlet = db.session.query(Outlet).filter_by(tenant_id=tenant.id, name=outlet_name).first()
    if not outlet:
        outlet = Outlet(tenant_id=tenant.id, name=outlet_name)
        db.session.add(outlet)
        db.session.commit()
        click.echo(f"PASS Created outlet: {outlet.name} (ID: {outlet.id})")
    else:
        click.echo(f"PASS Using existing outlet: {outlet.name} (ID: {outlet.id})")

    owner = db.session.query(User).filter_by(tenant_id=tenant.id, role="OWNER").first()
    if not owner:
        owner = User(tenant_id=tenant.id, name=owner_name, role="OWNER", is_active=True)
        db.session.add(owner)
        db.session.commit()
        click.echo(f"PASS Created owner: {owner.name} (ID: {owner.id})")

    ctx = RequestContext(tenant_id=tenant.id, outlet_id=outlet.id, actor_id=owner.id, role="OWNER")
    wallets = wallet_service.ensure_wallets(ctx)
    click.echo(f"PASS Wallets ready: {', '.join(sorted(wallets))}")


@click.group('stock')
def stock_group():
    """Stock ledger verification."""


@stock_group.command('verify')
@click.option('--outlet-id', type=int, default=None, help='Only check this outlet')
@with_appcontext
def verify_stock(outlet_id):
    """Check SUM(stock moves) == current stock for every item."""
    q = db.session.query(Outlet).order_by(Outlet.id.asc())
    if outlet_id is not None:
        q = q.filter(Outlet.id == outlet_id)
    outlets = q.all()
    if not outlets:
        raise click.ClickException("No outlets found")

    drifted = 0
    checked = 0
    for outlet in outlets:
        ctx = RequestContext(tenant_id=outlet.tenant_id, outlet_id=outlet.id)
        for report in stock_service.reconcile_outlet(ctx):
            checked += 1
            if not report["ok"]:
                drifted += 1
                click.echo(
                    f"FAIL outlet {outlet.id} {report['kind']} {report['id']} ({report['name']}): "
                    f"stock={report['current_stock']} ledger={report['ledger_sum']} drift={report['drift']}"
                )

    if drifted:
        raise click.ClickException(f"{drifted} of {checked} items drifted from their ledger")
    click.echo(f"PASS {checked} items match their ledger")


@click.group('rollups')
def rollups_group():
    """Rollup maintenance."""


@rollups_group.command('refresh')
@click.option('--outlet-id', type=int, required=True)
@click.option('--month', default=None, help='YYYY-MM (default: every month with activity)')
@with_appcontext
def refresh_rollups(outlet_id, month):
    """Recompute MonthlySummary rows from DailyClosure rows."""
    months = [month] if month else rollup_service.months_with_activity(outlet_id)
    if not months:
        click.echo("SKIP No daily closures for this outlet")
        return
    for value in months:
        try:
            summary = rollup_service.refresh_monthly_summary(outlet_id, value)
        except (LedgerError, ValueError) as exc:
            raise click.ClickException(str(exc))
        click.echo(
            f"PASS {value}: sales={summary.total_sales_cents} orders={summary.order_count} "
            f"days={summary.days_with_sales}"
        )


@click.group('pins')
def pins_group():
    """Manager PIN management."""


@pins_group.command('set')
@click.option('--user-id', type=int, required=True)
@click.option('--pin', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def set_pin(user_id, pin):
    """Set (or reset) a user's approval PIN and clear any lockout."""
    try:
        pin_service.set_user_pin(user_id, pin)
    except (LedgerError, ValueError) as exc:
        raise click.ClickException(str(exc))
    click.echo(f"PASS PIN set for user {user_id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(rollups_group)
    app.cli.add_command(pins_group)
