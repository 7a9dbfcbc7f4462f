# Overview: Flask CLI command groups for bootstrap, operator tooling and ledger reconciliation.

# backend/commerce_ledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create all tables (idempotent) and seed the default category points.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Members:
# - python -m flask members create --name "Ada" --email ada@example.com
# - python -m flask members subscribe 1 seller
#   Activate a plan (subscribe, seller, sponsor) for a member.
# - python -m flask members set-payout 1 acct_123 --verified
#   Record the connected payout account.
#
# Points:
# - python -m flask points set-category retail 10
#   Set points-per-scan for a business category.
#
# Tokens:
# - python -m flask tokens issue --member-id 1
# - python -m flask tokens issue --system
#   Print a signed bearer token for API calls.
#
# Ledger:
# - python -m flask ledger audit [--stale-minutes 15]
#   Check balance identities and the gateway-operation journal. Exit 1 on problems.
# - python -m flask ledger resolve 42 --outcome committed --reference re_123
#   Close an open gateway operation after checking the gateway by hand.

import sys

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Business, CategoryPointsConfig, Member, Subscription
from .errors import LedgerError
from .services import member_service, reconciliation_service, token_service


DEFAULT_CATEGORY_POINTS = {
    "retail": 10,
    "restaurant": 10,
    "services": 10,
}


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the database schema and default category points.

    Idempotent: existing tables and categories are left untouched.
    """
    click.echo("START Initializing commerce ledger...")
    db.create_all()
    click.echo("PASS Schema ready")

    created = 0
    for category, points in DEFAULT_CATEGORY_POINTS.items():
        if not db.session.query(CategoryPointsConfig).filter_by(category=category).first():
            db.session.add(CategoryPointsConfig(category=category, points_per_scan=points))
            created += 1
    db.session.commit()
    click.echo(f"PASS Seeded {created} category points config(s)")


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


@click.group('members')
def members_group():
    """Member and subscription management."""


@members_group.command('create')
@click.option('--name', 'display_name', prompt=True, help='Display name')
@click.option('--email', default=None, help='Email (unique)')
@click.option('--business', 'business_name', default=None, help='Also create a business with this name')
@click.option('--category', 'categories', multiple=True, help='Business category (repeatable)')
@with_appcontext
def create_member_cli(display_name, email, business_name, categories):
    """Create a member (optionally with a business)."""
    member = Member(display_name=display_name, email=email, points=0)
    db.session.add(member)
    db.session.flush()

    if business_name:
        business = Business(member_id=member.id, name=business_name, categories=list(categories))
        db.session.add(business)
        db.session.flush()
        click.echo(f"PASS Created business: {business.name} (ID: {business.id})")

    db.session.commit()
    click.echo(f"PASS Created member: {member.display_name} (ID: {member.id})")


@members_group.command('subscribe')
@click.argument('member_id', type=int)
@click.argument('plan')
@with_appcontext
def subscribe_cli(member_id, plan):
    """Activate a subscription plan for a member."""
    try:
        member_service.get_member(member_id)
    except LedgerError as e:
        click.echo(f"ERROR {e.message}")
        sys.exit(1)

    if member_service.has_active_plan(member_id, plan):
        click.echo(f"SKIP Member {member_id} already on plan '{plan}'")
        return
    db.session.add(Subscription(member_id=member_id, plan=plan, status="active"))
    db.session.commit()
    click.echo(f"PASS Member {member_id} subscribed to '{plan}'")


@members_group.command('set-payout')
@click.argument('member_id', type=int)
@click.argument('account_id')
@click.option('--verified/--unverified', default=False, help='Mark the account as verified')
@with_appcontext
def set_payout_cli(member_id, account_id, verified):
    """Record a member's payout account."""
    try:
        member = member_service.set_payout_destination(member_id, account_id, verified)
    except LedgerError as e:
        click.echo(f"ERROR {e.message}")
        sys.exit(1)
    status = "verified" if member.payout_verified else "unverified"
    click.echo(f"PASS Payout account {account_id} set for member {member_id} ({status})")


@click.group('points')
def points_group():
    """Points economy configuration."""


@points_group.command('set-category')
@click.argument('category')
@click.argument('points', type=click.IntRange(min=1))
@with_appcontext
def set_category_cli(category, points):
    """Set points-per-scan for a business category."""
    config = db.session.query(CategoryPointsConfig).filter_by(category=category).first()
    if config:
        config.points_per_scan = points
    else:
        db.session.add(CategoryPointsConfig(category=category, points_per_scan=points))
    db.session.commit()
    click.echo(f"PASS {category}: {points} points per scan")


@click.group('tokens')
def tokens_group():
    """Actor token issuance."""


@tokens_group.command('issue')
@click.option('--member-id', type=int, default=None, help='Member to act as')
@click.option('--system', 'system', is_flag=True, help='Issue a system-scope token')
@with_appcontext
def issue_token_cli(member_id, system):
    """Print a signed bearer token."""
    if system == (member_id is not None):
        click.echo("ERROR Pass exactly one of --member-id or --system")
        sys.exit(2)
    if member_id is not None:
        try:
            member_service.get_member(member_id)
        except LedgerError as e:
            click.echo(f"ERROR {e.message}")
            sys.exit(1)
    click.echo(token_service.issue_actor_token(member_id, system=system))


@click.group('ledger')
def ledger_group():
    """Ledger audit and reconciliation."""


@ledger_group.command('audit')
@click.option('--stale-minutes', type=int, default=None, help='Pending operations older than this are stale')
@with_appcontext
def audit_cli(stale_minutes):
    """
    Verify balance identities for every seller and list gateway operations
    that are stale or flagged for reconciliation.

    Exits 1 when any problem is found.
    """
    report = reconciliation_service.audit_ledger(stale_minutes)
    click.echo(f"LIST Checked {report['sellers_checked']} seller ledger(s)")

    for failure in report["ledger_failures"]:
        click.echo(
            f"FAIL Member {failure['member_id']}: balance={failure['balance_cents']} "
            f"sum={failure['transaction_sum_cents']} "
            f"expected={failure['expected_from_totals_cents']}"
        )
    for op in report["stale_operations"]:
        click.echo(
            f"STALE Operation {op['id']} ({op['kind']}, member {op['member_id']}, "
            f"{op['gateway_amount_cents']} cents) pending since {op['created_at']}"
        )
    for op in report["flagged_operations"]:
        click.echo(
            f"RECONCILE Operation {op['id']} ({op['kind']}, member {op['member_id']}, "
            f"ref {op['external_reference']}): {op['error_message']}"
        )

    if report["ok"]:
        click.echo("PASS Ledger consistent")
        return
    click.echo("FAIL Ledger audit found problems")
    sys.exit(1)


@ledger_group.command('resolve')
@click.argument('operation_id', type=int)
@click.option('--outcome', type=click.Choice(reconciliation_service.RESOLVE_OUTCOMES), required=True)
@click.option('--reference', default=None, help='Gateway reference (refund or transfer id)')
@with_appcontext
def resolve_cli(operation_id, outcome, reference):
    """Close an open gateway operation as committed or failed."""
    try:
        op = reconciliation_service.resolve_operation(operation_id, outcome, reference)
    except LedgerError as e:
        click.echo(f"ERROR {e.message}")
        sys.exit(1)
    click.echo(f"PASS Operation {op.id} is now {op.status}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(members_group)
    app.cli.add_command(points_group)
    app.cli.add_command(tokens_group)
    app.cli.add_command(ledger_group)
