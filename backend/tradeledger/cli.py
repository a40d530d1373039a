# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/tradeledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Create tables and the default admin (DEFAULT_ADMIN_* config; skipped without a password).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username clerk --email clerk@example.com --role employee
# - python -m flask users set-active --username clerk --no-active
#   Disable (and log out) or re-enable a login.
#
# Invoices:
# - python -m flask invoices refresh-status [--variant sales]
#   Re-derive status (overdue) for every invoice of one or all types.
# - python -m flask invoices next-number --variant freight
#   Show the next invoice number without consuming it.
#
# Maintenance:
# - python -m flask sessions cleanup
#   Delete expired/revoked session tokens older than the retention window.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .invoice_rules import VARIANTS, format_invoice_number, get_variant
from .models import User
from .models.auth import VALID_ROLES
from .services import invoice_service, session_service
from .services.auth_service import PasswordValidationError, UserError, create_user, set_user_active
from .services.sequence_service import peek_sequence


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create tables and the default admin user.

    Idempotent. The admin is only created when DEFAULT_ADMIN_PASSWORD is
    set and no user with DEFAULT_ADMIN_USERNAME exists yet.
    """
    click.echo("START Initializing Trade Ledger...")
    db.create_all()
    click.echo("PASS Tables created")

    username = current_app.config["DEFAULT_ADMIN_USERNAME"]
    email = current_app.config["DEFAULT_ADMIN_EMAIL"]
    password = current_app.config["DEFAULT_ADMIN_PASSWORD"]

    if not password:
        click.echo("WARN  DEFAULT_ADMIN_PASSWORD not set, skipping admin creation")
        click.echo("      Create one with: python -m flask users create --role admin")
        return

    if db.session.query(User).filter_by(username=username).first():
        click.echo(f"WARN  User '{username}' already exists, skipping...")
        return

    try:
        create_user(username=username, email=email, password=password, role="admin")
        click.echo(f"PASS Created admin user: {username} ({email})")
    except (PasswordValidationError, UserError) as e:
        click.echo(f"FAIL Could not create admin '{username}': {e}")


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


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(VALID_ROLES), default='employee', show_default=True, help='Role')
@with_appcontext
def create_user_cli(username, email, password, role):
    """
    Create a new user.

    Password must be 8+ chars with upper, lower, digit and special char.
    """
    try:
        user = create_user(username=username, email=email, password=password, role=role)
        click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except UserError as e:
        click.echo(f"FAIL Failed to create user: {e}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<10} {'Active'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<10} {active_str}")

    click.echo("="*80 + "\n")


@users_group.command('set-active')
@click.option('--username', required=True)
@click.option('--active/--no-active', default=True, show_default=True)
@with_appcontext
def set_active_cli(username, active):
    """Enable or disable a login."""
    user = db.session.query(User).filter_by(username=username).first()
    if user is None:
        click.echo(f"FAIL No such user: {username}")
        return
    try:
        set_user_active(user.id, active)
    except UserError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS {username} is now {'active' if active else 'inactive'}")


@click.group('invoices')
def invoices_group():
    """Invoice maintenance commands."""


@invoices_group.command('refresh-status')
@click.option('--variant', 'variant_key', type=click.Choice(sorted(VARIANTS)), help='Invoice type (default: all)')
@with_appcontext
def refresh_status_cli(variant_key):
    """Re-derive amounts and status so overdue invoices are flagged."""
    variants = [get_variant(variant_key)] if variant_key else list(VARIANTS.values())
    for variant in variants:
        changed = invoice_service.refresh_statuses(variant)
        click.echo(f"PASS {variant.label}: {changed} invoice(s) changed status")


@invoices_group.command('next-number')
@click.option('--variant', 'variant_key', type=click.Choice(sorted(VARIANTS)), required=True)
@with_appcontext
def next_number_cli(variant_key):
    variant = get_variant(variant_key)
    upcoming = peek_sequence(variant.counter_key) + 1
    click.echo(format_invoice_number(variant.prefix, upcoming, variant.pad))


@click.group('sessions')
def sessions_group():
    """Session token maintenance."""


@sessions_group.command('cleanup')
@with_appcontext
def cleanup_sessions_cli():
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"Deleted {deleted} expired or revoked session(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(invoices_group)
    app.cli.add_command(sessions_group)
