# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/waterstation/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Use `flask db upgrade` for migrations.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users create-admin [--username admin --email admin@joywater.com --password ...]
#   Seed the administrator account (defaults from ADMIN_* config).
# - python -m flask users list [--all]
#   List users with role and blocked/hidden flags.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --older-than-days 30
#   Delete expired or revoked session tokens.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .errors import AppError
from .services import auth_service, session_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables are in place.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask users create-admin' to seed the administrator.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-admin')
@click.option('--username', default=None, help='Defaults to ADMIN_USERNAME')
@click.option('--email', default=None, help='Defaults to ADMIN_EMAIL')
@click.option('--password', default=None, help='Defaults to ADMIN_PASSWORD')
@with_appcontext
def create_admin(username, email, password):
    """Create the administrator account if it does not exist."""
    cfg = current_app.config
    try:
        user, created = auth_service.create_admin(
            username or cfg["ADMIN_USERNAME"],
            email or cfg["ADMIN_EMAIL"],
            password or cfg["ADMIN_PASSWORD"],
        )
    except AppError as e:
        raise click.ClickException(e.message)

    if created:
        click.echo(f"PASS Administrator created: {user.username} (ID {user.id})")
    else:
        click.echo(f"INFO Administrator already exists: {user.username} (ID {user.id})")


@users_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Include hidden users')
@with_appcontext
def list_users(show_all):
    """List users with their role and status."""
    query = db.session.query(User)
    if not show_all:
        query = query.filter(User.is_hidden.is_(False))
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<15} {'Status'}")
    click.echo("="*90)

    for user in users:
        flags = [name for name, on in (("blocked", user.is_blocked), ("hidden", user.is_hidden)) if on]
        status = ", ".join(flags) if flags else "active"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<15} {status}")

    click.echo("="*90 + "\n")


@click.group('maintenance')
def maintenance_group():
    """Housekeeping commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--older-than-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(older_than_days):
    """Delete expired or revoked session tokens older than the cutoff."""
    deleted = session_service.cleanup_expired_sessions(older_than_days=older_than_days)
    click.echo(f"Deleted {deleted} session tokens older than {older_than_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
