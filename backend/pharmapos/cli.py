# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create missing tables and the pharmacy configuration row (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system wipe --yes
#   Delete sales, movements, products and users; keep the pharmacy configuration.
#
# User inspection/bootstrap:
# - python -m flask users create-admin --username admin --name Ana --password "Password123!"
#   Create an ADMIN account (prompts if options are omitted). Works on a non-empty database.
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users cleanup-sessions
#   Delete expired and revoked session tokens older than 30 days.
#
# Snapshot:
# - python -m flask snapshot reconcile
#   Full refetch from the record store (writes the fallback file if configured).
# - python -m flask snapshot export PATH
#   Write the current store state as a fallback snapshot file (no credentials).

import click
from flask import current_app
from flask.cli import with_appcontext

from .domain import UserRole
from .extensions import db
from .models import User, Product, Sale, Movement, SessionToken
from .services import session_service
from .services.auth_service import PasswordValidationError
from .services.config_service import ensure_config
from .services.snapshot_service import (
    SnapshotUnavailableError,
    StateSnapshot,
    reconcile,
    save_fallback,
)
from .services.user_service import create_user
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables and the configuration singleton."""
    db.create_all()
    config = ensure_config()
    click.echo(f"PASS Schema ready. Pharmacy: {config.name}")
    if db.session.query(User).count() == 0:
        click.echo("     No users yet. Register the first administrator or run 'flask users create-admin'.")


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

    click.echo("PASS Database reset complete. Register the first administrator to start.")


@system_group.command('wipe')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def wipe_data(yes):
    """
    Clear sales, movements, products and users.

    The pharmacy configuration is kept. Registration reopens afterwards.
    """
    if not yes:
        click.confirm("WARN This will delete all sales, movements, products and users. Continue?", abort=True)

    counts = {}
    for model in (Sale, Movement, Product, SessionToken, User):
        counts[model.__tablename__] = db.session.query(model).delete(synchronize_session=False)
    db.session.commit()

    current_app.logger.warning("Database wiped: %s", counts)
    for table, count in counts.items():
        click.echo(f"DELETE  {table}: {count}")
    click.echo("PASS Wipe complete.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-admin')
@click.option('--username', prompt=True, help='Username')
@click.option('--name', prompt=True, help='First name')
@click.option('--last-name', default='', help='Last name')
@click.option('--document-id', default='', help='Identity document number')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_admin_cli(username, name, last_name, document_id, password):
    """
    Create an ADMIN account.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user({
            "username": username,
            "name": name,
            "lastName": last_name,
            "documentId": document_id,
            "password": password,
            "role": UserRole.ADMIN,
        })
        click.echo(f"PASS Created ADMIN: {user.username} (ID: {user.id})")
        click.echo("SECURITY Password securely hashed with bcrypt")

    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with role, modules and active status."""
    users = db.session.query(User).order_by(User.username).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<30} {'Role':<12} {'Active':<8} {'Modules'}")
    click.echo("="*100)

    for user in users:
        active_str = "Yes" if user.active else "No"
        modules_str = ", ".join(user.allowed_modules or []) or "none"
        click.echo(f"{user.id:<5} {user.username:<20} {user.full_name:<30} {user.role:<12} {active_str:<8} {modules_str}")

    click.echo("="*100 + "\n")


@users_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    """Delete expired and revoked session tokens older than 30 days."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} session tokens")


@click.group('snapshot')
def snapshot_group():
    """In-memory snapshot and fallback file commands."""


@snapshot_group.command('reconcile')
@with_appcontext
def reconcile_cli():
    """Full refetch from the record store."""
    try:
        snapshot = reconcile()
    except SnapshotUnavailableError as e:
        click.echo(f"FAIL {str(e)}")
        raise SystemExit(1)

    click.echo(
        f"PASS Snapshot from {snapshot.source}: {len(snapshot.users)} users, "
        f"{len(snapshot.products)} products, {len(snapshot.sales)} sales, "
        f"{len(snapshot.movements)} movements"
    )


@snapshot_group.command('export')
@click.argument('path', type=click.Path(dir_okay=False))
@with_appcontext
def export_cli(path):
    """Write a fallback snapshot file (credentials and sessions excluded)."""
    snapshot = StateSnapshot()
    try:
        reconcile(snapshot)
    except SnapshotUnavailableError as e:
        click.echo(f"FAIL {str(e)}")
        raise SystemExit(1)

    save_fallback(path, snapshot)
    click.echo(f"PASS Snapshot written to {path}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(snapshot_group)
