# Overview: Flask CLI command groups for bootstrap and maintenance.

# CLI Commands:
#
# system init
#   Create tables (when no migrations have run) and the super admin account.
#
# users create
#   Create a profile with a role and optional location.
#
# users list
#   List profiles with role and assigned location.
#
# locations list
#   List locations grouped by type.
#
# inventory resync-archive
#   Recompute products.is_archived from stock rows.
#
# sessions cleanup
#   Delete expired sessions and old revoked sessions.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Profile
from .roles import ROLES, ADMIN
from .services import inventory_service, location_service, session_service
from .services.auth_service import create_profile, normalize_email, PasswordValidationError
from .services.transactions import commit


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True,
              help='Password for the super admin account')
@with_appcontext
def init_system(password):
    """
    Create missing tables and the SUPER_ADMIN_EMAIL admin profile.

    The super admin password doubles as the master key for the admin portal.
    """
    click.echo("START Initializing opsdesk...")
    db.create_all()
    click.echo("PASS Tables ready")

    email = normalize_email(current_app.config.get("SUPER_ADMIN_EMAIL"))
    existing = db.session.query(Profile).filter(Profile.email == email).first()
    if existing:
        click.echo(f"WARN  Super admin '{email}' already exists, skipping...")
        return

    try:
        create_profile(email, password, role=ADMIN, full_name="Super Admin")
        commit()
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return

    click.echo(f"PASS Created super admin: {email}")


@click.group('users')
def users_group():
    """Profile inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES), prompt=True, help='Role')
@click.option('--full-name', default=None, help='Display name')
@click.option('--location-id', default=None, help='Assigned location ID')
@with_appcontext
def create_user_cli(email, password, role, full_name, location_id):
    """Create a profile. Staff created here are not forced to change password."""
    if location_id:
        try:
            location_service.get_location(location_id)
        except LookupError:
            click.echo(f"FAIL Location ID {location_id} not found")
            return

    try:
        profile = create_profile(
            email,
            password,
            role=role,
            full_name=full_name,
            assigned_location_id=location_id,
        )
        commit()
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")
        return

    click.echo(f"PASS Created user: {profile.email} with role '{profile.role}' (ID: {profile.id})")


@users_group.command('list')
@click.option('--role', type=click.Choice(ROLES), default=None, help='Filter by role')
@with_appcontext
def list_users(role):
    """List profiles with their role and location."""
    query = db.session.query(Profile)
    if role:
        query = query.filter(Profile.role == role)
    profiles = query.order_by(Profile.email.asc()).all()

    if not profiles:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<38} {'Email':<30} {'Role':<10} {'Active':<8} {'Location'}")
    click.echo("=" * 100)
    for profile in profiles:
        active_str = "Yes" if profile.is_active else "No"
        location = profile.assigned_location.name if profile.assigned_location else "-"
        click.echo(f"{profile.id:<38} {profile.email:<30} {profile.role:<10} {active_str:<8} {location}")
    click.echo("=" * 100 + "\n")


@click.group('locations')
def locations_group():
    """Location inspection commands."""


@locations_group.command('list')
@with_appcontext
def list_locations():
    """List locations, stores first."""
    locations = location_service.list_locations()
    if not locations:
        click.echo("No locations found.")
        return
    for location in locations:
        status = "" if location.is_active else " (inactive)"
        click.echo(f"{location.id}  {location.type:<16} {location.name}{status}")


@click.group('inventory')
def inventory_group():
    """Inventory maintenance commands."""


@inventory_group.command('resync-archive')
@with_appcontext
def resync_archive():
    """Archive products with no stock rows and unarchive the rest."""
    changed = inventory_service.resync_all_archive_flags()
    click.echo(f"PASS Updated archive flag on {changed} product(s)")


@click.group('sessions')
def sessions_group():
    """Session maintenance commands."""


@sessions_group.command('cleanup')
@with_appcontext
def cleanup_sessions():
    """Delete expired sessions and revoked sessions past retention."""
    removed = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Removed {removed} session(s)")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(sessions_group)
