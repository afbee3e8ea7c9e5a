# Overview: Flask CLI command groups for bootstrap, access grants and imports.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db [--team "Team Name"]
#   Idempotent: creates tables, permissions, global default roles and a team.
#
# Users:
# - python -m flask users create --username admin --email admin@example.com --password "Password123!" --global-admin
#   Create a user (prompts if options are omitted).
# - python -m flask users list
#
# Access grants:
# - python -m flask access grant --user-id 2 --entity-type brand --entity-id 1
# - python -m flask access revoke --user-id 2 --entity-type brand --entity-id 1
# - python -m flask access list [--user-id 2]
#
# Imports:
# - python -m flask import test-connection
# - python -m flask import sync [--date 2024-01-31 | --from 2024-01-01 --to 2024-01-31 | --last-days 7]
#       [--limit 500] [--only orders|expenses] [--chunk 100] [--incremental] [--auto-create]
# - python -m flask import status
#   Show checkpoints and leases per import kind.

import click
from flask.cli import with_appcontext

from .entities import EntityKind, ReferenceHandlingPolicy
from .errors import ConfigurationError, ConnectivityError, ImportAlreadyRunning
from .extensions import db
from .models import Team, User
from .services import access_service, permission_service, sync_state_service
from .services.access_service import GrantError
from .services.auth_service import PasswordValidationError, create_user
from .services.date_range import DateRangeError, format_range, resolve_date_range
from .services.external_source import ExternalSource
from .services.import_orchestrator import ImportOrchestrator, parse_only


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@click.option('--team', 'team_name', default='Default Team', help='Team to create if none exists')
@with_appcontext
def init_db(team_name):
    """Create tables, permissions and default roles. Safe to re-run."""
    click.echo("START Initializing database...")
    db.create_all()

    perm_count = permission_service.initialize_permissions()
    click.echo(f"PASS Created {perm_count} permissions")

    roles = permission_service.ensure_default_roles()
    click.echo(f"PASS Global roles: {', '.join(sorted(roles))}")

    team = db.session.query(Team).first()
    if not team:
        team = Team(name=team_name)
        db.session.add(team)
        db.session.commit()
        click.echo(f"PASS Created team: {team.name} (ID: {team.id})")
    else:
        click.echo(f"PASS Using existing team: {team.name} (ID: {team.id})")

    roles = permission_service.ensure_default_roles(team.id)
    click.echo(f"PASS Team roles: {', '.join(sorted(roles))}")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--team-id', type=int, help='Team ID (none for global admins)')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['viewer', 'manager']), help='Role within the team')
@click.option('--global-admin', is_flag=True, help='Bypass all access checks')
@with_appcontext
def create_user_cli(team_id, username, email, password, role, global_admin):
    try:
        user = create_user(username, email, password, team_id=team_id, is_global_admin=global_admin)
    except (PasswordValidationError, ValueError) as e:
        raise click.ClickException(str(e))

    if role:
        roles = permission_service.ensure_default_roles(team_id)
        permission_service.assign_role(user.id, roles[role])

    click.echo(f"PASS Created user {user.username} (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        flags = []
        if user.is_global_admin:
            flags.append("global-admin")
        if not user.is_active:
            flags.append("inactive")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        click.echo(f"{user.id}: {user.username} <{user.email}> team={user.team_id}{suffix}")


@click.group('access')
def access_group():
    """Row-level access grants."""


_ENTITY_CHOICE = click.Choice([kind.value for kind in EntityKind])


@access_group.command('grant')
@click.option('--user-id', type=int, required=True)
@click.option('--entity-type', type=_ENTITY_CHOICE, required=True)
@click.option('--entity-id', type=int, required=True)
@click.option('--level', help='Free-form access level label')
@click.option('--guest', is_flag=True, help='Mark as guest access')
@with_appcontext
def grant_cli(user_id, entity_type, entity_id, level, guest):
    try:
        grant = access_service.grant_access(
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            level=level,
            is_guest=guest,
        )
    except GrantError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Grant {grant.id}: user {user_id} -> {entity_type} {entity_id}")


@access_group.command('revoke')
@click.option('--user-id', type=int, required=True)
@click.option('--entity-type', type=_ENTITY_CHOICE, required=True)
@click.option('--entity-id', type=int, required=True)
@with_appcontext
def revoke_cli(user_id, entity_type, entity_id):
    if not access_service.revoke_access_for(user_id=user_id, entity_type=entity_type, entity_id=entity_id):
        raise click.ClickException("No live grant found")
    click.echo(f"PASS Revoked user {user_id} -> {entity_type} {entity_id}")


@access_group.command('list')
@click.option('--user-id', type=int)
@click.option('--all', 'include_deleted', is_flag=True, help='Include revoked grants')
@with_appcontext
def list_grants_cli(user_id, include_deleted):
    grants = access_service.list_grants(user_id=user_id, include_deleted=include_deleted)
    if not grants:
        click.echo("No grants found")
        return
    for grant in grants:
        state = "" if grant.is_active else " (revoked)"
        click.echo(f"{grant.id}: user {grant.user_id} -> {grant.entity_type.value} {grant.entity_id}{state}")


@click.group('import')
def import_group():
    """External database import commands."""


@import_group.command('test-connection')
@with_appcontext
def test_connection_cli():
    try:
        connected = ExternalSource.from_app().test_connection()
    except ConfigurationError as e:
        raise click.ClickException(str(e))
    if not connected:
        raise click.ClickException("Failed to connect to external database")
    click.echo("PASS External database connection successful")


@import_group.command('sync')
@click.option('--date', 'single_date', help='Single date to import (Y-m-d)')
@click.option('--from', 'from_date', help='Start date for range (Y-m-d)')
@click.option('--to', 'to_date', help='End date for range (Y-m-d)')
@click.option('--last-days', type=int, help='Import the last N days')
@click.option('--limit', type=int, help='Import the newest N records (by count, not date)')
@click.option('--only', type=click.Choice(['orders', 'expenses']), help='Import only one stream')
@click.option('--chunk', type=click.IntRange(1, 1000), default=100, show_default=True, help='Rows per chunk')
@click.option('--incremental', is_flag=True, help='Resume after the stored checkpoint')
@click.option('--auto-create', is_flag=True, help='Create missing products and expense types')
@with_appcontext
def sync_cli(single_date, from_date, to_date, last_days, limit, only, chunk, incremental, auto_create):
    """Import and sync orders and expenses from the external database."""
    click.echo("START Importing from external database...")

    try:
        date_from, date_to = resolve_date_range(
            single_date=single_date, from_date=from_date, to_date=to_date, last_days=last_days,
        )
    except DateRangeError as e:
        raise click.BadParameter(str(e))

    if incremental:
        click.echo("MODE incremental (after stored checkpoint)")
    elif limit:
        click.echo(f"MODE last {limit} records")
    else:
        click.echo(f"MODE date range {format_range(date_from, date_to)}")

    policy = ReferenceHandlingPolicy.AUTO_CREATE if auto_create else ReferenceHandlingPolicy.SKIP_ON_MISSING

    try:
        orchestrator = ImportOrchestrator.from_app(chunk_size=chunk)
        results = orchestrator.sync(
            parse_only(only),
            policy=policy,
            from_date=date_from,
            to_date=date_to,
            limit=limit,
            incremental=incremental,
        )
    except (ConfigurationError, ConnectivityError, ImportAlreadyRunning) as e:
        raise click.ClickException(str(e))

    click.echo("\n=== Import Summary ===")
    for kind, stats in results.items():
        counts = stats.to_dict()
        click.echo(
            f"{kind.capitalize():<9} created={counts['created']} updated={counts['updated']} "
            f"skipped={counts['skipped']} errors={counts['errors']}"
        )
    if any(stats.cancelled for stats in results.values()):
        click.echo("WARN Import cancelled before completion")
    else:
        click.echo("PASS Import completed")


@import_group.command('status')
@with_appcontext
def status_cli():
    states = sync_state_service.list_states()
    if not states:
        click.echo("No imports have run yet")
        return
    for state in states:
        lease = f" locked by {state.locked_by}" if state.locked_by else ""
        click.echo(
            f"{state.entity_type.value}: last date {state.last_imported_date}, "
            f"last id {state.last_external_id}, synced {state.last_sync_at}{lease}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(access_group)
    app.cli.add_command(import_group)
