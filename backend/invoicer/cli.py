# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/invoicer/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username alice --email alice@example.com --password "Password123!" [--role ADMIN]
#
# Document numbering:
# - python -m flask sequences list [--owner-id 1] [--year 2025]
#   Show counters (last issued value per owner/prefix/year).
# - python -m flask sequences next --owner-id 1 --type INV
#   Allocate and print a number. The counter advances; the number is not attached to a document.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import SequenceCounter, User
from .models.auth import ROLE_USER
from .services.auth_service import create_user, PasswordValidationError, VALID_ROLES
from .services.numbering_service import (
    VALID_PREFIXES,
    NumberingError,
    allocate_document_number,
    format_document_number,
)


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including numbering counters!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<8} {'Active'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<8} {active_str}")

    click.echo("="*80 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--name', default=None)
@click.option('--role', type=click.Choice(VALID_ROLES), default=ROLE_USER, show_default=True)
@with_appcontext
def create_user_command(username, email, password, name, role):
    """Create a user."""
    try:
        user = create_user(username=username, email=email, password=password, name=name, role=role)
    except (PasswordValidationError, ValueError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}, role {user.role})")


@click.group('sequences')
def sequences_group():
    """Document numbering inspection commands."""


@sequences_group.command('list')
@click.option('--owner-id', type=int, help='Filter by owner')
@click.option('--year', type=int, help='Filter by year')
@with_appcontext
def list_sequences(owner_id, year):
    """Show numbering counters."""
    query = db.session.query(SequenceCounter)
    if owner_id:
        query = query.filter_by(owner_id=owner_id)
    if year:
        query = query.filter_by(year=year)

    counters = query.order_by(SequenceCounter.owner_id, SequenceCounter.year, SequenceCounter.prefix).all()
    if not counters:
        click.echo("No counters found.")
        return

    click.echo(f"{'Owner':<7} {'Year':<6} {'Prefix':<7} {'Last':<8} {'Last number'}")
    for counter in counters:
        last_number = format_document_number(counter.prefix, counter.year, counter.last)
        click.echo(f"{counter.owner_id:<7} {counter.year:<6} {counter.prefix:<7} {counter.last:<8} {last_number}")


@sequences_group.command('next')
@click.option('--owner-id', type=int, required=True)
@click.option('--type', 'document_type', type=click.Choice(VALID_PREFIXES), required=True)
@with_appcontext
def next_sequence(owner_id, document_type):
    """Allocate a number (burns a counter value)."""
    if not db.session.get(User, owner_id):
        raise click.ClickException(f"User {owner_id} not found")
    try:
        click.echo(allocate_document_number(owner_id, document_type))
    except NumberingError as e:
        raise click.ClickException(str(e))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sequences_group)
