# Overview: Flask CLI command group for bootstrap and maintenance.

# backend/crm/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default super admin.
# - python -m flask system init-admin
#   Create the default super admin only (no-op when one exists).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .services.auth_service import ensure_default_admin


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


def _report_admin(created) -> None:
    if created is None:
        click.echo("PASS Super admin already exists, nothing to do")
        return
    click.echo(f"PASS Created super admin: {created.username} (ID: {created.id})")
    if created.username == "admin" and current_app.config["DEFAULT_ADMIN_PASSWORD"] == "admin123":
        click.echo("WARN Default password in use. Change it immediately in production!")


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the CRM database.

    Creates:
    - All tables (no-op for tables that already exist)
    - The default super admin (DEFAULT_ADMIN_USERNAME / DEFAULT_ADMIN_PASSWORD)
    """
    click.echo("START Initializing CRM system...")
    db.create_all()
    click.echo("PASS Tables ready")
    _report_admin(ensure_default_admin())
    click.echo("DONE System initialized")


@system_group.command('init-admin')
@with_appcontext
def init_admin():
    """Create the default super admin if no super admin exists."""
    _report_admin(ensure_default_admin())


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
    click.echo("CREATE Creating tables...")
    db.create_all()
    click.echo("DONE Database reset. Run 'flask system init-admin' to recreate the super admin.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
