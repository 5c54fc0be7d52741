# Overview: Flask CLI command groups for bootstrap, inspection, and the liveness monitor.

# backend/vendsys/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent). Use `flask db upgrade` in deployed environments.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --email tech@example.com --name "Tech" --password "Password123!" --role technician
#   Create a back-office user (prompts if options are omitted).
# - python -m flask users check-login --email tech@example.com
#   Verify a password against the stored bcrypt hash.
# - python -m flask users list
#   List users with role and alert preferences.
#
# Machines:
# - python -m flask machines register VM001 --location "Lobby"
# - python -m flask machines list [--status online]
#
# Liveness monitor:
# - python -m flask monitor sweep [--tolerance 7]
#   Run one sweep now and print the outcome.
# - python -m flask monitor run [--interval 5]
#   Run the sweep every N minutes in the foreground (Ctrl+C to stop).

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import VendSysError
from .extensions import db
from .models.auth import VALID_ROLES
from .services import auth_service, machine_service, monitor_service
from .services.scheduler import MonitorScheduler
from .validation import MACHINE_STATUSES, ValidationError
from .time_utils import to_utc_z


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.confirm("This deletes ALL data. Continue?", abort=True)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), prompt=True, help='Role')
@click.option('--no-offline-alerts', is_flag=True, help='Opt out of machine-offline emails')
@with_appcontext
def create_user_cli(email, name, password, role, no_offline_alerts):
    try:
        user = auth_service.create_user(
            email=email,
            name=name,
            password=password,
            role=role,
            notify_machine_offline=not no_offline_alerts,
        )
    except (ValidationError, VendSysError) as exc:
        raise click.ClickException(str(exc))
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('list')
@with_appcontext
def list_users_cli():
    users = auth_service.list_users()
    if not users:
        click.echo("No users found")
        return
    for u in users:
        alerts = "offline-alerts" if u.notify_email_machine_offline else "no-alerts"
        click.echo(f"{u.id:>4}  {u.email:<40} {u.role:<11} {alerts}")


@users_group.command('check-login')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, help='Password')
@with_appcontext
def check_login_cli(email, password):
    """Verify a user's credentials (active accounts only)."""
    user = auth_service.authenticate(email, password)
    if user is None:
        raise click.ClickException("Invalid credentials or inactive user")
    click.echo(f"PASS {user.email} can log in (role: {user.role})")


@click.group('machines')
def machines_group():
    """Machine inspection commands."""


@machines_group.command('register')
@click.argument('machine_id')
@click.option('--location', required=True, help='Location label')
@click.option('--model', 'model_name', help='Hardware model')
@with_appcontext
def register_machine_cli(machine_id, location, model_name):
    payload = {"machine_id": machine_id, "location": location}
    if model_name:
        payload["model"] = model_name
    try:
        machine = machine_service.register_machine(payload)
    except (ValidationError, VendSysError) as exc:
        raise click.ClickException(str(exc))
    click.echo(f"PASS Registered machine {machine.machine_id}")


@machines_group.command('list')
@click.option('--status', type=click.Choice(list(MACHINE_STATUSES)), help='Filter by status')
@with_appcontext
def list_machines_cli(status):
    machines = machine_service.list_machines(status=status)
    if not machines:
        click.echo("No machines found")
        return
    for m in machines:
        click.echo(f"{m.machine_id:<16} {m.status:<12} {to_utc_z(m.last_heartbeat) or '-'}")


@click.group('monitor')
def monitor_group():
    """Liveness monitor commands."""


@monitor_group.command('sweep')
@click.option('--tolerance', type=int, help='Heartbeat tolerance in minutes (default: config)')
@with_appcontext
def sweep_cli(tolerance):
    """Run one liveness sweep."""
    try:
        result = monitor_service.try_sweep(tolerance_minutes=tolerance)
    except VendSysError as exc:
        raise click.ClickException(str(exc))
    if result is None:
        raise click.ClickException("A sweep is already running")
    click.echo(f"Cutoff: {to_utc_z(result.cutoff)}")
    click.echo(f"Selected: {len(result.selected)}  Offline: {len(result.transitioned)}  "
               f"Alerted: {len(result.alerted)}  Recovered: {len(result.recovered)}  "
               f"Failed: {len(result.failed)}")
    for machine_id in result.transitioned:
        click.echo(f"  OFFLINE {machine_id}")


@monitor_group.command('run')
@click.option('--interval', type=int, help='Minutes between sweeps (default: config)')
@with_appcontext
def run_monitor_cli(interval):
    """Run the liveness sweep on a fixed interval in the foreground."""
    app = current_app._get_current_object()
    minutes = interval or app.config.get("MONITOR_INTERVAL_MINUTES", 5)
    scheduler = MonitorScheduler(app, minutes * 60)
    click.echo(f"START Liveness monitor every {minutes} minute(s)")
    try:
        scheduler.run_once()
        scheduler.run()
    except KeyboardInterrupt:
        scheduler.stop()
        click.echo("STOP Liveness monitor")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(machines_group)
    app.cli.add_command(monitor_group)
