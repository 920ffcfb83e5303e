"""
Command line tools for evolutions.

    authflow evolutions status
    authflow evolutions apply
    authflow evolutions resolve 3

The ``authflow`` entry point builds the app with the start-up evolution
check disabled, so a database that needs evolution can still be inspected
and repaired. Under ``flask --app authflow.app:create_app`` set
EVOLUTIONS_ENABLED=false for the same effect.
"""
import logging

import click
from flask import current_app
from flask.cli import AppGroup, FlaskGroup

from .evolutions import apply_script, describe_script, evolution_script, resolve

logger = logging.getLogger(__name__)

evolutions_cli = AppGroup('evolutions', help='Inspect and apply schema evolutions.')


def _target(db_name):
    from .database import get_app_path, get_engine

    db_name = db_name or current_app.config.get('EVOLUTIONS_DEFAULT_DB') or 'default'
    return get_engine(current_app, db_name), get_app_path(current_app), db_name


@evolutions_cli.command('status')
@click.option('--db', 'db_name', default=None, help='Data source name (default: EVOLUTIONS_DEFAULT_DB).')
def status_command(db_name):
    """Show the pending evolution script."""
    engine, app_path, db_name = _target(db_name)
    script = evolution_script(engine, app_path, db_name)
    if not script:
        click.echo(f"Database '{db_name}' is up to date.")
        return
    click.echo(f"Database '{db_name}' needs evolution:\n")
    click.echo(describe_script(script))


@evolutions_cli.command('apply')
@click.option('--db', 'db_name', default=None, help='Data source name (default: EVOLUTIONS_DEFAULT_DB).')
def apply_command(db_name):
    """Apply every pending evolution."""
    engine, app_path, db_name = _target(db_name)
    script = evolution_script(engine, app_path, db_name)
    applied = apply_script(engine, db_name, script)
    click.echo(f"Applied {applied} script action(s) to '{db_name}'.")


@evolutions_cli.command('resolve')
@click.argument('revision', type=int)
@click.option('--db', 'db_name', default=None, help='Data source name (default: EVOLUTIONS_DEFAULT_DB).')
def resolve_command(revision, db_name):
    """Mark a half-applied REVISION as resolved."""
    engine, _, db_name = _target(db_name)
    resolve(engine, db_name, revision)
    click.echo(f"Revision {revision} on '{db_name}' marked as resolved.")


def _create_maintenance_app():
    from .app import create_app
    return create_app({'EVOLUTIONS_ENABLED': False})


cli = FlaskGroup(create_app=_create_maintenance_app, help='authflow management commands.')


def main():
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    cli()
