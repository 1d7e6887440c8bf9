"""
Flask CLI commands.

Commands:
- flask init-db: create the tables on the configured database
- flask create-login: add a username/password row to the login table
"""

import click
from sqlalchemy.exc import SQLAlchemyError
from stockroom.database import get_session, create_tables
from stockroom.models import Credential


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables (local setups; production schemas are managed outside)."""
        create_tables()
        click.echo(click.style('Tables created.', fg='green'))

    @app.cli.command('create-login')
    @click.option('--username', prompt=True, help='Login username')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Login password')
    def create_login(username, password):
        """Add a credential to the login table."""
        username = username.strip()
        if not username or not password:
            click.echo(click.style('Username and password are required.', fg='red'))
            return

        session = get_session()
        if session.get(Credential, username):
            click.echo(click.style(f'A login named {username!r} already exists.', fg='red'))
            return

        try:
            session.add(Credential(username=username, password=password))
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            click.echo(click.style(f'Could not create login: {e}', fg='red'))
            return

        click.echo(click.style(f'Login {username!r} created.', fg='green'))
