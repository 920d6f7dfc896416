# Overview: Flask CLI command groups for bootstrap, users and session tokens.

# backend/tillsync/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: flask --app tillsync <group> <command> [options]
#
# System bootstrap:
# - flask --app tillsync system init
#   Create tables and seed demo merchants, counters and products (idempotent).
#
# Users:
# - flask --app tillsync users create --id user-1 --email ana@example.com --name "Ana Rossi"
#   Create a user and make them OWNER of every merchant.
#
# Sessions:
# - flask --app tillsync sessions issue --user-id user-1
#   Print a bearer token carrying the user's merchant claims.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services import session_service
from .services.seed_service import seed_demo_data
from .services.tenant_service import assign_default_memberships


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def system_init():
    """Create tables and seed demo data. Safe to run repeatedly."""
    db.create_all()
    created = seed_demo_data()
    click.echo(
        f"Seeded merchants={created['merchants']} counters={created['counters']} "
        f"products={created['products']}"
    )


@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--id', 'user_id', required=True, help='Identity-provider subject')
@click.option('--email', default=None)
@click.option('--name', default=None)
@with_appcontext
def users_create(user_id, email, name):
    """Create a user with OWNER membership in every merchant."""
    if db.session.get(User, user_id) is not None:
        raise click.ClickException(f"User {user_id} already exists")

    given_name, _, family_name = (name or "").partition(" ")
    user = User(
        id=user_id,
        email=email,
        name=name,
        given_name=given_name or None,
        family_name=family_name or None,
    )
    db.session.add(user)
    db.session.commit()

    memberships = assign_default_memberships(user)
    click.echo(f"Created user {user_id} with {memberships} merchant membership(s)")


@click.group('sessions')
def sessions_group():
    """Bearer session commands."""


@sessions_group.command('issue')
@click.option('--user-id', required=True)
@with_appcontext
def sessions_issue(user_id):
    """Mint a bearer token for a user and print it."""
    try:
        session, token = session_service.issue_session(user_id)
    except ValueError as exc:
        raise click.ClickException(str(exc))
    click.echo(f"merchants={','.join(session.merchant_claims) or '-'} expires={session.expires_at.isoformat()}Z")
    click.echo(token)


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sessions_group)
