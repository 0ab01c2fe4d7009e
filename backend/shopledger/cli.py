# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# - flask --app shopledger system init
#   Idempotent bootstrap: tables, a default shop and admin/manager/cashier users.
# - flask --app shopledger system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - flask --app shopledger users create --username alice --role manager
#   Create a staff user.
# - flask --app shopledger sessions issue --username alice
#   Issue a bearer token for a user (prints the plaintext token once).
# - flask --app shopledger sessions revoke --token <token>
#   Revoke an active bearer token.
# - flask --app shopledger inventory low-stock [--shop-id 1]
#   Print records at or below their product's min_stock.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Shop, User
from .models.auth import ROLES, ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from .services import inventory_service, session_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--shop', 'shop_name', default='Main Shop', help='Default shop name')
@with_appcontext
def init_system(shop_name):
    """
    Create tables, a default shop and one user per role (admin, manager, cashier).

    Safe to run repeatedly.
    """
    click.echo("START Initializing shopledger...")
    db.create_all()

    shop = db.session.query(Shop).first()
    if not shop:
        shop = Shop(name=shop_name, code="MAIN")
        db.session.add(shop)
        db.session.commit()
        click.echo(f"PASS Created default shop: {shop.name} (ID: {shop.id})")
    else:
        click.echo(f"PASS Using existing shop: {shop.name} (ID: {shop.id})")

    for username, role in (("admin", ROLE_ADMIN), ("manager", ROLE_MANAGER), ("cashier", ROLE_CASHIER)):
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"SKIP User exists: {username}")
            continue
        db.session.add(User(username=username, email=f"{username}@shopledger.local", role=role))
        db.session.commit()
        click.echo(f"PASS Created user: {username} ({role})")

    click.echo("DONE")


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

    click.echo("DONE")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', default=None)
@click.option('--role', type=click.Choice(ROLES), default=ROLE_CASHIER, show_default=True)
@with_appcontext
def create_user_cmd(username, email, role):
    """Create a staff user."""
    if db.session.query(User).filter_by(username=username).first():
        raise click.ClickException(f"User already exists: {username}")
    user = User(username=username, email=email, role=role)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user {user.username} (ID: {user.id}, role: {user.role})")


@click.group('sessions')
def sessions_group():
    """Session token commands."""


@sessions_group.command('issue')
@click.option('--username', required=True)
@with_appcontext
def issue_session_cmd(username):
    """Issue a bearer token. The plaintext is shown once and never stored."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        raise click.ClickException(f"User not found: {username}")
    try:
        session, token = session_service.create_session(user.id)
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"Token (expires {session.expires_at.isoformat()}Z):")
    click.echo(token)


@sessions_group.command('revoke')
@click.option('--token', required=True)
@click.option('--reason', default='Revoked by operator', show_default=True)
@with_appcontext
def revoke_session_cmd(token, reason):
    """Revoke an active bearer token."""
    if not session_service.revoke_session(token, reason=reason):
        raise click.ClickException("No active session for that token")
    click.echo("PASS Session revoked")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('low-stock')
@click.option('--shop-id', type=int, default=None)
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def low_stock_cmd(shop_id, limit):
    """List records at or below their product's min_stock."""
    result = inventory_service.list_low_stock(shop_id=shop_id, limit=limit)
    for row in result["items"]:
        shop_name = row["shop"]["name"] if row["shop"] else "-"
        click.echo(
            f"{row['stock_status']:<13} {row['sku']:<16} {row['name']:<32} "
            f"{shop_name:<20} available={row['current_stock']} min={row['min_stock']}"
        )
    summary = result["summary"]
    click.echo(
        f"\nTOTAL {summary['total_low_stock_items']} "
        f"(out of stock: {summary['out_of_stock_count']}, low: {summary['low_stock_count']})"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sessions_group)
    app.cli.add_command(inventory_group)
