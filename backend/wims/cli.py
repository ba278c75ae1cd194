# Overview: Flask CLI command groups for bootstrap, repair and alerting.

# Commands (run from the backend directory with FLASK_APP=wsgi.py):
#
# - flask system init [--admin-email admin@wims.local] [--password "Password123!"]
#   Create tables (if missing) and the default admin/manager/clerk users.
# - flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# - flask users list
# - flask users create --name "Jane" --email jane@wims.local --password "..." --role manager
#
# - flask stock recalc [--product-id 7]
#   Rebuild current_stock from batches, adjustments and order lines.
#
# - flask alerts scan [--days 30] [--threshold 10]
#   Publish lowStockAlert / nearExpiryAlert notifications for the current catalog.
#
# - flask sessions cleanup
#   Delete sessions expired or revoked more than 30 days ago.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import ROLE_ADMIN, ROLE_CLERK, ROLE_MANAGER, USER_ROLES, Product, User
from .services import auth_service, batch_service, notification_service, session_service, stock_service

DEFAULT_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@wims.local', help='Email for the default admin')
@click.option('--password', default=DEFAULT_PASSWORD, help='Password for the default users')
@with_appcontext
def init_system(admin_email, password):
    """
    Idempotent bootstrap: tables plus one user per role.

    SECURITY: Change the default passwords immediately in production!
    """
    click.echo("START Initializing WIMS...")
    db.create_all()

    defaults = [
        ("Administrator", admin_email, ROLE_ADMIN),
        ("Manager", "manager@wims.local", ROLE_MANAGER),
        ("Clerk", "clerk@wims.local", ROLE_CLERK),
    ]
    for name, email, role in defaults:
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"PASS User exists: {email}")
            continue
        try:
            auth_service.create_user(name=name, email=email, password=password, role=role)
        except ServiceError as e:
            click.echo(f"FAIL {email}: {e}")
            raise SystemExit(1)
        click.echo(f"PASS Created {role}: {email}")

    click.echo("DONE System initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('list')
@with_appcontext
def list_users_cli():
    users = auth_service.list_users()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.email:<32} {user.role:<8} {status}")


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(USER_ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(name, email, password, role):
    """
    Create a user.

    Password must have 8+ characters with upper, lower, digit and special.
    """
    try:
        user = auth_service.create_user(name=name, email=email.strip().lower(), password=password, role=role)
    except ServiceError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Created user {user.email} ({user.role}), id={user.id}")


@click.group('stock')
def stock_group():
    """Stock projection maintenance."""


@stock_group.command('recalc')
@click.option('--product-id', type=int, default=None, help='Only this product')
@with_appcontext
def recalc_stock(product_id):
    """Rebuild current_stock from the ledger."""
    if product_id is not None:
        total = stock_service.refresh_product_stock(product_id)
        if total is None:
            click.echo(f"FAIL Could not recalculate product {product_id}")
            raise SystemExit(1)
        click.echo(f"PASS Product {product_id}: current_stock={total}")
        return

    changed = stock_service.recalculate_all()
    for row in changed:
        click.echo(f"FIX  {row['sku']}: {row['before']} -> {row['after']}")
    click.echo(f"DONE {len(changed)} product(s) corrected")


@click.group('alerts')
def alerts_group():
    """Notification scans."""


@alerts_group.command('scan')
@click.option('--days', type=int, default=None, help='Near-expiry window (default NEAR_EXPIRY_DAYS)')
@click.option('--threshold', type=int, default=None, help='Low-stock threshold (default LOW_STOCK_THRESHOLD)')
@with_appcontext
def scan_alerts(days, threshold):
    """Publish low-stock and near-expiry alerts."""
    days = days if days is not None else current_app.config["NEAR_EXPIRY_DAYS"]
    threshold = threshold if threshold is not None else current_app.config["LOW_STOCK_THRESHOLD"]

    products = db.session.query(Product).filter(Product.current_stock < threshold).order_by(Product.id).all()
    low = notification_service.notify_low_stock(products, threshold)
    near = notification_service.notify_near_expiry(batch_service.list_near_expiry(days))
    click.echo(f"PASS Published {low} low-stock and {near} near-expiry alert(s)")


@click.group('sessions')
def sessions_group():
    """Session maintenance."""


@sessions_group.command('cleanup')
@with_appcontext
def cleanup_sessions():
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} session(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(alerts_group)
    app.cli.add_command(sessions_group)
