# Overview: Flask CLI command groups for bootstrap and order maintenance.

# backend/rentalshop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--branch "Main Branch"] [--admin admin]
#   Idempotent bootstrap: creates the default branch and super admin profile.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Order maintenance:
# - python -m flask orders mark-overdue
#   Move active orders past their end time to pending_return.
# - python -m flask orders recalc-balances [--order-id 12]
#   Re-derive deposit_balance and refunded amount from the payment ledger.
# - python -m flask orders recalc-totals [--order-id 12]
#   Re-derive line totals, subtotal, damage total and total_amount from items.

import click
from flask.cli import with_appcontext

from .errors import OrderError
from .extensions import db
from .models import Branch, UserProfile
from .models.directory import ROLE_SUPER_ADMIN
from .services import registry


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--branch', 'branch_name', default='Main Branch', help='Default branch name')
@click.option('--admin', 'admin_username', default='admin', help='Super admin username')
@with_appcontext
def init_system(branch_name, admin_username):
    """
    Initialize the rental shop: default branch and super admin profile.

    Safe to run repeatedly; existing rows are reused.
    """
    click.echo("START Initializing rental shop...")

    branch = db.session.query(Branch).filter_by(name=branch_name).first()
    if not branch:
        branch = Branch(name=branch_name, address="")
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    admin = db.session.query(UserProfile).filter_by(role=ROLE_SUPER_ADMIN).first()
    if not admin:
        admin = UserProfile(
            username=admin_username,
            full_name="Administrator",
            role=ROLE_SUPER_ADMIN,
            branch_id=branch.id,
        )
        db.session.add(admin)
        db.session.commit()
        click.echo(f"PASS Created super admin: {admin.username} (ID: {admin.id})")
    else:
        click.echo(f"PASS Using existing super admin: {admin.username} (ID: {admin.id})")

    click.echo("DONE Rental shop initialized.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('orders')
def orders_group():
    """Order maintenance commands."""


@orders_group.command('mark-overdue')
@with_appcontext
def mark_overdue():
    """Move active orders whose end time has passed to pending_return."""
    moved = registry.order_service().mark_overdue_orders(actor_id="cli")
    if not moved:
        click.echo("PASS No overdue orders.")
        return
    click.echo(f"PASS Marked {len(moved)} order(s) pending_return: {', '.join(str(i) for i in moved)}")


def _target_ids(order_id):
    if order_id is not None:
        return [order_id]
    return [order.id for order in registry.repository().find_orders()]


@orders_group.command('recalc-balances')
@click.option('--order-id', type=int, default=None, help='Only this order')
@with_appcontext
def recalc_balances(order_id):
    """Re-derive deposit balances from the payment ledger."""
    ledger = registry.deposit_ledger()
    failures = 0
    for target in _target_ids(order_id):
        try:
            order = ledger.recalculate_balance(target)
            click.echo(f"PASS Order {order.id}: deposit_balance {order.deposit_balance}")
        except OrderError as e:
            failures += 1
            click.echo(f"FAIL Order {target}: {e.message}")
    if failures:
        raise click.ClickException(f"{failures} order(s) failed")


@orders_group.command('recalc-totals')
@click.option('--order-id', type=int, default=None, help='Only this order')
@with_appcontext
def recalc_totals(order_id):
    """Re-derive order totals from their items and report drift."""
    service = registry.order_service()
    fixed = 0
    failures = 0
    for target in _target_ids(order_id):
        try:
            if service.recalculate_totals(target):
                fixed += 1
                click.echo(f"FIXED Order {target}")
        except OrderError as e:
            failures += 1
            click.echo(f"FAIL Order {target}: {e.message}")
    click.echo(f"PASS {fixed} order(s) corrected")
    if failures:
        raise click.ClickException(f"{failures} order(s) failed")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orders_group)
