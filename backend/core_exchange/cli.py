# Overview: Flask CLI command groups for bootstrap, catalog setup, and ledger inspection.

# backend/core_exchange/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog setup:
# - python -m flask catalog add-product --name "Alternator 90A" --sku ALT-90 --base-price-cents 50000 --carcass-value-cents 10000
#   Register a product with its carcass value.
# - python -m flask catalog add-client --name "Auto Pecas Silva" --document "12.345.678/0001-90" --seller-id 7
#   Register a client.
#
# Ledger inspection:
# - python -m flask ledger outstanding --client-id 1
#   List the cores a client still owes.
# - python -m flask ledger overdue [--days 30]
#   List open orders past the overdue threshold.

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import IntegrityError

from .extensions import db
from .models import Client, Product
from .services import ledger_service, order_service, status_service
from .validation import MAX_PRICE_CENTS


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete.")


@click.group('catalog')
def catalog_group():
    """Product and client setup commands."""


@catalog_group.command('add-product')
@click.option('--name', required=True, help='Product name')
@click.option('--sku', required=True, help='Unique SKU')
@click.option('--base-price-cents', type=click.IntRange(1, MAX_PRICE_CENTS), required=True)
@click.option('--carcass-value-cents', type=click.IntRange(0, MAX_PRICE_CENTS), required=True)
@with_appcontext
def add_product(name, sku, base_price_cents, carcass_value_cents):
    """Register a product and its carcass value."""
    product = Product(
        name=name.strip(),
        sku=sku.strip(),
        base_price_cents=base_price_cents,
        carcass_value_cents=carcass_value_cents,
    )
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f"SKU {sku!r} already exists")

    click.echo(f"PASS Product created: id={product.id} sku={product.sku} name={product.name}")


@catalog_group.command('add-client')
@click.option('--name', required=True, help='Client name')
@click.option('--document', default=None, help='Tax id')
@click.option('--seller-id', type=int, default=None, help='Responsible seller')
@with_appcontext
def add_client(name, document, seller_id):
    """Register a client."""
    client = Client(name=name.strip(), document=document, seller_id=seller_id)
    db.session.add(client)
    db.session.commit()
    click.echo(f"PASS Client created: id={client.id} name={client.name}")


@click.group('ledger')
def ledger_group():
    """Core-debt inspection commands."""


@ledger_group.command('outstanding')
@click.option('--client-id', type=int, required=True)
@with_appcontext
def outstanding(client_id):
    """List the cores a client still owes, oldest sale first."""
    client = db.session.get(Client, client_id)
    if not client:
        raise click.ClickException(f"Client {client_id} not found")

    debts = ledger_service.get_outstanding_debts_by_client(client_id)
    if not debts:
        click.echo(f"No outstanding cores for {client.name}.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ITEM':<6} {'ORDER':<16} {'STATUS':<16} {'PRODUCT':<40} {'QTY':>5} {'DEBT':>5}")
    click.echo("="*100)
    for item in debts:
        status = status_service.derived_order_status(item.order)
        click.echo(
            f"{item.id:<6} {item.order.order_number:<16} {status:<16} "
            f"{item.product_name[:40]:<40} {item.quantity:>5} {item.core_debt:>5}"
        )
    click.echo("="*100)
    click.echo(f"Total cores owed: {sum(item.core_debt for item in debts)}\n")


@ledger_group.command('overdue')
@click.option('--days', type=click.IntRange(min=0), default=None, help='Threshold override (default: OVERDUE_AFTER_DAYS)')
@with_appcontext
def overdue(days):
    """List open orders past the overdue threshold."""
    orders = order_service.list_overdue_orders(overdue_after_days=days)
    if not orders:
        click.echo("No overdue orders.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ORDER':<16} {'CLIENT':<8} {'SALE DATE':<22} {'DAYS':>6} {'CORES':>6}")
    click.echo("="*80)
    for order in orders:
        cores = sum(item.core_debt for item in order.items)
        click.echo(
            f"{order.order_number:<16} {order.client_id:<8} {order.sale_date.isoformat(timespec='seconds'):<22} "
            f"{status_service.days_pending(order):>6} {cores:>6}"
        )
    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(ledger_group)
