# Overview: Flask CLI command groups for bootstrap and inventory reports.

# backend/rentstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create demo products, stock, and rental units (requires DEMO_SEED_ENABLED=true or --force).
#
# Reports:
# - python -m flask stock low
#   List stock entries at or below their minimum quantity.
# - python -m flask rentals overdue [--as-of 2026-01-31]
#   List active rentals past their end date with the penalty accrued so far.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Product
from .models.catalog import STOCK_KIND_COUNTABLE, STOCK_KIND_UNIT_TRACKED
from .services import asset_service, catalog_service, rental_service, stock_service
from .validation import ValidationError, optional_datetime

SEED_ACTOR = "system"

DEMO_COUNTABLE = [
    {"sku": "CABLE-HDMI-2M", "name": "HDMI Cable 2m", "price": "12.50", "quantity": 40, "min_quantity": 10},
    {"sku": "GAFFER-TAPE", "name": "Gaffer Tape Roll", "price": "9.99", "quantity": 6, "min_quantity": 8},
    {"sku": "AA-BATTERY-4", "name": "AA Battery 4-pack", "price": "5.00", "quantity": 100, "min_quantity": 20},
]

DEMO_UNIT_TRACKED = [
    {"sku": "CAM-FX3", "name": "Cinema Camera FX3", "daily_rental_rate": "150.00", "asset_code": "FX3", "count": 3},
    {"sku": "LIGHT-LED-600", "name": "LED Panel 600", "daily_rental_rate": "45.00", "asset_code": "LED600", "count": 6},
]


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
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()
    click.echo("BUILD Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset complete")


@system_group.command('seed-demo')
@click.option('--force', is_flag=True, help='Seed even when DEMO_SEED_ENABLED is false')
@with_appcontext
def seed_demo(force):
    """
    Create demo products with stock and rental units.

    Products whose SKU already exists are skipped, so the command can be re-run.
    """
    if not (force or current_app.config.get("DEMO_SEED_ENABLED")):
        raise click.ClickException("Demo seeding is disabled (set DEMO_SEED_ENABLED=true or pass --force)")

    db.create_all()

    for item in DEMO_COUNTABLE:
        if db.session.query(Product).filter_by(sku=item["sku"]).first():
            click.echo(f"WARN  Product '{item['sku']}' already exists, skipping...")
            continue
        product = catalog_service.create_product(
            {"sku": item["sku"], "name": item["name"], "stock_kind": STOCK_KIND_COUNTABLE, "price": item["price"]},
            actor=SEED_ACTOR,
        )
        stock_service.upsert_stock(
            product.id,
            quantity=item["quantity"],
            min_quantity=item["min_quantity"],
            actor=SEED_ACTOR,
        )
        click.echo(f"PASS Created {product.sku} with {item['quantity']} in stock")

    for item in DEMO_UNIT_TRACKED:
        if db.session.query(Product).filter_by(sku=item["sku"]).first():
            click.echo(f"WARN  Product '{item['sku']}' already exists, skipping...")
            continue
        product = catalog_service.create_product(
            {
                "sku": item["sku"],
                "name": item["name"],
                "stock_kind": STOCK_KIND_UNIT_TRACKED,
                "daily_rental_rate": item["daily_rental_rate"],
            },
            actor=SEED_ACTOR,
        )
        units = asset_service.create_batch(
            product.id,
            asset_code=item["asset_code"],
            count=item["count"],
            actor=SEED_ACTOR,
        )
        click.echo(f"PASS Created {product.sku} with {len(units)} units ({item['asset_code']})")

    click.echo("DONE Demo data ready")


@click.group('stock')
def stock_group():
    """Stock ledger reports."""


@stock_group.command('low')
@with_appcontext
def stock_low():
    """List stock entries at or below their minimum quantity."""
    entries = stock_service.list_low_stock()
    if not entries:
        click.echo("PASS No low stock")
        return

    click.echo(f"{'SKU':<20} {'Product':<30} {'Qty':>6} {'Min':>6}")
    click.echo("-" * 65)
    for entry in entries:
        product = entry.product
        click.echo(f"{product.sku:<20} {product.name[:30]:<30} {entry.quantity:>6} {entry.min_quantity:>6}")
    click.echo(f"\nTotal: {len(entries)} low stock entries")


@click.group('rentals')
def rentals_group():
    """Rental workflow reports."""


@rentals_group.command('overdue')
@click.option('--as-of', 'as_of', default=None, help='ISO date/datetime (default: now)')
@with_appcontext
def rentals_overdue(as_of):
    """List active rentals past their end date with the penalty accrued so far."""
    try:
        as_of_dt = optional_datetime(as_of, field="as-of")
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint="--as-of")

    rentals = rental_service.list_overdue_rentals(as_of_dt)

    if not rentals:
        click.echo("PASS No overdue rentals")
        return

    click.echo(f"{'Rental':<22} {'Customer':<25} {'End date':<22} {'Penalty':>10}")
    click.echo("-" * 82)
    for rental in rentals:
        click.echo(
            f"{rental['rental_number']:<22} {rental['customer_name'][:25]:<25} "
            f"{rental['end_date']:<22} {rental['penalty_amount']:>10.2f}"
        )
    click.echo(f"\nTotal: {len(rentals)} overdue rentals")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(rentals_group)
