# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/restops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create a demo menu, stock and dining room (skipped if products already exist).
#
# Inventory:
# - python -m flask inventory recompute [--product-id 3] [--repair]
#   Compare cached stock with the movement ledger; --repair rewrites the cache.
#   Exits with status 1 when drift is found and not repaired.
# - python -m flask inventory low-stock
#   List active products at or below their alert threshold.
#
# Tables:
# - python -m flask tables reconcile
#   Recompute every table's status from reservations and active orders.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models import Product
from .services.registry import get_services


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for sample data.")


DEMO_PRODUCTS = [
    {"name": "Margherita", "category": "pizzas", "unit": "portion", "quantity": 40, "min_stock": 5,
     "purchase_price_cents": 350, "selling_price_cents": 1100},
    {"name": "Carbonara", "category": "pastas", "unit": "portion", "quantity": 30, "min_stock": 5,
     "purchase_price_cents": 300, "selling_price_cents": 1250},
    {"name": "Tiramisu", "category": "desserts", "unit": "portion", "quantity": 12, "min_stock": 3,
     "purchase_price_cents": 180, "selling_price_cents": 650},
    {"name": "Sparkling water 50cl", "category": "soft_drinks", "unit": "bottle", "quantity": 48, "min_stock": 12,
     "purchase_price_cents": 60, "selling_price_cents": 350},
    {"name": "House red 75cl", "category": "alcoholic_drinks", "unit": "bottle", "quantity": 18, "min_stock": 6,
     "purchase_price_cents": 600, "selling_price_cents": 2400},
    {"name": "Espresso", "category": "coffee", "unit": "cup", "quantity": 200, "min_stock": 30,
     "purchase_price_cents": 25, "selling_price_cents": 200},
]

DEMO_TABLES = [
    (1, 2, "window"),
    (2, 2, "window"),
    (3, 4, "main room"),
    (4, 4, "main room"),
    (5, 6, "main room"),
    (6, 8, "terrace"),
]


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Create demo products, tables and one reservation for tonight."""
    services = get_services()

    if db.session.query(Product.id).first() is not None:
        click.echo("WARN  Products already exist, skipping demo seed.")
        return

    for data in DEMO_PRODUCTS:
        product = services.products.create_product(dict(data))
        click.echo(f"PASS Product: {product.name} (ID: {product.id}, stock {product.quantity} {product.unit})")

    for number, capacity, location in DEMO_TABLES:
        services.tables.create_table(number, capacity, location=location)
    click.echo(f"PASS Tables: {len(DEMO_TABLES)}")

    today = services.tables.clock().replace(hour=19, minute=0, second=0, microsecond=0)
    reservation = services.reservations.create_reservation(
        table_number=5,
        customer_name="Demo Guest",
        covers=4,
        starts_at=today,
        ends_at=today + timedelta(hours=2),
    )
    click.echo(f"PASS Reservation #{reservation.id}: table 5 at {reservation.starts_at:%H:%M}")
    click.echo("DONE Demo data ready.")


@click.group('inventory')
def inventory_group():
    """Stock ledger inspection and repair."""


@inventory_group.command('recompute')
@click.option('--product-id', type=int, default=None, help='Check a single product')
@click.option('--repair', is_flag=True, help='Rewrite cached quantities from the ledger')
@with_appcontext
def recompute(product_id, repair):
    """Verify quantity == initial + entries - exits for every product."""
    try:
        drifts = get_services().inventory.recompute_from_ledger(product_id=product_id, repair=repair)
    except DomainError as e:
        raise click.ClickException(str(e))

    if not drifts:
        click.echo("PASS Stock cache matches the ledger.")
        return

    for d in drifts:
        click.echo(
            f"DRIFT {d['name']} (ID: {d['product_id']}): cached {d['cached_quantity']}, "
            f"ledger {d['ledger_quantity']} (drift {d['drift']:+d})"
        )

    if repair:
        click.echo(f"PASS Repaired {len(drifts)} product(s).")
    else:
        click.echo(f"FAIL {len(drifts)} product(s) drifted. Re-run with --repair to fix.")
        click.get_current_context().exit(1)


@inventory_group.command('low-stock')
@with_appcontext
def low_stock():
    """List active products at or below their alert threshold."""
    products = get_services().inventory.check_low_stock()
    if not products:
        click.echo("PASS No product below its threshold.")
        return

    click.echo(f"{'ID':<6} {'Name':<30} {'Qty':>6} {'Min':>6} {'Status':<6}")
    click.echo("-" * 58)
    for p in products:
        click.echo(f"{p.id:<6} {p.name[:30]:<30} {p.quantity:>6} {p.min_stock:>6} {p.stock_status:<6}")


@click.group('tables')
def tables_group():
    """Dining table maintenance."""


@tables_group.command('reconcile')
@with_appcontext
def reconcile_tables():
    """Recompute every table's status from reservations and active orders."""
    statuses = get_services().tables.reconcile_all()
    for number, status in statuses.items():
        click.echo(f"Table {number}: {status}")
    click.echo(f"PASS Reconciled {len(statuses)} table(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(tables_group)
