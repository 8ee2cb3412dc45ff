# Overview: Flask CLI command groups for demo bootstrap and stock inspection.

# backend/tienda/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Database:
# - python -m flask db upgrade
#   Apply migrations (Flask-Migrate).
#
# Tenant bootstrap/inspection:
# - python -m flask tenants seed-demo [--name "Demo Store"]
#   Create a demo tenant with products, a supplier and a customer.
# - python -m flask tenants low-stock 1
#   List active products at or below their minimum stock.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Customer, Product, Supplier, Tenant
from .repositories import SqlProductRepository


DEMO_PRODUCTS = (
    # name, price_cents, stock_current, stock_minimum
    ("Coffee 500g", 4500, 40, 10),
    ("Whole milk 1L", 950, 60, 20),
    ("Brown sugar 1kg", 1200, 8, 10),
    ("Paper cups x50", 2500, 0, 5),
)


@click.group('tenants')
def tenants_group():
    """Tenant bootstrap and inspection commands."""


@tenants_group.command('seed-demo')
@click.option('--name', default='Demo Store', show_default=True, help='Tenant name')
@with_appcontext
def seed_demo(name):
    """Create a demo tenant with catalog, supplier and customer."""
    tenant = Tenant(
        name=name,
        address="Av. Principal 123",
        phone="+591 70000000",
        currency="BOB",
        tax_rate_bps=1300,
        fiscal_tax_id="1020304050",
        fiscal_authorization="29040011007",
    )
    db.session.add(tenant)
    db.session.flush()

    for product_name, price_cents, stock_current, stock_minimum in DEMO_PRODUCTS:
        db.session.add(
            Product(
                tenant_id=tenant.id,
                name=product_name,
                price_cents=price_cents,
                stock_current=stock_current,
                stock_minimum=stock_minimum,
            )
        )
    db.session.add(Supplier(tenant_id=tenant.id, name="Distribuidora Central", phone="+591 2 2200000"))
    db.session.add(Customer(tenant_id=tenant.id, name="Ana Flores", tax_id="7654321", email="ana@example.com"))
    db.session.commit()

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}) with {len(DEMO_PRODUCTS)} products")


@tenants_group.command('low-stock')
@click.argument('tenant_id', type=int)
@with_appcontext
def low_stock(tenant_id):
    """List products at or below their minimum stock."""
    tenant = db.session.get(Tenant, tenant_id)
    if not tenant:
        click.echo(f"FAIL Tenant ID {tenant_id} not found")
        return

    products = SqlProductRepository().list_below_minimum(tenant_id)
    if not products:
        click.echo("No products at or below minimum stock.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<6} {'Product':<36} {'Stock':>8} {'Minimum':>8} {'State':>9}")
    click.echo("="*70)
    for p in products:
        state = "DEPLETED" if p.stock_current <= 0 else "LOW"
        click.echo(f"{p.id:<6} {p.name[:36]:<36} {p.stock_current:>8} {p.stock_minimum:>8} {state:>9}")
    click.echo("="*70 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(tenants_group)
