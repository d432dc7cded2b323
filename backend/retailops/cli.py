# Overview: Flask CLI commands for schema bootstrap and demo data.

# backend/retailops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# - python -m flask retail init-db [--drop --yes]
#   Create all tables (optionally drop them first; deletes all data).
# - python -m flask retail seed-demo [--business-code DEMO]
#   Idempotent demo tenant: outlet, two warehouses, price tiers, products,
#   a customer, a supplier and opening stock.

from decimal import Decimal

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import (
    Business,
    Customer,
    Outlet,
    PriceTier,
    Product,
    ProductPriceTier,
    Supplier,
    Warehouse,
)
from .services.registry import build_services


DEMO_USER_ID = 1

DEMO_PRODUCTS = [
    # sku, name, base_price, cost_price, tax_rate, wholesale_price, opening_stock
    ("COF-250", "House Blend Coffee 250g", "65000.00", "42000.00", "11.00", "58000.00", "40"),
    ("TEA-100", "Jasmine Tea 100g", "28000.00", "15000.00", "11.00", "24000.00", "60"),
    ("MUG-01", "Ceramic Mug", "45000.00", "20000.00", None, None, "25"),
]


@click.group('retail')
def retail_group():
    """Schema bootstrap and demo data commands."""


@retail_group.command('init-db')
@click.option('--drop', is_flag=True, help='Drop all tables first')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def init_db(drop, yes):
    """Create all tables from the model metadata."""
    if drop:
        if not yes:
            click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)
        click.echo("DELETE  Dropping all tables...")
        db.drop_all()

    db.create_all()
    click.echo("PASS Database tables created")


@retail_group.command('seed-demo')
@click.option('--business-code', default='DEMO', help='Business code for the demo tenant')
@with_appcontext
def seed_demo(business_code):
    """Create a demo tenant. Safe to run more than once."""
    business = db.session.query(Business).filter_by(code=business_code).first()
    if business is not None:
        click.echo(f"WARN  Business '{business_code}' already exists (ID: {business.id}), skipping")
        return

    business = Business(name="Demo Retail", code=business_code)
    db.session.add(business)
    db.session.flush()

    retail = PriceTier(business_id=business.id, name="Retail", code="RETAIL", is_default=True)
    wholesale = PriceTier(business_id=business.id, name="Wholesale", code="WHOLESALE", is_default=False)
    db.session.add_all([retail, wholesale])
    db.session.flush()

    outlet = Outlet(business_id=business.id, name="Main Store", code="MAIN")
    db.session.add(outlet)
    db.session.flush()

    front = Warehouse(outlet_id=outlet.id, name="Front Store", code="FRONT")
    back = Warehouse(outlet_id=outlet.id, name="Back Room", code="BACK")
    db.session.add_all([front, back])

    db.session.add(Customer(
        business_id=business.id,
        name="Wholesale Buyer",
        email="buyer@example.com",
        price_tier_id=wholesale.id,
    ))
    db.session.add(Supplier(business_id=business.id, name="Java Beans Co", email="orders@javabeans.example"))

    products = []
    for sku, name, base_price, cost_price, tax_rate, wholesale_price, stock in DEMO_PRODUCTS:
        product = Product(
            business_id=business.id,
            sku=sku,
            name=name,
            base_price=Decimal(base_price),
            cost_price=Decimal(cost_price) if cost_price else None,
            tax_rate=Decimal(tax_rate) if tax_rate else None,
        )
        db.session.add(product)
        db.session.flush()
        if wholesale_price:
            db.session.add(ProductPriceTier(
                product_id=product.id,
                price_tier_id=wholesale.id,
                price=Decimal(wholesale_price),
            ))
        products.append((product, stock))

    db.session.commit()
    click.echo(f"PASS Created business: {business.name} (ID: {business.id}, Code: {business.code})")
    click.echo(f"PASS Created outlet {outlet.code} with warehouses {front.code}, {back.code}")

    # Opening stock goes through the ledger so movements and on-hand agree
    services = build_services(lambda: db.session, business.id)
    for product, stock in products:
        services.inventory.adjust(
            product_id=product.id,
            warehouse_id=back.id,
            quantity=stock,
            direction="IN",
            notes="Opening stock",
            user_id=DEMO_USER_ID,
            outlet_id=outlet.id,
        )
        click.echo(f"PASS Stocked {product.sku}: {stock} in {back.code}")

    click.echo("DONE Demo data ready")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(retail_group)
