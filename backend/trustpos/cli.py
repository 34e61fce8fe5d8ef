# Overview: Flask CLI command groups for bootstrap, demo data and maintenance.

# backend/trustpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default admin, manager and sales agent.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog seed-demo
#   Create a few demo products (one serialized), a coupon and an 18% tax rate.
#
# Tax:
# - python -m flask tax list
# - python -m flask tax activate 2
#   Make tax configuration 2 the single active rate.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import PosError
from .models import Discount, Product, TaxConfig, User
from .services import auth_service, products_service, tax_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--password', default='Password123!', help='Password for the default users')
@with_appcontext
def init_system(password):
    """
    Create tables and default users.

    Users: admin, manager, agent (emails @trustpos.local).

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing TRUST POS...")
    db.create_all()
    click.echo("PASS Schema ready")

    default_users = [
        ("admin", "admin@trustpos.local", auth_service.ROLE_ADMIN),
        ("manager", "manager@trustpos.local", auth_service.ROLE_MANAGER),
        ("agent", "agent@trustpos.local", auth_service.ROLE_SALES_AGENT),
    ]
    for username, email, role in default_users:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"SKIP User {username} already exists")
            continue
        try:
            auth_service.create_user(username, email, password, role=role)
        except PosError as e:
            raise click.ClickException(e.message)
        click.echo(f"PASS Created user {username} ({role})")

    click.echo("DONE System initialized")


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
    click.echo("PASS Database reset")


@click.group('catalog')
def catalog_group():
    """Catalog helpers."""


@catalog_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Create demo products, a coupon and a tax rate (skips existing rows)."""
    demo_products = [
        {"sku": "ACC-CABLE-USB-C", "name": "USB-C Cable", "price_cents": 15000,
         "cost_price_cents": 8000, "stock_quantity": 50},
        {"sku": "ACC-CHARGER-20W", "name": "20W Charger", "price_cents": 45000,
         "cost_price_cents": 30000, "stock_quantity": 20},
        {"sku": "PHN-DEMO-01", "name": "Demo Phone", "price_cents": 1200000,
         "cost_price_cents": 900000, "is_serialized": True, "warranty_months": 12,
         "serial_numbers": ["IMEI-0001", "IMEI-0002", "IMEI-0003"]},
    ]
    for data in demo_products:
        if db.session.query(Product).filter_by(sku=data["sku"]).first():
            click.echo(f"SKIP Product {data['sku']} already exists")
            continue
        product = products_service.create_product(data)
        click.echo(f"PASS Created product {product.sku} (stock {product.stock_quantity})")

    if not db.session.query(Discount).filter_by(code="WELCOME10").first():
        db.session.add(Discount(
            name="Welcome 10%",
            code="WELCOME10",
            discount_type="PERCENTAGE",
            value=10,
            min_purchase_cents=50000,
            max_discount_cents=500000,
            is_active=True,
        ))
        db.session.commit()
        click.echo("PASS Created coupon WELCOME10")

    if not db.session.query(TaxConfig).first():
        tax_service.create_tax_config({"name": "VAT", "rate_bps": 1800, "is_active": True})
        click.echo("PASS Created active tax VAT 18%")

    click.echo("DONE Demo data ready")


@click.group('tax')
def tax_group():
    """Tax configuration commands."""


@tax_group.command('list')
@with_appcontext
def list_tax():
    for config in tax_service.list_tax_configs():
        marker = "*" if config["is_active"] else " "
        click.echo(f"{marker} {config['id']:>4}  {config['name']:<20} {config['rate_bps']} bps")


@tax_group.command('activate')
@click.argument('config_id', type=int)
@with_appcontext
def activate_tax(config_id):
    """Make CONFIG_ID the single active tax rate."""
    try:
        config = tax_service.activate_tax_config(config_id)
    except PosError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Active tax is now {config.name} ({config.rate_bps} bps)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(tax_group)
