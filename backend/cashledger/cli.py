# Overview: Flask CLI command groups for bootstrap, inspection, and demo data.

# backend/cashledger/cli.py
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
#
# Cash sessions:
# - python -m flask cash seed-demo [--fund 200000]
#   Create a demo company, branch, point of sale, cashier, tax and product,
#   and fund the company cash account.
# - python -m flask cash sessions --status OPEN --limit 20
#   List recent cash sessions with optional filters.
#
# Ledger:
# - python -m flask ledger balance --account cash --company-id 1
#   Print a derived account balance.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import Branch, Company, PointOfSale, Product, ProductVariant, Tax, User
from .services import cash_session_service, ledger_service, movement_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db_command():
    """Create all tables."""
    db.create_all()
    click.echo("Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm dropping every table')
@with_appcontext
def reset_db_command(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("Refusing to reset without --yes.")
        return
    db.drop_all()
    db.create_all()
    click.echo("Database reset.")


@click.group('cash')
def cash_group():
    """Cash session commands."""


@cash_group.command('seed-demo')
@click.option('--fund', default="200000", show_default=True, help='Initial company cash receipt')
@with_appcontext
def seed_demo_command(fund):
    """Create demo master data and fund the company cash account."""
    db.create_all()

    company = Company.query.filter_by(name="Demo Company").first()
    if not company:
        company = Company(name="Demo Company", tax_id="76.000.000-0")
        db.session.add(company)
        db.session.flush()

    branch = Branch.query.filter_by(company_id=company.id, name="Main").first()
    if not branch:
        branch = Branch(company_id=company.id, name="Main", address="Main street 1")
        db.session.add(branch)
        db.session.flush()

    pos = PointOfSale.query.filter_by(branch_id=branch.id, name="POS 1").first()
    if not pos:
        pos = PointOfSale(branch_id=branch.id, name="POS 1", device_id="POS-001")
        db.session.add(pos)

    cashier = User.query.filter_by(user_name="cashier1").first()
    if not cashier:
        cashier = User(user_name="cashier1", display_name="Cashier One")
        db.session.add(cashier)

    tax = Tax.query.filter_by(code="IVA").first()
    if not tax:
        tax = Tax(company_id=company.id, code="IVA", name="IVA 19%", rate=19)
        db.session.add(tax)
        db.session.flush()

    if not ProductVariant.query.filter_by(sku="DEMO-001").first():
        product = Product(name="Demo product", tax_ids=[tax.id])
        db.session.add(product)
        db.session.flush()
        db.session.add(ProductVariant(
            product_id=product.id,
            sku="DEMO-001",
            attribute_values={"size": "M"},
            base_price=1000,
            unit_symbol="un",
            unit_conversion_factor=1,
        ))

    db.session.commit()

    try:
        movement_service.record_company_receipt(
            company_id=company.id,
            amount=fund,
            user_id=cashier.id,
            notes="Demo funding",
        )
    except LedgerError as e:
        click.echo(f"Funding skipped: {e.message}")

    click.echo(f"Company {company.id}, point of sale {pos.id}, cashier {cashier.user_name}")
    click.echo(f"Cash balance: {ledger_service.compute_account_balance('cash', company_id=company.id)}")


@cash_group.command('sessions')
@click.option('--point-of-sale-id', type=int, default=None)
@click.option('--status', type=click.Choice(['OPEN', 'CLOSED']), default=None)
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_sessions_command(point_of_sale_id, status, limit):
    """List recent cash sessions."""
    sessions = cash_session_service.list_sessions(point_of_sale_id=point_of_sale_id, status=status, limit=limit)
    if not sessions:
        click.echo("No cash sessions found.")
        return
    for s in sessions:
        click.echo(
            f"#{s.id} pos={s.point_of_sale_id} status={s.status} "
            f"opening={s.opening_amount} expected={s.expected_amount} "
            f"counted={s.closing_amount} difference={s.difference}"
        )


@click.group('ledger')
def ledger_group():
    """Ledger inspection commands."""


@ledger_group.command('balance')
@click.option('--account', default='cash', show_default=True)
@click.option('--company-id', type=int, default=None)
@click.option('--cash-session-id', type=int, default=None)
@click.option('--product-variant-id', type=int, default=None)
@with_appcontext
def balance_command(account, company_id, cash_session_id, product_variant_id):
    """Print a derived account balance."""
    try:
        balance = ledger_service.compute_account_balance(
            account,
            company_id=company_id,
            cash_session_id=cash_session_id,
            product_variant_id=product_variant_id,
        )
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"{account}: {balance}")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(cash_group)
    app.cli.add_command(ledger_group)
