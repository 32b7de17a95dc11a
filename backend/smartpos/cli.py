# Overview: Flask CLI command groups for bootstrap, catalogue seeding and cash sessions.

# backend/smartpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to smartpos (PowerShell: $env:FLASK_APP="smartpos").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables and the ticket number sequence (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalogue:
# - python -m flask catalog add-product --code P-001 --name "Cola 330ml" --sale-price 1.50 --purchase-price 0.90 --tax 16
# - python -m flask catalog stock 1
#   Show current stock and the replayed movement total for a product.
#
# Cash sessions:
# - python -m flask cash open [--cashier "Ana"]
# - python -m flask cash close 1
# - python -m flask cash reconcile 1
# - python -m flask cash pending

import click
from flask.cli import with_appcontext

from .extensions import db
from .money import money_str
from .services import catalog_service, cash_session_service, stock_ledger
from .services.document_service import ensure_sequence, TICKET_DOCUMENT_TYPE
from .services.errors import PosError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create tables and seed the ticket sequence."""
    db.create_all()
    ensure_sequence(TICKET_DOCUMENT_TYPE)
    db.session.commit()
    click.echo("Database initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.confirm("This will DELETE ALL DATA. Continue?", abort=True)
    db.drop_all()
    db.create_all()
    ensure_sequence(TICKET_DOCUMENT_TYPE)
    db.session.commit()
    click.echo("Database reset.")


@click.group('catalog')
def catalog_group():
    """Product seeding and stock inspection."""


@catalog_group.command('add-product')
@click.option('--code', required=True, help='Unique product code')
@click.option('--name', required=True, help='Product name')
@click.option('--sale-price', required=True, help='Sale price, e.g. 19.99')
@click.option('--purchase-price', required=True, help='Purchase price, e.g. 12.50')
@click.option('--tax', 'tax_percentage', default=None, help='Tax percentage 0-100')
@with_appcontext
def add_product(code, name, sale_price, purchase_price, tax_percentage):
    try:
        product = catalog_service.create_product(
            code=code,
            name=name,
            sale_price=sale_price,
            purchase_price=purchase_price,
            tax_percentage=tax_percentage,
        )
    except PosError as e:
        raise click.ClickException(e.message)
    click.echo(f"Created product {product.id} ({product.code})")


@catalog_group.command('stock')
@click.argument('product_id', type=int)
@with_appcontext
def show_stock(product_id):
    try:
        current = stock_ledger.get_current_stock(product_id)
    except PosError as e:
        raise click.ClickException(e.message)
    replayed = stock_ledger.replay_stock(product_id)
    click.echo(f"Product {product_id}: current={current} replayed={replayed}")
    if current != replayed:
        click.echo("WARNING: current stock differs from movement ledger", err=True)


@click.group('cash')
def cash_group():
    """Cash session lifecycle."""


@cash_group.command('open')
@click.option('--cashier', 'cashier_name', default=None, help='Cashier name')
@with_appcontext
def open_cash(cashier_name):
    try:
        session = cash_session_service.open_session(cashier_name=cashier_name)
    except PosError as e:
        raise click.ClickException(e.message)
    click.echo(f"Opened cash session {session.id}")


@cash_group.command('close')
@click.argument('session_id', type=int)
@with_appcontext
def close_cash(session_id):
    try:
        session = cash_session_service.close_session(session_id)
    except PosError as e:
        raise click.ClickException(e.message)
    click.echo(
        f"Closed session {session.id}: sales={money_str(session.total_sales)} "
        f"returns={money_str(session.total_returns)} net={money_str(session.net_amount)}"
    )


@cash_group.command('reconcile')
@click.argument('session_id', type=int)
@with_appcontext
def reconcile_cash(session_id):
    try:
        cash_session_service.reconcile_session(session_id)
    except PosError as e:
        raise click.ClickException(e.message)
    click.echo(f"Reconciled session {session_id}")


@cash_group.command('pending')
@with_appcontext
def pending_cash():
    sessions = cash_session_service.list_pending_sessions()
    if not sessions:
        click.echo("No pending sessions.")
        return
    for s in sessions:
        state = "OPEN" if s.is_open else "CLOSED"
        click.echo(f"{s.id:<6} {state:<7} opened={s.opened_at} net={money_str(s.net_amount)}")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(cash_group)
