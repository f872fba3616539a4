# Overview: Flask CLI command groups for stock inspection and maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Stock inspection:
# - python -m flask stock low
#   List active, tracked variants at or below their low-stock threshold.
# - python -m flask stock out
#   List active, tracked variants with no stock and no backorder.
# - python -m flask stock history 12 --limit 20
#   Show the newest stock movements of variant 12.
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).

import click
from flask.cli import with_appcontext

from .errors import NotFoundError
from .extensions import db
from .services import stock_ledger_service


@click.group('stock')
def stock_group():
    """Stock level and ledger inspection."""


@stock_group.command('low')
@with_appcontext
def stock_low():
    variants = stock_ledger_service.low_stock_variants()
    if not variants:
        click.echo("No low-stock variants.")
        return
    for v in variants:
        click.echo(f"{v.id:>6}  {v.sku:<24} stock={v.stock:<5} threshold={v.low_stock_threshold}")


@stock_group.command('out')
@with_appcontext
def stock_out():
    variants = stock_ledger_service.out_of_stock_variants()
    if not variants:
        click.echo("No out-of-stock variants.")
        return
    for v in variants:
        click.echo(f"{v.id:>6}  {v.sku:<24} stock={v.stock}")


@stock_group.command('history')
@click.argument('variant_id', type=int)
@click.option('--limit', type=int, default=None, help='Number of movements (default: STOCK_HISTORY_DEFAULT_LIMIT)')
@with_appcontext
def stock_history(variant_id, limit):
    try:
        movements = stock_ledger_service.list_variant_movements(variant_id, limit=limit)
    except NotFoundError as e:
        raise click.ClickException(e.message)

    if not movements:
        click.echo(f"No movements for variant {variant_id}.")
        return
    for m in movements:
        click.echo(
            f"{m.created_at:%Y-%m-%d %H:%M:%S}  {m.type:<12} {m.quantity:+6d}  "
            f"{m.previous_stock} -> {m.new_stock}  {m.reason or ''}"
        )


@click.group('system')
def system_group():
    """System maintenance commands."""


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


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(stock_group)
    app.cli.add_command(system_group)
