# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/repairdesk/cli.py
# Commands Legend (run from the repository root):
# Prereqs:
# - Activate your virtualenv and install the package (pip install -e .).
# - Use: flask --app repairdesk <group> <command> [options]
#
# System bootstrap/repair:
# - flask --app repairdesk system init
#   Create all tables (idempotent).
# - flask --app repairdesk system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - flask --app repairdesk system seed
#   Insert default employees, categories, service categories and demo products.
#
# Employee inspection/bootstrap:
# - flask --app repairdesk users list [--role technician]
#   List employees with role and active status.
# - flask --app repairdesk users create --full-name "Ada Admin" --email ada@shop.local --staff-id ADM-002 --role admin
#   Create an employee (prompts if options are omitted).
#
# Maintenance:
# - flask --app repairdesk commissions repair [--only-zero]
#   Recompute stored commission amounts from their sale items.
# - flask --app repairdesk cache clear
#   Drop every cached read.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db, query_cache
from .models import Product, ProductCategory, ServiceCategory, User
from .services.commission_service import sync_commissions
from .services.products_service import create_product
from .services.users_service import PasswordValidationError, create_user
from .validation import ConflictError, ValidationError

DEFAULT_USERS = (
    {"full_name": "Shop Admin", "email": "admin@repairdesk.local", "staff_id": "ADM-001", "role": "admin"},
    {"full_name": "Sam Sales", "email": "sales@repairdesk.local", "staff_id": "SAL-001", "role": "sales"},
    {"full_name": "Tara Tech", "email": "tech@repairdesk.local", "staff_id": "TEC-001", "role": "technician"},
)

DEFAULT_CATEGORIES = ("Laptops", "Desktops", "Components", "Accessories", "Networking")

DEFAULT_SERVICE_CATEGORIES = (
    ("Screen Repair", "Cracked or faulty displays"),
    ("Data Recovery", "Recovering files from failing or damaged drives"),
    ("Virus Removal", "Malware cleanup and OS hardening"),
    ("Hardware Upgrade", "RAM, storage and component upgrades"),
    ("General Diagnostics", "Fault finding when the cause is unknown"),
)

DEFAULT_PRODUCTS = (
    ("SSD-500", "500GB SATA SSD", "Components", 3500, 5999, 500),
    ("RAM-16", "16GB DDR4 RAM Kit", "Components", 3000, 4999, 500),
    ("MOUSE-W", "Wireless Mouse", "Accessories", 800, 1999, 1000),
    ("ROUTER-AX", "Wi-Fi 6 Router", "Networking", 6000, 9999, 300),
)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


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
    query_cache.clear()

    click.echo("PASS Database reset complete. Run 'flask --app repairdesk system seed' to add defaults.")


@system_group.command('seed')
@with_appcontext
def seed_system():
    """
    Insert default data. Existing rows are left alone, so this is safe to re-run.

    Creates:
    - Employees: one admin, one sales person, one technician
    - Product categories and a handful of demo products (stock starts at zero)
    - Service categories
    All seeded passwords default to SEED_DEFAULT_PASSWORD.
    """
    password = current_app.config["SEED_DEFAULT_PASSWORD"]

    for row in DEFAULT_USERS:
        if db.session.query(User).filter_by(email=row["email"]).first():
            click.echo(f"SKIP User {row['email']} already exists")
            continue
        create_user(patch=dict(row), password=password)
        click.echo(f"PASS Created {row['role']} user: {row['email']}")

    categories = {}
    for name in DEFAULT_CATEGORIES:
        category = db.session.query(ProductCategory).filter_by(name=name).first()
        if not category:
            category = ProductCategory(name=name)
            db.session.add(category)
            db.session.commit()
            click.echo(f"PASS Created category: {name}")
        categories[name] = category.id

    for name, description in DEFAULT_SERVICE_CATEGORIES:
        if db.session.query(ServiceCategory).filter_by(name=name).first():
            continue
        db.session.add(ServiceCategory(name=name, description=description))
        db.session.commit()
        click.echo(f"PASS Created service category: {name}")

    admin = db.session.query(User).filter_by(role="admin").first()
    for sku, name, category, cost, price, rate in DEFAULT_PRODUCTS:
        if db.session.query(Product).filter_by(sku=sku).first():
            continue
        create_product(
            patch={
                "sku": sku,
                "name": name,
                "category_id": categories[category],
                "cost_price_cents": cost,
                "selling_price_cents": price,
                "commission_rate_bps": rate,
            },
            created_by_id=admin.id if admin else None,
        )
        click.echo(f"PASS Created product: {sku}")

    query_cache.clear()
    click.echo("")
    click.echo(f"Seed complete. Default password: {password}")
    click.echo("SECURITY: Change passwords immediately in production!")


@click.group('users')
def users_group():
    """Employee inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--full-name', prompt=True, help='Full name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--staff-id', prompt=True, help='Staff ID')
@click.option('--role', type=click.Choice(['admin', 'sales', 'technician']), prompt=True, help='Role')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_user_cli(full_name, email, staff_id, role, password):
    """Create an employee account."""
    try:
        user = create_user(
            patch={"full_name": full_name, "email": email, "staff_id": staff_id, "role": role},
            password=password,
        )
        click.echo(f"PASS Created user: {user['email']} (ID: {user['id']}, role: {user['role']})")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@click.option('--role', type=click.Choice(['admin', 'sales', 'technician']), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all employees."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Staff ID':<12} {'Name':<25} {'Email':<30} {'Role':<11} {'Active'}")
    click.echo("="*90)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(
            f"{user.id:<5} {user.staff_id:<12} {user.full_name:<25} {user.email:<30} {user.role:<11} {active_str}"
        )
    click.echo("="*90 + "\n")


@click.group('commissions')
def commissions_group():
    """Commission maintenance commands."""


@commissions_group.command('repair')
@click.option('--only-zero', is_flag=True, help='Only recompute rows whose stored amount is zero or missing')
@with_appcontext
def repair_commissions(only_zero):
    """Recompute commission amounts from sale items."""
    results = sync_commissions(only_zero_amount=only_zero)
    click.echo(f"PASS Checked {results['total']} commission(s): {results['success']} ok, {results['failure']} failed")
    for row in results["details"]:
        if not row["success"]:
            click.echo(f"FAIL Commission {row['id']}: {row.get('error')}")


@click.group('cache')
def cache_group():
    """Query cache commands."""


@cache_group.command('clear')
@with_appcontext
def clear_cache():
    """Drop every cached read in this process."""
    dropped = len(query_cache)
    query_cache.clear()
    click.echo(f"PASS Cleared {dropped} cached entr{'y' if dropped == 1 else 'ies'}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(commissions_group)
    app.cli.add_command(cache_group)
