# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: flask <group> <command> [options]
#
# System bootstrap/repair:
# - flask system init [--org "Org Name"] [--org-code DEFAULT]
#   Idempotent bootstrap: creates tables, a default organization, outlet and admin user.
# - flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management (MULTI-TENANT):
# - flask orgs list
# - flask orgs create --name "Acme Corp" --code "ACME"
# - flask orgs add-outlet --org-id 1 --name "Downtown" --tax-rate-bps 825
#
# Users:
# - flask users list [--org-id 1]
# - flask users create --org-id 1 --username admin --email admin@example.com --password "Password123!"
#
# Catalog:
# - flask catalog add-product --org-id 1 --sku TEE-01 --name "T-Shirt" --price-cents 2000 [--stock 10 --outlet-id 1]
#
# Maintenance:
# - flask maintenance refresh-installments [--org-id 1]
#   Flip unpaid installments past their due date to OVERDUE.
# - flask maintenance expire-warranties [--org-id 1]
#   Flip ACTIVE warranties past their end date to EXPIRED.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, Outlet, Product, User
from .services import installment_service, warranty_service
from .services.auth_service import create_user
from .services.inventory_service import post_movement
from .validation import ServiceError


DEFAULT_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@with_appcontext
def init_system(org_name, org_code):
    """
    Create the schema plus a default organization, outlet and admin user.

    Safe to run repeatedly; existing rows are reused.
    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing back office...")
    db.create_all()

    org = db.session.query(Organization).filter_by(code=org_code).first()
    if not org:
        org = Organization(name=org_name, code=org_code, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    outlet = db.session.query(Outlet).filter_by(org_id=org.id).first()
    if not outlet:
        outlet = Outlet(org_id=org.id, name="Main Outlet", code="MAIN")
        db.session.add(outlet)
        db.session.commit()
        click.echo(f"PASS Created outlet: {outlet.name} (ID: {outlet.id})")
    else:
        click.echo(f"PASS Using existing outlet: {outlet.name} (ID: {outlet.id})")

    existing = db.session.query(User).filter_by(org_id=org.id, username="admin").first()
    if existing:
        click.echo("WARN  User 'admin' already exists in org, skipping...")
    else:
        try:
            create_user(
                username="admin",
                email="admin@backoffice.local",
                password=DEFAULT_PASSWORD,
                org_id=org.id,
                outlet_id=outlet.id,
            )
            click.echo("PASS Created user: admin (admin@backoffice.local)")
        except ServiceError as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create user 'admin': {e.message}")

    click.echo("\nDONE Back office initialized")
    click.echo(f"Organization: {org.name} (ID: {org.id}, Code: {org.code})")
    click.echo(f"Default credentials (CHANGE IN PRODUCTION!): admin / {DEFAULT_PASSWORD}")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST ONLY: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


# =============================================================================
# ORGANIZATIONS
# =============================================================================

@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id.asc()).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Outlets':<8} {'Users'}")
    click.echo("=" * 80)

    for org in orgs:
        outlet_count = db.session.query(Outlet).filter_by(org_id=org.id).count()
        user_count = db.session.query(User).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"
        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} {outlet_count:<8} {user_count}")

    click.echo("=" * 80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_org_cli(name, code):
    """Create a new organization (tenant)."""
    if db.session.query(Organization).filter_by(code=code).first():
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.commit()
    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


@orgs_group.command('add-outlet')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--name', required=True, help='Outlet name')
@click.option('--code', help='Outlet code')
@click.option('--tax-rate-bps', type=int, default=0, show_default=True, help='Default sales tax in basis points')
@with_appcontext
def add_outlet_cli(org_id, name, code, tax_rate_bps):
    """Add an outlet to an organization."""
    org = db.session.get(Organization, org_id)
    if not org:
        click.echo(f"FAIL Organization ID {org_id} not found")
        return
    if db.session.query(Outlet).filter_by(org_id=org_id, name=name).first():
        click.echo(f"FAIL Outlet '{name}' already exists in this organization")
        return
    if not 0 <= tax_rate_bps <= 10000:
        click.echo("FAIL --tax-rate-bps must be between 0 and 10000")
        return

    outlet = Outlet(org_id=org_id, name=name, code=code, tax_rate_bps=tax_rate_bps)
    db.session.add(outlet)
    db.session.commit()
    click.echo(f"PASS Created outlet: {outlet.name} (ID: {outlet.id}) in org '{org.name}'")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--org-id', type=int, help='Only users of this organization')
@with_appcontext
def list_users_cli(org_id):
    query = db.session.query(User)
    if org_id:
        query = query.filter_by(org_id=org_id)
    users = query.order_by(User.org_id.asc(), User.username.asc()).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:<5} org={user.org_id:<4} {user.username:<20} {user.email:<30} {status}")


@users_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--outlet-id', type=int, help='Home outlet')
@with_appcontext
def create_user_cli(org_id, username, email, password, outlet_id):
    """
    Create a user inside an organization.

    Password must be 8+ characters with upper and lower case letters,
    a digit and a special character.
    """
    try:
        user = create_user(username=username, email=email, password=password, org_id=org_id, outlet_id=outlet_id)
    except ServiceError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}, Org: {user.org_id})")


# =============================================================================
# CATALOG
# =============================================================================

@click.group('catalog')
def catalog_group():
    """Product bootstrap commands."""


@catalog_group.command('add-product')
@click.option('--org-id', type=int, required=True)
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price-cents', type=int, required=True)
@click.option('--cost-cents', type=int)
@click.option('--untracked', is_flag=True, help='Do not track stock for this product')
@click.option('--stock', type=int, default=0, show_default=True, help='Opening quantity (needs --outlet-id)')
@click.option('--outlet-id', type=int, help='Outlet receiving the opening stock')
@with_appcontext
def add_product_cli(org_id, sku, name, price_cents, cost_cents, untracked, stock, outlet_id):
    """Create a product, optionally with an opening stock adjustment."""
    if not db.session.get(Organization, org_id):
        click.echo(f"FAIL Organization ID {org_id} not found")
        return
    if db.session.query(Product).filter_by(org_id=org_id, sku=sku).first():
        click.echo(f"FAIL SKU '{sku}' already exists in this organization")
        return
    if stock:
        outlet = db.session.query(Outlet).filter_by(id=outlet_id, org_id=org_id).first() if outlet_id else None
        if outlet is None:
            click.echo("FAIL --stock needs an --outlet-id belonging to the organization")
            return

    product = Product(
        org_id=org_id,
        sku=sku,
        name=name,
        price_cents=price_cents,
        cost_cents=cost_cents,
        track_stock=not untracked,
    )
    db.session.add(product)
    db.session.flush()
    if stock and product.track_stock:
        post_movement(
            org_id=org_id,
            outlet_id=outlet_id,
            product_id=product.id,
            tx_type="ADJUST",
            quantity_delta=stock,
            unit_cost_cents=cost_cents,
            note="Opening stock",
        )
    db.session.commit()
    click.echo(f"PASS Created product: {product.sku} {product.name} (ID: {product.id})")


# =============================================================================
# MAINTENANCE
# =============================================================================

@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('refresh-installments')
@click.option('--org-id', type=int, help='Limit to one organization')
@with_appcontext
def refresh_installments_cli(org_id):
    """Mark unpaid installments past their due date as OVERDUE."""
    changed = installment_service.refresh_overdue(org_id)
    click.echo(f"Marked {changed} installment(s) overdue.")


@maintenance_group.command('expire-warranties')
@click.option('--org-id', type=int, help='Limit to one organization')
@with_appcontext
def expire_warranties_cli(org_id):
    """Mark ACTIVE warranties past their end date as EXPIRED."""
    changed = warranty_service.expire_warranties(org_id)
    click.echo(f"Expired {changed} warranty record(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(maintenance_group)
