"""
Pytest fixtures for the back-office tests.

Provides an in-memory database, two tenants (each with an outlet, a user
and a product), stock helpers and an authenticated test client.
"""

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Customer, Organization, Outlet, Product, User
from backoffice.services.auth_service import hash_password
from backoffice.services.inventory_service import post_movement
from backoffice.services.session_service import create_session


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        db.session.rollback()
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Acme Corp", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Inc", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def outlet_a(db_session, org_a):
    outlet = Outlet(org_id=org_a.id, name="Outlet A1", code="A1", tax_rate_bps=0)
    db_session.add(outlet)
    db_session.commit()
    return outlet


@pytest.fixture(scope='function')
def outlet_a2(db_session, org_a):
    outlet = Outlet(org_id=org_a.id, name="Outlet A2", code="A2", tax_rate_bps=0)
    db_session.add(outlet)
    db_session.commit()
    return outlet


@pytest.fixture(scope='function')
def outlet_b(db_session, org_b):
    outlet = Outlet(org_id=org_b.id, name="Outlet B1", code="B1", tax_rate_bps=0)
    db_session.add(outlet)
    db_session.commit()
    return outlet


@pytest.fixture(scope='function')
def user_a(db_session, org_a, outlet_a):
    """Create User A in Organization A."""
    user = User(
        org_id=org_a.id,
        outlet_id=outlet_a.id,
        username="user_a",
        email="user_a@acme.com",
        password_hash=hash_password("Password123!"),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user_b(db_session, org_b, outlet_b):
    """Create User B in Organization B."""
    user = User(
        org_id=org_b.id,
        outlet_id=outlet_b.id,
        username="user_b",
        email="user_b@beta.com",
        password_hash=hash_password("Password123!"),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def product_a(db_session, org_a):
    product = Product(org_id=org_a.id, sku="PROD-A-001", name="Product A", price_cents=1000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a2(db_session, org_a):
    product = Product(org_id=org_a.id, sku="PROD-A-002", name="Product A2", price_cents=500)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, org_b):
    product = Product(org_id=org_b.id, sku="PROD-B-001", name="Product B", price_cents=2000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def customer_a(db_session, org_a):
    customer = Customer(org_id=org_a.id, first_name="Ada", last_name="Lovelace", email="ada@acme.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_b(db_session, org_b):
    customer = Customer(org_id=org_b.id, first_name="Bob", last_name="Beta", email="bob@beta.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def token_a(db_session, user_a):
    _, token = create_session(user_id=user_a.id)
    return token


@pytest.fixture(scope='function')
def token_b(db_session, user_b):
    _, token = create_session(user_id=user_b.id)
    return token


@pytest.fixture(scope='function')
def headers_a(token_a):
    return {'Authorization': f'Bearer {token_a}'}


@pytest.fixture(scope='function')
def headers_b(token_b):
    return {'Authorization': f'Bearer {token_b}'}


@pytest.fixture(scope='function')
def receive_stock(db_session):
    """Helper to put stock on hand at an outlet."""
    def _receive(outlet, product, quantity: int) -> None:
        post_movement(
            org_id=outlet.org_id,
            outlet_id=outlet.id,
            product_id=product.id,
            tx_type="RECEIVE",
            quantity_delta=quantity,
            note="Test stock",
        )
        db_session.commit()

    return _receive
