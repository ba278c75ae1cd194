"""
Pytest fixtures for WIMS backend tests.

Provides the application (in-memory SQLite), a per-test clean database,
one user per role with bearer headers, and catalog factories.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from wims import create_app
from wims.config import TestConfig
from wims.extensions import db
from wims.models import Customer, ROLE_ADMIN, ROLE_CLERK, ROLE_MANAGER, User
from wims.services import auth_service, batch_service, product_service, session_service
from wims.services.notification_service import RecordingPublisher
from wims.time_utils import utctoday

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig, notifier=RecordingPublisher())

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash(app):
    """Hash the shared test password once per run."""
    return auth_service.hash_password(PASSWORD)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def recorder(app):
    publisher = app.extensions["wims.notifier"]
    publisher.clear()
    return publisher


@pytest.fixture(scope='function')
def db_session(app, recorder):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    # Cleanup after test
    db.session.rollback()
    db.session.remove()


def _make_user(name, email, role, password_hash, is_active=True):
    user = User(name=name, email=email, role=role, password_hash=password_hash, is_active=is_active)
    db.session.add(user)
    db.session.commit()
    return user


def _headers(user):
    _, token = session_service.create_session(user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def admin_user(db_session, password_hash):
    return _make_user("Admin", "admin@wims.test", ROLE_ADMIN, password_hash)


@pytest.fixture(scope='function')
def manager_user(db_session, password_hash):
    return _make_user("Manager", "manager@wims.test", ROLE_MANAGER, password_hash)


@pytest.fixture(scope='function')
def clerk_user(db_session, password_hash):
    return _make_user("Clerk", "clerk@wims.test", ROLE_CLERK, password_hash)


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return _headers(admin_user)


@pytest.fixture(scope='function')
def manager_headers(manager_user):
    return _headers(manager_user)


@pytest.fixture(scope='function')
def clerk_headers(clerk_user):
    return _headers(clerk_user)


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(
        name="Acme Traders",
        email="orders@acme.test",
        phone="9876543210",
        address="12 Market Road",
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: product_service.create_product with sensible defaults."""
    counter = {"n": 0}

    def _make(sku=None, name=None, price="10.00", category="Grocery", unit="piece", supplier_id=None):
        counter["n"] += 1
        return product_service.create_product({
            "sku": sku or f"SKU-{counter['n']:03d}",
            "name": name or f"Product {counter['n']}",
            "category": category,
            "unit": unit,
            "price": Decimal(price),
            "supplier_id": supplier_id,
        })

    return _make


@pytest.fixture(scope='function')
def make_batch(db_session):
    """Factory: batch_service.create_batch, expiring `expires_in` days from today."""
    counter = {"n": 0}

    def _make(product, quantity, expires_in=90, batch_no=None):
        counter["n"] += 1
        today = utctoday()
        return batch_service.create_batch({
            "product_id": product.id,
            "batch_no": batch_no or f"B-{product.id}-{counter['n']}",
            "quantity": quantity,
            "manufactured_date": today - timedelta(days=30),
            "expiry_date": today + timedelta(days=expires_in),
        })

    return _make


@pytest.fixture(scope='function')
def stocked_product(make_product, make_batch):
    """A 10-unit product at 10.00 from a single batch."""
    product = make_product(sku="RICE-5KG", name="Rice 5kg", price="10.00")
    make_batch(product, 10)
    return product
