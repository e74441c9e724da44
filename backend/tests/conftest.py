"""
Pytest fixtures for rental order backend tests.

Provides an in-memory application, a wiped database per test, reference
data (branch, profiles, customer) and order builders.
"""

import pytest

from rentalshop import create_app
from rentalshop.extensions import db
from rentalshop.services.order_service import OrderService
from rentalshop.services.repository import OrderRepository

from factories import ACTOR, NOW, order_input, seed_directory


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'BUSINESS_TIMEZONE': 'UTC',
        'ISSUE_STATUS_POLICY': 'flagged',
        'LOG_LEVEL': 'WARNING',
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
    # Clear all data but keep schema
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    # Cleanup after test
    db.session.rollback()
    db.session.remove()


@pytest.fixture(scope='function')
def directory(db_session):
    """(branch, super admin, staff, customer)"""
    return seed_directory(db_session)


@pytest.fixture(scope='function')
def branch(directory):
    return directory[0]


@pytest.fixture(scope='function')
def owner(directory):
    return directory[1]


@pytest.fixture(scope='function')
def staff(directory):
    return directory[2]


@pytest.fixture(scope='function')
def customer(directory):
    return directory[3]


@pytest.fixture(scope='function')
def repository(db_session):
    return OrderRepository(db_session)


@pytest.fixture(scope='function')
def order_service(repository):
    return OrderService(repository, invoice_prefix="GLAORD", business_timezone="UTC", cancel_window_minutes=10)


@pytest.fixture(scope='function')
def make_order(order_service, branch, staff, customer):
    """
    Build and persist an order at the fixed test clock.

    Defaults: one item, quantity 2 at 1000/day, deposit 1000 collected,
    GST 5% exclusive (from the super admin). Total 2100.
    """
    def _make(**kwargs):
        now = kwargs.pop("now", NOW)
        return order_service.create_order(order_input(branch, staff, customer, **kwargs), ACTOR, now=now)
    return _make


@pytest.fixture(scope='function')
def order(make_order):
    return make_order()
