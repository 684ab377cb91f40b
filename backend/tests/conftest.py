"""
Pytest fixtures for the water station backend tests.

Provides test database setup, users with tokens, catalog/customer
fixtures, and the test client.
"""

from decimal import Decimal

import pytest
from waterstation import create_app
from waterstation.config import TestingConfig
from waterstation.extensions import db
from waterstation.models import Customer, Item, User
from waterstation.models.auth import ROLE_ADMIN, ROLE_USER
from waterstation.services.auth_service import hash_password


ADMIN_PASSWORD = "admin-pass-1"
USER_PASSWORD = "user-pass-1"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

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
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(session, username: str, password: str, role: str) -> User:
    user = User(
        username=username,
        email=f"{username}@joywater.test",
        password_hash=hash_password(password),
        role=role,
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    """Administrator account."""
    return _make_user(db_session, "admin", ADMIN_PASSWORD, ROLE_ADMIN)


@pytest.fixture(scope='function')
def staff_user(db_session):
    """Regular (User-role) account."""
    return _make_user(db_session, "cashier", USER_PASSWORD, ROLE_USER)


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, "admin", ADMIN_PASSWORD))


@pytest.fixture(scope='function')
def user_headers(client, staff_user):
    return auth_headers(get_auth_token(client, "cashier", USER_PASSWORD))


def make_item(session, name: str, stock: int, price: str = "25.00", min_stock: int = 0) -> Item:
    item = Item(name=name, price=Decimal(price), current_stock=stock, min_stock=min_stock, uom="pc")
    session.add(item)
    session.commit()
    return item


@pytest.fixture(scope='function')
def gallon(db_session):
    """5-gallon refill, 100 in stock."""
    return make_item(db_session, "5 Gallon Refill", 100, price="25.00")


@pytest.fixture(scope='function')
def bottle(db_session):
    """500ml bottle, 70 in stock."""
    return make_item(db_session, "500ml Bottle", 70, price="15.00")


@pytest.fixture(scope='function')
def customer(db_session):
    c = Customer(name="Juan Dela Cruz", phone="09171234567", address="Purok 3, Barangay Uno")
    db_session.add(c)
    db_session.commit()
    return c


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/users/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
