"""
Pytest fixtures for TRUST POS backend tests.

Provides the application on an in-memory database, a per-test table wipe,
factories for users, products, discounts and tax rates, and authenticated
headers for each role.
"""

import pytest

from trustpos import create_app
from trustpos.extensions import db
from trustpos.models import Discount, Product, TaxConfig
from trustpos.services import auth_service, products_service

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
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
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture(scope='function')
def make_user(db_session):
    def _make(username="agent", role="SALES_AGENT"):
        return auth_service.create_user(username, f"{username}@trustpos.test", PASSWORD, role=role)
    return _make


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user("admin", "ADMIN")


@pytest.fixture(scope='function')
def manager(make_user):
    return make_user("manager", "MANAGER")


@pytest.fixture(scope='function')
def agent(make_user):
    return make_user("agent", "SALES_AGENT")


@pytest.fixture(scope='function')
def make_product(db_session):
    counter = {"n": 0}

    def _make(**overrides) -> Product:
        counter["n"] += 1
        data = {
            "sku": f"SKU-{counter['n']:04d}",
            "name": f"Product {counter['n']}",
            "price_cents": 1000,
            "cost_price_cents": 500,
            "stock_quantity": 10,
        }
        if overrides.get("is_serialized"):
            data.pop("stock_quantity")
        data.update(overrides)
        return products_service.create_product(data)
    return _make


@pytest.fixture(scope='function')
def make_discount(db_session):
    def _make(**overrides) -> Discount:
        data = {
            "name": "Test discount",
            "code": "SAVE10",
            "discount_type": "PERCENTAGE",
            "value": 10,
            "min_purchase_cents": 0,
            "is_active": True,
        }
        data.update(overrides)
        discount = Discount(**data)
        db_session.add(discount)
        db_session.commit()
        return discount
    return _make


@pytest.fixture(scope='function')
def make_tax(db_session):
    def _make(rate_bps=1800, name="VAT", is_active=True) -> TaxConfig:
        config = TaxConfig(name=name, rate_bps=rate_bps, is_active=is_active)
        db_session.add(config)
        db_session.commit()
        return config
    return _make


# =============================================================================
# AUTH HELPERS
# =============================================================================

def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, admin.username))


@pytest.fixture(scope='function')
def manager_headers(client, manager):
    return auth_headers(get_auth_token(client, manager.username))


@pytest.fixture(scope='function')
def agent_headers(client, agent):
    return auth_headers(get_auth_token(client, agent.username))


@pytest.fixture(scope='function')
def login_headers(client):
    """Log a user in and return their Authorization headers."""
    def _login(username: str, password: str = PASSWORD) -> dict:
        return auth_headers(get_auth_token(client, username, password))
    return _login
