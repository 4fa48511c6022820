"""
Pytest fixtures for Stockroom backend tests.

Provides test database setup, principals, organization fixtures, an
in-process Redis stand-in for the product cache, and the test client.
"""

import pytest
import redis

from stockroom import create_app
from stockroom.extensions import db
from stockroom.models import OrganizationMember, Order, OrderItem
from stockroom.services.cache_service import EXTENSION_KEY
from stockroom.services.identity_service import Principal, get_or_create_user
from stockroom.services.organization_service import create_organization


class FakeRedis:
    """
    Minimal in-memory stand-in for the redis-py calls the product cache makes.

    With fail=True every call raises redis.ConnectionError, like an
    unreachable server.
    """

    def __init__(self, fail: bool = False):
        self.store = {}
        self.fail = fail
        self.calls = []

    def _check(self, name):
        self.calls.append(name)
        if self.fail:
            raise redis.ConnectionError("connection refused")

    def get(self, key):
        self._check("get")
        return self.store.get(key)

    def set(self, key, value):
        self._check("set")
        self.store[key] = str(value)
        return True

    def delete(self, *keys):
        self._check("delete")
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    def ping(self):
        self._check("ping")
        return True

    def pipeline(self):
        return _FakePipeline(self)


class _FakePipeline:
    def __init__(self, client):
        self.client = client
        self.ops = []

    def set(self, key, value):
        self.ops.append((key, value))
        return self

    def execute(self):
        results = []
        for key, value in self.ops:
            results.append(self.client.set(key, value))
        self.ops = []
        return results


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_ENGINE_OPTIONS': {},
        'CACHE_REDIS_URL': None,
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


@pytest.fixture(scope='function')
def cache(app):
    """Product cache backed by FakeRedis for the duration of one test."""
    fake = FakeRedis()
    app.extensions[EXTENSION_KEY] = fake
    yield fake
    app.extensions[EXTENSION_KEY] = None


@pytest.fixture(scope='function')
def broken_cache(app):
    """Product cache whose every call fails."""
    fake = FakeRedis(fail=True)
    app.extensions[EXTENSION_KEY] = fake
    yield fake
    app.extensions[EXTENSION_KEY] = None


@pytest.fixture
def alice():
    """Organization creator in most tests."""
    return Principal(external_id="user_alice", email="alice@acme.com")


@pytest.fixture
def bob():
    return Principal(external_id="user_bob", email="bob@acme.com")


@pytest.fixture
def carol():
    return Principal(external_id="user_carol", email="carol@beta.com")


@pytest.fixture(scope='function')
def org_id(db_session, alice):
    """Organization "Acme Corp" created by alice."""
    return create_organization("Acme Corp", alice)["org_id"]


@pytest.fixture(scope='function')
def other_org_id(db_session, carol):
    """Organization "Beta Inc" created by carol."""
    return create_organization("Beta Inc", carol)["org_id"]


def add_member(org_id, principal: Principal, role: str) -> OrganizationMember:
    """Helper to give a principal a membership row directly."""
    user = get_or_create_user(principal)
    member = OrganizationMember(org_id=int(org_id), user_id=user.id, role=role)
    db.session.add(member)
    db.session.commit()
    return member


def add_order(org_id, product_id, quantity: int = 1, customer_name: str = "Jane Doe") -> Order:
    """Helper to record an order line referencing a product."""
    order = Order(org_id=int(org_id), customer_name=customer_name, status="pending")
    db.session.add(order)
    db.session.flush()
    db.session.add(OrderItem(order_id=order.id, product_id=int(product_id), quantity=quantity, price_at_order=9.99))
    db.session.commit()
    return order


def identity_headers(principal: Principal) -> dict:
    """Helper to create identity gateway headers for a principal."""
    headers = {'X-Auth-Principal': principal.external_id}
    if principal.email:
        headers['X-Auth-Email'] = principal.email
    return headers
