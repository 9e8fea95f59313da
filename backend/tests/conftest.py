"""
Pytest fixtures for core-exchange backend tests.

Provides test database setup, catalog/order factories, and test client.
"""

import pytest
from core_exchange import create_app
from core_exchange.extensions import db
from core_exchange.models import Client, Product
from core_exchange.services import order_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'OVERDUE_AFTER_DAYS': 30,
        'AUTO_LINK_REQUIRE_PRODUCT_MATCH': True,
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
        db.session.remove()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: create a product with a carcass value."""
    counter = {"n": 0}

    def _make(name="Alternator 90A", base_price_cents=50000, carcass_value_cents=10000, sku=None):
        counter["n"] += 1
        product = Product(
            sku=sku or f"SKU-{counter['n']:03d}",
            name=name,
            base_price_cents=base_price_cents,
            carcass_value_cents=carcass_value_cents,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_client(db_session):
    """Factory: create a client."""
    def _make(name="Auto Pecas Silva", seller_id=7, document=None):
        client = Client(name=name, seller_id=seller_id, document=document)
        db_session.add(client)
        db_session.commit()
        return client

    return _make


@pytest.fixture(scope='function')
def make_order(db_session):
    """Factory: create an order through the sales service; returns the order."""
    def _make(client, lines, **kwargs):
        items = []
        for line in lines:
            product = line[0]
            quantity = line[1]
            discount = line[2] if len(line) > 2 else 0
            items.append({"product_id": product.id, "quantity": quantity, "discount_percent": discount})
        order, _ = order_service.create_order(client.id, kwargs.pop("seller_id", None), items, **kwargs)
        return order

    return _make


@pytest.fixture(scope='function')
def alternator(make_product):
    return make_product(name="Alternator 90A", base_price_cents=50000, carcass_value_cents=10000)


@pytest.fixture(scope='function')
def starter(make_product):
    return make_product(name="Starter Motor 12V", base_price_cents=80000, carcass_value_cents=20000)


@pytest.fixture(scope='function')
def acme(make_client):
    return make_client(name="Auto Pecas Silva", seller_id=7)


@pytest.fixture(scope='function')
def other_client(make_client):
    return make_client(name="Oficina Beta", seller_id=9)
