"""
Pytest fixtures for storefront backend tests.

Provides the in-memory application/database, a clean database per test, a
parent product with size attributes and a variant factory.
"""

import itertools

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import ProductParent, ProductVariant


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
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
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def parent(db_session):
    """Parent product with a size attribute (350ml / 500ml) and no tier sets."""
    parent = ProductParent(
        name="Cold Brew",
        slug="cold-brew",
        variant_attributes=[
            {
                "name": "size",
                "display_name": "Size",
                "values": [{"value": "350ml"}, {"value": "500ml"}],
            },
        ],
        tiered_discounts=[],
    )
    db_session.add(parent)
    db_session.commit()
    return parent


@pytest.fixture(scope='function')
def make_variant(db_session, parent):
    """Factory: make_variant(price=..., stock=..., **fields) -> committed ProductVariant."""
    counter = itertools.count(1)

    def _make(**overrides):
        n = next(counter)
        fields = {
            "parent_id": parent.id,
            "sku": f"CB-{n:03d}",
            "name": f"Cold Brew {n}",
            "attributes": {"size": "350ml"},
            "price": 10000,
            "stock": 100,
        }
        fields.update(overrides)
        variant = ProductVariant(**fields)
        db_session.add(variant)
        db_session.commit()
        return variant

    return _make


@pytest.fixture(scope='function')
def order_payload():
    """Factory: order_payload([(variant_id, quantity), ...], **overrides) -> create-order JSON."""
    def _payload(lines, **overrides):
        payload = {
            "items": [{"variant_id": vid, "quantity": qty} for vid, qty in lines],
            "delivery_method": "pickup",
            "payment_method": "cash",
            "customer": {
                "name": "Ana Benitez",
                "email": "Ana@Example.com",
                "phone": "+595981000000",
            },
        }
        payload.update(overrides)
        return payload

    return _payload
