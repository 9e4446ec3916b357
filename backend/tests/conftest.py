"""
Pytest fixtures for RentStock backend tests.

Provides an in-memory database app, a per-test table wipe, a test client,
and product/stock/asset factories.
"""

from datetime import datetime

import pytest

from rentstock import create_app
from rentstock.extensions import db
from rentstock.models.catalog import STOCK_KIND_COUNTABLE, STOCK_KIND_UNIT_TRACKED
from rentstock.services import asset_service, catalog_service, stock_service

ACTOR = "tester"

# Fixed reference day used by date-sensitive tests
DAY0 = datetime(2026, 3, 2, 9, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEFAULT_PENALTY_RATE': 1.5,
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
def make_countable(db_session):
    """Create a countable product with a stock entry; returns the product id."""
    def _make(sku="WIDGET", *, quantity=10, min_quantity=0, price="10.00", name=None):
        product = catalog_service.create_product(
            {
                "sku": sku,
                "name": name or f"Product {sku}",
                "stock_kind": STOCK_KIND_COUNTABLE,
                "price": price,
            },
            actor=ACTOR,
        )
        if quantity is not None:
            stock_service.upsert_stock(
                product.id, quantity=quantity, min_quantity=min_quantity, actor=ACTOR
            )
        return product.id
    return _make


@pytest.fixture(scope='function')
def make_unit_tracked(db_session):
    """Create a unit-tracked product; returns (product_id, [asset ids])."""
    def _make(sku="CAMERA", *, asset_code="CAM", count=2, daily_rate="100.00", name=None):
        product = catalog_service.create_product(
            {
                "sku": sku,
                "name": name or f"Product {sku}",
                "stock_kind": STOCK_KIND_UNIT_TRACKED,
                "daily_rental_rate": daily_rate,
            },
            actor=ACTOR,
        )
        ids = []
        if count:
            units = asset_service.create_batch(
                product.id, asset_code=asset_code, count=count, actor=ACTOR
            )
            ids = [u.id for u in units]
        return product.id, ids
    return _make


@pytest.fixture(scope='function')
def actor_headers():
    return {"X-Actor-Id": ACTOR}
