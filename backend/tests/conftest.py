"""
Pytest fixtures for micropos backend tests.

Provides test database setup, tenant fixtures, catalog/partner factories
and test client.
"""

import pytest
from micropos import create_app
from micropos.config import TestingConfig
from micropos.extensions import db
from micropos.models import Organization, Warehouse, Product, Partner
from micropos.models.partners import PARTNER_CUSTOMER, PARTNER_SUPPLIER


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(config_class=TestingConfig)

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
        # Clear all data but keep schema. Core deletes bypass the ORM
        # append-only listeners.
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def org(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Corner Shop", currency="USD")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def other_org(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Other Shop", currency="USD")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def warehouse(db_session, org):
    warehouse = Warehouse(org_id=org.id, name="Main Warehouse")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def other_warehouse(db_session, other_org):
    warehouse = Warehouse(org_id=other_org.id, name="Main Warehouse")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def make_product(db_session, org):
    """Factory: product in the default org, stock 0, 20% tax."""
    def _make(name="Widget", price_cents=5000, cost_cents=3000, tax_rate_bps=2000, org_id=None, **extra):
        product = Product(
            org_id=org_id or org.id,
            name=name,
            price_cents=price_cents,
            cost_cents=cost_cents,
            tax_rate_bps=tax_rate_bps,
            **extra,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product()


@pytest.fixture(scope='function')
def customer(db_session, org):
    partner = Partner(org_id=org.id, type=PARTNER_CUSTOMER, name="Alice")
    db_session.add(partner)
    db_session.commit()
    return partner


@pytest.fixture(scope='function')
def supplier(db_session, org):
    partner = Partner(org_id=org.id, type=PARTNER_SUPPLIER, name="Wholesale Ltd")
    db_session.add(partner)
    db_session.commit()
    return partner


@pytest.fixture(scope='function')
def strict_policy(app, monkeypatch):
    """Reject cash writes when no session is OPEN."""
    monkeypatch.setitem(app.config, "CASH_SESSION_POLICY", "strict")
