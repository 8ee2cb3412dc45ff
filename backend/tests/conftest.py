"""
Pytest fixtures for tienda backend tests.

Provides the app on an in-memory SQLite database, a per-test clean session,
two tenants for isolation checks, catalog fixtures and header helpers.
"""

import pytest

from tienda import create_app
from tienda.extensions import db
from tienda.models import Customer, DomainEvent, Product, Supplier, Tenant
from tienda.repositories import storage_for


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'ARTIFACT_DIR': str(tmp_path_factory.mktemp('artifacts')),
        'LEDGER_RETRY_BACKOFF': 0,
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
def storage(app, db_session):
    return storage_for(app)


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Tenant A (first business)."""
    tenant = Tenant(
        name="Tienda A",
        address="Calle 1 #100",
        phone="+591 70000001",
        currency="BOB",
        tax_rate_bps=1300,
        fiscal_tax_id="1000001",
        fiscal_authorization="AUTH-A-001",
    )
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Tenant B (second business)."""
    tenant = Tenant(name="Tienda B", currency="USD")
    db_session.add(tenant)
    db_session.commit()
    return tenant


def make_product(db_session, tenant, *, name="Product", price_cents=1000, stock=10, minimum=0, status="ACTIVE"):
    product = Product(
        tenant_id=tenant.id,
        name=name,
        price_cents=price_cents,
        stock_current=stock,
        stock_minimum=minimum,
        status=status,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product(db_session, tenant_a):
    """Coffee in Tenant A: 10 in stock, minimum 2, 12.50 each."""
    return make_product(db_session, tenant_a, name="Coffee", price_cents=1250, stock=10, minimum=2)


@pytest.fixture(scope='function')
def product_b(db_session, tenant_b):
    """Product in Tenant B."""
    return make_product(db_session, tenant_b, name="Foreign product", price_cents=2000, stock=10)


@pytest.fixture(scope='function')
def supplier(db_session, tenant_a):
    supplier = Supplier(tenant_id=tenant_a.id, name="Distribuidora Central", phone="+591 2200000")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def customer(db_session, tenant_a):
    customer = Customer(tenant_id=tenant_a.id, name="Ana Flores", tax_id="7654321")
    db_session.add(customer)
    db_session.commit()
    return customer


def stock_of(product_id: int) -> int:
    """Read stock straight from the database, bypassing the identity map."""
    db.session.expire_all()
    return db.session.get(Product, product_id).stock_current


def events_of(tenant_id: int, event_type: str | None = None) -> list[DomainEvent]:
    query = db.session.query(DomainEvent).filter_by(tenant_id=tenant_id)
    if event_type:
        query = query.filter_by(event_type=event_type)
    return query.order_by(DomainEvent.id).all()


def gateway_headers(tenant_id: int, role: str = "SELLER", user_id: int | None = 7) -> dict:
    """Headers the upstream auth gateway attaches to every request."""
    headers = {'X-Tenant-Id': str(tenant_id), 'X-User-Role': role}
    if user_id is not None:
        headers['X-User-Id'] = str(user_id)
    return headers
