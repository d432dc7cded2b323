"""
Pytest fixtures for RetailOps backend tests.

Provides test database setup, two tenants with outlets/warehouses/products,
a fixed clock, a recording job sink, and service bundles per tenant.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from retailops import create_app
from retailops.config import ServiceSettings
from retailops.extensions import db
from retailops.models import (
    Business,
    Customer,
    Outlet,
    PriceTier,
    Product,
    Supplier,
    Warehouse,
)
from retailops.services.job_service import JobSink
from retailops.services.registry import CLOCK_EXTENSION, JOB_SINK_EXTENSION, build_services


FIXED_NOW = datetime(2026, 10, 19, 9, 30, 0)
CASHIER_ID = 7


class FixedClock:
    """Clock that only moves when a test says so."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def set(self, now: datetime) -> None:
        self.current = now


class RecordingJobSink(JobSink):
    """Collects published jobs; can be told to fail."""

    def __init__(self):
        self.published = []
        self.fail = False

    def publish(self, queue: str, job: dict) -> None:
        if self.fail:
            raise RuntimeError("queue unavailable")
        self.published.append((queue, job))

    def reset(self) -> None:
        self.published.clear()
        self.fail = False

    def events(self) -> list[str]:
        return [job["payload"].get("event_type") for _, job in self.published if job["type"] == "AUDIT_LOG"]

    def emails(self) -> list[dict]:
        return [job["payload"] for _, job in self.published if job["type"] == "EMAIL_NOTIFICATION"]


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RETRY_BACKOFF_BASE': 0,
    })
    app.extensions[CLOCK_EXTENSION] = FixedClock()
    app.extensions[JOB_SINK_EXTENSION] = RecordingJobSink()

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, clock, jobs):
    """Create test client (fixed clock and empty job sink)."""
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
def clock(app):
    clock = app.extensions[CLOCK_EXTENSION]
    clock.set(FIXED_NOW)
    return clock


@pytest.fixture(scope='function')
def jobs(app):
    sink = app.extensions[JOB_SINK_EXTENSION]
    sink.reset()
    return sink


@pytest.fixture(scope='function')
def settings():
    return ServiceSettings(retry_attempts=3, retry_backoff_base=0, default_page_size=50, max_page_size=200)


# ----------------------------------------------------------------------
# Tenant A
# ----------------------------------------------------------------------

@pytest.fixture(scope='function')
def business_a(db_session):
    """Create Business A (first tenant)."""
    business = Business(name="Acme Retail", code="ACME")
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def outlet_a(db_session, business_a):
    outlet = Outlet(business_id=business_a.id, name="Main Store", code="MAIN")
    db_session.add(outlet)
    db_session.commit()
    return outlet


@pytest.fixture(scope='function')
def warehouse_a(db_session, outlet_a):
    warehouse = Warehouse(outlet_id=outlet_a.id, name="Front", code="FRONT")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def warehouse_a2(db_session, outlet_a):
    warehouse = Warehouse(outlet_id=outlet_a.id, name="Back Room", code="BACK")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def outlet_a2(db_session, business_a):
    outlet = Outlet(business_id=business_a.id, name="Mall Kiosk", code="KIOSK")
    db_session.add(outlet)
    db_session.commit()
    return outlet


@pytest.fixture(scope='function')
def warehouse_kiosk(db_session, outlet_a2):
    warehouse = Warehouse(outlet_id=outlet_a2.id, name="Kiosk Shelf", code="SHELF")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def product_x(db_session, business_a):
    """Taxed product: 100.00 base, 10% tax."""
    product = Product(
        business_id=business_a.id,
        sku="X-001",
        name="Product X",
        base_price=Decimal("100.00"),
        cost_price=Decimal("60.00"),
        tax_rate=Decimal("10.00"),
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_y(db_session, business_a):
    """Untaxed product: 50.00 base."""
    product = Product(
        business_id=business_a.id,
        sku="Y-001",
        name="Product Y",
        base_price=Decimal("50.00"),
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def wholesale_tier(db_session, business_a):
    tier = PriceTier(business_id=business_a.id, name="Wholesale", code="WHOLESALE")
    db_session.add(tier)
    db_session.commit()
    return tier


@pytest.fixture(scope='function')
def customer_a(db_session, business_a):
    customer = Customer(business_id=business_a.id, name="Dana Buyer", email="dana@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def supplier_a(db_session, business_a):
    supplier = Supplier(business_id=business_a.id, name="Beans Wholesale", email="orders@beans.example")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def services(db_session, business_a, clock, jobs, settings):
    """Service bundle for Business A."""
    return build_services(lambda: db.session, business_a.id, clock=clock, jobs=jobs, settings=settings)


@pytest.fixture(scope='function')
def headers_a(business_a):
    return {"X-User-Id": str(CASHIER_ID), "X-Business-Id": str(business_a.id)}


# ----------------------------------------------------------------------
# Tenant B
# ----------------------------------------------------------------------

@pytest.fixture(scope='function')
def business_b(db_session):
    """Create Business B (second tenant)."""
    business = Business(name="Beta Goods", code="BETA")
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def outlet_b(db_session, business_b):
    outlet = Outlet(business_id=business_b.id, name="Beta Store", code="MAIN")
    db_session.add(outlet)
    db_session.commit()
    return outlet


@pytest.fixture(scope='function')
def warehouse_b(db_session, outlet_b):
    warehouse = Warehouse(outlet_id=outlet_b.id, name="Beta Stock", code="STOCK")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def product_b(db_session, business_b):
    product = Product(
        business_id=business_b.id,
        sku="B-001",
        name="Product B",
        base_price=Decimal("20.00"),
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def headers_b(business_b):
    return {"X-User-Id": "99", "X-Business-Id": str(business_b.id)}


@pytest.fixture(scope='function')
def services_b(db_session, business_b, clock, jobs, settings):
    """Service bundle for Business B."""
    return build_services(lambda: db.session, business_b.id, clock=clock, jobs=jobs, settings=settings)


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------

@pytest.fixture(scope='function')
def stock_in(services):
    """Put opening stock in place through the ledger."""
    def _stock_in(product, warehouse, quantity):
        return services.inventory.adjust(
            product_id=product.id,
            warehouse_id=warehouse.id,
            quantity=quantity,
            direction="IN",
            user_id=CASHIER_ID,
            notes="opening stock",
        )
    return _stock_in


@pytest.fixture(scope='function')
def on_hand(services):
    def _on_hand(product, warehouse) -> Decimal:
        return services.inventory.get_quantity_on_hand(product.id, warehouse.id)
    return _on_hand
