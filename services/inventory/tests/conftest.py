import os

# Configure before anything imports app.config
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["KAFKA_ENABLED"] = "false"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.api.dependencies import get_event_publisher, get_stock_locks
from app.config import settings
from app.db.database import Base, engine_options, get_db
from app.main import app
from app.models import Product, Store
from app.rate_limit.limiter import AdmissionController
from app.services.locks import StockLockRegistry
from app.services.stock_service import StockService


class RecordingPublisher:
    """Stands in for the Kafka producer and remembers what was published"""

    def __init__(self):
        self.events = []

    def publish_stock_added(self, store_id, product_id, quantity, unit_price, current_stock):
        self.events.append(("STOCK_ADDED", store_id, product_id, quantity, current_stock))

    def publish_stock_removed(self, store_id, product_id, quantity, reason, current_stock):
        self.events.append(("STOCK_REMOVED", store_id, product_id, quantity, reason, current_stock))

    def publish_low_stock(self, store_id, product_id, current_stock, threshold, status):
        self.events.append(("LOW_STOCK_DETECTED", store_id, product_id, current_stock, status))

    def types(self):
        return [event[0] for event in self.events]


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def engine(tmp_path):
    # File-backed so worker threads each get their own connection to the same data
    url = f"sqlite:///{tmp_path / 'inventory.db'}"
    engine = create_engine(url, **engine_options(url))
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db):
    store = Store(name="Downtown", address="1 Main St")
    db.add(store)
    db.commit()
    return store


@pytest.fixture
def other_store(db):
    store = Store(name="Uptown", address="99 High St")
    db.add(store)
    db.commit()
    return store


@pytest.fixture
def product(db):
    product = Product(name="Widget", sku="WID-001", category="Hardware", unit_price=Decimal("19.99"))
    db.add(product)
    db.commit()
    return product


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def locks():
    return StockLockRegistry(timeout_seconds=5)


@pytest.fixture
def service(db, locks, publisher):
    return StockService(db, locks=locks, publisher=publisher, low_stock_threshold=10)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def admission_controller():
    return AdmissionController(window_seconds=60, max_requests=1000)


@pytest.fixture
def client(session_factory, publisher, locks, admission_controller, monkeypatch):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(settings, "rate_limit_enabled", True)
    monkeypatch.setattr(settings, "throttle_log_path", None)
    monkeypatch.setattr(app.state, "admission_controller", admission_controller)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_publisher] = lambda: publisher
    app.dependency_overrides[get_stock_locks] = lambda: locks

    # No context manager: the lifespan would run migrations against DATABASE_URL
    yield TestClient(app)

    app.dependency_overrides.clear()
