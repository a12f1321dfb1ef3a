"""
Pytest configuration and fixtures for backend tests.
"""

import os

# Before any application import: the module-level engine and Redis pool read these
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rest_api.main import app
from rest_api.core.dependencies import get_event_fanout
from rest_api.models import (
    Base,
    Branch,
    DiningTable,
    MenuItem,
    Modifier,
    Recipe,
    StockItem,
)
from rest_api.services.domain import InventoryService, OrderService, OrderTransitionService
from rest_api.services.events import LocalEventFanout
from shared.infrastructure.db import build_engine, get_db
from shared.infrastructure.events import get_event_circuit_breaker
from shared.security.auth import sign_jwt
from shared.security.rate_limit import limiter
from shared.utils.schemas import CreateOrderRequest


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
)

# 15:00 UTC on 2025-10-28 is 12:00 in Santiago
FIXED_NOW = datetime(2025, 10, 28, 15, 0, 0, tzinfo=timezone.utc)

BRANCH_ID = 1
OTHER_BRANCH_ID = 2
TABLE_ID = 1
LOMO_ID = 1  # 95.00
PISCO_SOUR_ID = 2  # 45.00
SOLD_OUT_ID = 3
EXTRA_CHEESE_ID = 1  # +5.00, any dish
DOUBLE_PISCO_ID = 2  # +20.00, pisco sour only
BEEF_ID = 1
POTATO_ID = 2
PISCO_ID = 3


class FakeClock:
    """Pinned clock; ``advance`` moves it forward."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def seed_reference_data(session) -> None:
    """Branch CAS (10% tax, 5% service), its menu, stock and recipes."""
    session.add_all([
        Branch(
            id=BRANCH_ID,
            code="CAS",
            name="Casa Matriz",
            tax_rate_bps=1000,
            service_rate_bps=500,
            timezone="America/Santiago",
        ),
        Branch(id=OTHER_BRANCH_ID, code="VIN", name="Viña", tax_rate_bps=1900, service_rate_bps=0),
    ])
    session.flush()
    session.add_all([
        DiningTable(id=TABLE_ID, branch_id=BRANCH_ID, code="T1"),
        MenuItem(id=LOMO_ID, branch_id=BRANCH_ID, name="Lomo a lo pobre", price_cents=9500),
        MenuItem(id=PISCO_SOUR_ID, branch_id=BRANCH_ID, name="Pisco sour", price_cents=4500),
        MenuItem(
            id=SOLD_OUT_ID,
            branch_id=BRANCH_ID,
            name="Curanto",
            price_cents=12000,
            is_available=False,
        ),
    ])
    session.flush()
    session.add_all([
        Modifier(id=EXTRA_CHEESE_ID, branch_id=BRANCH_ID, name="Extra queso", extra_price_cents=500),
        Modifier(
            id=DOUBLE_PISCO_ID,
            branch_id=BRANCH_ID,
            menu_item_id=PISCO_SOUR_ID,
            name="Doble",
            extra_price_cents=2000,
        ),
        StockItem(
            id=BEEF_ID,
            branch_id=BRANCH_ID,
            name="Beef",
            unit="kg",
            quantity=Decimal("10"),
            min_threshold=Decimal("2"),
        ),
        StockItem(
            id=POTATO_ID,
            branch_id=BRANCH_ID,
            name="Potato",
            unit="kg",
            quantity=Decimal("20"),
            min_threshold=Decimal("5"),
        ),
        StockItem(
            id=PISCO_ID,
            branch_id=BRANCH_ID,
            name="Pisco",
            unit="l",
            quantity=Decimal("1"),
            min_threshold=Decimal("1"),
        ),
    ])
    session.flush()
    session.add_all([
        Recipe(id=1, menu_item_id=LOMO_ID, stock_item_id=BEEF_ID, qty_per_serving=Decimal("0.25")),
        Recipe(id=2, menu_item_id=LOMO_ID, stock_item_id=POTATO_ID, qty_per_serving=Decimal("0.5")),
        Recipe(id=3, menu_item_id=PISCO_SOUR_ID, stock_item_id=PISCO_ID, qty_per_serving=Decimal("0.125")),
    ])
    session.commit()


def make_order_request(**overrides) -> CreateOrderRequest:
    """Defaults to 2 x Lomo with extra cheese, cash."""
    data = {
        "branch_id": BRANCH_ID,
        "table_id": TABLE_ID,
        "customer_name": "Mesa 1",
        "items": [{"menu_item_id": LOMO_ID, "quantity": 2, "modifier_ids": [EXTRA_CHEESE_ID]}],
        "payment_method": "CASH",
    }
    data.update(overrides)
    return CreateOrderRequest(**data)


def staff_token(roles: list[str], branch_ids: list[int] | None = None, user_id: int = 7) -> str:
    return sign_jwt({
        "sub": str(user_id),
        "branch_ids": [BRANCH_ID] if branch_ids is None else branch_ids,
        "roles": roles,
    })


def staff_headers(roles: list[str], branch_ids: list[int] | None = None, user_id: int = 7) -> dict:
    return {"Authorization": f"Bearer {staff_token(roles, branch_ids, user_id)}"}


@pytest.fixture(autouse=True)
def reset_circuit_breaker():
    """The publishing breaker is process-wide."""
    get_event_circuit_breaker().reset()
    yield
    get_event_circuit_breaker().reset()


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seed_data(db_session):
    seed_reference_data(db_session)
    return db_session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fanout():
    return LocalEventFanout()


@pytest.fixture
def order_service(seed_data, fanout, clock):
    return OrderService(seed_data, fanout=fanout, clock=clock)


@pytest.fixture
def transition_service(seed_data, fanout, clock):
    return OrderTransitionService(seed_data, fanout=fanout, clock=clock)


@pytest.fixture
def inventory_service(seed_data):
    return InventoryService(seed_data)


@pytest.fixture
def cash_order(order_service):
    """A SUBMITTED cash order for 2 x Lomo with extra cheese, with its creation event cleared."""
    order, _ = order_service.create_order(make_order_request())
    order_service._fanout.clear()
    return order


@pytest.fixture
def card_order(order_service):
    """An AWAITING_PAYMENT card order for one pisco sour."""
    order, _ = order_service.create_order(
        make_order_request(
            items=[{"menu_item_id": PISCO_SOUR_ID, "quantity": 1}],
            payment_method="CARD",
        )
    )
    order_service._fanout.clear()
    return order


@pytest.fixture(scope="function")
def client(seed_data, fanout):
    """
    Create a test client with database session and fanout overrides.
    """
    def override_get_db():
        try:
            yield seed_data
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_fanout] = lambda: fanout
    limiter.enabled = False

    with TestClient(app) as test_client:
        yield test_client

    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return staff_headers(["ADMIN"])


@pytest.fixture
def cashier_headers():
    return staff_headers(["CASHIER"])


@pytest.fixture
def kitchen_headers():
    return staff_headers(["KITCHEN"])


@pytest.fixture
def file_session_factory(tmp_path):
    """
    Sessions on a file-backed SQLite database, one per thread.

    In-memory SQLite cannot be shared between connections, so the
    concurrency tests use a real file with the production engine settings.
    """
    file_engine = build_engine(f"sqlite:///{tmp_path / 'orders.db'}")
    Base.metadata.create_all(bind=file_engine)
    factory = sessionmaker(bind=file_engine, autoflush=False, expire_on_commit=False)
    with factory() as session:
        seed_reference_data(session)
    yield factory
    file_engine.dispose()
