"""Pytest configuration and fixtures."""

import os

# Configure before the app reads settings
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Generator, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from rms.db.base import Base
from rms.db.session import build_engine, get_db
from rms.main import app
# Import all models to ensure they're registered with Base.metadata
from rms.models import *
from rms.services.events import DomainEvent, EventBus, event_bus

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

T0 = datetime(2026, 3, 14, 18, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Controllable clock passed to services in place of ``utc_now``."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int = 0, minutes: int = 0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds, minutes=minutes)
        return self.now


class HookedClock(FixedClock):
    """Fixed clock that runs ``hook`` on its next reading.

    Services read the clock between loading state and committing, so the hook
    is where a competing request gets to commit first.
    """

    def __init__(self, start: datetime = T0):
        super().__init__(start)
        self.hook: Optional[Callable[[], None]] = None
        self.repeat = False

    def __call__(self) -> datetime:
        hook = self.hook
        if hook is not None:
            if not self.repeat:
                self.hook = None
            hook()
        return self.now


class RecordingBus(EventBus):
    """Event bus that keeps every published event."""

    def __init__(self):
        super().__init__()
        self.events: List[DomainEvent] = []

    def publish(self, event: DomainEvent) -> int:
        self.events.append(event)
        return super().publish(event)

    def types(self) -> List[str]:
        return [e.type.value for e in self.events]


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = build_engine(TEST_DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def two_sessions(tmp_path) -> Generator[Tuple[Session, Session], None, None]:
    """Two sessions on a file-backed database, each with its own connection.

    Used to interleave requests the way two API workers would.
    """
    engine = build_engine(f"sqlite:///{tmp_path / 'rms.db'}")
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    first, second = SessionLocal(), SessionLocal()
    try:
        yield first, second
    finally:
        first.close()
        second.close()
        engine.dispose()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiter during tests to avoid flaky failures
    from rms.core.rate_limit import limiter
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()
    event_bus.clear()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def test_location(db_session: Session) -> Location:
    """Create a test location."""
    location = Location(name="Clifton Branch", active=True)
    db_session.add(location)
    db_session.commit()
    db_session.refresh(location)
    return location


@pytest.fixture
def test_area(db_session: Session, test_location: Location) -> Area:
    area = Area(location_id=test_location.id, name="Main Floor", display_order=0)
    db_session.add(area)
    db_session.commit()
    db_session.refresh(area)
    return area


@pytest.fixture
def patio_area(db_session: Session, test_location: Location) -> Area:
    area = Area(location_id=test_location.id, name="Patio", display_order=1)
    db_session.add(area)
    db_session.commit()
    db_session.refresh(area)
    return area


@pytest.fixture
def test_tables(db_session: Session, test_area: Area) -> List[Table]:
    """Three available tables on the main floor: 2-4, 2-4 and 4-6 seats."""
    tables = [
        Table(area_id=test_area.id, table_number="T1", min_seats=2, max_seats=4),
        Table(area_id=test_area.id, table_number="T2", min_seats=2, max_seats=4),
        Table(area_id=test_area.id, table_number="T3", min_seats=4, max_seats=6),
    ]
    db_session.add_all(tables)
    db_session.commit()
    for table in tables:
        db_session.refresh(table)
    return tables


@pytest.fixture
def patio_table(db_session: Session, patio_area: Area) -> Table:
    table = Table(area_id=patio_area.id, table_number="P1", min_seats=2, max_seats=2)
    db_session.add(table)
    db_session.commit()
    db_session.refresh(table)
    return table


def make_order(
    db_session: Session,
    order_number: str = "ORD-1001",
    status: OrderStatus = OrderStatus.CONFIRMED,
    subtotal: str = "50.00",
    tax_rate: str = "0.16",
    tax_amount: str = "8.00",
    total: str = "58.00",
    **fields,
) -> Order:
    order = Order(
        order_number=order_number,
        status=status,
        subtotal=Decimal(subtotal),
        tax_rate=Decimal(tax_rate),
        tax_amount=Decimal(tax_amount),
        total=Decimal(total),
        **fields,
    )
    db_session.add(order)
    db_session.commit()
    db_session.refresh(order)
    return order


@pytest.fixture
def test_order(db_session: Session, test_location: Location) -> Order:
    """Confirmed order: subtotal 50.00 at 16% tax, total 58.00."""
    return make_order(db_session, location_id=test_location.id)


@pytest.fixture
def test_station(db_session: Session, test_location: Location) -> KitchenStation:
    station = KitchenStation(
        location_id=test_location.id,
        name="Grill",
        code="GRILL",
        warning_time=10,
        critical_time=15,
    )
    db_session.add(station)
    db_session.commit()
    db_session.refresh(station)
    return station


@pytest.fixture
def test_menu_items(db_session: Session) -> List[MenuItem]:
    category = Category(name="Mains", display_order=0)
    db_session.add(category)
    db_session.flush()
    items = [
        MenuItem(category_id=category.id, name="Chicken Karahi", price=Decimal("18.00")),
        MenuItem(category_id=category.id, name="Seekh Kebab", price=Decimal("12.00")),
        MenuItem(category_id=category.id, name="Garlic Naan", price=Decimal("3.00")),
    ]
    db_session.add_all(items)
    db_session.commit()
    for item in items:
        db_session.refresh(item)
    return items


@pytest.fixture
def cash_method(db_session: Session) -> PaymentMethod:
    method = PaymentMethod(
        name="Cash",
        code="CASH",
        type=PaymentMethodType.CASH,
        gateway_provider="cash",
        allows_refund=True,
        allows_tip=True,
        fee_type=FeeType.NONE,
    )
    db_session.add(method)
    db_session.commit()
    db_session.refresh(method)
    return method
