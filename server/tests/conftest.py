"""Test configuration and fixtures."""

import os

# Settings are read at import time; keep the module-level engine off PostgreSQL
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from hotel_booking.core.clock import FrozenClock
from hotel_booking.core.config import Settings
from hotel_booking.core.database import Base, build_engine, build_session_factory, get_db, init_db
from hotel_booking.core.dependencies import build_services, configure_app_state
from hotel_booking.core.locking import InventoryLockManager
from hotel_booking.models import CancellationPolicy, CancellationPolicyTier, RoomType
from hotel_booking.schemas.booking import GuestDetails
from hotel_booking.schemas.pricing import Coupon, DiscountScope, DiscountType
from hotel_booking.services.lookups import StaticCouponLookup, StaticTaxConfigLookup

# Frozen "now" well ahead of the stays used in tests
NOW = datetime(2026, 2, 1, 9, 0, tzinfo=timezone.utc)
CHECK_IN = date(2026, 3, 1)
CHECK_OUT = date(2026, 3, 3)


class RecordingNotifier:
    """Notification dispatcher that only remembers what it was given."""

    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    def dispatch(self, event: str, payload: dict) -> None:
        self.events.append((event, payload))

    def names(self) -> list[str]:
        return [event for event, _ in self.events]

    async def drain(self) -> None:
        return None


@pytest.fixture
def test_settings():
    """Settings with a round tax rate and no retry backoff."""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        environment="test",
        tax_rate=Decimal("0.10"),
        tax_inclusive=False,
        lock_retry_backoff_seconds=0.0,
        lock_timeout_seconds=2.0,
    )


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def lock_manager(test_settings):
    return InventoryLockManager(test_settings.lock_timeout_seconds)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def coupons():
    return StaticCouponLookup([
        Coupon(code="SPRING10", discount_type=DiscountType.PERCENTAGE, amount=Decimal("10")),
        Coupon(code="FLAT50", discount_type=DiscountType.FIXED, amount=Decimal("50")),
        Coupon(code="RETIRED", discount_type=DiscountType.PERCENTAGE, amount=Decimal("20"), active=False),
        Coupon(
            code="WINTER",
            discount_type=DiscountType.PERCENTAGE,
            amount=Decimal("25"),
            expires_on=date(2026, 1, 31),
        ),
    ])


@pytest.fixture
def room_type_coupon():
    def make(room_type_id: int, amount: str = "20") -> Coupon:
        return Coupon(
            code=f"ROOM{room_type_id}",
            discount_type=DiscountType.PERCENTAGE,
            amount=Decimal(amount),
            discount_on=DiscountScope.ROOM_TYPE,
            room_type_ids=frozenset({room_type_id}),
        )
    return make


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite engine so concurrent sessions see one database."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}")
    await init_db(engine)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_services(clock, lock_manager, test_settings, coupons, notifier):
    """Build the service bundle around any session, sharing one lock manager."""
    def make(session):
        return build_services(
            session,
            clock,
            lock_manager,
            test_settings,
            coupons=coupons,
            taxes=StaticTaxConfigLookup.from_settings(test_settings),
            notifier=notifier,
        )
    return make


@pytest.fixture
def services(make_services, test_session):
    return make_services(test_session)


@pytest_asyncio.fixture
async def create_room_type(test_session):
    async def create(
        name: str = "Deluxe King",
        total_units: int = 2,
        base_rate: str = "100.00",
        cancellation_policy_id: int | None = None,
    ) -> int:
        room_type = RoomType(
            name=name,
            total_units=total_units,
            base_rate=Decimal(base_rate),
            cancellation_policy_id=cancellation_policy_id,
        )
        test_session.add(room_type)
        await test_session.commit()
        return room_type.id
    return create


@pytest_asyncio.fixture
async def room_type_id(create_room_type):
    """A room type with 2 units a night at 100.00."""
    return await create_room_type()


@pytest_asyncio.fixture
async def create_policy(test_session):
    async def create(
        tiers: list[tuple[int, int]],
        name: str = "Flexible",
        is_default: bool = False,
        is_refundable: bool = True,
    ) -> int:
        policy = CancellationPolicy(
            name=name,
            is_default=is_default,
            is_refundable=is_refundable,
            tiers=[
                CancellationPolicyTier(days_before_check_in=days, refund_percentage=percentage)
                for days, percentage in tiers
            ],
        )
        test_session.add(policy)
        await test_session.commit()
        return policy.id
    return create


@pytest.fixture
def guest():
    return GuestDetails(name="Ada Lovelace", email="ada@example.com", adults=2)


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, test_settings, clock, lock_manager, coupons, notifier):
    """Create a test FastAPI application without lifespan or instrumentation."""
    from fastapi import FastAPI

    from hotel_booking.core.middleware import setup_middleware
    from hotel_booking.main import register_routes

    app = FastAPI(title="Hotel Booking API (Test)", version="1.0.0-test")
    configure_app_state(
        app,
        test_settings,
        clock=clock,
        lock_manager=lock_manager,
        coupons=coupons,
        taxes=StaticTaxConfigLookup.from_settings(test_settings),
        notifier=notifier,
    )
    setup_middleware(app, enable_logging=True)
    register_routes(app)

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
