"""
Shared fixtures: an in-memory SQLite database per test and a few
factories for the people and dishes most tests need.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENV_MODE", "development")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.database import Base
from app.models import AppRole, CookStatus, ServiceType, StaffType
from app.services import cart, catalog, checkout, cook_assignment, cook_dishes, staff
from app.services.alerts import reset_alert_boards


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture(autouse=True)
def alert_boards():
    reset_alert_boards()
    yield
    reset_alert_boards()


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
async def panchayat(session):
    return await staff.create_panchayat(session, "Kodakara", ward_count=10, code="KDK")


@pytest.fixture
async def other_panchayat(session):
    return await staff.create_panchayat(session, "Mala", ward_count=5)


@pytest.fixture
async def admin(session):
    return await staff.register_profile(session, "Admin", "9000000001", role=AppRole.ADMIN)


@pytest.fixture
async def customer(session, panchayat):
    return await staff.register_profile(
        session, "Anitha K", "9847012345", panchayat_id=panchayat.id, ward_number=3
    )


@pytest.fixture
async def dishes(session):
    """Two homemade dishes: biryani (10% margin) and payasam (no margin)."""
    biryani = await catalog.create_food_item(
        session, "Chicken Biryani", ServiceType.HOMEMADE, 180.0, platform_margin_value=10.0
    )
    payasam = await catalog.create_food_item(session, "Palada Payasam", ServiceType.HOMEMADE, 60.0)
    return biryani, payasam


@pytest.fixture
def make_cook(session, admin):
    counter = {"n": 0}

    async def make(*food_items, name=None, custom_price=None, panchayat_id=None):
        counter["n"] += 1
        n = counter["n"]
        profile = await staff.register_profile(
            session, f"Cook {n}", f"91000000{n:02d}", role=AppRole.COOK
        )
        cook = await staff.register_cook(
            session,
            name or f"Kitchen {n}",
            profile.mobile_number,
            panchayat_id=panchayat_id,
            profile_id=profile.id,
            created_by=admin.id,
        )
        for item in food_items:
            await cook_dishes.allocate_dish(session, cook.id, item.id, custom_price, admin)
        return cook

    return make


@pytest.fixture
def make_driver(session, admin, panchayat):
    counter = {"n": 0}

    async def make(panchayat_id=None, wards=(), approved=True, staff_type=StaffType.REGISTERED_PARTNER):
        counter["n"] += 1
        n = counter["n"]
        profile = await staff.register_profile(
            session, f"Driver {n}", f"92000000{n:02d}", role=AppRole.DELIVERY_STAFF
        )
        driver = await staff.apply_delivery_staff(
            session,
            name=f"Driver {n}",
            mobile_number=profile.mobile_number,
            vehicle_type="scooter",
            vehicle_number=f"KL-08-{1000 + n}",
            panchayat_id=panchayat_id or panchayat.id,
            assigned_wards=list(wards),
            staff_type=staff_type,
            profile_id=profile.id,
        )
        if approved:
            driver = await staff.approve_delivery_staff(session, driver.id, admin)
        return driver

    return make


@pytest.fixture
def place_order(session, customer, panchayat):
    """Put ``(food_item, quantity, cook_or_None)`` lines in the cart and check out."""

    async def place(*lines, ward=3):
        for item, quantity, cook in lines:
            await cart.add_to_cart(session, customer.id, item.id, quantity, cook.id if cook else None)
        return await checkout.checkout_homemade(
            session, customer, "House 12, Market Road", panchayat.id, ward
        )

    return place


@pytest.fixture
def make_ready_order(session, dishes, make_cook, place_order):
    """A homemade order its cook has finished, waiting for a driver."""

    async def make(ward=3):
        biryani, _ = dishes
        cook = await make_cook(biryani)
        order = await place_order((biryani, 2, cook), ward=ward)
        await cook_assignment.respond(session, order.id, cook.id, accept=True)
        for step in (CookStatus.PREPARING, CookStatus.COOKED, CookStatus.READY):
            order = await cook_assignment.update_cook_progress(session, order.id, cook.id, step)
        return order

    return make
