import re
from datetime import datetime, timedelta

import pytest

from app.core.exceptions import NotEligibleError, ValidationFailedError
from app.models import CookStatus, OrderStatus, ServiceType
from app.services import cart, catalog, checkout
from app.services.checkout import OrderLine, to_base36
from app.services.workflow import utcnow


def test_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "Z"
    assert to_base36(36) == "10"


async def test_order_numbers_per_service(session):
    now = datetime(2024, 3, 1, 12, 0)
    millis = int(now.timestamp() * 1000)

    assert await checkout.next_order_number(session, ServiceType.HOMEMADE, now) == f"PC{millis}"
    assert await checkout.next_order_number(session, ServiceType.CLOUD_KITCHEN, now) == f"CK{millis}"
    assert await checkout.next_order_number(session, ServiceType.INDOOR_EVENTS, now) == f"IE-{to_base36(millis)}"


# =============================================================================
# CART
# =============================================================================

async def test_adding_twice_bumps_the_quantity(session, customer, dishes):
    biryani, payasam = dishes
    await cart.add_to_cart(session, customer.id, biryani.id, 1)
    await cart.add_to_cart(session, customer.id, biryani.id, 2)
    await cart.add_to_cart(session, customer.id, payasam.id, 1)

    lines = await cart.cart_lines(session, customer.id)

    assert [(line.item.id, line.cart_item.quantity) for line in lines] == [(biryani.id, 3), (payasam.id, 1)]
    assert cart.cart_total(lines) == 3 * 198.0 + 60.0


async def test_cart_prices_follow_the_selected_cook(session, customer, dishes, make_cook):
    biryani, _ = dishes
    cook = await make_cook(biryani, custom_price=200.0)

    await cart.add_to_cart(session, customer.id, biryani.id, 1, cook.id)

    line = (await cart.cart_lines(session, customer.id))[0]
    assert line.unit_price == 220.0


async def test_cart_rejects_a_cook_without_the_dish(session, customer, dishes, make_cook):
    biryani, payasam = dishes
    cook = await make_cook(biryani)

    with pytest.raises(NotEligibleError):
        await cart.add_to_cart(session, customer.id, payasam.id, 1, cook.id)


async def test_quantity_zero_removes_the_line(session, customer, dishes):
    biryani, _ = dishes
    await cart.add_to_cart(session, customer.id, biryani.id, 2)

    assert await cart.update_quantity(session, customer.id, biryani.id, 0) is None
    assert await cart.cart_lines(session, customer.id) == []


# =============================================================================
# HOMEMADE
# =============================================================================

async def test_homemade_checkout(session, customer, dishes, make_cook, place_order):
    biryani, payasam = dishes
    cook = await make_cook(biryani)

    order = await place_order((biryani, 2, cook), (payasam, 1, None))

    assert re.fullmatch(r"PC\d+", order.order_number)
    assert order.status == OrderStatus.PENDING
    assert order.total_amount == 2 * 198.0 + 60.0
    assert order.delivery_amount == 0.0
    assert [(i.quantity, i.unit_price, i.assigned_cook_id) for i in order.items] == [
        (2, 198.0, cook.id),
        (1, 60.0, None),
    ]
    assert [(a.cook_id, a.cook_status) for a in order.assignments] == [(cook.id, CookStatus.PENDING)]
    assert order.assigned_cook_id == cook.id
    assert await cart.cart_lines(session, customer.id, ServiceType.HOMEMADE) == []


async def test_homemade_checkout_needs_items_and_a_real_ward(session, customer, panchayat, dishes):
    biryani, _ = dishes
    customer_id, panchayat_id, biryani_id = customer.id, panchayat.id, biryani.id

    with pytest.raises(ValidationFailedError):
        await checkout.checkout_homemade(session, customer, "House 12", panchayat_id, 3)

    await session.refresh(customer)
    await cart.add_to_cart(session, customer_id, biryani_id, 1)
    with pytest.raises(ValidationFailedError):
        await checkout.checkout_homemade(session, customer, "House 12", panchayat_id, 11)

    await session.refresh(customer)
    with pytest.raises(ValidationFailedError):
        await checkout.checkout_homemade(session, customer, "  ", panchayat_id, 3)


# =============================================================================
# CLOUD KITCHEN
# =============================================================================

@pytest.fixture
async def lunch(session):
    slot = await catalog.create_slot(session, "Lunch", "12:00", "14:00", cutoff_hours_before=2, delivery_charge=30.0)
    meals = await catalog.create_food_item(
        session,
        "Meals",
        ServiceType.CLOUD_KITCHEN,
        50.0,
        set_size=4,
        min_order_sets=2,
        cloud_kitchen_slot_id=slot.id,
    )
    return slot, meals


async def test_cloud_kitchen_orders_sets(session, customer, panchayat, lunch):
    slot, meals = lunch

    order = await checkout.checkout_cloud_kitchen(
        session,
        customer,
        slot.id,
        [OrderLine(food_item_id=meals.id, quantity=2)],
        "House 12",
        panchayat.id,
        3,
        local_now=datetime(2024, 3, 1, 8, 0),
    )

    assert re.fullmatch(r"CK\d+", order.order_number)
    assert order.items[0].quantity == 8
    assert order.items[0].total_price == 400.0
    assert order.delivery_amount == 30.0
    assert order.total_amount == 430.0
    assert order.cloud_kitchen_slot_id == slot.id


async def test_cloud_kitchen_enforces_minimum_sets_and_cutoff(session, customer, panchayat, lunch):
    slot, meals = lunch
    slot_id, meals_id, panchayat_id = slot.id, meals.id, panchayat.id

    with pytest.raises(ValidationFailedError):
        await checkout.checkout_cloud_kitchen(
            session, customer, slot_id, [OrderLine(food_item_id=meals_id, quantity=1)],
            "House 12", panchayat_id, 3, local_now=datetime(2024, 3, 1, 8, 0),
        )

    await session.refresh(customer)
    with pytest.raises(ValidationFailedError) as exc:
        await checkout.checkout_cloud_kitchen(
            session, customer, slot_id, [OrderLine(food_item_id=meals_id, quantity=2)],
            "House 12", panchayat_id, 3, local_now=datetime(2024, 3, 1, 11, 0),
        )
    assert exc.value.code == "slot_closed"


# =============================================================================
# INDOOR EVENTS
# =============================================================================

async def test_indoor_event_booking(session, customer, panchayat):
    sadya = await catalog.create_food_item(session, "Onam Sadya", ServiceType.INDOOR_EVENTS, 250.0)

    order = await checkout.book_indoor_event(
        session,
        customer,
        event_date=utcnow() + timedelta(days=10),
        guest_count=150,
        panchayat_id=panchayat.id,
        ward_number=3,
        event_details="Wedding reception",
        lines=[OrderLine(food_item_id=sadya.id, quantity=150)],
    )

    assert re.fullmatch(r"IE-[0-9A-Z]+", order.order_number)
    assert order.total_amount == 150 * 250.0
    assert order.guest_count == 150
    assert order.assignments == []


async def test_indoor_event_must_be_in_the_future(session, customer, panchayat):
    with pytest.raises(ValidationFailedError):
        await checkout.book_indoor_event(
            session,
            customer,
            event_date=utcnow() - timedelta(days=1),
            guest_count=20,
            panchayat_id=panchayat.id,
            ward_number=3,
        )
