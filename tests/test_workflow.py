import pytest

from app.core.exceptions import (
    InvalidTransitionError,
    PermissionDeniedError,
    ValidationFailedError,
)
from app.models import AppRole, CookStatus, DeliveryStatus, OrderStatus
from app.services import cook_assignment, staff, workflow


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (OrderStatus.PENDING, OrderStatus.CONFIRMED, True),
        (OrderStatus.CONFIRMED, OrderStatus.PREPARING, True),
        (OrderStatus.READY, OrderStatus.OUT_FOR_DELIVERY, True),
        (OrderStatus.PENDING, OrderStatus.READY, False),
        (OrderStatus.PREPARING, OrderStatus.CONFIRMED, False),
        (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED, True),
        (OrderStatus.DELIVERED, OrderStatus.CANCELLED, False),
        (OrderStatus.CANCELLED, OrderStatus.PENDING, False),
    ],
)
def test_can_transition(current, target, allowed):
    assert workflow.can_transition(current, target) is allowed


async def test_full_admin_flow_records_each_step(session, admin, dishes, place_order):
    biryani, _ = dishes
    order = await place_order((biryani, 1, None))

    await workflow.confirm_order(session, order.id, admin)
    await workflow.mark_ready(session, order.id, admin)
    await workflow.ship_order(
        session, order.id, vehicle_number="KL-08-AB-1234", driver_mobile="9847000000", actor=admin
    )
    order = await workflow.mark_delivered(session, order.id, admin)

    assert order.status == OrderStatus.DELIVERED
    assert order.delivery_status == DeliveryStatus.DELIVERED
    assert order.delivered_at is not None

    history = await workflow.order_history(session, order.id)
    assert [e.to_status for e in history] == [
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
    ]
    assert all(e.actor_id == admin.id for e in history)


async def test_skipping_a_step_is_rejected(session, dishes, place_order):
    biryani, _ = dishes
    order = await place_order((biryani, 1, None))

    with pytest.raises(InvalidTransitionError):
        workflow.transition(session, order, OrderStatus.READY)
    assert order.status == OrderStatus.PENDING


async def test_out_for_delivery_needs_a_vehicle(session, admin, dishes, place_order):
    biryani, _ = dishes
    order = await place_order((biryani, 1, None))
    order = await workflow.mark_ready(session, order.id, admin)
    order_id = order.id

    with pytest.raises(ValidationFailedError):
        workflow.transition(session, order, OrderStatus.OUT_FOR_DELIVERY)

    with pytest.raises(ValidationFailedError):
        await workflow.ship_order(session, order_id, vehicle_number=" ", driver_mobile="9847000000")

    order = await workflow.get_order(session, order_id)
    assert order.status == OrderStatus.READY


async def test_ship_reuses_a_recent_vehicle(session, admin, dishes, place_order):
    biryani, payasam = dishes
    first = await place_order((biryani, 1, None))
    second = await place_order((payasam, 2, None))
    for order in (first, second):
        await workflow.mark_ready(session, order.id, admin)

    await workflow.ship_order(
        session, first.id, vehicle_number="KL-08-AB-1234", driver_mobile="9847000000", driver_name="Biju"
    )
    vehicles = await workflow.recent_vehicles(session)
    assert [v.vehicle_number for v in vehicles] == ["KL-08-AB-1234"]

    order = await workflow.ship_order(session, second.id, vehicle_id=vehicles[0].id)
    assert order.status == OrderStatus.OUT_FOR_DELIVERY
    assert len(await workflow.recent_vehicles(session)) == 1


async def test_only_the_customer_or_an_admin_can_cancel(session, customer, dishes, place_order):
    biryani, _ = dishes
    order = await place_order((biryani, 1, None))
    order_id = order.id
    stranger = await staff.register_profile(session, "Stranger", "9847099999")

    with pytest.raises(PermissionDeniedError):
        await workflow.cancel_order(session, order_id, stranger)

    await session.refresh(customer)
    order = await workflow.cancel_order(session, order_id, customer)
    assert order.status == OrderStatus.CANCELLED

    with pytest.raises(InvalidTransitionError):
        await workflow.cancel_order(session, order_id, customer)


async def test_restore_returns_to_pending_without_assignments(session, admin, dishes, make_cook, place_order):
    biryani, _ = dishes
    cook = await make_cook(biryani)
    order = await place_order((biryani, 2, None))
    await cook_assignment.assign_cook(session, order.id, cook.id, admin)
    await workflow.cancel_order(session, order.id, admin)

    order = await workflow.restore_order(session, order.id, admin)

    assert order.status == OrderStatus.PENDING
    assert order.cook_status == CookStatus.PENDING
    assert order.assigned_cook_id is None
    assert order.assignments == []
    assert all(item.assigned_cook_id is None for item in order.items)

    history = await workflow.order_history(session, order.id)
    assert (history[-1].from_status, history[-1].to_status) == (OrderStatus.CANCELLED, OrderStatus.PENDING)


async def test_restore_is_admin_only_and_needs_a_cancelled_order(session, admin, customer, dishes, place_order):
    biryani, _ = dishes
    order = await place_order((biryani, 1, None))
    order_id = order.id

    with pytest.raises(InvalidTransitionError):
        await workflow.restore_order(session, order_id, admin)

    await session.refresh(customer)
    await workflow.cancel_order(session, order_id, customer)
    assert customer.role == AppRole.CUSTOMER
    with pytest.raises(PermissionDeniedError):
        await workflow.restore_order(session, order_id, customer)
