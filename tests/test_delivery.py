from datetime import timedelta

import pytest

from app.core.exceptions import (
    AssignmentConflictError,
    InvalidTransitionError,
    NotEligibleError,
    PermissionDeniedError,
)
from app.models import (
    CookStatus,
    DeliveryStatus,
    OrderStatus,
    SettlementStatus,
    StaffType,
    TransactionStatus,
    TransactionType,
)
from app.services import delivery, settlements, wallets, workflow
from app.services.workflow import utcnow


async def test_ready_order_is_waiting_for_pickup(session, make_ready_order):
    order = await make_ready_order()

    assert order.status == OrderStatus.READY
    assert order.cook_status == CookStatus.READY
    assert [o.id for o in await delivery.ready_for_pickup_orders(session)] == [order.id]


async def test_eligible_staff_follow_panchayat_and_ward(session, other_panchayat, make_driver, make_ready_order):
    order = await make_ready_order(ward=3)
    anywhere = await make_driver()
    ward_three = await make_driver(wards=[3, 4])
    ward_five = await make_driver(wards=[5])
    salaried = await make_driver(wards=[5], staff_type=StaffType.FIXED_SALARY)
    await make_driver(panchayat_id=other_panchayat.id)
    await make_driver(approved=False)

    eligible = await delivery.eligible_delivery_staff(session, order)

    assert {s.id for s in eligible} == {anywhere.id, ward_three.id, salaried.id}
    assert ward_five.id not in {s.id for s in eligible}
    assert [o.id for o in await delivery.available_delivery_orders(session, ward_three)] == [order.id]
    assert await delivery.available_delivery_orders(session, ward_five) == []


async def test_first_driver_to_accept_wins(session, make_driver, make_ready_order):
    order = await make_ready_order()
    order_id = order.id
    first = await make_driver()
    second = await make_driver()
    first_id, second_id = first.id, second.id

    order = await delivery.accept_delivery(session, order_id, first_id)
    assert order.assigned_delivery_id == first_id
    assert order.delivery_status == DeliveryStatus.ASSIGNED
    assert order.delivery_eta is not None

    with pytest.raises(AssignmentConflictError) as exc:
        await delivery.accept_delivery(session, order_id, second_id)
    assert exc.value.code == "order_taken"

    order = await workflow.get_order(session, order_id)
    assert order.assigned_delivery_id == first_id
    assert await delivery.ready_for_pickup_orders(session) == []


async def test_accept_checks_area_and_approval(session, other_panchayat, make_driver, make_ready_order):
    order = await make_ready_order()
    order_id = order.id
    outsider = await make_driver(panchayat_id=other_panchayat.id)
    applicant = await make_driver(approved=False)
    outsider_id, applicant_id = outsider.id, applicant.id

    with pytest.raises(NotEligibleError) as exc:
        await delivery.accept_delivery(session, order_id, outsider_id)
    assert exc.value.code == "outside_area"

    with pytest.raises(NotEligibleError):
        await delivery.accept_delivery(session, order_id, applicant_id)

    order = await workflow.get_order(session, order_id)
    assert order.assigned_delivery_id is None


async def test_hand_off_settles_cook_and_books_wallet(session, make_driver, make_ready_order):
    order = await make_ready_order()
    driver = await make_driver()
    await delivery.accept_delivery(session, order.id, driver.id)

    order = await delivery.update_delivery_status(session, order.id, driver.id, DeliveryStatus.PICKED_UP)
    assert order.status == OrderStatus.OUT_FOR_DELIVERY
    assert order.delivery_status == DeliveryStatus.PICKED_UP
    vehicles = await workflow.recent_vehicles(session)
    assert vehicles[0].vehicle_number == driver.vehicle_number
    assert vehicles[0].driver_mobile == driver.mobile_number

    order = await delivery.update_delivery_status(session, order.id, driver.id, DeliveryStatus.DELIVERED)
    assert order.status == OrderStatus.DELIVERED
    assert order.delivery_status == DeliveryStatus.DELIVERED

    rows = await settlements.list_settlements(session)
    assert len(rows) == 1
    assert rows[0].amount == order.total_amount
    assert rows[0].status == SettlementStatus.PENDING

    wallet = await wallets.get_wallet(session, driver.id)
    assert wallet.collected_amount == order.total_amount
    assert wallet.job_earnings == 0.0
    assert wallet.pending_collection == order.total_amount

    txns = await wallets.list_transactions(session, staff_id=driver.id)
    assert [(t.transaction_type, t.status) for t in txns] == [
        (TransactionType.COLLECTION, TransactionStatus.PENDING)
    ]
    assert driver.total_deliveries == 1
    assert [o.id for o in await delivery.delivery_history(session, driver.id)] == [order.id]


async def test_only_the_holding_driver_moves_the_delivery(session, make_driver, make_ready_order):
    order = await make_ready_order()
    order_id = order.id
    holder = await make_driver()
    other = await make_driver()
    holder_id, other_id = holder.id, other.id
    await delivery.accept_delivery(session, order_id, holder_id)

    with pytest.raises(PermissionDeniedError):
        await delivery.update_delivery_status(session, order_id, other_id, DeliveryStatus.PICKED_UP)

    with pytest.raises(InvalidTransitionError):
        await delivery.update_delivery_status(session, order_id, holder_id, DeliveryStatus.DELIVERED)


async def test_admin_assignment_respects_the_area(session, admin, other_panchayat, make_driver, make_ready_order):
    order = await make_ready_order()
    order_id = order.id
    outsider = await make_driver(panchayat_id=other_panchayat.id)
    local = await make_driver()
    outsider_id, local_id = outsider.id, local.id

    with pytest.raises(NotEligibleError):
        await delivery.assign_delivery(session, order_id, outsider_id)

    order = await delivery.assign_delivery(session, order_id, local_id)
    assert order.assigned_delivery_id == local_id
    assert order.delivery_status == DeliveryStatus.ASSIGNED


async def test_stale_orders_are_ready_and_unclaimed_for_too_long(session, make_driver, make_ready_order):
    waiting = await make_ready_order()
    claimed = await make_ready_order()
    driver = await make_driver()
    await delivery.accept_delivery(session, claimed.id, driver.id)

    assert await delivery.stale_delivery_orders(session, older_than_seconds=180) == []

    later = utcnow() + timedelta(seconds=181)
    stale = await delivery.stale_delivery_orders(session, older_than_seconds=180, now=later)
    assert [o.id for o in stale] == [waiting.id]
