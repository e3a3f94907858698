import pytest

from app.core.exceptions import InvalidTransitionError, NotFoundError
from app.database import transaction
from app.models import SettlementStatus, TransactionStatus, TransactionType
from app.services import settlements, wallets, workflow


@pytest.fixture
async def delivered_order(session, admin, dishes, make_cook, place_order):
    """Biryani by one kitchen, two payasam by another, delivered by admin dispatch."""
    biryani, payasam = dishes
    biryani_cook = await make_cook(biryani)
    payasam_cook = await make_cook(payasam)
    order = await place_order((biryani, 1, biryani_cook), (payasam, 2, payasam_cook))
    await workflow.mark_ready(session, order.id, admin)
    await workflow.ship_order(session, order.id, vehicle_number="KL-08-AB-1234", driver_mobile="9847000000")
    order = await workflow.mark_delivered(session, order.id, admin)
    return order, biryani_cook, payasam_cook


async def test_one_settlement_per_cook(session, delivered_order):
    order, biryani_cook, payasam_cook = delivered_order

    rows = await settlements.list_settlements(session)

    amounts = {s.cook_id: s.amount for s in rows}
    assert amounts == {biryani_cook.id: 198.0, payasam_cook.id: 120.0}
    assert sum(amounts.values()) == order.total_amount
    assert all(s.status == SettlementStatus.PENDING for s in rows)
    assert all(s.order_id == order.id for s in rows)
    assert {s.profile_id for s in rows} == {biryani_cook.profile_id, payasam_cook.profile_id}


async def test_settling_twice_creates_nothing_new(session, delivered_order):
    order, _, _ = delivered_order

    assert await settlements.settle_order(session, order.id) == []
    assert len(await settlements.list_settlements(session)) == 2


async def test_only_delivered_orders_are_settled(session, dishes, place_order):
    biryani, _ = dishes
    order = await place_order((biryani, 1, None))

    with pytest.raises(InvalidTransitionError):
        await settlements.settle_order(session, order.id)


async def test_cook_counters_bumped_on_delivery(session, delivered_order):
    _, biryani_cook, payasam_cook = delivered_order
    for cook in (biryani_cook, payasam_cook):
        await session.refresh(cook)
        assert cook.total_orders == 1


async def test_bulk_approval_is_all_or_nothing(session, admin, delivered_order):
    rows = await settlements.list_settlements(session)
    ids = [s.id for s in rows]

    with pytest.raises(NotFoundError):
        await settlements.approve_settlements(session, ids + [9999], admin)
    await session.refresh(admin)
    assert await settlements.list_settlements(session, status=SettlementStatus.APPROVED) == []

    approved = await settlements.approve_settlements(session, ids, admin)
    assert {s.status for s in approved} == {SettlementStatus.APPROVED}
    assert all(s.approved_by == admin.id and s.approved_at is not None for s in approved)


async def test_cook_summary_tracks_pending_and_earned(session, admin, delivered_order):
    _, biryani_cook, payasam_cook = delivered_order
    biryani_row = (await settlements.list_settlements(session, cook_id=biryani_cook.id))[0]
    await settlements.approve_settlement(session, biryani_row.id, admin)

    summary = {row["cook_id"]: row for row in await settlements.cook_settlement_summary(session)}

    assert summary[biryani_cook.id]["pending_amount"] == 0.0
    assert summary[biryani_cook.id]["total_earned"] == 198.0
    assert summary[payasam_cook.id]["pending_amount"] == 120.0
    assert summary[payasam_cook.id]["kitchen_name"] == payasam_cook.kitchen_name


# =============================================================================
# DRIVER WALLETS
# =============================================================================

@pytest.fixture
async def booked_wallet(session, dishes, make_driver, place_order):
    biryani, _ = dishes
    driver = await make_driver()
    order = await place_order((biryani, 1, None))
    async with transaction(session):
        order.delivery_amount = 25.0
        await wallets.record_delivery(session, driver, order)
    return driver, order


async def test_delivery_books_collection_and_earning(session, booked_wallet):
    driver, order = booked_wallet

    wallet = await wallets.get_wallet(session, driver.id)
    assert wallet.collected_amount == order.total_amount
    assert wallet.job_earnings == 25.0
    assert wallet.total_settled == 0.0

    txns = {t.transaction_type: t for t in await wallets.list_transactions(session, staff_id=driver.id)}
    assert txns[TransactionType.COLLECTION].status == TransactionStatus.PENDING
    assert txns[TransactionType.EARNING].status == TransactionStatus.APPROVED


async def test_approving_a_collection_settles_it_once(session, admin, booked_wallet):
    driver, order = booked_wallet
    collection = (await wallets.list_transactions(
        session, staff_id=driver.id, status=TransactionStatus.PENDING
    ))[0]

    await wallets.approve_collection(session, collection.id, admin)
    await wallets.approve_collection(session, collection.id, admin)

    wallet = await wallets.get_wallet(session, driver.id)
    assert wallet.total_settled == order.total_amount
    assert wallet.pending_collection == 0.0


async def test_earnings_need_no_approval(session, admin, booked_wallet):
    driver, _ = booked_wallet
    earning = (await wallets.list_transactions(
        session, staff_id=driver.id, status=TransactionStatus.APPROVED
    ))[0]

    with pytest.raises(InvalidTransitionError):
        await wallets.approve_collection(session, earning.id, admin)
