from datetime import datetime, timedelta, timezone

import pytest

from app.database import transaction
from app.models import CookStatus, DeliveryStatus, OrderStatus, ServiceType, StaffType
from app.services import cook_assignment, delivery
from app.services.alerts import (
    AssignmentChange,
    AssignmentSnapshot,
    CookAlertBoard,
    DeliveryAlertBoard,
    OrderChange,
    OrderSnapshot,
    get_cook_board,
    get_delivery_board,
    get_order_feed,
)
from app.services.areas import StaffArea


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def tick(self, seconds):
        self.now += seconds


def _snapshot(order_id=1, **overrides):
    values = dict(
        id=order_id,
        order_number=f"PC{order_id}",
        service_type=ServiceType.HOMEMADE,
        status=OrderStatus.READY,
        cook_status=CookStatus.READY,
        delivery_status=DeliveryStatus.PENDING,
        assigned_delivery_id=None,
        panchayat_id=1,
        ward_number=3,
        total_amount=250.0,
        updated_at=None,
    )
    values.update(overrides)
    return OrderSnapshot(**values)


def _becomes_ready(order_id=1):
    old = _snapshot(order_id, status=OrderStatus.PREPARING, cook_status=CookStatus.COOKED)
    return OrderChange(old=old, new=_snapshot(order_id))


def _claimed_by(staff_id, order_id=1):
    new = _snapshot(order_id, assigned_delivery_id=staff_id, delivery_status=DeliveryStatus.ASSIGNED)
    return OrderChange(old=_snapshot(order_id), new=new)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def board(clock):
    board = DeliveryAlertBoard(accept_seconds=120, taken_notice_seconds=5, stale_after_seconds=180, clock=clock)
    board.register(StaffArea(staff_id=10, panchayat_ids=frozenset({1})), [])
    board.register(StaffArea(staff_id=11, panchayat_ids=frozenset({1}), wards=frozenset({5})), [])
    board.register(StaffArea(staff_id=12, panchayat_ids=frozenset({2})), [])
    board.register(StaffArea(staff_id=13, panchayat_ids=frozenset({1})), [])
    return board


# =============================================================================
# DELIVERY BOARD
# =============================================================================

def test_ready_order_is_queued_for_drivers_in_the_area(board, clock):
    announced = []
    board.on_order_available = announced.append

    board.handle_change(_becomes_ready())

    assert [(a.order_id, a.seconds_remaining) for a in board.pending_for(10)] == [(1, 120)]
    assert board.pending_for(11) == []
    assert board.pending_for(12) == []
    assert [s.id for s in announced] == [1]

    clock.tick(30)
    assert board.pending_for(10)[0].seconds_remaining == 90


def test_ward_limit_does_not_apply_to_salaried_staff(board):
    board.register(
        StaffArea(
            staff_id=14,
            panchayat_ids=frozenset({1}),
            wards=frozenset({5}),
            staff_type=StaffType.FIXED_SALARY,
        ),
        [],
    )

    board.handle_change(_becomes_ready())

    assert [a.order_id for a in board.pending_for(14)] == [1]


def test_countdown_runs_out(board, clock):
    board.handle_change(_becomes_ready())

    clock.tick(121)

    assert board.pending_for(10) == []


def test_claimed_order_leaves_a_short_taken_notice(board, clock):
    board.handle_change(_becomes_ready())

    board.handle_change(_claimed_by(13))

    assert board.pending_for(10) == []
    assert board.pending_for(13) == []
    assert board.taken_notices_for(10) == ["PC1"]
    assert board.taken_notices_for(13) == []
    assert board.taken_notices_for(11) == []

    clock.tick(6)
    assert board.taken_notices_for(10) == []


def test_dismissed_alert_stays_away(board):
    board.handle_change(_becomes_ready())

    board.dismiss(10, 1)

    assert board.pending_for(10) == []
    assert [a.order_id for a in board.pending_for(13)] == [1]


def test_load_on_mount_seeds_the_queue(board, clock):
    waiting = _snapshot(7)
    claimed = _snapshot(8, assigned_delivery_id=99, delivery_status=DeliveryStatus.ASSIGNED)

    board.register(StaffArea(staff_id=20, panchayat_ids=frozenset({1})), [waiting, claimed])

    assert [(a.order_id, a.seconds_remaining) for a in board.pending_for(20)] == [(7, 120)]


def test_unregistered_staff_get_nothing(board):
    board.unregister(10)

    board.handle_change(_becomes_ready())

    assert not board.is_registered(10)
    assert board.pending_for(10) == []


def test_inserts_only_alert_when_confirmed(board):
    board.handle_change(OrderChange(old=None, new=_snapshot(1)))
    assert board.pending_for(10) == []

    board.handle_change(OrderChange(old=None, new=_snapshot(2, status=OrderStatus.CONFIRMED)))
    assert [a.order_id for a in board.pending_for(10)] == [2]


def test_admin_dispatched_orders_are_not_alerted(board):
    indoor = OrderChange(
        old=_snapshot(1, service_type=ServiceType.INDOOR_EVENTS, cook_status=CookStatus.COOKED),
        new=_snapshot(1, service_type=ServiceType.INDOOR_EVENTS),
    )

    board.handle_change(indoor)

    assert board.pending_for(10) == []


def test_unclaimed_orders_go_stale(board, clock):
    board.handle_change(_becomes_ready(1))
    board.handle_change(_becomes_ready(2))
    clock.tick(179)
    assert board.stale_orders() == []

    clock.tick(1)
    board.handle_change(_claimed_by(10, order_id=2))

    stale = board.stale_orders()
    assert [(s.order_id, s.seconds_waiting) for s in stale] == [(1, 180)]


# =============================================================================
# COOK BOARD
# =============================================================================

def test_cook_board_holds_assignments_until_the_deadline():
    t0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    now = [t0]
    assigned = []
    board = CookAlertBoard(now=lambda: now[0], on_assignment=assigned.append)
    snap = AssignmentSnapshot(
        id=1, order_id=5, cook_id=7, cook_status=CookStatus.PENDING, response_deadline=t0 + timedelta(seconds=120)
    )

    board.handle_change(AssignmentChange(old_status=None, new=snap))

    assert [(a.order_id, a.seconds_remaining) for a in board.pending_for(7)] == [(5, 120)]
    assert assigned == [snap]
    assert board.pending_for(8) == []

    now[0] = t0 + timedelta(seconds=121)
    assert board.pending_for(7) == []


def test_cook_board_drops_answered_assignments():
    t0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    board = CookAlertBoard(now=lambda: t0)
    pending = AssignmentSnapshot(
        id=1, order_id=5, cook_id=7, cook_status=CookStatus.PENDING, response_deadline=t0 + timedelta(seconds=60)
    )
    board.load(7, [pending])
    assert len(board.pending_for(7)) == 1

    accepted = AssignmentSnapshot(
        id=1, order_id=5, cook_id=7, cook_status=CookStatus.ACCEPTED, response_deadline=pending.response_deadline
    )
    board.handle_change(AssignmentChange(old_status=CookStatus.PENDING, new=accepted))

    assert board.pending_for(7) == []


# =============================================================================
# FEED
# =============================================================================

async def test_feed_publishes_committed_changes(session, dishes, make_cook, place_order):
    changes = []
    get_order_feed().subscribe(changes.append)
    biryani, _ = dishes
    cook = await make_cook(biryani)

    order = await place_order((biryani, 1, cook))

    inserted = [c for c in changes if isinstance(c, OrderChange)]
    assert [(c.is_insert, c.new.id) for c in inserted] == [(True, order.id)]
    assignments = [c for c in changes if isinstance(c, AssignmentChange)]
    assert [(c.is_insert, c.new.cook_id) for c in assignments] == [(True, cook.id)]


async def test_feed_skips_rolled_back_changes(session, dishes, place_order):
    biryani, _ = dishes
    order = await place_order((biryani, 1, None))
    changes = []
    get_order_feed().subscribe(changes.append)

    with pytest.raises(RuntimeError):
        async with transaction(session):
            order.delivery_instructions = "Ring twice"
            await session.flush()
            raise RuntimeError("boom")

    assert changes == []


async def test_broken_subscriber_does_not_fail_the_write(session, dishes, place_order):
    def explode(change):
        raise ValueError("subscriber bug")

    get_order_feed().subscribe(explode)
    biryani, _ = dishes

    order = await place_order((biryani, 1, None))

    assert order.id is not None


async def test_boards_follow_the_database(session, dishes, make_cook, make_driver, place_order):
    delivery_board = get_delivery_board()
    cook_board = get_cook_board()
    first = await make_driver()
    second = await make_driver()
    delivery_board.register(StaffArea.from_staff(first), [])
    delivery_board.register(StaffArea.from_staff(second), [])
    biryani, _ = dishes
    cook = await make_cook(biryani)

    order = await place_order((biryani, 1, cook))
    assert [a.order_id for a in cook_board.pending_for(cook.id)] == [order.id]

    await cook_assignment.respond(session, order.id, cook.id, accept=True)
    assert cook_board.pending_for(cook.id) == []

    for step in (CookStatus.PREPARING, CookStatus.COOKED, CookStatus.READY):
        await cook_assignment.update_cook_progress(session, order.id, cook.id, step)
    assert [a.order_id for a in delivery_board.pending_for(first.id)] == [order.id]

    await delivery.accept_delivery(session, order.id, second.id)

    assert delivery_board.pending_for(first.id) == []
    assert delivery_board.taken_notices_for(first.id) == [order.order_number]
    assert delivery_board.taken_notices_for(second.id) == []
