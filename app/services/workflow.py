"""
Order Status Workflow

pending -> confirmed -> preparing -> ready -> out_for_delivery -> delivered
with cancelled reachable from every non-terminal status.

Helpers without a leading underscore that take a loaded Order only mutate
it (the caller commits); the ``*_order`` coroutines load, mutate and
commit in one transaction.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from app.database import transaction
from app.models import (
    Cook,
    CookStatus,
    DeliveryStatus,
    Order,
    OrderStatus,
    OrderStatusEvent,
    OrderVehicle,
    Profile,
)

logger = logging.getLogger(__name__)

ORDER_SEQUENCE = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]
TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# RULES
# =============================================================================

def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """One step forward along the sequence, or cancel a live order."""
    if current in TERMINAL_STATUSES:
        return False
    if target == OrderStatus.CANCELLED:
        return True
    return ORDER_SEQUENCE.index(target) == ORDER_SEQUENCE.index(current) + 1


def is_assignable(order: Order) -> bool:
    return order.status not in TERMINAL_STATUSES


def ensure_assignable(order: Order) -> None:
    if not is_assignable(order):
        raise InvalidTransitionError(
            f"Order {order.order_number} is {order.status.value} and cannot be assigned",
            code="order_closed",
        )


# =============================================================================
# LOADING
# =============================================================================

async def get_order(session: AsyncSession, order_id: int, *, for_update: bool = False) -> Order:
    stmt = (
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    order = (await session.execute(stmt)).scalar_one_or_none()
    if order is None:
        raise NotFoundError(f"Order #{order_id} not found")
    return order


# =============================================================================
# TRANSITIONS
# =============================================================================

def transition(
    session: AsyncSession,
    order: Order,
    target: OrderStatus,
    actor_id: Optional[int] = None,
) -> OrderStatusEvent:
    """Move exactly one step (or cancel) and record the move."""
    if target == OrderStatus.OUT_FOR_DELIVERY and not session.info.get(("vehicle", order.id)):
        raise ValidationFailedError(
            f"Order {order.order_number} needs a vehicle record before going out for delivery",
            code="vehicle_required",
        )
    if not can_transition(order.status, target):
        raise InvalidTransitionError(
            f"Cannot move order {order.order_number} from {order.status.value} to {target.value}"
        )

    event = OrderStatusEvent(
        order_id=order.id,
        from_status=order.status,
        to_status=target,
        actor_id=actor_id,
    )
    session.add(event)
    logger.info(f"Order {order.order_number}: {order.status.value} -> {target.value}")
    order.status = target
    return event


def advance_to(
    session: AsyncSession,
    order: Order,
    target: OrderStatus,
    actor_id: Optional[int] = None,
) -> None:
    """Apply successive single steps until ``target`` is reached."""
    if order.status == target:
        return
    if target == OrderStatus.CANCELLED:
        transition(session, order, target, actor_id)
        return
    if (
        order.status in TERMINAL_STATUSES
        or ORDER_SEQUENCE.index(target) < ORDER_SEQUENCE.index(order.status)
    ):
        raise InvalidTransitionError(
            f"Cannot move order {order.order_number} from {order.status.value} to {target.value}"
        )
    while order.status != target:
        next_status = ORDER_SEQUENCE[ORDER_SEQUENCE.index(order.status) + 1]
        transition(session, order, next_status, actor_id)


def send_out(
    session: AsyncSession,
    order: Order,
    vehicle_number: str,
    driver_mobile: str,
    driver_name: Optional[str] = None,
    notes: Optional[str] = None,
    actor_id: Optional[int] = None,
) -> OrderVehicle:
    """ready -> out_for_delivery together with the vehicle that carries it."""
    if not (vehicle_number or "").strip() or not (driver_mobile or "").strip():
        raise ValidationFailedError(
            "Vehicle number and driver mobile are required",
            code="vehicle_required",
        )
    vehicle = OrderVehicle(
        order_id=order.id,
        vehicle_number=vehicle_number.strip(),
        driver_mobile=driver_mobile.strip(),
        driver_name=driver_name,
        notes=notes,
    )
    session.add(vehicle)
    session.info[("vehicle", order.id)] = True
    try:
        transition(session, order, OrderStatus.OUT_FOR_DELIVERY, actor_id)
    finally:
        session.info.pop(("vehicle", order.id), None)
    return vehicle


async def deliver(session: AsyncSession, order: Order, actor_id: Optional[int] = None) -> list:
    """
    out_for_delivery -> delivered: settlements, assignments closed, cook
    counters bumped. Returns the settlements created.
    """
    # Imported here: settlements depends on this module's helpers
    from app.services.settlements import create_settlements

    transition(session, order, OrderStatus.DELIVERED, actor_id)
    order.delivered_at = utcnow()
    order.delivery_status = DeliveryStatus.DELIVERED
    order.cook_status = CookStatus.READY

    for assignment in order.assignments:
        if assignment.cook_status not in (CookStatus.REJECTED, CookStatus.EXPIRED):
            assignment.cook_status = CookStatus.READY

    settlements = await create_settlements(session, order)

    cook_ids = {item.assigned_cook_id for item in order.items if item.assigned_cook_id}
    cook_ids.update(
        a.cook_id for a in order.assignments if a.cook_status == CookStatus.READY
    )
    if cook_ids:
        await session.execute(
            update(Cook)
            .where(Cook.id.in_(cook_ids))
            .values(total_orders=Cook.total_orders + 1)
            .execution_options(synchronize_session=False)
        )
    return settlements


# =============================================================================
# ORDER ACTIONS
# =============================================================================

async def cancel_order(session: AsyncSession, order_id: int, actor: Optional[Profile] = None) -> Order:
    async with transaction(session):
        order = await get_order(session, order_id, for_update=True)
        if actor is not None and not actor.is_admin and order.customer_id != actor.id:
            raise PermissionDeniedError("Only the customer or an admin can cancel this order")
        transition(session, order, OrderStatus.CANCELLED, actor.id if actor else None)
    return order


async def restore_order(session: AsyncSession, order_id: int, actor: Profile) -> Order:
    """cancelled -> pending, admins only. Cook and delivery assignments are cleared."""
    if not actor.is_admin:
        raise PermissionDeniedError("Only admins can restore a cancelled order")

    async with transaction(session):
        order = await get_order(session, order_id, for_update=True)
        if order.status != OrderStatus.CANCELLED:
            raise InvalidTransitionError(
                f"Only cancelled orders can be restored (order {order.order_number} is {order.status.value})"
            )
        session.add(OrderStatusEvent(
            order_id=order.id,
            from_status=OrderStatus.CANCELLED,
            to_status=OrderStatus.PENDING,
            actor_id=actor.id,
        ))
        order.status = OrderStatus.PENDING
        order.assigned_cook_id = None
        order.cook_status = CookStatus.PENDING
        order.cook_assigned_at = None
        order.cook_response_deadline = None
        order.assigned_delivery_id = None
        order.delivery_status = DeliveryStatus.PENDING
        order.delivery_eta = None
        for item in order.items:
            item.assigned_cook_id = None
        order.assignments.clear()

    logger.info(f"Order {order.order_number} restored to pending by profile #{actor.id}")
    return order


async def confirm_order(session: AsyncSession, order_id: int, actor: Optional[Profile] = None) -> Order:
    async with transaction(session):
        order = await get_order(session, order_id, for_update=True)
        transition(session, order, OrderStatus.CONFIRMED, actor.id if actor else None)
    return order


async def mark_ready(session: AsyncSession, order_id: int, actor: Optional[Profile] = None) -> Order:
    async with transaction(session):
        order = await get_order(session, order_id, for_update=True)
        advance_to(session, order, OrderStatus.READY, actor.id if actor else None)
    return order


async def ship_order(
    session: AsyncSession,
    order_id: int,
    vehicle_number: Optional[str] = None,
    driver_mobile: Optional[str] = None,
    driver_name: Optional[str] = None,
    notes: Optional[str] = None,
    vehicle_id: Optional[int] = None,
    actor: Optional[Profile] = None,
) -> Order:
    """
    Dispatch a ready order. Either reuse a recent vehicle record
    (``vehicle_id``) or pass new vehicle details.
    """
    async with transaction(session):
        order = await get_order(session, order_id, for_update=True)
        if vehicle_id is not None:
            previous = await session.get(OrderVehicle, vehicle_id)
            if previous is None:
                raise NotFoundError(f"Vehicle record #{vehicle_id} not found")
            vehicle_number = vehicle_number or previous.vehicle_number
            driver_mobile = driver_mobile or previous.driver_mobile
            driver_name = driver_name or previous.driver_name
        send_out(
            session,
            order,
            vehicle_number=vehicle_number,
            driver_mobile=driver_mobile,
            driver_name=driver_name,
            notes=notes,
            actor_id=actor.id if actor else None,
        )
    return order


async def mark_delivered(session: AsyncSession, order_id: int, actor: Optional[Profile] = None) -> Order:
    async with transaction(session):
        order = await get_order(session, order_id, for_update=True)
        settlements = await deliver(session, order, actor.id if actor else None)
    logger.info(f"✅ Order {order.order_number} delivered ({len(settlements)} settlement(s) created)")
    return order


async def recent_vehicles(session: AsyncSession, limit: int = 20) -> list[OrderVehicle]:
    """Latest vehicle record per vehicle number, newest first."""
    rows = await session.execute(
        select(OrderVehicle).order_by(OrderVehicle.created_at.desc(), OrderVehicle.id.desc()).limit(limit * 5)
    )
    seen: set[str] = set()
    vehicles = []
    for vehicle in rows.scalars():
        if vehicle.vehicle_number in seen:
            continue
        seen.add(vehicle.vehicle_number)
        vehicles.append(vehicle)
        if len(vehicles) >= limit:
            break
    return vehicles


async def order_history(session: AsyncSession, order_id: int) -> list[OrderStatusEvent]:
    rows = await session.execute(
        select(OrderStatusEvent)
        .where(OrderStatusEvent.order_id == order_id)
        .order_by(OrderStatusEvent.id)
    )
    return list(rows.scalars())
