"""
Cook Eligibility and Assignment

A cook qualifies for an order only when they are allocated every dish
the order contains. Assignments carry a response deadline that the
server enforces: an answer after it marks the assignment expired.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import (
    AssignmentExpiredError,
    InvalidTransitionError,
    NotEligibleError,
    NotFoundError,
    ValidationFailedError,
)
from app.database import transaction
from app.models import (
    Cook,
    CookDish,
    CookStatus,
    Order,
    OrderAssignedCook,
    OrderStatus,
    Profile,
    ServiceType,
)
from app.services.workflow import (
    TERMINAL_STATUSES,
    advance_to,
    ensure_assignable,
    get_order,
    utcnow,
)

logger = logging.getLogger(__name__)
settings = get_settings()

COOK_SEQUENCE = [
    CookStatus.PENDING,
    CookStatus.ACCEPTED,
    CookStatus.PREPARING,
    CookStatus.COOKED,
    CookStatus.READY,
]
INACTIVE_COOK_STATUSES = frozenset({CookStatus.REJECTED, CookStatus.EXPIRED})
# Service types whose order status follows the cooks' progress
COOK_DRIVEN_SERVICES = frozenset({ServiceType.CLOUD_KITCHEN, ServiceType.HOMEMADE})


def response_deadline(now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) + timedelta(seconds=settings.cook_accept_cutoff_seconds)


# =============================================================================
# ELIGIBILITY
# =============================================================================

async def allocated_dishes(session: AsyncSession, cook_ids: Iterable[int]) -> dict[int, set[int]]:
    rows = await session.execute(
        select(CookDish.cook_id, CookDish.food_item_id).where(CookDish.cook_id.in_(list(cook_ids)))
    )
    dishes: dict[int, set[int]] = defaultdict(set)
    for cook_id, food_item_id in rows:
        dishes[cook_id].add(food_item_id)
    return dishes


async def qualified_cooks(
    session: AsyncSession,
    food_item_ids: Iterable[int],
    service_type: Optional[ServiceType] = None,
) -> list[Cook]:
    """Active, available cooks allocated every one of ``food_item_ids``."""
    required = set(food_item_ids)
    cooks = list((await session.execute(
        select(Cook)
        .where(Cook.is_active.is_(True), Cook.is_available.is_(True))
        .order_by(Cook.rating.desc(), Cook.id)
    )).scalars())

    if service_type is not None:
        cooks = [c for c in cooks if service_type.value in (c.allowed_order_types or [])]
    if not required:
        return cooks

    dishes = await allocated_dishes(session, [c.id for c in cooks])
    return [c for c in cooks if required <= dishes.get(c.id, set())]


async def _get_cook(session: AsyncSession, cook_id: int) -> Cook:
    cook = await session.get(Cook, cook_id)
    if cook is None:
        raise NotFoundError(f"Cook #{cook_id} not found")
    if not cook.is_active:
        raise NotEligibleError(f"Cook {cook.kitchen_name} is not active")
    return cook


# =============================================================================
# AGGREGATE STATUS
# =============================================================================

def aggregate_cook_status(assignments: list[OrderAssignedCook]) -> CookStatus:
    if not assignments:
        return CookStatus.PENDING
    active = [a.cook_status for a in assignments if a.cook_status not in INACTIVE_COOK_STATUSES]
    if not active:
        if all(a.cook_status == CookStatus.EXPIRED for a in assignments):
            return CookStatus.EXPIRED
        return CookStatus.REJECTED
    if all(s == CookStatus.READY for s in active):
        return CookStatus.READY
    if all(s in (CookStatus.COOKED, CookStatus.READY) for s in active):
        return CookStatus.COOKED
    if any(s in (CookStatus.PREPARING, CookStatus.COOKED, CookStatus.READY) for s in active):
        return CookStatus.PREPARING
    if all(s == CookStatus.ACCEPTED for s in active):
        return CookStatus.ACCEPTED
    return CookStatus.PENDING


def sync_order_with_cooks(session: AsyncSession, order: Order, actor_id: Optional[int] = None) -> None:
    """
    Recompute the order's cook_status from its assignments and, for
    cloud-kitchen and homemade orders, let the order status follow.
    """
    order.cook_status = aggregate_cook_status(order.assignments)
    if order.service_type not in COOK_DRIVEN_SERVICES or order.status in TERMINAL_STATUSES:
        return

    status = order.cook_status
    if status == CookStatus.READY and order.status in (
        OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PREPARING
    ):
        advance_to(session, order, OrderStatus.READY, actor_id)
    elif status in (CookStatus.PREPARING, CookStatus.COOKED) and order.status in (
        OrderStatus.PENDING, OrderStatus.CONFIRMED
    ):
        advance_to(session, order, OrderStatus.PREPARING, actor_id)
    elif status == CookStatus.ACCEPTED and order.status == OrderStatus.PENDING:
        advance_to(session, order, OrderStatus.CONFIRMED, actor_id)


# =============================================================================
# ASSIGNMENT
# =============================================================================

def _upsert_assignment(order: Order, cook_id: int, now: datetime) -> OrderAssignedCook:
    for assignment in order.assignments:
        if assignment.cook_id == cook_id:
            assignment.cook_status = CookStatus.PENDING
            assignment.assigned_at = now
            assignment.response_deadline = response_deadline(now)
            assignment.responded_at = None
            return assignment
    assignment = OrderAssignedCook(
        cook_id=cook_id,
        cook_status=CookStatus.PENDING,
        assigned_at=now,
        response_deadline=response_deadline(now),
    )
    order.assignments.append(assignment)
    return assignment


async def assign_cook(
    session: AsyncSession,
    order_id: int,
    cook_id: int,
    actor: Optional[Profile] = None,
    now: Optional[datetime] = None,
) -> Order:
    """Give the whole order to one cook qualified for all of its dishes."""
    now = now or utcnow()
    async with transaction(session):
        order = await get_order(session, order_id, for_update=True)
        ensure_assignable(order)
        cook = await _get_cook(session, cook_id)

        required = set(order.food_item_ids)
        allocated = (await allocated_dishes(session, [cook.id])).get(cook.id, set())
        missing = required - allocated
        if missing:
            raise NotEligibleError(
                f"Cook {cook.kitchen_name} is not allocated dishes {sorted(missing)}",
                code="dish_not_allocated",
            )

        order.assigned_cook_id = cook.id
        order.cook_assigned_at = now
        order.cook_response_deadline = response_deadline(now)
        _upsert_assignment(order, cook.id, now)
        for item in order.items:
            if item.assigned_cook_id is None:
                item.assigned_cook_id = cook.id

        advance_to(session, order, OrderStatus.PREPARING, actor.id if actor else None)
        order.cook_status = aggregate_cook_status(order.assignments)

    logger.info(f"👨‍🍳 Order {order.order_number} assigned to cook {cook.kitchen_name}")
    return order


async def assign_cooks_per_dish(
    session: AsyncSession,
    order_id: int,
    mapping: dict[int, int],
    actor: Optional[Profile] = None,
    now: Optional[datetime] = None,
) -> Order:
    """
    Assign cooks item by item (``{order_item_id: cook_id}``). Each cook must
    be allocated the dish they get; the order ends up with one assignment
    row per distinct cook.
    """
    now = now or utcnow()
    if not mapping:
        raise ValidationFailedError("At least one item must be assigned")

    async with transaction(session):
        order = await get_order(session, order_id, for_update=True)
        ensure_assignable(order)

        items = {item.id: item for item in order.items}
        unknown = set(mapping) - set(items)
        if unknown:
            raise ValidationFailedError(
                f"Items {sorted(unknown)} do not belong to order {order.order_number}"
            )

        cooks = {cook_id: await _get_cook(session, cook_id) for cook_id in set(mapping.values())}
        dishes = await allocated_dishes(session, cooks)
        for item_id, cook_id in mapping.items():
            if items[item_id].food_item_id not in dishes.get(cook_id, set()):
                raise NotEligibleError(
                    f"Cook {cooks[cook_id].kitchen_name} is not allocated food item "
                    f"#{items[item_id].food_item_id}",
                    code="dish_not_allocated",
                )

        for item_id, cook_id in mapping.items():
            items[item_id].assigned_cook_id = cook_id

        wanted = {item.assigned_cook_id for item in order.items if item.assigned_cook_id}
        for assignment in list(order.assignments):
            if assignment.cook_id not in wanted:
                order.assignments.remove(assignment)
        existing = {a.cook_id for a in order.assignments}
        for cook_id in sorted(wanted - existing):
            _upsert_assignment(order, cook_id, now)

        order.assigned_cook_id = next(iter(wanted)) if len(wanted) == 1 else None
        order.cook_assigned_at = now
        order.cook_response_deadline = response_deadline(now)

        advance_to(session, order, OrderStatus.PREPARING, actor.id if actor else None)
        order.cook_status = aggregate_cook_status(order.assignments)

    logger.info(f"👨‍🍳 Order {order.order_number} split across cooks {sorted(wanted)}")
    return order


# =============================================================================
# COOK RESPONSES
# =============================================================================

def _find_assignment(order: Order, cook_id: int) -> OrderAssignedCook:
    for assignment in order.assignments:
        if assignment.cook_id == cook_id:
            return assignment
    raise NotFoundError(f"Cook #{cook_id} is not assigned to order {order.order_number}")


async def respond(
    session: AsyncSession,
    order_id: int,
    cook_id: int,
    accept: bool,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Order:
    """
    Accept or reject an assignment. A response after the deadline expires
    the assignment and raises AssignmentExpiredError.
    """
    now = now or utcnow()
    expired = False

    async with transaction(session):
        order = await get_order(session, order_id, for_update=True)
        assignment = _find_assignment(order, cook_id)
        ensure_assignable(order)
        if assignment.cook_status != CookStatus.PENDING:
            raise InvalidTransitionError(
                f"Assignment already {assignment.cook_status.value}", code="already_responded"
            )

        if assignment.response_deadline is not None and now > assignment.response_deadline:
            assignment.cook_status = CookStatus.EXPIRED
            _release_items(order, cook_id)
            expired = True
        else:
            assignment.cook_status = CookStatus.ACCEPTED if accept else CookStatus.REJECTED
            assignment.responded_at = now
            assignment.notes = notes
            if not accept:
                _release_items(order, cook_id)
        sync_order_with_cooks(session, order)

    if expired:
        logger.warning(f"⏰ Cook #{cook_id} answered order {order.order_number} after the deadline")
        raise AssignmentExpiredError(
            f"The response window for order {order.order_number} has closed",
            code="assignment_expired",
        )

    verb = "accepted" if accept else "rejected"
    logger.info(f"Cook #{cook_id} {verb} order {order.order_number}")
    return order


def _release_items(order: Order, cook_id: int) -> None:
    for item in order.items:
        if item.assigned_cook_id == cook_id:
            item.assigned_cook_id = None
    if order.assigned_cook_id == cook_id:
        order.assigned_cook_id = None


async def update_cook_progress(
    session: AsyncSession,
    order_id: int,
    cook_id: int,
    target: CookStatus,
) -> Order:
    """accepted -> preparing -> cooked -> ready, one step at a time."""
    if target not in COOK_SEQUENCE[2:]:
        raise ValidationFailedError(f"Cooks cannot set status {target.value}")

    async with transaction(session):
        order = await get_order(session, order_id, for_update=True)
        ensure_assignable(order)
        assignment = _find_assignment(order, cook_id)
        if assignment.cook_status not in COOK_SEQUENCE or (
            COOK_SEQUENCE.index(target) != COOK_SEQUENCE.index(assignment.cook_status) + 1
        ):
            raise InvalidTransitionError(
                f"Cannot move from {assignment.cook_status.value} to {target.value}"
            )
        assignment.cook_status = target
        sync_order_with_cooks(session, order)

    logger.info(f"Cook #{cook_id} order {order.order_number}: {target.value}")
    return order


async def expire_stale_assignments(session: AsyncSession, now: Optional[datetime] = None) -> int:
    """Mark every pending assignment past its deadline as expired."""
    now = now or utcnow()
    async with transaction(session):
        rows = await session.execute(
            select(OrderAssignedCook.order_id)
            .join(Order, Order.id == OrderAssignedCook.order_id)
            .where(
                OrderAssignedCook.cook_status == CookStatus.PENDING,
                OrderAssignedCook.response_deadline.is_not(None),
                OrderAssignedCook.response_deadline < now,
                Order.status.not_in(list(TERMINAL_STATUSES)),
            )
            .distinct()
        )
        expired = 0
        for order_id in rows.scalars().all():
            order = await get_order(session, order_id, for_update=True)
            for assignment in order.assignments:
                if (
                    assignment.cook_status == CookStatus.PENDING
                    and assignment.response_deadline is not None
                    and assignment.response_deadline < now
                ):
                    assignment.cook_status = CookStatus.EXPIRED
                    _release_items(order, assignment.cook_id)
                    expired += 1
            sync_order_with_cooks(session, order)

    if expired:
        logger.info(f"⏰ Expired {expired} cook assignment(s)")
    return expired


# =============================================================================
# COOK SIDE
# =============================================================================

async def set_cook_availability(session: AsyncSession, cook_id: int, available: bool) -> Cook:
    async with transaction(session):
        cook = await session.get(Cook, cook_id)
        if cook is None:
            raise NotFoundError(f"Cook #{cook_id} not found")
        cook.is_available = available
    return cook


async def cook_orders(session: AsyncSession, cook_id: int, active_only: bool = True) -> list[Order]:
    """Orders the cook is (still) working on, newest first."""
    stmt = (
        select(Order)
        .join(OrderAssignedCook, OrderAssignedCook.order_id == Order.id)
        .where(OrderAssignedCook.cook_id == cook_id)
        .order_by(Order.created_at.desc())
    )
    if active_only:
        stmt = stmt.where(
            Order.status.not_in(list(TERMINAL_STATUSES)),
            OrderAssignedCook.cook_status.not_in(list(INACTIVE_COOK_STATUSES)),
        )
    return list((await session.execute(stmt)).scalars().unique())


async def pending_assignments(session: AsyncSession, cook_id: int) -> list[OrderAssignedCook]:
    rows = await session.execute(
        select(OrderAssignedCook)
        .join(Order, Order.id == OrderAssignedCook.order_id)
        .where(
            OrderAssignedCook.cook_id == cook_id,
            OrderAssignedCook.cook_status == CookStatus.PENDING,
            Order.status.not_in(list(TERMINAL_STATUSES)),
        )
    )
    return list(rows.scalars())
