"""
Delivery Assignment and Hand-off

Admins pick a driver from the staff serving the order's area, or drivers
claim ready orders themselves. Self-claims are one conditional UPDATE so
that of several drivers racing for an order exactly one wins.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import (
    AssignmentConflictError,
    InvalidTransitionError,
    NotEligibleError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from app.database import transaction
from app.models import (
    CookStatus,
    DeliveryStaff,
    DeliveryStatus,
    Order,
    OrderStatus,
    Profile,
    ServiceType,
)
from app.services.alerts.feed import OrderSnapshot, queue_order_change
from app.services.areas import StaffArea
from app.services.wallets import record_delivery
from app.services.workflow import (
    TERMINAL_STATUSES,
    deliver,
    ensure_assignable,
    get_order,
    send_out,
    utcnow,
)

logger = logging.getLogger(__name__)
settings = get_settings()

SELF_ACCEPT_SERVICES = (ServiceType.CLOUD_KITCHEN, ServiceType.HOMEMADE)


async def get_staff(session: AsyncSession, staff_id: int) -> DeliveryStaff:
    staff = await session.get(DeliveryStaff, staff_id)
    if staff is None:
        raise NotFoundError(f"Delivery staff #{staff_id} not found")
    return staff


def is_on_duty(staff: DeliveryStaff) -> bool:
    return bool(staff.is_active and staff.is_approved and staff.is_available)


def _ensure_on_duty(staff: DeliveryStaff, require_available: bool = False) -> None:
    if not staff.is_active or not staff.is_approved:
        raise NotEligibleError(f"{staff.name} is not an active, approved delivery partner")
    if require_available and not staff.is_available:
        raise NotEligibleError(f"{staff.name} is off duty", code="off_duty")


def _ready_for_pickup_filter():
    return (
        Order.assigned_delivery_id.is_(None),
        Order.delivery_status == DeliveryStatus.PENDING,
        Order.cook_status == CookStatus.READY,
        Order.service_type.in_(SELF_ACCEPT_SERVICES),
        Order.status.not_in(list(TERMINAL_STATUSES)),
    )


# =============================================================================
# ELIGIBILITY
# =============================================================================

async def eligible_delivery_staff(session: AsyncSession, order: Order) -> list[DeliveryStaff]:
    """Active, approved, available staff serving the order's panchayat and ward."""
    rows = await session.execute(
        select(DeliveryStaff)
        .where(
            DeliveryStaff.is_active.is_(True),
            DeliveryStaff.is_approved.is_(True),
            DeliveryStaff.is_available.is_(True),
        )
        .order_by(DeliveryStaff.total_deliveries, DeliveryStaff.id)
    )
    return [
        staff for staff in rows.scalars()
        if StaffArea.from_staff(staff).serves(order.panchayat_id, order.ward_number)
    ]


async def available_delivery_orders(session: AsyncSession, staff: DeliveryStaff) -> list[Order]:
    """Ready, unclaimed orders in the staff member's area, oldest first."""
    area = StaffArea.from_staff(staff)
    if not area.panchayat_ids:
        return []
    rows = await session.execute(
        select(Order)
        .where(*_ready_for_pickup_filter(), Order.panchayat_id.in_(area.panchayat_ids))
        .order_by(Order.updated_at, Order.id)
    )
    return [o for o in rows.scalars() if area.serves(o.panchayat_id, o.ward_number)]


async def ready_for_pickup_orders(session: AsyncSession) -> list[Order]:
    rows = await session.execute(
        select(Order).where(*_ready_for_pickup_filter()).order_by(Order.updated_at, Order.id)
    )
    return list(rows.scalars())


async def stale_delivery_orders(
    session: AsyncSession,
    older_than_seconds: Optional[int] = None,
    now: Optional[datetime] = None,
) -> list[Order]:
    """Ready orders no driver has claimed since their last change."""
    now = now or utcnow()
    seconds = settings.admin_stale_order_seconds if older_than_seconds is None else older_than_seconds
    rows = await session.execute(
        select(Order)
        .where(*_ready_for_pickup_filter(), Order.updated_at <= now - timedelta(seconds=seconds))
        .order_by(Order.updated_at, Order.id)
    )
    return list(rows.scalars())


# =============================================================================
# ASSIGNMENT
# =============================================================================

async def assign_delivery(
    session: AsyncSession,
    order_id: int,
    staff_id: int,
    actor: Optional[Profile] = None,
    now: Optional[datetime] = None,
) -> Order:
    """Admin assignment of a driver to an order."""
    now = now or utcnow()
    async with transaction(session):
        order = await get_order(session, order_id, for_update=True)
        ensure_assignable(order)
        if order.delivery_status not in (DeliveryStatus.PENDING, DeliveryStatus.ASSIGNED):
            raise InvalidTransitionError(
                f"Order {order.order_number} is already {order.delivery_status.value}"
            )
        staff = await get_staff(session, staff_id)
        _ensure_on_duty(staff)
        if not StaffArea.from_staff(staff).serves(order.panchayat_id, order.ward_number):
            raise NotEligibleError(
                f"{staff.name} does not serve panchayat #{order.panchayat_id} ward {order.ward_number}",
                code="outside_area",
            )

        order.assigned_delivery_id = staff.id
        order.delivery_status = DeliveryStatus.ASSIGNED
        order.delivery_eta = now + timedelta(minutes=settings.delivery_eta_minutes)

    logger.info(f"🛵 Order {order.order_number} assigned to {staff.name}")
    return order


async def accept_delivery(
    session: AsyncSession,
    order_id: int,
    staff_id: int,
    now: Optional[datetime] = None,
) -> Order:
    """
    A driver claims a ready order. The first claim wins; later ones get
    AssignmentConflictError.
    """
    now = now or utcnow()
    async with transaction(session):
        staff = await get_staff(session, staff_id)
        _ensure_on_duty(staff, require_available=True)
        order = await get_order(session, order_id)
        if not StaffArea.from_staff(staff).serves(order.panchayat_id, order.ward_number):
            raise NotEligibleError(
                f"Order {order.order_number} is outside your area", code="outside_area"
            )
        before = OrderSnapshot.from_order(order)

        result = await session.execute(
            update(Order)
            .where(Order.id == order_id, *_ready_for_pickup_filter())
            .values(
                assigned_delivery_id=staff.id,
                delivery_status=DeliveryStatus.ASSIGNED,
                delivery_eta=now + timedelta(minutes=settings.delivery_eta_minutes),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise AssignmentConflictError(
                f"Order {order.order_number} was already taken by another driver",
                code="order_taken",
            )

        order = await get_order(session, order_id)
        queue_order_change(session, before, OrderSnapshot.from_order(order))

    logger.info(f"🛵 {staff.name} accepted order {order.order_number}")
    return order


async def update_delivery_status(
    session: AsyncSession,
    order_id: int,
    staff_id: int,
    target: DeliveryStatus,
) -> Order:
    """
    assigned -> picked_up -> delivered for the driver holding the order.

    picked_up records the driver's vehicle and sends the order out;
    delivered settles the cooks and books the driver's wallet in the same
    transaction.
    """
    async with transaction(session):
        order = await get_order(session, order_id, for_update=True)
        staff = await get_staff(session, staff_id)
        if order.assigned_delivery_id != staff.id:
            raise PermissionDeniedError(f"Order {order.order_number} is not assigned to you")

        if target == DeliveryStatus.PICKED_UP:
            if order.delivery_status != DeliveryStatus.ASSIGNED:
                raise InvalidTransitionError(
                    f"Cannot pick up an order that is {order.delivery_status.value}"
                )
            send_out(
                session,
                order,
                vehicle_number=staff.vehicle_number or staff.vehicle_type,
                driver_mobile=staff.mobile_number,
                driver_name=staff.name,
                actor_id=staff.profile_id,
            )
            order.delivery_status = DeliveryStatus.PICKED_UP

        elif target == DeliveryStatus.DELIVERED:
            if order.delivery_status != DeliveryStatus.PICKED_UP:
                raise InvalidTransitionError(
                    f"Cannot deliver an order that is {order.delivery_status.value}"
                )
            await deliver(session, order, staff.profile_id)
            await record_delivery(session, staff, order)
            staff.total_deliveries = (staff.total_deliveries or 0) + 1

        else:
            raise ValidationFailedError(f"Drivers cannot set delivery status {target.value}")

    logger.info(f"🛵 Order {order.order_number}: delivery {target.value} by {staff.name}")
    return order


# =============================================================================
# DRIVER SIDE
# =============================================================================

async def set_delivery_availability(session: AsyncSession, staff_id: int, available: bool) -> DeliveryStaff:
    async with transaction(session):
        staff = await get_staff(session, staff_id)
        staff.is_available = available
    return staff


async def active_delivery_orders(session: AsyncSession, staff_id: int) -> list[Order]:
    rows = await session.execute(
        select(Order)
        .where(
            Order.assigned_delivery_id == staff_id,
            Order.delivery_status.in_([DeliveryStatus.ASSIGNED, DeliveryStatus.PICKED_UP]),
            Order.status != OrderStatus.CANCELLED,
        )
        .order_by(Order.delivery_eta, Order.id)
    )
    return list(rows.scalars())


async def delivery_history(
    session: AsyncSession,
    staff_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> list[Order]:
    """Delivered orders, optionally within [start_date, end_date] (whole days)."""
    stmt = select(Order).where(
        Order.assigned_delivery_id == staff_id,
        Order.status == OrderStatus.DELIVERED,
    )
    if start_date is not None:
        stmt = stmt.where(Order.delivered_at >= _day_start(start_date))
    if end_date is not None:
        stmt = stmt.where(Order.delivered_at < _day_start(end_date + timedelta(days=1)))
    rows = await session.execute(stmt.order_by(Order.delivered_at.desc()))
    return list(rows.scalars())


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min).replace(tzinfo=utcnow().tzinfo)
