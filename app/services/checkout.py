"""
Checkout

Turns a cart (homemade), a slot basket (cloud kitchen) or an event
booking (indoor events) into an order with its items and cook
assignments, in one transaction.

Order numbers:
    PC<epoch ms>          homemade
    CK<epoch ms>          cloud kitchen
    IE-<base36 epoch ms>  indoor events
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotEligibleError, ValidationFailedError
from app.database import transaction
from app.models import (
    CookDish,
    CookStatus,
    FoodItem,
    Order,
    OrderAssignedCook,
    OrderItem,
    OrderStatus,
    Profile,
    ServiceType,
)
from app.services.cart import delete_cart_lines, cart_lines
from app.services.catalog import get_slot
from app.services.cook_assignment import response_deadline
from app.services.pricing import customer_price, slot_status
from app.services.staff import validate_location
from app.services.workflow import utcnow

logger = logging.getLogger(__name__)

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


@dataclass
class OrderLine:
    food_item_id: int
    quantity: int
    cook_id: Optional[int] = None
    special_instructions: Optional[str] = None


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


async def next_order_number(session: AsyncSession, service_type: ServiceType, now: Optional[datetime] = None) -> str:
    """Epoch-millisecond order number; bumped until unused."""
    millis = int((now or utcnow()).timestamp() * 1000)
    while True:
        if service_type == ServiceType.HOMEMADE:
            number = f"PC{millis}"
        elif service_type == ServiceType.CLOUD_KITCHEN:
            number = f"CK{millis}"
        else:
            number = f"IE-{to_base36(millis)}"
        taken = (await session.execute(select(Order.id).where(Order.order_number == number))).first()
        if taken is None:
            return number
        millis += 1


async def _priced_item(
    session: AsyncSession, food_item_id: int, cook_id: Optional[int], service_type: ServiceType
) -> tuple[FoodItem, float]:
    item = await session.get(FoodItem, food_item_id)
    if item is None or not item.is_available:
        raise ValidationFailedError(f"Food item #{food_item_id} is not available")
    if item.service_type != service_type:
        raise ValidationFailedError(f"{item.name} is not a {service_type.value} item")
    dish = None
    if cook_id is not None:
        dish = (await session.execute(
            select(CookDish).where(CookDish.cook_id == cook_id, CookDish.food_item_id == food_item_id)
        )).scalar_one_or_none()
        if dish is None:
            raise NotEligibleError(
                f"Cook #{cook_id} does not make {item.name}", code="dish_not_allocated"
            )
    return item, customer_price(item, dish)


def _attach_assignments(order: Order, now: datetime) -> None:
    """One pending assignment per distinct cook chosen on the items."""
    cook_ids = sorted({item.assigned_cook_id for item in order.items if item.assigned_cook_id})
    for cook_id in cook_ids:
        order.assignments.append(OrderAssignedCook(
            cook_id=cook_id,
            cook_status=CookStatus.PENDING,
            assigned_at=now,
            response_deadline=response_deadline(now),
        ))
    if cook_ids:
        order.cook_assigned_at = now
        order.cook_response_deadline = response_deadline(now)
    if len(cook_ids) == 1:
        order.assigned_cook_id = cook_ids[0]


def _require_address(delivery_address: Optional[str]) -> str:
    if not delivery_address or not delivery_address.strip():
        raise ValidationFailedError("A delivery address is required")
    return delivery_address.strip()


# =============================================================================
# HOMEMADE
# =============================================================================

async def checkout_homemade(
    session: AsyncSession,
    customer: Profile,
    delivery_address: str,
    panchayat_id: int,
    ward_number: int,
    delivery_instructions: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Order:
    """Place the homemade part of the customer's cart and clear it."""
    now = now or utcnow()
    address = _require_address(delivery_address)

    async with transaction(session):
        await validate_location(session, panchayat_id, ward_number)
        lines = await cart_lines(session, customer.id, ServiceType.HOMEMADE)
        if not lines:
            raise ValidationFailedError("Your cart has no homemade items")

        order = Order(
            order_number=await next_order_number(session, ServiceType.HOMEMADE, now),
            customer_id=customer.id,
            service_type=ServiceType.HOMEMADE,
            status=OrderStatus.PENDING,
            cook_status=CookStatus.PENDING,
            delivery_address=address,
            delivery_instructions=delivery_instructions,
            panchayat_id=panchayat_id,
            ward_number=ward_number,
            delivery_amount=0.0,
            items=[],
            assignments=[],
        )
        total = 0.0
        for line in lines:
            if not line.item.is_available:
                raise ValidationFailedError(f"{line.item.name} is no longer available")
            if line.cart_item.selected_cook_id is not None and line.cook_dish is None:
                raise NotEligibleError(
                    f"The selected cook no longer makes {line.item.name}", code="dish_not_allocated"
                )
            order.items.append(OrderItem(
                food_item_id=line.item.id,
                quantity=line.cart_item.quantity,
                unit_price=line.unit_price,
                total_price=line.line_total,
                assigned_cook_id=line.cart_item.selected_cook_id,
            ))
            total += line.line_total
        order.total_amount = round(total, 2)
        _attach_assignments(order, now)
        session.add(order)

        await delete_cart_lines(session, customer.id, ServiceType.HOMEMADE)

    logger.info(f"🛒 Homemade order {order.order_number} placed: {order.total_amount:.2f}")
    return order


# =============================================================================
# CLOUD KITCHEN
# =============================================================================

async def checkout_cloud_kitchen(
    session: AsyncSession,
    customer: Profile,
    slot_id: int,
    lines: list[OrderLine],
    delivery_address: str,
    panchayat_id: int,
    ward_number: int,
    delivery_instructions: Optional[str] = None,
    now: Optional[datetime] = None,
    local_now: Optional[datetime] = None,
) -> Order:
    """
    Order sets from one slot. Each line's quantity is a number of sets;
    the order item records pieces (sets x set size). The slot's delivery
    charge is added to the total.
    """
    now = now or utcnow()
    address = _require_address(delivery_address)
    if not lines:
        raise ValidationFailedError("Select at least one item")

    async with transaction(session):
        await validate_location(session, panchayat_id, ward_number)
        slot = await get_slot(session, slot_id)
        status = slot_status(slot, local_now)
        if not status.is_open:
            raise ValidationFailedError(f"Ordering for {slot.name} is closed", code="slot_closed")

        order = Order(
            order_number=await next_order_number(session, ServiceType.CLOUD_KITCHEN, now),
            customer_id=customer.id,
            service_type=ServiceType.CLOUD_KITCHEN,
            status=OrderStatus.PENDING,
            cook_status=CookStatus.PENDING,
            delivery_address=address,
            delivery_instructions=delivery_instructions,
            panchayat_id=panchayat_id,
            ward_number=ward_number,
            cloud_kitchen_slot_id=slot.id,
            items=[],
            assignments=[],
        )
        items_total = 0.0
        for line in lines:
            item, unit_price = await _priced_item(session, line.food_item_id, line.cook_id, ServiceType.CLOUD_KITCHEN)
            if item.cloud_kitchen_slot_id not in (None, slot.id):
                raise ValidationFailedError(f"{item.name} is not served in {slot.name}")
            if line.quantity < (item.min_order_sets or 1):
                raise ValidationFailedError(
                    f"{item.name} needs at least {item.min_order_sets} set(s)"
                )
            pieces = line.quantity * (item.set_size or 1)
            line_total = round(unit_price * pieces, 2)
            order.items.append(OrderItem(
                food_item_id=item.id,
                quantity=pieces,
                unit_price=unit_price,
                total_price=line_total,
                assigned_cook_id=line.cook_id,
                special_instructions=line.special_instructions,
            ))
            items_total += line_total

        order.delivery_amount = round(slot.delivery_charge or 0.0, 2)
        order.total_amount = round(items_total + order.delivery_amount, 2)
        _attach_assignments(order, now)
        session.add(order)

    logger.info(f"🛒 Cloud kitchen order {order.order_number} ({slot.name}) placed: {order.total_amount:.2f}")
    return order


# =============================================================================
# INDOOR EVENTS
# =============================================================================

async def book_indoor_event(
    session: AsyncSession,
    customer: Profile,
    event_date: datetime,
    guest_count: int,
    panchayat_id: int,
    ward_number: int,
    event_details: Optional[str] = None,
    delivery_address: Optional[str] = None,
    lines: Optional[list[OrderLine]] = None,
    now: Optional[datetime] = None,
) -> Order:
    """Event booking; admins confirm, plan cooks and dispatch vehicles later."""
    now = now or utcnow()
    if event_date.tzinfo is None:
        event_date = event_date.replace(tzinfo=timezone.utc)
    if guest_count < 1:
        raise ValidationFailedError("Guest count must be at least 1")
    if event_date <= now:
        raise ValidationFailedError("The event date must be in the future")

    async with transaction(session):
        await validate_location(session, panchayat_id, ward_number)
        order = Order(
            order_number=await next_order_number(session, ServiceType.INDOOR_EVENTS, now),
            customer_id=customer.id,
            service_type=ServiceType.INDOOR_EVENTS,
            status=OrderStatus.PENDING,
            cook_status=CookStatus.PENDING,
            event_date=event_date,
            guest_count=guest_count,
            event_details=event_details,
            delivery_address=delivery_address,
            panchayat_id=panchayat_id,
            ward_number=ward_number,
            delivery_amount=0.0,
            items=[],
            assignments=[],
        )
        total = 0.0
        for line in lines or []:
            item, unit_price = await _priced_item(session, line.food_item_id, line.cook_id, ServiceType.INDOOR_EVENTS)
            line_total = round(unit_price * line.quantity, 2)
            order.items.append(OrderItem(
                food_item_id=item.id,
                quantity=line.quantity,
                unit_price=unit_price,
                total_price=line_total,
                assigned_cook_id=line.cook_id,
                special_instructions=line.special_instructions,
            ))
            total += line_total
        order.total_amount = round(total, 2)
        session.add(order)

    logger.info(f"🎉 Indoor event {order.order_number} booked for {guest_count} guests")
    return order
