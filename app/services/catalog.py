"""
Catalog

Categories, food items, cloud-kitchen slots and the customer menu
(available items with the cooks who can make them and their prices).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, ValidationFailedError
from app.database import transaction
from app.models import (
    CloudKitchenSlot,
    Cook,
    CookDish,
    FoodCategory,
    FoodItem,
    MarginType,
    ServiceType,
)
from app.services.pricing import SlotStatus, customer_price, slot_status

logger = logging.getLogger(__name__)


@dataclass
class CookOption:
    cook_id: int
    kitchen_name: str
    rating: float
    price: float


@dataclass
class MenuEntry:
    item: FoodItem
    price: float
    cooks: list[CookOption] = field(default_factory=list)


@dataclass
class SlotView:
    slot: CloudKitchenSlot
    status: SlotStatus
    items: list[FoodItem] = field(default_factory=list)


# =============================================================================
# CATEGORIES & ITEMS
# =============================================================================

async def create_category(
    session: AsyncSession,
    name: str,
    service_types: list[ServiceType],
    display_order: int = 0,
) -> FoodCategory:
    category = FoodCategory(
        name=name.strip(),
        service_types=[s.value for s in service_types],
        display_order=display_order,
    )
    async with transaction(session):
        session.add(category)
    return category


async def list_categories(session: AsyncSession, service_type: Optional[ServiceType] = None) -> list[FoodCategory]:
    rows = await session.execute(
        select(FoodCategory)
        .where(FoodCategory.is_active.is_(True))
        .order_by(FoodCategory.display_order, FoodCategory.name)
    )
    categories = list(rows.scalars())
    if service_type is not None:
        categories = [c for c in categories if service_type.value in (c.service_types or [])]
    return categories


async def get_food_item(session: AsyncSession, food_item_id: int) -> FoodItem:
    item = await session.get(FoodItem, food_item_id)
    if item is None:
        raise NotFoundError(f"Food item #{food_item_id} not found")
    return item


async def create_food_item(
    session: AsyncSession,
    name: str,
    service_type: ServiceType,
    price: float,
    *,
    description: Optional[str] = None,
    category_id: Optional[int] = None,
    is_vegetarian: bool = False,
    preparation_time_minutes: Optional[int] = None,
    platform_margin_type: MarginType = MarginType.PERCENT,
    platform_margin_value: float = 0.0,
    set_size: int = 1,
    min_order_sets: int = 1,
    cloud_kitchen_slot_id: Optional[int] = None,
    created_by: Optional[int] = None,
    commit: bool = True,
) -> FoodItem:
    if price < 0:
        raise ValidationFailedError("Price cannot be negative")
    if set_size < 1 or min_order_sets < 1:
        raise ValidationFailedError("Set size and minimum sets must be at least 1")

    item = FoodItem(
        name=name.strip(),
        description=description,
        category_id=category_id,
        service_type=service_type,
        price=price,
        is_vegetarian=is_vegetarian,
        preparation_time_minutes=preparation_time_minutes,
        platform_margin_type=platform_margin_type,
        platform_margin_value=platform_margin_value,
        set_size=set_size,
        min_order_sets=min_order_sets,
        cloud_kitchen_slot_id=cloud_kitchen_slot_id,
        created_by=created_by,
    )
    if commit:
        async with transaction(session):
            session.add(item)
    else:
        # Part of a caller's transaction (dish request approval)
        session.add(item)
        await session.flush()
    logger.info(f"Food item #{item.id} '{item.name}' added to {service_type.value}")
    return item


async def set_item_availability(session: AsyncSession, food_item_id: int, available: bool) -> FoodItem:
    async with transaction(session):
        item = await get_food_item(session, food_item_id)
        item.is_available = available
    return item


# =============================================================================
# MENU
# =============================================================================

async def menu(session: AsyncSession, service_type: ServiceType) -> list[MenuEntry]:
    """Available items of a service type with their orderable cooks."""
    items = list((await session.execute(
        select(FoodItem)
        .where(FoodItem.service_type == service_type, FoodItem.is_available.is_(True))
        .order_by(FoodItem.name)
    )).scalars())
    if not items:
        return []

    rows = await session.execute(
        select(CookDish, Cook)
        .join(Cook, Cook.id == CookDish.cook_id)
        .where(
            CookDish.food_item_id.in_([i.id for i in items]),
            Cook.is_active.is_(True),
            Cook.is_available.is_(True),
        )
        .order_by(Cook.rating.desc(), Cook.id)
    )
    options: dict[int, list[CookOption]] = {}
    for dish, cook in rows:
        if service_type.value not in (cook.allowed_order_types or []):
            continue
        item = next(i for i in items if i.id == dish.food_item_id)
        options.setdefault(item.id, []).append(CookOption(
            cook_id=cook.id,
            kitchen_name=cook.kitchen_name,
            rating=cook.rating,
            price=customer_price(item, dish),
        ))

    return [
        MenuEntry(item=item, price=customer_price(item), cooks=options.get(item.id, []))
        for item in items
    ]


# =============================================================================
# CLOUD KITCHEN SLOTS
# =============================================================================

async def create_slot(
    session: AsyncSession,
    name: str,
    start_time: str,
    end_time: str,
    cutoff_hours_before: int = 2,
    delivery_charge: float = 0.0,
    slot_type: str = "meal",
    display_order: int = 0,
) -> CloudKitchenSlot:
    slot = CloudKitchenSlot(
        name=name.strip(),
        slot_type=slot_type,
        start_time=start_time,
        end_time=end_time,
        cutoff_hours_before=cutoff_hours_before,
        delivery_charge=delivery_charge,
        display_order=display_order,
    )
    async with transaction(session):
        session.add(slot)
    return slot


async def get_slot(session: AsyncSession, slot_id: int) -> CloudKitchenSlot:
    slot = await session.get(CloudKitchenSlot, slot_id)
    if slot is None or not slot.is_active:
        raise NotFoundError(f"Cloud kitchen slot #{slot_id} not found")
    return slot


async def cloud_kitchen_slots(session: AsyncSession, now: Optional[datetime] = None) -> list[SlotView]:
    """Active slots with their ordering status and available set items."""
    slots = list((await session.execute(
        select(CloudKitchenSlot)
        .where(CloudKitchenSlot.is_active.is_(True))
        .order_by(CloudKitchenSlot.display_order, CloudKitchenSlot.start_time)
    )).scalars())
    items = list((await session.execute(
        select(FoodItem).where(
            FoodItem.service_type == ServiceType.CLOUD_KITCHEN,
            FoodItem.is_available.is_(True),
            FoodItem.cloud_kitchen_slot_id.in_([s.id for s in slots]),
        ).order_by(FoodItem.name)
    )).scalars()) if slots else []

    return [
        SlotView(
            slot=slot,
            status=slot_status(slot, now),
            items=[i for i in items if i.cloud_kitchen_slot_id == slot.id],
        )
        for slot in slots
    ]
