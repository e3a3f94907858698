"""
Shopping Cart

One line per (profile, food item); adding an item already in the cart
bumps its quantity.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotEligibleError, NotFoundError, ValidationFailedError
from app.database import transaction
from app.models import CartItem, CookDish, FoodItem, ServiceType
from app.services.catalog import get_food_item
from app.services.pricing import customer_price

logger = logging.getLogger(__name__)


@dataclass
class CartLine:
    cart_item: CartItem
    item: FoodItem
    cook_dish: Optional[CookDish]
    unit_price: float

    @property
    def line_total(self) -> float:
        return round(self.unit_price * self.cart_item.quantity, 2)


async def _cook_dish(session: AsyncSession, cook_id: int, food_item_id: int) -> CookDish:
    dish = (await session.execute(
        select(CookDish).where(CookDish.cook_id == cook_id, CookDish.food_item_id == food_item_id)
    )).scalar_one_or_none()
    if dish is None:
        raise NotEligibleError(
            f"Cook #{cook_id} does not make food item #{food_item_id}", code="dish_not_allocated"
        )
    return dish


async def add_to_cart(
    session: AsyncSession,
    profile_id: int,
    food_item_id: int,
    quantity: int = 1,
    cook_id: Optional[int] = None,
) -> CartItem:
    if quantity < 1:
        raise ValidationFailedError("Quantity must be at least 1")
    async with transaction(session):
        item = await get_food_item(session, food_item_id)
        if not item.is_available:
            raise ValidationFailedError(f"{item.name} is not available right now")
        if cook_id is not None:
            await _cook_dish(session, cook_id, food_item_id)

        line = (await session.execute(
            select(CartItem).where(CartItem.profile_id == profile_id, CartItem.food_item_id == food_item_id)
        )).scalar_one_or_none()
        if line is None:
            line = CartItem(
                profile_id=profile_id,
                food_item_id=food_item_id,
                quantity=quantity,
                selected_cook_id=cook_id,
            )
            session.add(line)
        else:
            line.quantity += quantity
            if cook_id is not None:
                line.selected_cook_id = cook_id
    return line


async def update_quantity(session: AsyncSession, profile_id: int, food_item_id: int, quantity: int) -> Optional[CartItem]:
    """Set a line's quantity; anything below 1 removes the line."""
    async with transaction(session):
        line = (await session.execute(
            select(CartItem).where(CartItem.profile_id == profile_id, CartItem.food_item_id == food_item_id)
        )).scalar_one_or_none()
        if line is None:
            raise NotFoundError(f"Food item #{food_item_id} is not in the cart")
        if quantity < 1:
            await session.delete(line)
            return None
        line.quantity = quantity
    return line


async def remove_from_cart(session: AsyncSession, profile_id: int, food_item_id: int) -> None:
    await update_quantity(session, profile_id, food_item_id, 0)


async def clear_cart(
    session: AsyncSession, profile_id: int, service_type: Optional[ServiceType] = None
) -> None:
    async with transaction(session):
        await delete_cart_lines(session, profile_id, service_type)


async def delete_cart_lines(session: AsyncSession, profile_id: int, service_type: Optional[ServiceType]) -> None:
    stmt = delete(CartItem).where(CartItem.profile_id == profile_id)
    if service_type is not None:
        stmt = stmt.where(
            CartItem.food_item_id.in_(
                select(FoodItem.id).where(FoodItem.service_type == service_type)
            )
        )
    await session.execute(stmt.execution_options(synchronize_session=False))


async def cart_lines(
    session: AsyncSession, profile_id: int, service_type: Optional[ServiceType] = None
) -> list[CartLine]:
    rows = await session.execute(
        select(CartItem, FoodItem, CookDish)
        .join(FoodItem, FoodItem.id == CartItem.food_item_id)
        .outerjoin(
            CookDish,
            (CookDish.cook_id == CartItem.selected_cook_id)
            & (CookDish.food_item_id == CartItem.food_item_id),
        )
        .where(CartItem.profile_id == profile_id)
        .order_by(CartItem.id)
    )
    lines = []
    for cart_item, item, dish in rows:
        if service_type is not None and item.service_type != service_type:
            continue
        lines.append(CartLine(cart_item=cart_item, item=item, cook_dish=dish, unit_price=customer_price(item, dish)))
    return lines


def cart_total(lines: list[CartLine]) -> float:
    return round(sum(line.line_total for line in lines), 2)
