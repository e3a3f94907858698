"""
Order Ratings

Customers rate the items of their delivered orders (1-5, one rating per
item, re-rating overwrites). A cook's rating is the average of theirs.
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from app.database import transaction
from app.models import Cook, OrderItem, OrderRating, OrderStatus, Profile
from app.services.workflow import get_order

logger = logging.getLogger(__name__)


async def rate_order_item(
    session: AsyncSession,
    customer: Profile,
    order_id: int,
    order_item_id: int,
    rating: int,
    review_text: Optional[str] = None,
) -> OrderRating:
    if not 1 <= rating <= 5:
        raise ValidationFailedError("Rating must be between 1 and 5")

    async with transaction(session):
        order = await get_order(session, order_id)
        if order.customer_id != customer.id:
            raise PermissionDeniedError("You can only rate your own orders")
        if order.status != OrderStatus.DELIVERED:
            raise InvalidTransitionError("Only delivered orders can be rated")
        item = next((i for i in order.items if i.id == order_item_id), None)
        if item is None:
            raise NotFoundError(f"Item #{order_item_id} is not part of order {order.order_number}")

        existing = (await session.execute(
            select(OrderRating).where(OrderRating.order_item_id == order_item_id)
        )).scalar_one_or_none()
        if existing is None:
            existing = OrderRating(
                order_id=order.id,
                order_item_id=item.id,
                customer_id=customer.id,
                cook_id=item.assigned_cook_id,
                food_item_id=item.food_item_id,
            )
            session.add(existing)
        existing.rating = rating
        existing.review_text = review_text
        await session.flush()

        if item.assigned_cook_id is not None:
            await _refresh_cook_rating(session, item.assigned_cook_id)

    return existing


async def _refresh_cook_rating(session: AsyncSession, cook_id: int) -> None:
    average = (await session.execute(
        select(func.avg(OrderRating.rating)).where(OrderRating.cook_id == cook_id)
    )).scalar()
    cook = await session.get(Cook, cook_id)
    if cook is not None:
        cook.rating = round(float(average or 0.0), 2)


async def order_ratings(session: AsyncSession, order_id: int) -> list[OrderRating]:
    rows = await session.execute(
        select(OrderRating).where(OrderRating.order_id == order_id).order_by(OrderRating.id)
    )
    return list(rows.scalars())


async def unrated_items(session: AsyncSession, order_id: int) -> list[OrderItem]:
    order = await get_order(session, order_id)
    rated = {r.order_item_id for r in await order_ratings(session, order_id)}
    return [item for item in order.items if item.id not in rated]
