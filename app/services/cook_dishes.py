"""
Cook Dish Allocation

Admins allocate catalog dishes to cooks (optionally at the cook's own
price). Cooks ask for allocations, or propose new dishes, through dish
requests that admins review.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidTransitionError, NotFoundError, ValidationFailedError
from app.database import transaction
from app.models import (
    CookDish,
    CookDishRequest,
    DishRequestStatus,
    FoodItem,
    Profile,
    ServiceType,
)
from app.services.catalog import create_food_item, get_food_item
from app.services.staff import get_cook
from app.services.workflow import utcnow

logger = logging.getLogger(__name__)


async def _upsert_allocation(
    session: AsyncSession,
    cook_id: int,
    food_item_id: int,
    custom_price: Optional[float],
    allocated_by: Optional[int],
) -> CookDish:
    dish = (await session.execute(
        select(CookDish).where(CookDish.cook_id == cook_id, CookDish.food_item_id == food_item_id)
    )).scalar_one_or_none()
    if dish is None:
        dish = CookDish(cook_id=cook_id, food_item_id=food_item_id)
        session.add(dish)
    dish.custom_price = custom_price
    dish.allocated_by = allocated_by
    dish.allocated_at = utcnow()
    await session.flush()
    return dish


async def allocate_dish(
    session: AsyncSession,
    cook_id: int,
    food_item_id: int,
    custom_price: Optional[float] = None,
    admin: Optional[Profile] = None,
) -> CookDish:
    """Allocate (or re-price) a dish for a cook."""
    if custom_price is not None and custom_price < 0:
        raise ValidationFailedError("Custom price cannot be negative")
    async with transaction(session):
        await get_cook(session, cook_id)
        await get_food_item(session, food_item_id)
        dish = await _upsert_allocation(
            session, cook_id, food_item_id, custom_price, admin.id if admin else None
        )
    logger.info(f"Dish #{food_item_id} allocated to cook #{cook_id}")
    return dish


async def remove_allocation(session: AsyncSession, cook_id: int, food_item_id: int) -> None:
    async with transaction(session):
        dish = (await session.execute(
            select(CookDish).where(CookDish.cook_id == cook_id, CookDish.food_item_id == food_item_id)
        )).scalar_one_or_none()
        if dish is None:
            raise NotFoundError(f"Cook #{cook_id} is not allocated dish #{food_item_id}")
        await session.delete(dish)


async def cook_dishes(session: AsyncSession, cook_id: int) -> list[tuple[CookDish, FoodItem]]:
    rows = await session.execute(
        select(CookDish, FoodItem)
        .join(FoodItem, FoodItem.id == CookDish.food_item_id)
        .where(CookDish.cook_id == cook_id)
        .order_by(FoodItem.name)
    )
    return [(dish, item) for dish, item in rows]


# =============================================================================
# DISH REQUESTS
# =============================================================================

async def submit_dish_request(
    session: AsyncSession,
    cook_id: int,
    food_item_id: Optional[int] = None,
    dish_name: Optional[str] = None,
    dish_description: Optional[str] = None,
    dish_price: Optional[float] = None,
    dish_service_type: Optional[ServiceType] = None,
    dish_category_id: Optional[int] = None,
    dish_is_vegetarian: bool = False,
    dish_preparation_time_minutes: Optional[int] = None,
) -> CookDishRequest:
    """Request an existing catalog item, or propose a new dish (name, price, service type)."""
    await get_cook(session, cook_id)
    if food_item_id is not None:
        await get_food_item(session, food_item_id)
    elif not (dish_name and dish_price is not None and dish_service_type):
        raise ValidationFailedError(
            "A new dish request needs a name, a price and a service type"
        )

    request = CookDishRequest(
        cook_id=cook_id,
        food_item_id=food_item_id,
        dish_name=dish_name,
        dish_description=dish_description,
        dish_price=dish_price,
        dish_service_type=dish_service_type,
        dish_category_id=dish_category_id,
        dish_is_vegetarian=dish_is_vegetarian,
        dish_preparation_time_minutes=dish_preparation_time_minutes,
    )
    async with transaction(session):
        session.add(request)
    logger.info(f"Dish request #{request.id} from cook #{cook_id}")
    return request


async def list_dish_requests(
    session: AsyncSession,
    status: Optional[DishRequestStatus] = None,
    cook_id: Optional[int] = None,
) -> list[CookDishRequest]:
    stmt = select(CookDishRequest).order_by(CookDishRequest.created_at.desc(), CookDishRequest.id.desc())
    if status is not None:
        stmt = stmt.where(CookDishRequest.status == status)
    if cook_id is not None:
        stmt = stmt.where(CookDishRequest.cook_id == cook_id)
    return list((await session.execute(stmt)).scalars())


async def review_dish_request(
    session: AsyncSession,
    request_id: int,
    approve: bool,
    admin: Profile,
    admin_notes: Optional[str] = None,
    allocate: bool = True,
    custom_price: Optional[float] = None,
) -> CookDishRequest:
    """
    Approve or reject a request. Approving a new-dish proposal creates the
    food item; with ``allocate`` the (new or existing) item is allocated to
    the cook in the same transaction.
    """
    async with transaction(session):
        request = await session.get(CookDishRequest, request_id, with_for_update=True)
        if request is None:
            raise NotFoundError(f"Dish request #{request_id} not found")
        if request.status != DishRequestStatus.PENDING:
            raise InvalidTransitionError(f"Dish request #{request_id} was already {request.status.value}")

        request.status = DishRequestStatus.APPROVED if approve else DishRequestStatus.REJECTED
        request.admin_notes = admin_notes
        request.reviewed_by = admin.id
        request.reviewed_at = utcnow()

        if approve:
            food_item_id = request.food_item_id
            if food_item_id is None:
                item = await create_food_item(
                    session,
                    name=request.dish_name,
                    service_type=request.dish_service_type,
                    price=request.dish_price,
                    description=request.dish_description,
                    category_id=request.dish_category_id,
                    is_vegetarian=request.dish_is_vegetarian,
                    preparation_time_minutes=request.dish_preparation_time_minutes,
                    created_by=admin.id,
                    commit=False,
                )
                request.created_food_item_id = item.id
                food_item_id = item.id
            if allocate:
                await _upsert_allocation(session, request.cook_id, food_item_id, custom_price, admin.id)

    logger.info(f"Dish request #{request.id} {request.status.value} by profile #{admin.id}")
    return request
