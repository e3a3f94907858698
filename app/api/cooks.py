"""
Cook Endpoints

Cook registry and dish allocation (admins), and the cook's own side:
assignments to accept or reject, progress updates, alerts, dish requests
and earnings.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_cook, require_admin
from app.database import get_db
from app.models import Cook, DishRequestStatus, Profile
from app.schemas import (
    AvailabilityUpdate,
    CookAlertResponse,
    CookCreate,
    CookDishResponse,
    CookProfileResponse,
    CookProgressUpdate,
    CookReply,
    CookSettlementSummary,
    DishAllocation,
    DishRequestCreate,
    DishRequestResponse,
    DishRequestReview,
    FoodItemResponse,
    OrderResponse,
    SettlementResponse,
)
from app.services import cook_assignment, cook_dishes, settlements
from app.services.alerts import AssignmentSnapshot, get_cook_board
from app.services.staff import list_cooks, register_cook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cooks", tags=["Cooks"])


# =============================================================================
# ADMIN: REGISTRY & DISHES
# =============================================================================

@router.post("", response_model=CookProfileResponse, status_code=201)
async def create_cook(
    body: CookCreate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await register_cook(
        db,
        kitchen_name=body.kitchen_name,
        mobile_number=body.mobile_number,
        panchayat_id=body.panchayat_id,
        allowed_order_types=body.allowed_order_types,
        profile_id=body.profile_id,
        created_by=admin.id,
    )


@router.get("", response_model=list[CookProfileResponse])
async def cooks(
    active_only: bool = Query(False),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await list_cooks(db, active_only)


@router.post("/dishes", response_model=CookDishResponse, status_code=201)
async def allocate_dish(
    body: DishAllocation,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await cook_dishes.allocate_dish(db, body.cook_id, body.food_item_id, body.custom_price, admin)


@router.delete("/{cook_id}/dishes/{food_item_id}", status_code=204)
async def remove_allocation(
    cook_id: int,
    food_item_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> None:
    await cook_dishes.remove_allocation(db, cook_id, food_item_id)


@router.get("/dish-requests", response_model=list[DishRequestResponse])
async def dish_requests(
    status: Optional[DishRequestStatus] = Query(None),
    cook_id: Optional[int] = Query(None),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await cook_dishes.list_dish_requests(db, status, cook_id)


@router.post("/dish-requests/{request_id}/review", response_model=DishRequestResponse)
async def review_dish_request(
    request_id: int,
    body: DishRequestReview,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await cook_dishes.review_dish_request(
        db,
        request_id,
        approve=body.approve,
        admin=admin,
        admin_notes=body.admin_notes,
        allocate=body.allocate,
        custom_price=body.custom_price,
    )


@router.get("/settlements", response_model=list[CookSettlementSummary])
async def settlement_summary(
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Per cook: pending amount, total earned and settlement rows."""
    return await settlements.cook_settlement_summary(db)


# =============================================================================
# COOK: SELF SERVICE
# =============================================================================

@router.get("/me", response_model=CookProfileResponse)
async def me(cook: Cook = Depends(get_current_cook)):
    return cook


@router.put("/me/availability", response_model=CookProfileResponse)
async def set_availability(
    body: AvailabilityUpdate,
    cook: Cook = Depends(get_current_cook),
    db: AsyncSession = Depends(get_db),
):
    return await cook_assignment.set_cook_availability(db, cook.id, body.available)


@router.get("/me/orders", response_model=list[OrderResponse])
async def my_orders(
    active_only: bool = Query(True),
    cook: Cook = Depends(get_current_cook),
    db: AsyncSession = Depends(get_db),
):
    return await cook_assignment.cook_orders(db, cook.id, active_only)


@router.post("/me/orders/{order_id}/respond", response_model=OrderResponse)
async def respond(
    order_id: int,
    body: CookReply,
    cook: Cook = Depends(get_current_cook),
    db: AsyncSession = Depends(get_db),
):
    """Accept or reject an assignment before its response deadline."""
    return await cook_assignment.respond(db, order_id, cook.id, body.accept, body.notes)


@router.post("/me/orders/{order_id}/progress", response_model=OrderResponse)
async def update_progress(
    order_id: int,
    body: CookProgressUpdate,
    cook: Cook = Depends(get_current_cook),
    db: AsyncSession = Depends(get_db),
):
    return await cook_assignment.update_cook_progress(db, order_id, cook.id, body.status)


@router.get("/me/alerts", response_model=list[CookAlertResponse])
async def my_alerts(
    cook: Cook = Depends(get_current_cook),
    db: AsyncSession = Depends(get_db),
):
    """Assignments waiting for an answer, with the seconds left to respond."""
    board = get_cook_board()
    pending = await cook_assignment.pending_assignments(db, cook.id)
    board.load(cook.id, [AssignmentSnapshot.from_assignment(a) for a in pending])
    return board.pending_for(cook.id)


@router.get("/me/dishes")
async def my_dishes(
    cook: Cook = Depends(get_current_cook),
    db: AsyncSession = Depends(get_db),
) -> list[dict]:
    rows = await cook_dishes.cook_dishes(db, cook.id)
    return [
        {
            "allocation": CookDishResponse.model_validate(dish),
            "item": FoodItemResponse.model_validate(item),
        }
        for dish, item in rows
    ]


@router.post("/me/dish-requests", response_model=DishRequestResponse, status_code=201)
async def submit_dish_request(
    body: DishRequestCreate,
    cook: Cook = Depends(get_current_cook),
    db: AsyncSession = Depends(get_db),
):
    return await cook_dishes.submit_dish_request(db, cook.id, **body.model_dump())


@router.get("/me/dish-requests", response_model=list[DishRequestResponse])
async def my_dish_requests(
    cook: Cook = Depends(get_current_cook),
    db: AsyncSession = Depends(get_db),
):
    return await cook_dishes.list_dish_requests(db, cook_id=cook.id)


@router.get("/me/settlements", response_model=list[SettlementResponse])
async def my_settlements(
    cook: Cook = Depends(get_current_cook),
    db: AsyncSession = Depends(get_db),
):
    return await settlements.list_settlements(db, cook_id=cook.id)
