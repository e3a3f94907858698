"""
Order Endpoints

Reading orders, the admin workflow actions (confirm, cook and delivery
assignment, dispatch, delivery, restore) and customer cancel/rating.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_profile, require_admin
from app.core.exceptions import PermissionDeniedError
from app.database import get_db
from app.models import (
    AppRole,
    Order,
    OrderStatus,
    Profile,
    ServiceType,
)
from app.schemas import (
    CookAssignRequest,
    CookProfileResponse,
    DeliveryAssignRequest,
    DeliveryStaffResponse,
    OrderListResponse,
    OrderResponse,
    PerDishAssignRequest,
    RatingCreate,
    RatingResponse,
    SettlementResponse,
    ShipOrderRequest,
    StatusEventResponse,
    VehicleResponse,
)
from app.services import cook_assignment, delivery, ratings, settlements, workflow
from app.services.staff import cook_for_profile, staff_for_profile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["Orders"])


async def _viewable_order(db: AsyncSession, profile: Profile, order_id: int) -> Order:
    """The order, if the caller is its customer, an admin or one of its cooks/driver."""
    order = await workflow.get_order(db, order_id)
    if profile.is_admin or order.customer_id == profile.id:
        return order
    if profile.role == AppRole.COOK:
        cook = await cook_for_profile(db, profile.id)
        if any(a.cook_id == cook.id for a in order.assignments):
            return order
    if profile.role == AppRole.DELIVERY_STAFF:
        staff = await staff_for_profile(db, profile.id)
        if order.assigned_delivery_id == staff.id:
            return order
    raise PermissionDeniedError(f"You cannot view order {order.order_number}")


# =============================================================================
# READING
# =============================================================================

@router.get("", response_model=OrderListResponse, summary="List Orders")
async def list_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
    service_type: Optional[ServiceType] = Query(None),
    panchayat_id: Optional[int] = Query(None),
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    """Admins see every order; everyone else their own."""
    query = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
    count_query = select(func.count(Order.id))

    filters = []
    if not profile.is_admin:
        filters.append(Order.customer_id == profile.id)
    if status is not None:
        filters.append(Order.status == status)
    if service_type is not None:
        filters.append(Order.service_type == service_type)
    if panchayat_id is not None:
        filters.append(Order.panchayat_id == panchayat_id)
    if filters:
        query = query.where(*filters)
        count_query = count_query.where(*filters)

    total = (await db.execute(count_query)).scalar() or 0
    orders = (await db.execute(query.offset(skip).limit(limit))).scalars().all()

    return OrderListResponse(
        total=total,
        orders=[OrderResponse.model_validate(order) for order in orders],
    )


@router.get("/vehicles/recent", response_model=list[VehicleResponse])
async def recent_vehicles(
    limit: int = Query(20, ge=1, le=100),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await workflow.recent_vehicles(db, limit)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    return await _viewable_order(db, profile, order_id)


@router.get("/{order_id}/history", response_model=list[StatusEventResponse])
async def order_history(
    order_id: int,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    await _viewable_order(db, profile, order_id)
    return await workflow.order_history(db, order_id)


# =============================================================================
# STATUS ACTIONS
# =============================================================================

@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: int,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    return await workflow.cancel_order(db, order_id, profile)


@router.post("/{order_id}/restore", response_model=OrderResponse)
async def restore_order(
    order_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await workflow.restore_order(db, order_id, admin)


@router.post("/{order_id}/confirm", response_model=OrderResponse)
async def confirm_order(
    order_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await workflow.confirm_order(db, order_id, admin)


@router.post("/{order_id}/ready", response_model=OrderResponse)
async def mark_ready(
    order_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await workflow.mark_ready(db, order_id, admin)


@router.post("/{order_id}/ship", response_model=OrderResponse)
async def ship_order(
    order_id: int,
    body: ShipOrderRequest,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await workflow.ship_order(
        db,
        order_id,
        vehicle_number=body.vehicle_number,
        driver_mobile=body.driver_mobile,
        driver_name=body.driver_name,
        notes=body.notes,
        vehicle_id=body.vehicle_id,
        actor=admin,
    )


@router.post("/{order_id}/deliver", response_model=OrderResponse)
async def mark_delivered(
    order_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await workflow.mark_delivered(db, order_id, admin)


@router.post("/{order_id}/settle", response_model=list[SettlementResponse])
async def settle_order(
    order_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create any settlements still missing for a delivered order."""
    return await settlements.settle_order(db, order_id)


# =============================================================================
# COOK ASSIGNMENT
# =============================================================================

@router.get("/{order_id}/qualified-cooks", response_model=list[CookProfileResponse])
async def qualified_cooks(
    order_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Cooks allocated every dish of the order."""
    order = await workflow.get_order(db, order_id)
    return await cook_assignment.qualified_cooks(db, order.food_item_ids, order.service_type)


@router.post("/{order_id}/cooks", response_model=OrderResponse)
async def assign_cook(
    order_id: int,
    body: CookAssignRequest,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await cook_assignment.assign_cook(db, order_id, body.cook_id, admin)


@router.post("/{order_id}/cooks/per-dish", response_model=OrderResponse)
async def assign_cooks_per_dish(
    order_id: int,
    body: PerDishAssignRequest,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await cook_assignment.assign_cooks_per_dish(db, order_id, body.assignments, admin)


# =============================================================================
# DELIVERY ASSIGNMENT
# =============================================================================

@router.get("/{order_id}/eligible-delivery-staff", response_model=list[DeliveryStaffResponse])
async def eligible_delivery_staff(
    order_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await workflow.get_order(db, order_id)
    return await delivery.eligible_delivery_staff(db, order)


@router.post("/{order_id}/delivery", response_model=OrderResponse)
async def assign_delivery(
    order_id: int,
    body: DeliveryAssignRequest,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await delivery.assign_delivery(db, order_id, body.staff_id, admin)


# =============================================================================
# RATINGS
# =============================================================================

@router.post("/{order_id}/ratings", response_model=RatingResponse)
async def rate_item(
    order_id: int,
    body: RatingCreate,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    return await ratings.rate_order_item(
        db, profile, order_id, body.order_item_id, body.rating, body.review_text
    )


@router.get("/{order_id}/ratings", response_model=list[RatingResponse])
async def order_ratings(
    order_id: int,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    await _viewable_order(db, profile, order_id)
    return await ratings.order_ratings(db, order_id)
