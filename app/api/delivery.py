"""
Delivery Endpoints

Applications and approvals (admins) and the driver's side: ready orders
in their area, claiming one (first claim wins), pick-up and delivery,
live alerts and the wallet.
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_profile, get_current_staff, require_admin
from app.database import get_db, transaction
from app.models import DeliveryStaff, Profile
from app.schemas import (
    AvailabilityUpdate,
    DeliveryAlertsResponse,
    DeliveryStaffApply,
    DeliveryStaffResponse,
    DeliveryStatusUpdate,
    OrderResponse,
    WalletResponse,
    WalletTransactionResponse,
)
from app.services import delivery, wallets
from app.services.alerts import OrderSnapshot, get_delivery_board
from app.services.areas import StaffArea
from app.services.staff import apply_delivery_staff, approve_delivery_staff, list_delivery_staff

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/delivery", tags=["Delivery"])


# =============================================================================
# APPLICATIONS
# =============================================================================

@router.post("/apply", response_model=DeliveryStaffResponse, status_code=201)
async def apply(
    body: DeliveryStaffApply,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    return await apply_delivery_staff(db, profile_id=profile.id, **body.model_dump())


@router.get("/staff", response_model=list[DeliveryStaffResponse])
async def staff_list(
    approved: Optional[bool] = Query(None),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await list_delivery_staff(db, approved)


@router.post("/staff/{staff_id}/approve", response_model=DeliveryStaffResponse)
async def approve(
    staff_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await approve_delivery_staff(db, staff_id, admin)


# =============================================================================
# DRIVER
# =============================================================================

@router.get("/me", response_model=DeliveryStaffResponse)
async def me(staff: DeliveryStaff = Depends(get_current_staff)):
    return staff


@router.put("/me/availability", response_model=DeliveryStaffResponse)
async def set_availability(
    body: AvailabilityUpdate,
    staff: DeliveryStaff = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db),
):
    """Going off duty also stops the driver's alerts."""
    staff = await delivery.set_delivery_availability(db, staff.id, body.available)
    if not staff.is_available:
        get_delivery_board().unregister(staff.id)
    return staff


@router.get("/me/available-orders", response_model=list[OrderResponse])
async def available_orders(
    staff: DeliveryStaff = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db),
):
    return await delivery.available_delivery_orders(db, staff)


@router.post("/me/orders/{order_id}/accept", response_model=OrderResponse)
async def accept(
    order_id: int,
    staff: DeliveryStaff = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db),
):
    """Claim a ready order; 409 when another driver got there first."""
    return await delivery.accept_delivery(db, order_id, staff.id)


@router.post("/me/orders/{order_id}/status", response_model=OrderResponse)
async def update_status(
    order_id: int,
    body: DeliveryStatusUpdate,
    staff: DeliveryStaff = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db),
):
    return await delivery.update_delivery_status(db, order_id, staff.id, body.status)


@router.get("/me/orders", response_model=list[OrderResponse])
async def active_orders(
    staff: DeliveryStaff = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db),
):
    return await delivery.active_delivery_orders(db, staff.id)


@router.get("/me/history", response_model=list[OrderResponse])
async def history(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    staff: DeliveryStaff = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db),
):
    return await delivery.delivery_history(db, staff.id, start_date, end_date)


@router.get("/me/alerts", response_model=DeliveryAlertsResponse)
async def alerts(
    staff: DeliveryStaff = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db),
) -> DeliveryAlertsResponse:
    """
    Ready orders queued for this driver with their acceptance countdown,
    plus "order taken" notices. The first poll loads the orders already
    waiting in the driver's area.
    """
    board = get_delivery_board()
    if not delivery.is_on_duty(staff):
        board.unregister(staff.id)
        return DeliveryAlertsResponse(alerts=[], taken_notices=[])
    if not board.is_registered(staff.id):
        waiting = await delivery.available_delivery_orders(db, staff)
        board.register(StaffArea.from_staff(staff), [OrderSnapshot.from_order(o) for o in waiting])
    return DeliveryAlertsResponse(
        alerts=board.pending_for(staff.id),
        taken_notices=board.taken_notices_for(staff.id),
    )


@router.delete("/me/alerts/{order_id}", status_code=204)
async def dismiss_alert(
    order_id: int,
    staff: DeliveryStaff = Depends(get_current_staff),
) -> None:
    get_delivery_board().dismiss(staff.id, order_id)


@router.delete("/me/alerts", status_code=204)
async def stop_alerts(staff: DeliveryStaff = Depends(get_current_staff)) -> None:
    """Stop receiving alerts until the next poll."""
    get_delivery_board().unregister(staff.id)


# =============================================================================
# WALLET
# =============================================================================

@router.get("/me/wallet", response_model=WalletResponse)
async def wallet(
    staff: DeliveryStaff = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db),
):
    async with transaction(db):
        wallet = await wallets.ensure_wallet(db, staff.id)
    return wallet


@router.get("/me/wallet/transactions", response_model=list[WalletTransactionResponse])
async def wallet_transactions(
    staff: DeliveryStaff = Depends(get_current_staff),
    db: AsyncSession = Depends(get_db),
):
    return await wallets.list_transactions(db, staff_id=staff.id)
