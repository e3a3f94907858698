"""
Cart and Checkout Endpoints
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_profile
from app.database import get_db
from app.models import Profile, ServiceType
from app.schemas import (
    CartItemAdd,
    CartLineResponse,
    CartQuantityUpdate,
    CartResponse,
    CloudKitchenCheckout,
    HomemadeCheckout,
    IndoorEventBooking,
    OrderResponse,
)
from app.services import cart, checkout

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Cart & Checkout"])


async def _cart_response(db: AsyncSession, profile_id: int, service_type: Optional[ServiceType]) -> CartResponse:
    lines = await cart.cart_lines(db, profile_id, service_type)
    return CartResponse(
        lines=[
            CartLineResponse(
                food_item_id=line.item.id,
                name=line.item.name,
                quantity=line.cart_item.quantity,
                selected_cook_id=line.cart_item.selected_cook_id,
                unit_price=line.unit_price,
                line_total=line.line_total,
            )
            for line in lines
        ],
        total=cart.cart_total(lines),
    )


# =============================================================================
# CART
# =============================================================================

@router.get("/cart", response_model=CartResponse)
async def get_cart(
    service_type: Optional[ServiceType] = Query(None),
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    return await _cart_response(db, profile.id, service_type)


@router.post("/cart", response_model=CartResponse)
async def add_to_cart(
    body: CartItemAdd,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    await cart.add_to_cart(db, profile.id, body.food_item_id, body.quantity, body.cook_id)
    return await _cart_response(db, profile.id, None)


@router.put("/cart/{food_item_id}", response_model=CartResponse)
async def update_quantity(
    food_item_id: int,
    body: CartQuantityUpdate,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    await cart.update_quantity(db, profile.id, food_item_id, body.quantity)
    return await _cart_response(db, profile.id, None)


@router.delete("/cart/{food_item_id}", response_model=CartResponse)
async def remove_from_cart(
    food_item_id: int,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    await cart.remove_from_cart(db, profile.id, food_item_id)
    return await _cart_response(db, profile.id, None)


@router.delete("/cart", status_code=204)
async def clear_cart(
    service_type: Optional[ServiceType] = Query(None),
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
) -> None:
    await cart.clear_cart(db, profile.id, service_type)


# =============================================================================
# CHECKOUT
# =============================================================================

@router.post("/checkout/homemade", response_model=OrderResponse, status_code=201)
async def checkout_homemade(
    body: HomemadeCheckout,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    """Place the homemade items of the cart as one order."""
    return await checkout.checkout_homemade(
        db,
        profile,
        delivery_address=body.delivery_address,
        panchayat_id=body.panchayat_id,
        ward_number=body.ward_number,
        delivery_instructions=body.delivery_instructions,
    )


@router.post("/checkout/cloud-kitchen", response_model=OrderResponse, status_code=201)
async def checkout_cloud_kitchen(
    body: CloudKitchenCheckout,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    return await checkout.checkout_cloud_kitchen(
        db,
        profile,
        slot_id=body.slot_id,
        lines=[checkout.OrderLine(**line.model_dump()) for line in body.lines],
        delivery_address=body.delivery_address,
        panchayat_id=body.panchayat_id,
        ward_number=body.ward_number,
        delivery_instructions=body.delivery_instructions,
    )


@router.post("/checkout/indoor-events", response_model=OrderResponse, status_code=201)
async def book_indoor_event(
    body: IndoorEventBooking,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    return await checkout.book_indoor_event(
        db,
        profile,
        event_date=body.event_date,
        guest_count=body.guest_count,
        panchayat_id=body.panchayat_id,
        ward_number=body.ward_number,
        event_details=body.event_details,
        delivery_address=body.delivery_address,
        lines=[checkout.OrderLine(**line.model_dump()) for line in body.lines],
    )
