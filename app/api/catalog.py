"""
Catalog Endpoints

Categories, food items and cloud-kitchen slots (admins manage, everyone
reads), and the per-service menu with the cooks offering each dish.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import require_admin
from app.database import get_db
from app.models import Profile, ServiceType
from app.schemas import (
    AvailabilityUpdate,
    CategoryCreate,
    CategoryResponse,
    FoodItemCreate,
    FoodItemResponse,
    MenuEntryResponse,
    SlotCreate,
    SlotResponse,
    SlotViewResponse,
)
from app.services import catalog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/catalog", tags=["Catalog"])


@router.get("/categories", response_model=list[CategoryResponse])
async def categories(
    service_type: Optional[ServiceType] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await catalog.list_categories(db, service_type)


@router.post("/categories", response_model=CategoryResponse, status_code=201)
async def create_category(
    body: CategoryCreate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await catalog.create_category(db, body.name, body.service_types, body.display_order)


@router.post("/items", response_model=FoodItemResponse, status_code=201)
async def create_item(
    body: FoodItemCreate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    fields = body.model_dump()
    return await catalog.create_food_item(
        db,
        fields.pop("name"),
        fields.pop("service_type"),
        fields.pop("price"),
        created_by=admin.id,
        **fields,
    )


@router.get("/items/{food_item_id}", response_model=FoodItemResponse)
async def get_item(food_item_id: int, db: AsyncSession = Depends(get_db)):
    return await catalog.get_food_item(db, food_item_id)


@router.put("/items/{food_item_id}/availability", response_model=FoodItemResponse)
async def set_item_availability(
    food_item_id: int,
    body: AvailabilityUpdate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await catalog.set_item_availability(db, food_item_id, body.available)


@router.get("/menu/{service_type}", response_model=list[MenuEntryResponse])
async def menu(service_type: ServiceType, db: AsyncSession = Depends(get_db)):
    """Available items with their customer price and the cooks offering them."""
    return await catalog.menu(db, service_type)


@router.get("/slots", response_model=list[SlotViewResponse])
async def slots(db: AsyncSession = Depends(get_db)):
    """Active cloud-kitchen slots with their ordering window and items."""
    return await catalog.cloud_kitchen_slots(db)


@router.post("/slots", response_model=SlotResponse, status_code=201)
async def create_slot(
    body: SlotCreate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await catalog.create_slot(db, **body.model_dump())
