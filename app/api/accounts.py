"""
Profile and Panchayat Endpoints
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_profile, require_admin
from app.core.exceptions import NotFoundError
from app.database import get_db
from app.models import AppRole, Profile
from app.schemas import PanchayatCreate, PanchayatResponse, ProfileCreate, ProfileResponse
from app.services import staff

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Accounts"])


@router.post("/profiles", response_model=ProfileResponse, status_code=201)
async def register(body: ProfileCreate, db: AsyncSession = Depends(get_db)):
    """Self sign-up; always creates a customer profile."""
    return await staff.register_profile(
        db,
        name=body.name,
        mobile_number=body.mobile_number,
        role=AppRole.CUSTOMER,
        email=body.email,
        panchayat_id=body.panchayat_id,
        ward_number=body.ward_number,
    )


@router.post("/admin/profiles", response_model=ProfileResponse, status_code=201)
async def create_profile(
    body: ProfileCreate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create a profile with any role (staff onboarding)."""
    return await staff.register_profile(db, **body.model_dump())


@router.get("/profiles/me", response_model=ProfileResponse)
async def me(profile: Profile = Depends(get_current_profile)):
    return profile


@router.get("/profiles/by-mobile/{mobile_number}", response_model=ProfileResponse)
async def by_mobile(
    mobile_number: str,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    profile = await staff.get_profile_by_mobile(db, mobile_number)
    if profile is None:
        raise NotFoundError(f"No profile for mobile number {mobile_number}")
    return profile


@router.get("/panchayats", response_model=list[PanchayatResponse])
async def panchayats(db: AsyncSession = Depends(get_db)):
    return await staff.list_panchayats(db)


@router.post("/panchayats", response_model=PanchayatResponse, status_code=201)
async def create_panchayat(
    body: PanchayatCreate,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await staff.create_panchayat(db, body.name, body.ward_count, body.code)
