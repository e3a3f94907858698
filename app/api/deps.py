"""
Request Dependencies

Callers identify themselves with the ``X-Profile-Id`` header; these
dependencies load the profile and check its role.
"""

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import PermissionDeniedError
from app.database import get_db
from app.models import AppRole, Cook, DeliveryStaff, Profile
from app.services.staff import cook_for_profile, get_profile, staff_for_profile


async def get_current_profile(
    x_profile_id: int = Header(..., alias="X-Profile-Id"),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    profile = await get_profile(db, x_profile_id)
    if not profile.is_active:
        raise PermissionDeniedError(f"Profile #{profile.id} is deactivated")
    return profile


async def require_admin(profile: Profile = Depends(get_current_profile)) -> Profile:
    if not profile.is_admin:
        raise PermissionDeniedError("Admin access required")
    return profile


async def get_current_cook(
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
) -> Cook:
    if profile.role != AppRole.COOK:
        raise PermissionDeniedError("Cook access required")
    return await cook_for_profile(db, profile.id)


async def get_current_staff(
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
) -> DeliveryStaff:
    if profile.role != AppRole.DELIVERY_STAFF:
        raise PermissionDeniedError("Delivery staff access required")
    return await staff_for_profile(db, profile.id)
