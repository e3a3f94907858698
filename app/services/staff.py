"""
Profiles and Staff Registry

Profiles (one per mobile number), panchayats, cooks registered by admins,
and delivery partners who apply and get approved.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AssignmentConflictError,
    NotFoundError,
    ValidationFailedError,
)
from app.database import transaction
from app.models import (
    AppRole,
    Cook,
    DeliveryStaff,
    Panchayat,
    Profile,
    ServiceType,
    StaffType,
)
from app.services.wallets import ensure_wallet
from app.services.workflow import utcnow

logger = logging.getLogger(__name__)


def normalize_mobile(mobile: str) -> str:
    digits = "".join(ch for ch in mobile if ch.isdigit() or ch == "+")
    if len(digits.lstrip("+")) < 10:
        raise ValidationFailedError(f"Invalid mobile number: {mobile}")
    return digits


# =============================================================================
# PROFILES
# =============================================================================

async def get_profile(session: AsyncSession, profile_id: int) -> Profile:
    profile = await session.get(Profile, profile_id)
    if profile is None:
        raise NotFoundError(f"Profile #{profile_id} not found")
    return profile


async def get_profile_by_mobile(session: AsyncSession, mobile: str) -> Optional[Profile]:
    return (await session.execute(
        select(Profile).where(Profile.mobile_number == normalize_mobile(mobile))
    )).scalar_one_or_none()


async def register_profile(
    session: AsyncSession,
    name: str,
    mobile_number: str,
    role: AppRole = AppRole.CUSTOMER,
    email: Optional[str] = None,
    panchayat_id: Optional[int] = None,
    ward_number: Optional[int] = None,
) -> Profile:
    mobile = normalize_mobile(mobile_number)
    if await get_profile_by_mobile(session, mobile) is not None:
        raise AssignmentConflictError(
            f"A profile with mobile {mobile} already exists", code="duplicate_mobile"
        )
    profile = Profile(
        name=name.strip(),
        mobile_number=mobile,
        role=role,
        email=email,
        panchayat_id=panchayat_id,
        ward_number=ward_number,
    )
    try:
        async with transaction(session):
            session.add(profile)
    except IntegrityError as e:
        # Lost a race against another sign-up with the same number
        raise AssignmentConflictError(
            f"A profile with mobile {mobile} already exists", code="duplicate_mobile"
        ) from e
    logger.info(f"Profile #{profile.id} registered ({role.value})")
    return profile


# =============================================================================
# PANCHAYATS
# =============================================================================

async def create_panchayat(
    session: AsyncSession, name: str, ward_count: int, code: Optional[str] = None
) -> Panchayat:
    if ward_count < 1:
        raise ValidationFailedError("A panchayat needs at least one ward")
    panchayat = Panchayat(name=name.strip(), code=code, ward_count=ward_count)
    async with transaction(session):
        session.add(panchayat)
    return panchayat


async def list_panchayats(session: AsyncSession, active_only: bool = True) -> list[Panchayat]:
    stmt = select(Panchayat).order_by(Panchayat.name)
    if active_only:
        stmt = stmt.where(Panchayat.is_active.is_(True))
    return list((await session.execute(stmt)).scalars())


async def validate_location(session: AsyncSession, panchayat_id: int, ward_number: int) -> Panchayat:
    panchayat = await session.get(Panchayat, panchayat_id)
    if panchayat is None or not panchayat.is_active:
        raise ValidationFailedError(f"Unknown panchayat #{panchayat_id}")
    if not 1 <= ward_number <= panchayat.ward_count:
        raise ValidationFailedError(
            f"Ward {ward_number} does not exist in {panchayat.name} (1-{panchayat.ward_count})"
        )
    return panchayat


# =============================================================================
# COOKS
# =============================================================================

async def get_cook(session: AsyncSession, cook_id: int) -> Cook:
    cook = await session.get(Cook, cook_id)
    if cook is None:
        raise NotFoundError(f"Cook #{cook_id} not found")
    return cook


async def cook_for_profile(session: AsyncSession, profile_id: int) -> Cook:
    cook = (await session.execute(
        select(Cook).where(Cook.profile_id == profile_id)
    )).scalars().first()
    if cook is None:
        raise NotFoundError(f"No cook account for profile #{profile_id}")
    return cook


async def register_cook(
    session: AsyncSession,
    kitchen_name: str,
    mobile_number: str,
    panchayat_id: Optional[int] = None,
    allowed_order_types: Optional[list[ServiceType]] = None,
    profile_id: Optional[int] = None,
    created_by: Optional[int] = None,
) -> Cook:
    name = kitchen_name.strip()
    taken = (await session.execute(select(Cook.id).where(Cook.kitchen_name == name))).first()
    if taken is not None:
        raise AssignmentConflictError(f"Kitchen name '{name}' is already registered")

    cook = Cook(
        kitchen_name=name,
        mobile_number=normalize_mobile(mobile_number),
        panchayat_id=panchayat_id,
        allowed_order_types=[t.value for t in (allowed_order_types or list(ServiceType))],
        profile_id=profile_id,
        created_by=created_by,
    )
    async with transaction(session):
        session.add(cook)
        if profile_id is not None:
            profile = await get_profile(session, profile_id)
            if profile.role == AppRole.CUSTOMER:
                profile.role = AppRole.COOK
    logger.info(f"Cook #{cook.id} '{cook.kitchen_name}' registered")
    return cook


async def list_cooks(session: AsyncSession, active_only: bool = False) -> list[Cook]:
    stmt = select(Cook).order_by(Cook.kitchen_name)
    if active_only:
        stmt = stmt.where(Cook.is_active.is_(True))
    return list((await session.execute(stmt)).scalars())


# =============================================================================
# DELIVERY STAFF
# =============================================================================

async def staff_for_profile(session: AsyncSession, profile_id: int) -> DeliveryStaff:
    staff = (await session.execute(
        select(DeliveryStaff).where(DeliveryStaff.profile_id == profile_id)
    )).scalars().first()
    if staff is None:
        raise NotFoundError(f"No delivery account for profile #{profile_id}")
    return staff


async def apply_delivery_staff(
    session: AsyncSession,
    name: str,
    mobile_number: str,
    vehicle_type: str,
    panchayat_id: int,
    vehicle_number: Optional[str] = None,
    assigned_panchayat_ids: Optional[list[int]] = None,
    assigned_wards: Optional[list[int]] = None,
    staff_type: StaffType = StaffType.REGISTERED_PARTNER,
    profile_id: Optional[int] = None,
) -> DeliveryStaff:
    """New applications start unapproved; they get no orders until an admin approves them."""
    staff = DeliveryStaff(
        profile_id=profile_id,
        name=name.strip(),
        mobile_number=normalize_mobile(mobile_number),
        vehicle_type=vehicle_type,
        vehicle_number=vehicle_number,
        panchayat_id=panchayat_id,
        assigned_panchayat_ids=sorted(set(assigned_panchayat_ids or [])),
        assigned_wards=sorted(set(assigned_wards or [])),
        staff_type=staff_type,
        is_approved=False,
    )
    async with transaction(session):
        session.add(staff)
    logger.info(f"Delivery application #{staff.id} from {staff.name}")
    return staff


async def approve_delivery_staff(session: AsyncSession, staff_id: int, admin: Profile) -> DeliveryStaff:
    """Approve an applicant and open their wallet."""
    async with transaction(session):
        staff = await session.get(DeliveryStaff, staff_id)
        if staff is None:
            raise NotFoundError(f"Delivery staff #{staff_id} not found")
        if not staff.is_approved:
            staff.is_approved = True
            staff.approved_by = admin.id
            staff.approved_at = utcnow()
        await ensure_wallet(session, staff.id)
        if staff.profile_id is not None:
            profile = await get_profile(session, staff.profile_id)
            if profile.role == AppRole.CUSTOMER:
                profile.role = AppRole.DELIVERY_STAFF
    logger.info(f"✅ Delivery staff #{staff.id} {staff.name} approved by profile #{admin.id}")
    return staff


async def list_delivery_staff(session: AsyncSession, approved: Optional[bool] = None) -> list[DeliveryStaff]:
    stmt = select(DeliveryStaff).order_by(DeliveryStaff.name)
    if approved is not None:
        stmt = stmt.where(DeliveryStaff.is_approved.is_(approved))
    return list((await session.execute(stmt)).scalars())
