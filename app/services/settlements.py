"""
Cook Settlements

One pending settlement per (order, cook) when an order is delivered,
amount = sum of that cook's item totals. Admins approve them one by one
or in bulk.
"""

import logging
from collections import defaultdict
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidTransitionError, NotFoundError
from app.database import transaction
from app.models import Cook, Order, OrderStatus, Profile, Settlement, SettlementStatus
from app.services.workflow import get_order, utcnow

logger = logging.getLogger(__name__)


def cook_subtotals(order: Order) -> dict[int, float]:
    """Item totals of a delivered order grouped by the cook who made them."""
    totals: dict[int, float] = defaultdict(float)
    for item in order.items:
        if item.assigned_cook_id is not None:
            totals[item.assigned_cook_id] += item.total_price
    return {cook_id: round(amount, 2) for cook_id, amount in totals.items()}


async def create_settlements(session: AsyncSession, order: Order) -> list[Settlement]:
    """
    Insert the missing settlements of ``order``. Cooks that already have one
    for this order are skipped, so running this twice settles once.
    """
    subtotals = cook_subtotals(order)
    if not subtotals:
        return []

    existing = set(
        (await session.execute(
            select(Settlement.cook_id).where(Settlement.order_id == order.id)
        )).scalars()
    )
    cooks = {
        cook.id: cook
        for cook in (await session.execute(select(Cook).where(Cook.id.in_(subtotals)))).scalars()
    }

    created = []
    for cook_id, amount in sorted(subtotals.items()):
        if cook_id in existing:
            continue
        cook = cooks.get(cook_id)
        settlement = Settlement(
            cook_id=cook_id,
            profile_id=cook.profile_id if cook else None,
            order_id=order.id,
            amount=amount,
            status=SettlementStatus.PENDING,
            panchayat_id=order.panchayat_id,
            ward_number=order.ward_number,
        )
        session.add(settlement)
        created.append(settlement)
        logger.info(f"💰 Settlement for cook #{cook_id} on order {order.order_number}: {amount:.2f}")

    await session.flush()
    return created


async def settle_order(session: AsyncSession, order_id: int) -> list[Settlement]:
    """Re-run settlement generation for a delivered order (idempotent)."""
    async with transaction(session):
        order = await get_order(session, order_id, for_update=True)
        if order.status != OrderStatus.DELIVERED:
            raise InvalidTransitionError(
                f"Order {order.order_number} is {order.status.value}; only delivered orders are settled"
            )
        created = await create_settlements(session, order)
    return created


def _approve(settlement: Settlement, admin: Profile) -> bool:
    if settlement.status == SettlementStatus.APPROVED:
        return False
    settlement.status = SettlementStatus.APPROVED
    settlement.approved_by = admin.id
    settlement.approved_at = utcnow()
    return True


async def approve_settlement(session: AsyncSession, settlement_id: int, admin: Profile) -> Settlement:
    async with transaction(session):
        settlement = await session.get(Settlement, settlement_id, with_for_update=True)
        if settlement is None:
            raise NotFoundError(f"Settlement #{settlement_id} not found")
        _approve(settlement, admin)
    return settlement


async def approve_settlements(
    session: AsyncSession, settlement_ids: Iterable[int], admin: Profile
) -> list[Settlement]:
    """Approve a batch in one transaction; an unknown id rejects the whole batch."""
    ids = sorted(set(settlement_ids))
    async with transaction(session):
        rows = await session.execute(
            select(Settlement).where(Settlement.id.in_(ids)).with_for_update()
        )
        settlements = list(rows.scalars())
        missing = set(ids) - {s.id for s in settlements}
        if missing:
            raise NotFoundError(f"Settlements not found: {sorted(missing)}")
        approved = sum(_approve(s, admin) for s in settlements)
    logger.info(f"Approved {approved} of {len(ids)} settlement(s) by profile #{admin.id}")
    return settlements


async def list_settlements(
    session: AsyncSession,
    status: Optional[SettlementStatus] = None,
    cook_id: Optional[int] = None,
) -> list[Settlement]:
    stmt = select(Settlement).order_by(Settlement.created_at.desc(), Settlement.id.desc())
    if status is not None:
        stmt = stmt.where(Settlement.status == status)
    if cook_id is not None:
        stmt = stmt.where(Settlement.cook_id == cook_id)
    return list((await session.execute(stmt)).scalars())


async def cook_settlement_summary(
    session: AsyncSession, status: Optional[SettlementStatus] = None
) -> list[dict]:
    """Per cook: pending amount, total earned and the (filtered) settlement rows."""
    cooks = {c.id: c for c in (await session.execute(select(Cook))).scalars()}

    totals = await session.execute(
        select(
            Settlement.cook_id,
            Settlement.status,
            func.coalesce(func.sum(Settlement.amount), 0.0),
        ).group_by(Settlement.cook_id, Settlement.status)
    )
    pending: dict[int, float] = defaultdict(float)
    earned: dict[int, float] = defaultdict(float)
    for cook_id, row_status, amount in totals:
        earned[cook_id] += amount
        if row_status == SettlementStatus.PENDING:
            pending[cook_id] += amount

    rows_by_cook: dict[int, list[Settlement]] = defaultdict(list)
    for settlement in await list_settlements(session, status=status):
        rows_by_cook[settlement.cook_id].append(settlement)

    summary = []
    for cook_id in sorted(set(earned) | set(rows_by_cook)):
        cook = cooks.get(cook_id)
        summary.append({
            "cook_id": cook_id,
            "kitchen_name": cook.kitchen_name if cook else None,
            "pending_amount": round(pending[cook_id], 2),
            "total_earned": round(earned[cook_id], 2),
            "settlements": rows_by_cook[cook_id],
        })
    return summary
