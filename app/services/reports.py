"""
Reports

Sales, profit and loss, cook performance and delivery settlement figures
for the admin panel and the Excel export.
"""

import logging
from collections import Counter, defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import (
    Cook,
    CookStatus,
    DeliveryStaff,
    DeliveryWallet,
    FoodItem,
    MarginType,
    Order,
    OrderAssignedCook,
    OrderItem,
    OrderStatus,
    ServiceType,
    Settlement,
    SettlementStatus,
)
from app.services.pricing import platform_margin

logger = logging.getLogger(__name__)

ACCEPTED_STATUSES = (CookStatus.ACCEPTED, CookStatus.PREPARING, CookStatus.COOKED, CookStatus.READY)


def _day_bounds(start_date: Optional[date], end_date: Optional[date]) -> tuple[Optional[datetime], Optional[datetime]]:
    start = datetime.combine(start_date, time.min, tzinfo=timezone.utc) if start_date else None
    end = (
        datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
        if end_date else None
    )
    return start, end


async def sales_report(
    session: AsyncSession,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    service_type: Optional[ServiceType] = None,
    panchayat_id: Optional[int] = None,
) -> dict[str, Any]:
    """Order counts and revenue by status and service type (end date inclusive)."""
    stmt = select(Order)
    start, end = _day_bounds(start_date, end_date)
    if start is not None:
        stmt = stmt.where(Order.created_at >= start)
    if end is not None:
        stmt = stmt.where(Order.created_at < end)
    if service_type is not None:
        stmt = stmt.where(Order.service_type == service_type)
    if panchayat_id is not None:
        stmt = stmt.where(Order.panchayat_id == panchayat_id)
    orders = list((await session.execute(stmt)).scalars())

    by_status = Counter(o.status.value for o in orders)
    by_service: dict[str, dict[str, float]] = defaultdict(lambda: {"orders": 0, "revenue": 0.0})
    revenue = 0.0
    for order in orders:
        bucket = by_service[order.service_type.value]
        bucket["orders"] += 1
        if order.status != OrderStatus.CANCELLED:
            bucket["revenue"] = round(bucket["revenue"] + order.total_amount, 2)
            revenue += order.total_amount

    return {
        "total_orders": len(orders),
        "total_revenue": round(revenue, 2),
        "delivered_revenue": round(
            sum(o.total_amount for o in orders if o.status == OrderStatus.DELIVERED), 2
        ),
        "by_status": dict(by_status),
        "by_service_type": dict(by_service),
    }


def _split_unit_price(unit_price: float, item: FoodItem) -> tuple[float, float]:
    """(cook base, platform margin) inside a charged unit price."""
    value = item.platform_margin_value or 0.0
    if item.platform_margin_type == MarginType.FIXED:
        base = max(unit_price - value, 0.0)
    else:
        base = unit_price / (1 + value / 100)
    return base, platform_margin(base, item.platform_margin_type, value)


async def profit_loss_report(
    session: AsyncSession,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    service_type: Optional[ServiceType] = None,
    panchayat_id: Optional[int] = None,
) -> dict[str, Any]:
    """
    Platform profit on delivered orders.

    Each order item splits into the cook's base price and the platform
    margin. Delivery charges are paid out to the drivers, so
    net profit = platform margin - delivery payouts.
    """
    stmt = select(Order).where(Order.status == OrderStatus.DELIVERED)
    start, end = _day_bounds(start_date, end_date)
    if start is not None:
        stmt = stmt.where(Order.created_at >= start)
    if end is not None:
        stmt = stmt.where(Order.created_at < end)
    if service_type is not None:
        stmt = stmt.where(Order.service_type == service_type)
    if panchayat_id is not None:
        stmt = stmt.where(Order.panchayat_id == panchayat_id)
    orders = list((await session.execute(stmt.order_by(Order.created_at, Order.id))).scalars())

    lines: dict[int, list[tuple[OrderItem, FoodItem]]] = defaultdict(list)
    if orders:
        rows = await session.execute(
            select(OrderItem, FoodItem)
            .join(FoodItem, FoodItem.id == OrderItem.food_item_id)
            .where(OrderItem.order_id.in_([o.id for o in orders]))
        )
        for order_item, food_item in rows:
            lines[order_item.order_id].append((order_item, food_item))

    totals = {"revenue": 0.0, "margin": 0.0, "cook_payouts": 0.0, "delivery_payouts": 0.0}
    by_service: dict[str, dict[str, float]] = defaultdict(
        lambda: {"orders": 0, "revenue": 0.0, "platform_margin": 0.0, "cook_payouts": 0.0}
    )
    by_date: dict[str, dict[str, float]] = defaultdict(
        lambda: {"orders": 0, "revenue": 0.0, "platform_margin": 0.0, "net_profit": 0.0}
    )
    for order in orders:
        margin = cook_payout = 0.0
        for order_item, food_item in lines[order.id]:
            base, unit_margin = _split_unit_price(order_item.unit_price, food_item)
            margin += unit_margin * order_item.quantity
            cook_payout += base * order_item.quantity
        delivery_payout = order.delivery_amount or 0.0

        totals["revenue"] += order.total_amount
        totals["margin"] += margin
        totals["cook_payouts"] += cook_payout
        totals["delivery_payouts"] += delivery_payout

        service = by_service[order.service_type.value]
        service["orders"] += 1
        service["revenue"] += order.total_amount
        service["platform_margin"] += margin
        service["cook_payouts"] += cook_payout

        day = by_date[order.created_at.date().isoformat()]
        day["orders"] += 1
        day["revenue"] += order.total_amount
        day["platform_margin"] += margin
        day["net_profit"] += margin - delivery_payout

    def rounded(bucket: dict[str, float]) -> dict[str, float]:
        return {key: round(value, 2) if isinstance(value, float) else value for key, value in bucket.items()}

    return {
        "delivered_orders": len(orders),
        "total_revenue": round(totals["revenue"], 2),
        "platform_margin": round(totals["margin"], 2),
        "cook_payouts": round(totals["cook_payouts"], 2),
        "delivery_payouts": round(totals["delivery_payouts"], 2),
        "net_profit": round(totals["margin"] - totals["delivery_payouts"], 2),
        "by_service_type": {key: rounded(bucket) for key, bucket in by_service.items()},
        "by_date": [{"date": key, **rounded(bucket)} for key, bucket in sorted(by_date.items())],
    }


async def cook_performance(session: AsyncSession) -> list[dict[str, Any]]:
    cooks = list((await session.execute(select(Cook).order_by(Cook.kitchen_name))).scalars())

    counts: dict[int, Counter] = defaultdict(Counter)
    rows = await session.execute(
        select(OrderAssignedCook.cook_id, OrderAssignedCook.cook_status, Order.status)
        .join(Order, Order.id == OrderAssignedCook.order_id)
    )
    for cook_id, cook_status, order_status in rows:
        counts[cook_id]["assigned"] += 1
        if cook_status in ACCEPTED_STATUSES:
            counts[cook_id]["accepted"] += 1
        elif cook_status == CookStatus.REJECTED:
            counts[cook_id]["rejected"] += 1
        elif cook_status == CookStatus.EXPIRED:
            counts[cook_id]["expired"] += 1
        if order_status == OrderStatus.DELIVERED and cook_status == CookStatus.READY:
            counts[cook_id]["completed"] += 1

    earnings: dict[int, dict[str, float]] = defaultdict(lambda: {"earned": 0.0, "pending": 0.0})
    rows = await session.execute(
        select(Settlement.cook_id, Settlement.status, func.sum(Settlement.amount))
        .group_by(Settlement.cook_id, Settlement.status)
    )
    for cook_id, status, amount in rows:
        earnings[cook_id]["earned"] += amount or 0.0
        if status == SettlementStatus.PENDING:
            earnings[cook_id]["pending"] += amount or 0.0

    return [
        {
            "cook_id": cook.id,
            "kitchen_name": cook.kitchen_name,
            "assigned": counts[cook.id]["assigned"],
            "accepted": counts[cook.id]["accepted"],
            "rejected": counts[cook.id]["rejected"],
            "expired": counts[cook.id]["expired"],
            "completed": counts[cook.id]["completed"],
            "rating": cook.rating,
            "total_earnings": round(earnings[cook.id]["earned"], 2),
            "pending_earnings": round(earnings[cook.id]["pending"], 2),
        }
        for cook in cooks
    ]


async def delivery_settlement_report(session: AsyncSession) -> list[dict[str, Any]]:
    """Per driver: cash collected, earnings, settled and what is still owed."""
    rows = await session.execute(
        select(DeliveryStaff, DeliveryWallet)
        .outerjoin(DeliveryWallet, DeliveryWallet.delivery_staff_id == DeliveryStaff.id)
        .order_by(DeliveryStaff.name)
    )
    report = []
    for staff, wallet in rows:
        collected = wallet.collected_amount if wallet else 0.0
        earnings = wallet.job_earnings if wallet else 0.0
        settled = wallet.total_settled if wallet else 0.0
        report.append({
            "delivery_staff_id": staff.id,
            "name": staff.name,
            "mobile_number": staff.mobile_number,
            "staff_type": staff.staff_type.value,
            "total_deliveries": staff.total_deliveries,
            "collected_amount": round(collected, 2),
            "job_earnings": round(earnings, 2),
            "total_settled": round(settled, 2),
            "pending_settlement": round(collected + earnings - settled, 2),
        })
    return report


async def settlement_rows(session: AsyncSession) -> list[dict[str, Any]]:
    """Flat settlement rows for the Excel export."""
    rows = await session.execute(
        select(Settlement, Cook.kitchen_name, Order.order_number)
        .join(Cook, Cook.id == Settlement.cook_id)
        .join(Order, Order.id == Settlement.order_id)
        .order_by(Settlement.id)
    )
    return [
        {
            "settlement_id": s.id,
            "order_number": order_number,
            "cook_id": s.cook_id,
            "kitchen_name": kitchen_name,
            "amount": s.amount,
            "status": s.status.value,
            "panchayat_id": s.panchayat_id,
            "ward_number": s.ward_number,
            "created_at": s.created_at.isoformat() if s.created_at else None,
            "approved_at": s.approved_at.isoformat() if s.approved_at else None,
        }
        for s, kitchen_name, order_number in rows
    ]
