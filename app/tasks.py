"""
Celery Tasks
Background work that must not hold up an API request: staff SMS alerts,
the periodic order sweeps and the Excel report exports.

Each task runs its database work on a short-lived engine inside
asyncio.run(), since the worker processes have no running event loop.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.celery_worker import celery_app
from app.core.config import get_settings
from app.models import Cook, DeliveryStaff
from app.services import reports
from app.services.delivery import eligible_delivery_staff, stale_delivery_orders
from app.services.cook_assignment import expire_stale_assignments
from app.services.excel_manager import ExcelManager
from app.services.notifications import StaleOrderSummary, get_notification_service
from app.services.workflow import get_order, utcnow

settings = get_settings()
logger = logging.getLogger(__name__)

T = TypeVar("T")


def _run_with_session(work: Callable[[AsyncSession], Awaitable[T]]) -> T:
    async def runner() -> T:
        engine = create_async_engine(settings.database_url, poolclass=NullPool)
        session_maker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        try:
            async with session_maker() as session:
                return await work(session)
        finally:
            await engine.dispose()

    return asyncio.run(runner())


# =============================================================================
# STAFF ALERTS
# =============================================================================

@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(ConnectionError,),
    retry_backoff=True
)
def send_delivery_alerts(self, order_id: int) -> dict:
    """SMS every available driver serving the area of a newly ready order."""
    task_id = self.request.id
    logger.info(f"📋 Task {task_id}: delivery alerts for order #{order_id}")

    async def work(session: AsyncSession) -> dict:
        order = await get_order(session, order_id)
        staff: list[DeliveryStaff] = await eligible_delivery_staff(session, order)
        service = get_notification_service()
        sent = 0
        for member in staff:
            result = await service.send_delivery_alert(
                staff_phone=member.mobile_number,
                staff_name=member.name,
                order_number=order.order_number,
                ward_number=order.ward_number,
                seconds_to_accept=settings.delivery_accept_cutoff_seconds,
            )
            if result.success:
                sent += 1
            else:
                logger.warning(f"⚠️ Delivery alert to {member.name} failed: {result.error_message}")
        return {"order_id": order_id, "staff": len(staff), "sent": sent}

    result = _run_with_session(work)
    logger.info(f"✅ Task {task_id}: {result['sent']}/{result['staff']} delivery alert(s) sent")
    return result


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(ConnectionError,),
    retry_backoff=True
)
def send_cook_assignment_alert(self, order_id: int, cook_id: int) -> dict:
    """SMS a cook about a new assignment."""
    task_id = self.request.id

    async def work(session: AsyncSession) -> dict:
        order = await get_order(session, order_id)
        cook = await session.get(Cook, cook_id)
        if cook is None:
            return {"order_id": order_id, "cook_id": cook_id, "sent": False}
        assignment = next((a for a in order.assignments if a.cook_id == cook_id), None)
        seconds = settings.cook_accept_cutoff_seconds
        if assignment is not None and assignment.response_deadline is not None:
            seconds = max(0, int((assignment.response_deadline - utcnow()).total_seconds()))
        result = await get_notification_service().send_cook_assignment_alert(
            cook_phone=cook.mobile_number,
            kitchen_name=cook.kitchen_name,
            order_number=order.order_number,
            seconds_to_respond=seconds,
        )
        return {"order_id": order_id, "cook_id": cook_id, "sent": result.success}

    result = _run_with_session(work)
    logger.info(f"📋 Task {task_id}: cook #{cook_id} alert for order #{order_id} sent={result['sent']}")
    return result


# =============================================================================
# PERIODIC SWEEPS
# =============================================================================

@celery_app.task
def scan_stale_delivery_orders() -> dict:
    """Email admins the ready orders no driver accepted in time."""

    async def work(session: AsyncSession) -> list[StaleOrderSummary]:
        now = utcnow()
        orders = await stale_delivery_orders(session, now=now)
        return [
            StaleOrderSummary(
                order_number=o.order_number,
                panchayat_id=o.panchayat_id,
                ward_number=o.ward_number,
                minutes_waiting=int((now - o.updated_at).total_seconds() // 60),
                total_amount=o.total_amount,
            )
            for o in orders
        ]

    stale = _run_with_session(work)
    if not stale:
        return {"stale_orders": 0, "alert_sent": False}

    logger.warning(f"⚠️ {len(stale)} ready order(s) waiting for a driver")
    if not settings.admin_alert_email:
        logger.warning("ADMIN_ALERT_EMAIL is not set; stale order alert skipped")
        return {"stale_orders": len(stale), "alert_sent": False}

    result = asyncio.run(
        get_notification_service().send_stale_order_alert(settings.admin_alert_email, stale)
    )
    return {"stale_orders": len(stale), "alert_sent": result.success}


@celery_app.task
def expire_cook_assignments() -> dict:
    """Expire pending cook assignments past their response deadline."""
    expired = _run_with_session(expire_stale_assignments)
    return {"expired": expired, "timestamp": datetime.now().isoformat()}


# =============================================================================
# REPORT EXPORTS
# =============================================================================

@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def export_reports_to_excel(self) -> dict[str, Any]:
    """
    Export the settlement and delivery settlement reports to Excel.

    Returns:
        dict: Result of both exports
    """
    task_id = self.request.id
    logger.info(f"📋 Task {task_id}: exporting reports")
    start_time = time.time()

    async def work(session: AsyncSession) -> tuple[list, list]:
        return (
            await reports.settlement_rows(session),
            await reports.delivery_settlement_report(session),
        )

    settlement_rows, delivery_rows = _run_with_session(work)
    result = {
        "settlements": ExcelManager.export_settlements(settlement_rows),
        "delivery_settlements": ExcelManager.export_delivery_settlements(delivery_rows),
        "task_id": task_id,
        "processing_time_seconds": round(time.time() - start_time, 3),
    }

    if result["settlements"]["success"] and result["delivery_settlements"]["success"]:
        logger.info(f"✅ Task {task_id}: reports exported in {result['processing_time_seconds']}s")
    else:
        logger.warning(f"⚠️ Task {task_id}: export incomplete")
    return result


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
