"""
Admin Endpoints

Settlement approval, driver cash hand-ins, stale delivery orders and the
reports (with their Excel export).
"""

import logging
from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import require_admin
from app.database import get_db
from app.models import Profile, ServiceType, SettlementStatus, TransactionStatus
from app.schemas import (
    BulkApproveRequest,
    ExportResponse,
    SettlementResponse,
    StaleOrderResponse,
    WalletTransactionResponse,
)
from app.services import reports, settlements, wallets
from app.services.alerts import get_delivery_board
from app.tasks import export_reports_to_excel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])


# =============================================================================
# SETTLEMENTS
# =============================================================================

@router.get("/settlements", response_model=list[SettlementResponse])
async def list_settlements(
    status: Optional[SettlementStatus] = Query(None),
    cook_id: Optional[int] = Query(None),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await settlements.list_settlements(db, status, cook_id)


@router.post("/settlements/approve", response_model=list[SettlementResponse])
async def approve_settlements(
    body: BulkApproveRequest,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Approve several settlements at once; all or none."""
    return await settlements.approve_settlements(db, body.settlement_ids, admin)


@router.post("/settlements/{settlement_id}/approve", response_model=SettlementResponse)
async def approve_settlement(
    settlement_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await settlements.approve_settlement(db, settlement_id, admin)


# =============================================================================
# DRIVER WALLETS
# =============================================================================

@router.get("/wallet-transactions", response_model=list[WalletTransactionResponse])
async def wallet_transactions(
    staff_id: Optional[int] = Query(None),
    status: Optional[TransactionStatus] = Query(None),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await wallets.list_transactions(db, staff_id, status)


@router.post("/wallet-transactions/{transaction_id}/approve", response_model=WalletTransactionResponse)
async def approve_collection(
    transaction_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await wallets.approve_collection(db, transaction_id, admin)


# =============================================================================
# ALERTS
# =============================================================================

@router.get("/stale-orders", response_model=list[StaleOrderResponse])
async def stale_orders(admin: Profile = Depends(require_admin)):
    """Ready orders no driver accepted within the stale threshold."""
    return get_delivery_board().stale_orders()


# =============================================================================
# REPORTS
# =============================================================================

@router.get("/reports/sales")
async def sales_report(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    service_type: Optional[ServiceType] = Query(None),
    panchayat_id: Optional[int] = Query(None),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    return await reports.sales_report(db, start_date, end_date, service_type, panchayat_id)


@router.get("/reports/profit-loss")
async def profit_loss_report(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    service_type: Optional[ServiceType] = Query(None),
    panchayat_id: Optional[int] = Query(None),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    return await reports.profit_loss_report(db, start_date, end_date, service_type, panchayat_id)


@router.get("/reports/cooks")
async def cook_performance(
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[dict[str, Any]]:
    return await reports.cook_performance(db)


@router.get("/reports/delivery")
async def delivery_settlement_report(
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[dict[str, Any]]:
    return await reports.delivery_settlement_report(db)


@router.post("/reports/export", response_model=ExportResponse, status_code=202)
async def export_reports(admin: Profile = Depends(require_admin)) -> ExportResponse:
    """Queue the Excel export of the settlement reports."""
    result = export_reports_to_excel.delay()
    logger.info(f"📊 Report export queued by profile #{admin.id}: task {result.id}")
    return ExportResponse(success=True, message="Export queued", task_id=result.id)
