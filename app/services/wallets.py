"""
Delivery Wallets

Cash a driver collects on delivery and the delivery charges they earn.
Collections stay pending until an admin confirms the cash was handed in.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidTransitionError, NotFoundError
from app.database import transaction
from app.models import (
    DeliveryStaff,
    DeliveryWallet,
    Order,
    Profile,
    TransactionStatus,
    TransactionType,
    WalletTransaction,
)
from app.services.workflow import utcnow

logger = logging.getLogger(__name__)


async def get_wallet(session: AsyncSession, staff_id: int) -> Optional[DeliveryWallet]:
    return (await session.execute(
        select(DeliveryWallet).where(DeliveryWallet.delivery_staff_id == staff_id)
    )).scalar_one_or_none()


async def ensure_wallet(session: AsyncSession, staff_id: int) -> DeliveryWallet:
    wallet = await get_wallet(session, staff_id)
    if wallet is None:
        wallet = DeliveryWallet(
            delivery_staff_id=staff_id,
            collected_amount=0.0,
            job_earnings=0.0,
            total_settled=0.0,
        )
        session.add(wallet)
        await session.flush()
    return wallet


async def record_delivery(session: AsyncSession, staff: DeliveryStaff, order: Order) -> DeliveryWallet:
    """Book the order's cash and delivery charge on the driver's wallet."""
    wallet = await ensure_wallet(session, staff.id)
    wallet.collected_amount = round(wallet.collected_amount + (order.total_amount or 0.0), 2)
    wallet.job_earnings = round(wallet.job_earnings + (order.delivery_amount or 0.0), 2)

    if order.total_amount and order.total_amount > 0:
        session.add(WalletTransaction(
            delivery_staff_id=staff.id,
            order_id=order.id,
            transaction_type=TransactionType.COLLECTION,
            amount=order.total_amount,
            description=f"Cash collected for order {order.order_number}",
            status=TransactionStatus.PENDING,
        ))
    if order.delivery_amount and order.delivery_amount > 0:
        session.add(WalletTransaction(
            delivery_staff_id=staff.id,
            order_id=order.id,
            transaction_type=TransactionType.EARNING,
            amount=order.delivery_amount,
            description=f"Delivery charge for order {order.order_number}",
            status=TransactionStatus.APPROVED,
            approved_at=utcnow(),
        ))
    return wallet


async def approve_collection(session: AsyncSession, transaction_id: int, admin: Profile) -> WalletTransaction:
    """Confirm a collection was handed in; it then counts as settled."""
    async with transaction(session):
        txn = await session.get(WalletTransaction, transaction_id, with_for_update=True)
        if txn is None:
            raise NotFoundError(f"Wallet transaction #{transaction_id} not found")
        if txn.transaction_type != TransactionType.COLLECTION:
            raise InvalidTransitionError("Only collection transactions need approval")
        if txn.status == TransactionStatus.APPROVED:
            return txn
        if txn.status != TransactionStatus.PENDING:
            raise InvalidTransitionError(f"Transaction #{txn.id} is {txn.status.value}")

        wallet = await ensure_wallet(session, txn.delivery_staff_id)
        txn.status = TransactionStatus.APPROVED
        txn.approved_by = admin.id
        txn.approved_at = utcnow()
        wallet.total_settled = round(wallet.total_settled + txn.amount, 2)

    logger.info(f"Collection #{txn.id} ({txn.amount:.2f}) approved for staff #{txn.delivery_staff_id}")
    return txn


async def list_transactions(
    session: AsyncSession,
    staff_id: Optional[int] = None,
    status: Optional[TransactionStatus] = None,
) -> list[WalletTransaction]:
    stmt = select(WalletTransaction).order_by(WalletTransaction.id.desc())
    if staff_id is not None:
        stmt = stmt.where(WalletTransaction.delivery_staff_id == staff_id)
    if status is not None:
        stmt = stmt.where(WalletTransaction.status == status)
    return list((await session.execute(stmt)).scalars())
