"""
Alert Boards

Short-lived queues of "orders awaiting your response", fed by the order
change feed:

- DeliveryAlertBoard: ready orders queued for every registered delivery
  staff member serving the order's area, with an acceptance countdown;
  an "order taken" notice once another driver claims it.
- CookAlertBoard: new assignments queued for the assigned cook until the
  assignment's server-side response deadline.
- Stale tracking: ready orders nobody picked up for too long, for admins.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from app.models import CookStatus, OrderStatus
from app.services.alerts.feed import (
    AssignmentChange,
    AssignmentSnapshot,
    Change,
    OrderChange,
    OrderSnapshot,
)
from app.services.areas import StaffArea

logger = logging.getLogger(__name__)


@dataclass
class DeliveryAlert:
    order_id: int
    order_number: str
    panchayat_id: int
    ward_number: int
    total_amount: float
    seconds_remaining: int


@dataclass
class CookAlert:
    order_id: int
    assignment_id: int
    seconds_remaining: Optional[int]


@dataclass
class StaleOrder:
    order_id: int
    order_number: str
    panchayat_id: int
    ward_number: int
    total_amount: float
    seconds_waiting: int


# =============================================================================
# DELIVERY
# =============================================================================

class DeliveryAlertBoard:
    """Per-staff queues of ready orders with an acceptance countdown."""

    def __init__(
        self,
        accept_seconds: int = 120,
        taken_notice_seconds: int = 5,
        stale_after_seconds: int = 180,
        clock: Callable[[], float] = time.monotonic,
        on_order_available: Optional[Callable[[OrderSnapshot], None]] = None,
    ):
        self.accept_seconds = accept_seconds
        self.taken_notice_seconds = taken_notice_seconds
        self.stale_after_seconds = stale_after_seconds
        self.clock = clock
        self.on_order_available = on_order_available

        self._lock = threading.Lock()
        self._areas: dict[int, StaffArea] = {}
        # staff_id -> order_id -> (snapshot, expires_at)
        self._queues: dict[int, dict[int, tuple[OrderSnapshot, float]]] = {}
        # staff_id -> order_number -> notice expires_at
        self._taken: dict[int, dict[str, float]] = {}
        # order_id -> (snapshot, waiting since)
        self._awaiting: dict[int, tuple[OrderSnapshot, float]] = {}

    # -------------------------------------------------------------------------
    # Staff registration (load-on-mount)
    # -------------------------------------------------------------------------

    def is_registered(self, staff_id: int) -> bool:
        return staff_id in self._areas

    def register(self, area: StaffArea, ready_orders: list[OrderSnapshot]) -> None:
        """
        Start (or refresh) alerts for a staff member, seeding the queue with
        the orders already waiting in their area.
        """
        now = self.clock()
        with self._lock:
            self._areas[area.staff_id] = area
            queue = self._queues.setdefault(area.staff_id, {})
            for snapshot in ready_orders:
                if snapshot.awaiting_delivery and area.serves(snapshot.panchayat_id, snapshot.ward_number):
                    if snapshot.id not in queue:
                        queue[snapshot.id] = (snapshot, now + self.accept_seconds)
                    self._awaiting.setdefault(snapshot.id, (snapshot, now))
        logger.debug(f"Delivery board: staff #{area.staff_id} registered ({len(queue)} queued)")

    def unregister(self, staff_id: int) -> None:
        with self._lock:
            self._areas.pop(staff_id, None)
            self._queues.pop(staff_id, None)
            self._taken.pop(staff_id, None)

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def pending_for(self, staff_id: int) -> list[DeliveryAlert]:
        """Queued orders with their remaining seconds; expired entries are dropped."""
        now = self.clock()
        with self._lock:
            queue = self._queues.get(staff_id, {})
            for order_id in [oid for oid, (_, expires) in queue.items() if expires <= now]:
                del queue[order_id]
            return [
                DeliveryAlert(
                    order_id=snap.id,
                    order_number=snap.order_number,
                    panchayat_id=snap.panchayat_id,
                    ward_number=snap.ward_number,
                    total_amount=snap.total_amount,
                    seconds_remaining=max(0, int(expires - now)),
                )
                for snap, expires in sorted(queue.values(), key=lambda entry: entry[1])
            ]

    def taken_notices_for(self, staff_id: int) -> list[str]:
        now = self.clock()
        with self._lock:
            notices = self._taken.get(staff_id, {})
            for number in [n for n, expires in notices.items() if expires <= now]:
                del notices[number]
            return sorted(notices)

    def dismiss(self, staff_id: int, order_id: int) -> None:
        with self._lock:
            self._queues.get(staff_id, {}).pop(order_id, None)

    def stale_orders(self) -> list[StaleOrder]:
        """Ready orders without a driver for longer than the stale threshold."""
        now = self.clock()
        with self._lock:
            return [
                StaleOrder(
                    order_id=snap.id,
                    order_number=snap.order_number,
                    panchayat_id=snap.panchayat_id,
                    ward_number=snap.ward_number,
                    total_amount=snap.total_amount,
                    seconds_waiting=int(now - since),
                )
                for snap, since in self._awaiting.values()
                if now - since >= self.stale_after_seconds
            ]

    # -------------------------------------------------------------------------
    # Feed subscriber
    # -------------------------------------------------------------------------

    def handle_change(self, change: Change) -> None:
        if not isinstance(change, OrderChange):
            return

        new, old = change.new, change.old
        became_available = new.awaiting_delivery and (old is None or not old.awaiting_delivery)
        no_longer_available = old is not None and old.awaiting_delivery and not new.awaiting_delivery

        if change.is_insert and not (
            new.awaiting_delivery and new.status == OrderStatus.CONFIRMED
        ):
            # Only inserts that arrive confirmed and cooked are alerted
            became_available = False

        if became_available:
            self._queue_order(new)
        elif no_longer_available:
            self._withdraw_order(new)

    def _queue_order(self, snapshot: OrderSnapshot) -> None:
        now = self.clock()
        queued_for = []
        with self._lock:
            self._awaiting[snapshot.id] = (snapshot, now)
            for staff_id, area in self._areas.items():
                if area.serves(snapshot.panchayat_id, snapshot.ward_number):
                    self._queues.setdefault(staff_id, {})[snapshot.id] = (snapshot, now + self.accept_seconds)
                    queued_for.append(staff_id)

        logger.info(f"🔔 Order {snapshot.order_number} ready for pickup, alerted staff {queued_for}")
        if self.on_order_available is not None:
            self.on_order_available(snapshot)

    def _withdraw_order(self, snapshot: OrderSnapshot) -> None:
        now = self.clock()
        notified = []
        with self._lock:
            self._awaiting.pop(snapshot.id, None)
            for staff_id, queue in self._queues.items():
                if queue.pop(snapshot.id, None) is None:
                    continue
                if snapshot.assigned_delivery_id is not None and staff_id != snapshot.assigned_delivery_id:
                    self._taken.setdefault(staff_id, {})[snapshot.order_number] = now + self.taken_notice_seconds
                    notified.append(staff_id)
        if notified:
            logger.info(f"Order {snapshot.order_number} taken by staff #{snapshot.assigned_delivery_id}, notified {notified}")


# =============================================================================
# COOKS
# =============================================================================

class CookAlertBoard:
    """Per-cook queues of assignments waiting for accept/reject."""

    def __init__(
        self,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        on_assignment: Optional[Callable[[AssignmentSnapshot], None]] = None,
    ):
        self.now = now
        self.on_assignment = on_assignment
        self._lock = threading.Lock()
        # cook_id -> assignment_id -> snapshot
        self._queues: dict[int, dict[int, AssignmentSnapshot]] = {}

    def load(self, cook_id: int, assignments: list[AssignmentSnapshot]) -> None:
        """Replace the cook's queue with their pending assignments from the database."""
        with self._lock:
            self._queues[cook_id] = {
                snap.id: snap for snap in assignments if snap.cook_status == CookStatus.PENDING
            }

    def pending_for(self, cook_id: int) -> list[CookAlert]:
        now = self.now()
        with self._lock:
            queue = self._queues.get(cook_id, {})
            for assignment_id in [
                aid for aid, snap in queue.items()
                if snap.response_deadline is not None and snap.response_deadline <= now
            ]:
                del queue[assignment_id]
            alerts = []
            for snap in queue.values():
                remaining = None
                if snap.response_deadline is not None:
                    remaining = max(0, int((snap.response_deadline - now).total_seconds()))
                alerts.append(
                    CookAlert(order_id=snap.order_id, assignment_id=snap.id, seconds_remaining=remaining)
                )
            return sorted(alerts, key=lambda a: (a.seconds_remaining is None, a.seconds_remaining))

    def handle_change(self, change: Change) -> None:
        if not isinstance(change, AssignmentChange):
            return
        snap = change.new
        with self._lock:
            queue = self._queues.setdefault(snap.cook_id, {})
            if not change.removed and snap.cook_status == CookStatus.PENDING:
                queue[snap.id] = snap
            else:
                queue.pop(snap.id, None)

        if change.is_insert and snap.cook_status == CookStatus.PENDING:
            logger.info(f"🔔 Cook #{snap.cook_id} assigned order #{snap.order_id}")
            if self.on_assignment is not None:
                self.on_assignment(snap)
