"""
Order Change Feed

In-process publish/subscribe of committed order and cook-assignment
writes. SQLAlchemy session events collect the changes while a
transaction flushes and hand them to subscribers only after COMMIT, so
a rolled back write never reaches an alert board.
"""

import logging
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Callable, Optional, Union

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from app.models import (
    CookStatus,
    DeliveryStatus,
    Order,
    OrderAssignedCook,
    OrderStatus,
    ServiceType,
)

logger = logging.getLogger(__name__)

_SESSION_KEY = "order_feed_changes"


# =============================================================================
# SNAPSHOTS
# =============================================================================

@dataclass(frozen=True)
class OrderSnapshot:
    id: int
    order_number: str
    service_type: ServiceType
    status: OrderStatus
    cook_status: CookStatus
    delivery_status: DeliveryStatus
    assigned_delivery_id: Optional[int]
    panchayat_id: int
    ward_number: int
    total_amount: float
    updated_at: Optional[datetime]

    @classmethod
    def from_order(cls, order: Order) -> "OrderSnapshot":
        return cls(**{f.name: getattr(order, f.name) for f in fields(cls)})

    @classmethod
    def before_flush_values(cls, order: Order) -> "OrderSnapshot":
        """Snapshot of the values the order had before the pending flush."""
        state = inspect(order)
        values = {}
        for f in fields(cls):
            history = state.attrs[f.name].history
            values[f.name] = history.deleted[0] if history.deleted else getattr(order, f.name)
        return cls(**values)

    @property
    def awaiting_delivery(self) -> bool:
        """Cooked, unclaimed and handed off by drivers (not admin vehicle dispatch)."""
        return (
            self.service_type in (ServiceType.CLOUD_KITCHEN, ServiceType.HOMEMADE)
            and self.cook_status == CookStatus.READY
            and self.delivery_status == DeliveryStatus.PENDING
            and self.assigned_delivery_id is None
            and self.status not in (OrderStatus.CANCELLED, OrderStatus.DELIVERED)
        )


@dataclass(frozen=True)
class AssignmentSnapshot:
    id: int
    order_id: int
    cook_id: int
    cook_status: CookStatus
    response_deadline: Optional[datetime]

    @classmethod
    def from_assignment(cls, assignment: OrderAssignedCook) -> "AssignmentSnapshot":
        return cls(**{f.name: getattr(assignment, f.name) for f in fields(cls)})


@dataclass(frozen=True)
class OrderChange:
    old: Optional[OrderSnapshot]
    new: OrderSnapshot

    @property
    def is_insert(self) -> bool:
        return self.old is None


@dataclass(frozen=True)
class AssignmentChange:
    old_status: Optional[CookStatus]
    new: AssignmentSnapshot
    removed: bool = False

    @property
    def is_insert(self) -> bool:
        return self.old_status is None


Change = Union[OrderChange, AssignmentChange]
Subscriber = Callable[[Change], None]


# =============================================================================
# FEED
# =============================================================================

class OrderChangeFeed:
    """Fan-out of committed changes to in-process subscribers."""

    def __init__(self):
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, change: Change) -> None:
        for callback in list(self._subscribers):
            try:
                callback(change)
            except Exception:
                # The write is already committed; a broken subscriber must not
                # fail the request that made it.
                logger.exception(f"Order feed subscriber {callback!r} failed")

    # -------------------------------------------------------------------------
    # Session integration
    # -------------------------------------------------------------------------

    def install(self, session_class: type = Session) -> None:
        """Hook the feed into every session created from ``session_class``."""
        event.listen(session_class, "after_flush", _collect_changes)
        event.listen(session_class, "after_commit", self._publish_collected)
        event.listen(session_class, "after_rollback", _discard_changes)
        logger.info("Order change feed attached to database sessions")

    def uninstall(self, session_class: type = Session) -> None:
        event.remove(session_class, "after_flush", _collect_changes)
        event.remove(session_class, "after_commit", self._publish_collected)
        event.remove(session_class, "after_rollback", _discard_changes)

    def _publish_collected(self, session: Session) -> None:
        pending = session.info.pop(_SESSION_KEY, None)
        if not pending:
            return
        for change in pending.values():
            self.publish(change)


def queue_order_change(session, old: Optional[OrderSnapshot], new: OrderSnapshot) -> None:
    """
    Record an order change made outside the unit of work (a Core UPDATE),
    to be published with the rest of the transaction on commit.
    """
    sync_session = getattr(session, "sync_session", session)
    pending = sync_session.info.setdefault(_SESSION_KEY, {})
    _merge(pending, ("order", new.id), OrderChange(old=old, new=new))


def _merge(pending: dict, key: tuple, change: Change) -> None:
    """Keep the oldest 'before' and the newest 'after' of one row."""
    existing = pending.get(key)
    if existing is None:
        pending[key] = change
    elif isinstance(change, OrderChange):
        pending[key] = OrderChange(old=existing.old, new=change.new)
    else:
        pending[key] = AssignmentChange(
            old_status=existing.old_status, new=change.new, removed=change.removed
        )


def _collect_changes(session: Session, flush_context) -> None:
    pending = session.info.setdefault(_SESSION_KEY, {})

    for obj in session.new:
        if isinstance(obj, Order):
            _merge(pending, ("order", obj.id), OrderChange(old=None, new=OrderSnapshot.from_order(obj)))
        elif isinstance(obj, OrderAssignedCook):
            _merge(
                pending,
                ("assignment", obj.id),
                AssignmentChange(old_status=None, new=AssignmentSnapshot.from_assignment(obj)),
            )

    for obj in session.dirty:
        if isinstance(obj, Order) and session.is_modified(obj):
            _merge(
                pending,
                ("order", obj.id),
                OrderChange(old=OrderSnapshot.before_flush_values(obj), new=OrderSnapshot.from_order(obj)),
            )
        elif isinstance(obj, OrderAssignedCook) and session.is_modified(obj):
            history = inspect(obj).attrs.cook_status.history
            old_status = history.deleted[0] if history.deleted else obj.cook_status
            _merge(
                pending,
                ("assignment", obj.id),
                AssignmentChange(old_status=old_status, new=AssignmentSnapshot.from_assignment(obj)),
            )

    for obj in session.deleted:
        if isinstance(obj, OrderAssignedCook):
            _merge(
                pending,
                ("assignment", obj.id),
                AssignmentChange(
                    old_status=obj.cook_status,
                    new=AssignmentSnapshot.from_assignment(obj),
                    removed=True,
                ),
            )


def _discard_changes(session: Session) -> None:
    session.info.pop(_SESSION_KEY, None)
