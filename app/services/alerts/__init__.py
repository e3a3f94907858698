"""
Alert Service Factory

One order change feed per process, hooked into the database sessions,
with the delivery and cook alert boards subscribed to it.

Usage:
    from app.services.alerts import get_delivery_board

    board = get_delivery_board()
    alerts = board.pending_for(staff_id)
"""

import logging
from functools import lru_cache

from app.core.config import get_settings
from app.services.alerts.board import (
    CookAlert,
    CookAlertBoard,
    DeliveryAlert,
    DeliveryAlertBoard,
    StaleOrder,
)
from app.services.alerts.feed import (
    AssignmentChange,
    AssignmentSnapshot,
    OrderChange,
    OrderChangeFeed,
    OrderSnapshot,
    queue_order_change,
)

logger = logging.getLogger(__name__)


@lru_cache()
def get_order_feed() -> OrderChangeFeed:
    """Get the process-wide change feed, attached to the session events."""
    feed = OrderChangeFeed()
    feed.install()
    return feed


@lru_cache()
def get_delivery_board() -> DeliveryAlertBoard:
    settings = get_settings()
    board = DeliveryAlertBoard(
        accept_seconds=settings.delivery_accept_cutoff_seconds,
        taken_notice_seconds=settings.order_taken_notice_seconds,
        stale_after_seconds=settings.admin_stale_order_seconds,
    )
    get_order_feed().subscribe(board.handle_change)
    logger.info("Delivery alert board subscribed to the order feed")
    return board


@lru_cache()
def get_cook_board() -> CookAlertBoard:
    board = CookAlertBoard()
    get_order_feed().subscribe(board.handle_change)
    logger.info("Cook alert board subscribed to the order feed")
    return board


def reset_alert_boards() -> None:
    """Detach the feed from the sessions and drop the cached boards."""
    if get_order_feed.cache_info().currsize:
        get_order_feed().uninstall()
    get_delivery_board.cache_clear()
    get_cook_board.cache_clear()
    get_order_feed.cache_clear()


__all__ = [
    "get_order_feed",
    "get_delivery_board",
    "get_cook_board",
    "reset_alert_boards",
    "OrderChangeFeed",
    "OrderChange",
    "AssignmentChange",
    "OrderSnapshot",
    "AssignmentSnapshot",
    "queue_order_change",
    "DeliveryAlertBoard",
    "CookAlertBoard",
    "DeliveryAlert",
    "CookAlert",
    "StaleOrder",
]
