"""
Pricing and Cloud-Kitchen Slot Rules

Pure functions shared by the menu, the cart and checkout:
- customer price = base price + platform margin
- whether a cloud-kitchen slot still takes orders
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from app.models import CloudKitchenSlot, CookDish, FoodItem, MarginType

CLOSING_SOON_MINUTES = 60


def platform_margin(base_price: float, margin_type: MarginType, margin_value: float) -> float:
    if margin_type == MarginType.FIXED:
        return round(margin_value or 0.0, 2)
    return round(base_price * (margin_value or 0.0) / 100, 2)


def customer_price(item: FoodItem, cook_dish: Optional[CookDish] = None) -> float:
    """
    Price the customer pays for one unit of an item.

    The base is the selected cook's custom price when they have one,
    otherwise the catalog price. The margin always follows the item's
    margin settings.
    """
    base = item.price
    if cook_dish is not None and cook_dish.custom_price is not None:
        base = cook_dish.custom_price
    margin = platform_margin(base, item.platform_margin_type, item.platform_margin_value)
    return round(base + margin, 2)


# =============================================================================
# CLOUD KITCHEN SLOTS
# =============================================================================

@dataclass
class SlotStatus:
    is_open: bool
    status_label: str  # open / closing_soon / closed
    minutes_until_cutoff: Optional[int] = None
    slot_date: Optional[date] = None


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")[:2]
    return time(int(hours), int(minutes))


def slot_status(slot: CloudKitchenSlot, now: Optional[datetime] = None) -> SlotStatus:
    """
    Whether a slot still takes orders at ``now`` (server local time).

    Ordering for a slot closes ``cutoff_hours_before`` its start. When the
    cutoff falls on the previous evening (e.g. a 06:00 breakfast slot with
    an 8 hour cutoff closes at 22:00) orders taken after today's cutoff
    passed go to tomorrow's slot, until tomorrow's cutoff later today.
    Once today's cutoff has passed (slot running or already over) the
    slot is closed; the end time only matters for display.
    """
    now = now or datetime.now()
    today = now.date()
    start = datetime.combine(today, _parse_hhmm(slot.start_time))
    cutoff_delta = timedelta(hours=slot.cutoff_hours_before or 0)

    candidates = [start]
    if (start - cutoff_delta).date() < today:
        candidates.append(start + timedelta(days=1))

    for slot_start in candidates:
        cutoff = slot_start - cutoff_delta
        if slot_start > start and cutoff.date() != today:
            continue
        if now < cutoff:
            remaining = int((cutoff - now).total_seconds() // 60)
            label = "closing_soon" if remaining <= CLOSING_SOON_MINUTES else "open"
            return SlotStatus(
                is_open=True,
                status_label=label,
                minutes_until_cutoff=remaining,
                slot_date=slot_start.date(),
            )

    return SlotStatus(is_open=False, status_label="closed")
