from datetime import date, datetime

import pytest

from app.models import CloudKitchenSlot, CookDish, FoodItem, MarginType
from app.services.pricing import customer_price, platform_margin, slot_status


def test_platform_margin():
    assert platform_margin(200.0, MarginType.PERCENT, 12.5) == 25.0
    assert platform_margin(200.0, MarginType.FIXED, 15.0) == 15.0
    assert platform_margin(200.0, MarginType.PERCENT, 0.0) == 0.0


def test_customer_price_uses_the_cooks_custom_price():
    item = FoodItem(price=100.0, platform_margin_type=MarginType.PERCENT, platform_margin_value=10.0)

    assert customer_price(item) == 110.0
    assert customer_price(item, CookDish(custom_price=120.0)) == 132.0
    assert customer_price(item, CookDish(custom_price=None)) == 110.0


def _slot(start, cutoff_hours):
    return CloudKitchenSlot(name="Slot", start_time=start, end_time="23:59", cutoff_hours_before=cutoff_hours)


@pytest.mark.parametrize(
    "now,is_open,label,minutes",
    [
        (datetime(2024, 3, 1, 8, 0), True, "open", 120),
        (datetime(2024, 3, 1, 9, 30), True, "closing_soon", 30),
        (datetime(2024, 3, 1, 10, 0), False, "closed", None),
        (datetime(2024, 3, 1, 13, 0), False, "closed", None),
    ],
)
def test_lunch_slot_closes_at_its_cutoff(now, is_open, label, minutes):
    status = slot_status(_slot("12:00", 2), now)

    assert status.is_open is is_open
    assert status.status_label == label
    assert status.minutes_until_cutoff == minutes
    if is_open:
        assert status.slot_date == date(2024, 3, 1)


def test_early_slot_with_overnight_cutoff_takes_orders_for_tomorrow():
    breakfast = _slot("06:00", 8)  # closes 22:00 the evening before

    morning = slot_status(breakfast, datetime(2024, 3, 1, 5, 0))
    assert morning.is_open
    assert morning.slot_date == date(2024, 3, 2)
    assert morning.minutes_until_cutoff == 17 * 60

    evening = slot_status(breakfast, datetime(2024, 3, 1, 21, 30))
    assert evening.status_label == "closing_soon"
    assert evening.slot_date == date(2024, 3, 2)

    assert not slot_status(breakfast, datetime(2024, 3, 1, 22, 30)).is_open
