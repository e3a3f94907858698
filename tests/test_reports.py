from datetime import date

import pytest

from app.core.exceptions import (
    InvalidTransitionError,
    PermissionDeniedError,
    ValidationFailedError,
)
from app.models import DeliveryStatus, ServiceType
from app.services import catalog, delivery, ratings, reports, workflow
from app.services import excel_manager
from app.services.excel_manager import ExcelManager


@pytest.fixture
async def delivered(session, make_driver, make_ready_order):
    """A homemade order taken all the way through its driver."""
    order = await make_ready_order()
    driver = await make_driver()
    await delivery.accept_delivery(session, order.id, driver.id)
    await delivery.update_delivery_status(session, order.id, driver.id, DeliveryStatus.PICKED_UP)
    order = await delivery.update_delivery_status(session, order.id, driver.id, DeliveryStatus.DELIVERED)
    return order, driver


async def test_sales_report_leaves_out_cancelled_revenue(session, customer, dishes, place_order, delivered):
    order, _ = delivered
    _, payasam = dishes
    cancelled = await place_order((payasam, 3, None))
    await workflow.cancel_order(session, cancelled.id, customer)

    report = await reports.sales_report(session)

    assert report["total_orders"] == 2
    assert report["total_revenue"] == order.total_amount
    assert report["delivered_revenue"] == order.total_amount
    assert report["by_status"] == {"delivered": 1, "cancelled": 1}
    assert report["by_service_type"]["homemade"] == {"orders": 2, "revenue": order.total_amount}


async def test_sales_report_filters(session, panchayat, other_panchayat, delivered):
    assert (await reports.sales_report(session, end_date=date(2000, 1, 1)))["total_orders"] == 0
    assert (await reports.sales_report(session, service_type=ServiceType.CLOUD_KITCHEN))["total_orders"] == 0
    assert (await reports.sales_report(session, panchayat_id=other_panchayat.id))["total_orders"] == 0
    assert (await reports.sales_report(session, panchayat_id=panchayat.id))["total_orders"] == 1


async def test_profit_loss_splits_margin_from_cook_base(session, dishes, place_order, delivered):
    order, _ = delivered
    _, payasam = dishes
    await place_order((payasam, 3, None))

    report = await reports.profit_loss_report(session)

    # two biryani at 198: 180 to the cook and 18 platform margin each
    assert report["delivered_orders"] == 1
    assert report["total_revenue"] == 396.0
    assert report["platform_margin"] == 36.0
    assert report["cook_payouts"] == 360.0
    assert report["delivery_payouts"] == 0.0
    assert report["net_profit"] == 36.0
    assert report["by_service_type"] == {
        "homemade": {"orders": 1, "revenue": 396.0, "platform_margin": 36.0, "cook_payouts": 360.0}
    }
    assert report["by_date"] == [{
        "date": order.created_at.date().isoformat(),
        "orders": 1,
        "revenue": 396.0,
        "platform_margin": 36.0,
        "net_profit": 36.0,
    }]


async def test_profit_loss_filters(session, other_panchayat, delivered):
    assert (await reports.profit_loss_report(session, end_date=date(2000, 1, 1)))["delivered_orders"] == 0
    assert (await reports.profit_loss_report(session, service_type=ServiceType.CLOUD_KITCHEN))["net_profit"] == 0.0
    assert (await reports.profit_loss_report(session, panchayat_id=other_panchayat.id))["by_date"] == []


async def test_cook_performance(session, delivered):
    order, _ = delivered

    rows = {row["cook_id"]: row for row in await reports.cook_performance(session)}

    row = rows[order.assigned_cook_id]
    assert (row["assigned"], row["accepted"], row["rejected"], row["completed"]) == (1, 1, 0, 1)
    assert row["total_earnings"] == order.total_amount
    assert row["pending_earnings"] == order.total_amount


async def test_delivery_settlement_report(session, make_driver, delivered):
    order, driver = delivered
    idle = await make_driver()

    rows = {row["delivery_staff_id"]: row for row in await reports.delivery_settlement_report(session)}

    assert rows[driver.id]["total_deliveries"] == 1
    assert rows[driver.id]["collected_amount"] == order.total_amount
    assert rows[driver.id]["pending_settlement"] == order.total_amount
    assert rows[idle.id]["pending_settlement"] == 0.0


async def test_settlement_rows(session, delivered):
    order, _ = delivered

    rows = await reports.settlement_rows(session)

    assert len(rows) == 1
    assert rows[0]["order_number"] == order.order_number
    assert rows[0]["status"] == "pending"
    assert rows[0]["approved_at"] is None


# =============================================================================
# EXCEL EXPORT
# =============================================================================

@pytest.fixture
def export_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(excel_manager, "DATA_DIR", tmp_path)
    monkeypatch.setattr(excel_manager, "SETTLEMENTS_FILE", tmp_path / "settlements.xlsx")
    monkeypatch.setattr(excel_manager, "DELIVERY_FILE", tmp_path / "delivery_settlements.xlsx")
    return tmp_path


async def test_export_writes_and_reads_back(session, export_dir, delivered):
    order, _ = delivered

    result = ExcelManager.export_settlements(await reports.settlement_rows(session))
    assert result["success"] is True
    assert result["rows"] == 1

    rows = ExcelManager.get_settlements()
    assert [r["order_number"] for r in rows] == [order.order_number]
    assert rows[0]["exported_at"] == result["exported_at"]

    ExcelManager.export_delivery_settlements(await reports.delivery_settlement_report(session))
    assert len(ExcelManager.get_delivery_settlements()) == 1

    assert ExcelManager.clear_all() is True
    assert ExcelManager.get_settlements() == []
    assert not (export_dir / "delivery_settlements.xlsx").exists()


# =============================================================================
# RATINGS & MENU
# =============================================================================

async def test_rating_updates_the_cooks_average(session, customer, delivered):
    order, _ = delivered
    item = order.items[0]

    await ratings.rate_order_item(session, customer, order.id, item.id, 5)
    rating = await ratings.rate_order_item(session, customer, order.id, item.id, 3, "A bit salty")

    assert rating.review_text == "A bit salty"
    assert len(await ratings.order_ratings(session, order.id)) == 1
    assert await ratings.unrated_items(session, order.id) == []
    performance = {row["cook_id"]: row for row in await reports.cook_performance(session)}
    assert performance[order.assigned_cook_id]["rating"] == 3.0


async def test_rating_rules(session, customer, admin, dishes, place_order, delivered):
    order, _ = delivered
    biryani, _ = dishes
    open_order = await place_order((biryani, 1, None))
    order_id, item_id = order.id, order.items[0].id
    open_id, open_item_id = open_order.id, open_order.items[0].id

    with pytest.raises(ValidationFailedError):
        await ratings.rate_order_item(session, customer, order_id, item_id, 6)

    with pytest.raises(InvalidTransitionError):
        await ratings.rate_order_item(session, customer, open_id, open_item_id, 4)

    await session.refresh(admin)
    with pytest.raises(PermissionDeniedError):
        await ratings.rate_order_item(session, admin, order_id, item_id, 4)


async def test_menu_lists_cooks_with_their_prices(session, dishes, make_cook):
    biryani, payasam = dishes
    cook = await make_cook(biryani, custom_price=200.0)

    entries = {entry.item.id: entry for entry in await catalog.menu(session, ServiceType.HOMEMADE)}

    assert entries[biryani.id].price == 198.0
    assert [(c.cook_id, c.price) for c in entries[biryani.id].cooks] == [(cook.id, 220.0)]
    assert entries[payasam.id].cooks == []
