import asyncio
import threading
import time
from types import SimpleNamespace

import httpx
import pytest

from app import main
from app.database import get_db
from app.main import app
from app.services import staff


@pytest.fixture
async def client(session):
    async def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def as_profile(profile_id):
    return {"X-Profile-Id": str(profile_id)}


async def test_root(client):
    response = await client.get("/")

    assert response.status_code == 200
    assert response.json()["documentation"] == "/docs"


async def test_sign_up_always_creates_a_customer(client, panchayat):
    response = await client.post(
        "/api/profiles",
        json={"name": "Suresh P", "mobile_number": "98470 55555", "role": "admin"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["role"] == "customer"
    assert body["mobile_number"] == "9847055555"


async def test_unknown_profile_and_missing_header(client):
    response = await client.get("/api/profiles/me", headers=as_profile(424242))
    assert response.status_code == 404
    assert response.json()["success"] is False

    assert (await client.get("/api/profiles/me")).status_code == 422


async def test_admin_routes_reject_customers(client, customer):
    response = await client.get("/api/admin/settlements", headers=as_profile(customer.id))

    assert response.status_code == 403
    assert response.json()["error"] == "Forbidden"


async def test_customer_orders_through_the_cart(client, customer, panchayat, dishes):
    biryani, _ = dishes
    headers = as_profile(customer.id)

    response = await client.post("/api/cart", json={"food_item_id": biryani.id, "quantity": 2}, headers=headers)
    assert response.status_code == 200
    assert response.json()["total"] == 396.0

    response = await client.post(
        "/api/checkout/homemade",
        json={"delivery_address": "House 12, Market Road", "panchayat_id": panchayat.id, "ward_number": 3},
        headers=headers,
    )
    assert response.status_code == 201
    order = response.json()
    assert order["order_number"].startswith("PC")
    assert order["status"] == "pending"
    assert order["total_amount"] == 396.0

    listing = (await client.get("/api/orders", headers=headers)).json()
    assert listing["total"] == 1
    assert (await client.get("/api/cart", headers=headers)).json()["lines"] == []


async def test_checkout_outside_the_panchayat_wards(client, customer, panchayat, dishes):
    biryani, _ = dishes
    headers = as_profile(customer.id)
    await client.post("/api/cart", json={"food_item_id": biryani.id}, headers=headers)

    response = await client.post(
        "/api/checkout/homemade",
        json={"delivery_address": "House 12, Market Road", "panchayat_id": panchayat.id, "ward_number": 11},
        headers=headers,
    )

    assert response.status_code == 422
    assert response.json()["error"] == "Validation Failed"


async def test_other_customers_cannot_see_an_order(client, session, dishes, place_order):
    biryani, _ = dishes
    order = await place_order((biryani, 1, None))
    stranger = await staff.register_profile(session, "Stranger", "9847099999")

    response = await client.get(f"/api/orders/{order.id}", headers=as_profile(stranger.id))

    assert response.status_code == 403


async def test_second_driver_gets_409(client, make_driver, make_ready_order):
    order = await make_ready_order()
    first = await make_driver()
    second = await make_driver()
    order_id, first_profile, second_profile = order.id, first.profile_id, second.profile_id

    won = await client.post(f"/api/delivery/me/orders/{order_id}/accept", headers=as_profile(first_profile))
    lost = await client.post(f"/api/delivery/me/orders/{order_id}/accept", headers=as_profile(second_profile))

    assert won.status_code == 200
    assert won.json()["delivery_status"] == "assigned"
    assert lost.status_code == 409
    assert lost.json()["code"] == "order_taken"


async def test_driver_alerts_load_on_first_poll(client, make_driver, make_ready_order):
    order = await make_ready_order()
    waiting = await make_driver()
    taker = await make_driver()
    order_id, order_number = order.id, order.order_number
    waiting_profile, taker_profile = waiting.profile_id, taker.profile_id

    body = (await client.get("/api/delivery/me/alerts", headers=as_profile(waiting_profile))).json()
    assert [a["order_id"] for a in body["alerts"]] == [order_id]
    assert 115 <= body["alerts"][0]["seconds_remaining"] <= 120
    assert body["taken_notices"] == []

    await client.post(f"/api/delivery/me/orders/{order_id}/accept", headers=as_profile(taker_profile))

    body = (await client.get("/api/delivery/me/alerts", headers=as_profile(waiting_profile))).json()
    assert body["alerts"] == []
    assert body["taken_notices"] == [order_number]


async def test_off_duty_driver_gets_no_alerts(client, make_driver, make_ready_order):
    driver = await make_driver()
    headers = as_profile(driver.profile_id)
    assert (await client.get("/api/delivery/me/alerts", headers=headers)).json()["alerts"] == []

    response = await client.put("/api/delivery/me/availability", json={"available": False}, headers=headers)
    assert response.json()["is_available"] is False
    order = await make_ready_order()
    order_id = order.id

    assert (await client.get("/api/delivery/me/alerts", headers=headers)).json()["alerts"] == []

    await client.put("/api/delivery/me/availability", json={"available": True}, headers=headers)
    body = (await client.get("/api/delivery/me/alerts", headers=headers)).json()
    assert [a["order_id"] for a in body["alerts"]] == [order_id]


async def test_off_duty_driver_cannot_claim(client, make_driver, make_ready_order):
    order = await make_ready_order()
    driver = await make_driver()
    order_id, headers = order.id, as_profile(driver.profile_id)

    await client.put("/api/delivery/me/availability", json={"available": False}, headers=headers)
    response = await client.post(f"/api/delivery/me/orders/{order_id}/accept", headers=headers)

    assert response.status_code == 422
    assert response.json()["code"] == "off_duty"


async def test_customers_are_not_drivers(client, customer):
    response = await client.get("/api/delivery/me/alerts", headers=as_profile(customer.id))

    assert response.status_code == 403


async def test_alert_tasks_do_not_block_the_event_loop(monkeypatch):
    published = threading.Event()
    calls = []

    def slow_delay(order_id):
        time.sleep(0.3)
        calls.append(order_id)
        published.set()

    monkeypatch.setattr(main.send_delivery_alerts, "delay", slow_delay)

    started = time.monotonic()
    main._queue_delivery_sms(SimpleNamespace(id=7))
    assert time.monotonic() - started < 0.2

    assert await asyncio.get_running_loop().run_in_executor(None, published.wait, 2)
    assert calls == [7]


async def test_broker_failures_are_logged(monkeypatch, caplog):
    def broken_delay(order_id, cook_id):
        raise ConnectionError("redis down")

    monkeypatch.setattr(main.send_cook_assignment_alert, "delay", broken_delay)

    main._queue_cook_sms(SimpleNamespace(order_id=3, cook_id=4))
    for _ in range(50):
        if "redis down" in caplog.text:
            break
        await asyncio.sleep(0.01)

    assert "Could not queue alert task: redis down" in caplog.text
