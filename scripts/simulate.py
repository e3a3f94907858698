"""
Delivery Claim Race Simulation

Onboards a crowd of drivers for one ready order and has them all try to
accept it at the same moment. Exactly one claim must win; every other
driver must get a 409.

Run from project root (API running):
    python scripts/simulate.py --admin-id 1 --order-id 42 --drivers 25
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_DRIVERS = 25

FIRST_NAMES = ["Anil", "Biju", "Deepa", "Faisal", "Jincy", "Manoj", "Nisha", "Rahul", "Shibu", "Vineetha"]
VEHICLES = ["scooter", "motorcycle", "bicycle"]


def headers(profile_id: int) -> dict[str, str]:
    return {"X-Profile-Id": str(profile_id)}


def random_mobile() -> str:
    return f"9{random.randint(100000000, 999999999)}"


# =============================================================================
# ONBOARDING
# =============================================================================

async def onboard_driver(
    client: httpx.AsyncClient,
    admin_id: int,
    order: dict[str, Any],
    driver_num: int,
) -> dict[str, Any]:
    """Create a delivery profile, apply, get approved and go on duty."""
    name = f"{random.choice(FIRST_NAMES)} {driver_num}"
    mobile = random_mobile()

    response = await client.post(
        f"{API_BASE_URL}/api/admin/profiles",
        json={
            "name": name,
            "mobile_number": mobile,
            "role": "delivery_staff",
            "panchayat_id": order["panchayat_id"],
        },
        headers=headers(admin_id),
    )
    response.raise_for_status()
    profile_id = response.json()["id"]

    response = await client.post(
        f"{API_BASE_URL}/api/delivery/apply",
        json={
            "name": name,
            "mobile_number": mobile,
            "vehicle_type": random.choice(VEHICLES),
            "vehicle_number": f"KL-08-{random.randint(1000, 9999)}",
            "panchayat_id": order["panchayat_id"],
            "assigned_panchayat_ids": [order["panchayat_id"]],
            "assigned_wards": [order["ward_number"]] if order.get("ward_number") else [],
        },
        headers=headers(profile_id),
    )
    response.raise_for_status()
    staff_id = response.json()["id"]

    response = await client.post(
        f"{API_BASE_URL}/api/delivery/staff/{staff_id}/approve",
        headers=headers(admin_id),
    )
    response.raise_for_status()

    response = await client.put(
        f"{API_BASE_URL}/api/delivery/me/availability",
        json={"available": True},
        headers=headers(profile_id),
    )
    response.raise_for_status()

    return {"driver_num": driver_num, "profile_id": profile_id, "staff_id": staff_id, "name": name}


# =============================================================================
# THE RACE
# =============================================================================

async def claim_order(
    client: httpx.AsyncClient,
    driver: dict[str, Any],
    order_id: int,
) -> dict[str, Any]:
    """Fire one accept request and record the outcome."""
    start_time = time.time()
    try:
        response = await client.post(
            f"{API_BASE_URL}/api/delivery/me/orders/{order_id}/accept",
            headers=headers(driver["profile_id"]),
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)
        body = response.json()
        return {
            **driver,
            "status_code": response.status_code,
            "code": body.get("code"),
            "time": elapsed,
        }
    except Exception as e:
        elapsed = round(time.time() - start_time, 3)
        return {**driver, "status_code": None, "error": str(e)[:100], "time": elapsed}


async def run_simulation(admin_id: int, order_id: int, num_drivers: int = TOTAL_DRIVERS) -> bool:
    print("=" * 70)
    print("🔥 DELIVERY CLAIM RACE")
    print("=" * 70)
    print(f"📦 Order: #{order_id}")
    print(f"🛵 Drivers: {num_drivers}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        response = await client.get(
            f"{API_BASE_URL}/api/orders/{order_id}", headers=headers(admin_id)
        )
        if response.status_code != 200:
            print(f"\n❌ Could not load order: {response.text[:100]}")
            return False
        order = response.json()
        if order["status"] != "ready" or order.get("assigned_delivery_id"):
            print(f"\n❌ Order {order['order_number']} is not waiting for a driver")
            return False

        print("\n👥 Onboarding drivers...")
        drivers = await asyncio.gather(
            *[onboard_driver(client, admin_id, order, i + 1) for i in range(num_drivers)]
        )
        print(f"   ✅ {len(drivers)} drivers on duty")

        print("\n🚀 Everyone grabs the order...\n")
        start_time = time.time()
        results = await asyncio.gather(*[claim_order(client, d, order_id) for d in drivers])
        total_time = round(time.time() - start_time, 2)

    winners = [r for r in results if r["status_code"] == 200]
    conflicts = [r for r in results if r["status_code"] == 409]
    others = [r for r in results if r["status_code"] not in (200, 409)]

    print("\n" + "=" * 70)
    print("📊 RACE RESULTS")
    print("=" * 70)
    print(f"\n🏆 Accepted: {len(winners)}")
    print(f"🚫 Conflicts (409): {len(conflicts)}")
    print(f"❌ Other responses: {len(others)}")
    print(f"⏱️  Total Time: {total_time}s")

    for w in winners:
        print(f"\n   Winner: {w['name']} (staff #{w['staff_id']}) in {w['time']}s")

    if others:
        print(f"\n⚠️  Unexpected responses (showing first 5):")
        for r in others[:5]:
            print(f"   Driver {r['driver_num']}: {r.get('status_code')} {r.get('code') or r.get('error')}")

    ok = len(winners) == 1 and len(conflicts) == num_drivers - 1
    print("\n" + "=" * 70)
    print("✅ EXACTLY ONE DRIVER WON" if ok else "❌ CLAIM RACE BROKEN")
    print("=" * 70)
    return ok


async def check_health() -> bool:
    async with httpx.AsyncClient() as client:
        response = await client.get(f"{API_BASE_URL}/health")
    if response.status_code != 200:
        print(f"❌ Health check failed: {response.text}")
        return False
    data = response.json()
    print(f"🩺 Status: {data.get('status')} (database: {data.get('database')}, redis: {data.get('redis')})")
    return True


def main():
    parser = argparse.ArgumentParser(description="Delivery claim race simulation")
    parser.add_argument("--admin-id", type=int, required=True, help="Profile id of an admin")
    parser.add_argument("--order-id", type=int, required=True, help="A ready order with no driver")
    parser.add_argument("--drivers", type=int, default=TOTAL_DRIVERS, help="Number of racing drivers")
    parser.add_argument("--skip-health", action="store_true", help="Skip the health check")
    args = parser.parse_args()

    if not args.skip_health and not asyncio.run(check_health()):
        sys.exit(1)

    ok = asyncio.run(run_simulation(args.admin_id, args.order_id, args.drivers))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
