"""
Chaos Simulation Script

Fires concurrent order placements and status transitions at a running order
service to check that every request gets a well-formed answer and that
concurrent writes to the same order end in one of the written states.

Run from project root: python scripts/simulate.py --orders 50
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
API_BASE_URL = "http://localhost:3003"
TOTAL_ORDERS = 50

# Demo catalog served by the development directory
CUSTOMER_IDS = [1]
RESTAURANT_IDS = [5]
ITEM_IDS = [10, 11]
COURIER_IDS = [7]
STREETS = ["Rue de la Paix", "Avenue Habib Bourguiba", "Rue de Marseille", "Boulevard du 7 Novembre"]

FORWARD_PATH = [
    "confirmed",
    "waiting_for_pickup",
    "product_pickedup",
    "confirmed_by_delivery",
    "confirmed_by_client",
    "completed",
]


def generate_order_payload() -> dict[str, Any]:
    """Generate a random order placement."""
    items = random.choices(ITEM_IDS, k=random.randint(1, 4))
    return {
        "customer_id": random.choice(CUSTOMER_IDS),
        "restaurant_id": random.choice(RESTAURANT_IDS),
        "total_price": random.randint(5, 60) * 100,
        "items": items,
        "address": f"{random.randint(1, 200)} {random.choice(STREETS)}",
    }


async def place_order(client: httpx.AsyncClient, order_num: int) -> dict[str, Any]:
    """POST /orders and time the answer."""
    start_time = time.time()
    try:
        response = await client.post("/orders", json=generate_order_payload())
    except httpx.HTTPError as e:
        return {"order_num": order_num, "success": False, "error": str(e)[:100], "time": round(time.time() - start_time, 3)}

    elapsed = round(time.time() - start_time, 3)
    if response.status_code == 201:
        return {"order_num": order_num, "success": True, "order_id": response.json()["order_id"], "time": elapsed}
    return {"order_num": order_num, "success": False, "error": response.text[:100], "time": elapsed}


async def walk_order(client: httpx.AsyncClient, order_id: int) -> dict[str, Any]:
    """Move one order along the forward path, assigning a courier on the way."""
    outcomes: dict[str, int] = {}
    for status in FORWARD_PATH:
        body: dict[str, Any] = {"status": status}
        if status == "waiting_for_pickup":
            body["courier_id"] = random.choice(COURIER_IDS)
        response = await client.put(f"/orders/{order_id}", json=body)
        outcomes[status] = response.status_code
        if response.status_code == 400:
            break
    return {"order_id": order_id, "outcomes": outcomes}


async def race_order(client: httpx.AsyncClient, order_id: int) -> dict[str, Any]:
    """Send two conflicting transitions at once; the stored state must be one of them."""
    contenders = ["confirmed", "cancelled"]
    responses = await asyncio.gather(
        *(client.put(f"/orders/{order_id}", json={"status": s}) for s in contenders)
    )
    final = (await client.get(f"/orders/{order_id}")).json()
    return {
        "order_id": order_id,
        "codes": [r.status_code for r in responses],
        "final": final.get("status"),
        "consistent": final.get("status") in contenders,
    }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_orders: int = TOTAL_ORDERS) -> dict[str, Any]:
    """
    Run the chaos simulation.

    Args:
        num_orders: Number of orders to place concurrently
    """
    print("=" * 70)
    print("🔥 CHAOS SIMULATION - HIGH CONCURRENCY TEST")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient(base_url=API_BASE_URL, timeout=30.0) as client:
        print("\n🚀 Placing orders...\n")
        placed = await asyncio.gather(*(place_order(client, i + 1) for i in range(num_orders)))
        created = [r["order_id"] for r in placed if r["success"]]

        half = len(created) // 2
        print("🚚 Walking half of them to completion...\n")
        walks = await asyncio.gather(*(walk_order(client, oid) for oid in created[:half]))

        print("⚔️  Racing conflicting transitions on the rest...\n")
        races = await asyncio.gather(*(race_order(client, oid) for oid in created[half:]))

        outbox = (await client.get("/outbox/events", params={"status": "failed"})).json()

    total_time = round(time.time() - start_time, 2)
    failed = [r for r in placed if not r["success"]]
    unexpected = [
        w for w in walks
        if any(code not in (200, 500) for code in w["outcomes"].values())
    ]
    inconsistent = [r for r in races if not r["consistent"]]

    print("=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Orders placed: {len(created)}/{num_orders}")
    print(f"❌ Placement failures: {len(failed)}")
    print(f"🚚 Walks with unexpected codes: {len(unexpected)}/{len(walks)}")
    print(f"⚔️  Races ending in an unwritten state: {len(inconsistent)}/{len(races)}")
    print(f"📬 Failed outbox events awaiting reconciliation: {len(outbox)}")
    print(f"⏱️  Total Time: {total_time}s")

    successful = [r for r in placed if r["success"]]
    if successful:
        times = [r["time"] for r in successful]
        print("\n📈 Placement latency:")
        print(f"   Average: {round(sum(times) / len(times), 3)}s")
        print(f"   Fastest: {min(times)}s")
        print(f"   Slowest: {max(times)}s")

    if failed:
        print("\n⚠️  Failed placements (first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    print("=" * 70)

    return {
        "total": num_orders,
        "created": len(created),
        "failed": len(failed),
        "inconsistent_races": len(inconsistent),
        "total_time": total_time,
    }


async def check_health() -> bool:
    """Pre-flight check before the simulation."""
    async with httpx.AsyncClient(base_url=API_BASE_URL, timeout=10.0) as client:
        try:
            response = await client.get("/health")
        except httpx.HTTPError as e:
            print(f"❌ Service unreachable: {e}")
            return False

    if response.status_code != 200:
        print(f"❌ Health check failed: {response.text}")
        return False

    data = response.json()
    print(f"✅ Status: {data.get('status')}")
    for key in ("database", "directory_service", "delivery_service", "notification_service"):
        print(f"   {key}: {data.get(key)}")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Chaos Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--url", default=API_BASE_URL, help="Order service base URL")
    parser.add_argument("--skip-checks", action="store_true", help="Skip the health check")
    args = parser.parse_args()

    API_BASE_URL = args.url

    if not args.skip_checks and not asyncio.run(check_health()):
        print("\n❌ Pre-flight check failed. Start the service first.")
        sys.exit(1)

    summary = asyncio.run(run_simulation(args.orders))
    sys.exit(1 if summary["inconsistent_races"] else 0)
