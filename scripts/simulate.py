"""
Coupon Race Simulation

Fires many concurrent orders at a running server, all using one coupon
with a small usage limit, then checks the coupon was applied no more
often than its limit allows.

Run from project root (after scripts/seed.py and with the API up):
    python scripts/simulate.py --orders 50 --limit 5
"""

import argparse
import asyncio
import random
import string
import sys
import time
from datetime import datetime
from typing import Any

import httpx

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50
USAGE_LIMIT = 5

ADMIN_HEADERS = {"X-User-Id": "1", "X-User-Role": "admin"}

# Seeded by scripts/seed.py: restaurant 1 and its menu
RESTAURANT_ID = 1
MENU_ITEM_IDS = [1, 2, 3, 4]
STREETS = ["Main St", "Broadway", "5th Avenue", "Park Ave", "Madison Ave", "Lexington Ave"]
VALID_ZIPS = ["10001", "10002", "10003", "10004", "10005"]


def customer_headers(customer_id: int) -> dict[str, str]:
    return {"X-User-Id": str(customer_id), "X-User-Role": "customer"}


def generate_order_payload(coupon_code: str) -> dict[str, Any]:
    """A delivery order large enough to clear the restaurant minimum."""
    items = [
        {"menu_item_id": item_id, "quantity": random.randint(1, 3)}
        for item_id in random.sample(MENU_ITEM_IDS, k=random.randint(2, 3))
    ]
    return {
        "restaurant_id": RESTAURANT_ID,
        "items": items,
        "payment_method": random.choice(["credit_card", "debit_card", "paypal", "cash"]),
        "fulfillment_method": "delivery",
        "delivery_address": {
            "street": f"{random.randint(1, 999)} {random.choice(STREETS)}",
            "city": "New York",
            "state": "NY",
            "zip_code": random.choice(VALID_ZIPS),
        },
        "coupon_code": coupon_code,
        "notes": random.choice([None, "Ring doorbell", "Leave at door", "Call on arrival"]),
    }


async def create_coupon(client: httpx.AsyncClient, usage_limit: int) -> str:
    """Create a fresh 10%-off coupon limited to `usage_limit` redemptions."""
    code = "RACE" + "".join(random.choices(string.ascii_uppercase + string.digits, k=6))
    response = await client.post(
        f"{API_BASE_URL}/api/coupons",
        json={"code": code, "discount_type": "percent", "value": "10", "usage_limit": usage_limit},
        headers=ADMIN_HEADERS,
    )
    response.raise_for_status()
    return response.json()["code"]


async def send_order(
    client: httpx.AsyncClient,
    order_num: int,
    coupon_code: str,
) -> dict[str, Any]:
    """Place one order as a distinct customer."""
    payload = generate_order_payload(coupon_code)
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/orders",
            json=payload,
            headers=customer_headers(1000 + order_num),
            timeout=30.0,
        )
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }

    elapsed = round(time.time() - start_time, 3)
    if response.status_code != 201:
        return {
            "order_num": order_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
        }

    order = response.json()["order"]
    return {
        "order_num": order_num,
        "success": True,
        "order_number": order["order_number"],
        "discounted": order["coupon_code"] == coupon_code,
        "total": float(order["total"]),
        "time": elapsed,
    }


async def coupon_used_count(client: httpx.AsyncClient, code: str) -> int:
    response = await client.get(f"{API_BASE_URL}/api/coupons", headers=ADMIN_HEADERS)
    response.raise_for_status()
    for coupon in response.json()["coupons"]:
        if coupon["code"] == code:
            return coupon["used_count"]
    return -1


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    num_orders: int = TOTAL_ORDERS,
    usage_limit: int = USAGE_LIMIT,
) -> dict[str, Any]:
    """
    Run the coupon race.

    Args:
        num_orders: Number of concurrent orders
        usage_limit: Redemption limit of the raced coupon
    """
    print("=" * 70)
    print("COUPON RACE SIMULATION")
    print("=" * 70)
    print(f"Total Orders: {num_orders}")
    print(f"Usage Limit:  {usage_limit}")
    print(f"Target:       {API_BASE_URL}")
    print(f"Started:      {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        code = await create_coupon(client, usage_limit)
        print(f"\nCoupon {code} created; firing {num_orders} orders...\n")

        tasks = [send_order(client, i + 1, code) for i in range(num_orders)]
        results = await asyncio.gather(*tasks)

        used_count = await coupon_used_count(client, code)

    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    discounted = [r for r in successful if r["discounted"]]
    numbers = [r["order_number"] for r in successful]

    print("\n" + "=" * 70)
    print("SIMULATION RESULTS")
    print("=" * 70)
    print(f"\nSuccessful Orders:  {len(successful)}/{num_orders}")
    print(f"Failed Orders:      {len(failed)}/{num_orders}")
    print(f"Discounted Orders:  {len(discounted)} (limit {usage_limit})")
    print(f"Coupon used_count:  {used_count}")
    print(f"Unique numbers:     {len(set(numbers))}/{len(numbers)}")
    print(f"Total Time:         {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"Average Response:   {avg_time}s")

    if failed:
        print("\nFailed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    passed = (
        len(discounted) == used_count
        and len(discounted) <= usage_limit
        and len(set(numbers)) == len(numbers)
    )
    print("\n" + "=" * 70)
    print("PASS: coupon limit held" if passed else "FAIL: coupon over-redeemed or numbers collided")
    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "discounted": len(discounted),
        "used_count": used_count,
        "passed": passed,
    }


def main() -> None:
    global API_BASE_URL

    parser = argparse.ArgumentParser(description="Coupon race simulation")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Concurrent orders to place")
    parser.add_argument("--limit", type=int, default=USAGE_LIMIT, help="Coupon usage limit")
    parser.add_argument("--base-url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.base_url.rstrip("/")
    summary = asyncio.run(run_simulation(args.orders, args.limit))
    sys.exit(0 if summary["passed"] else 1)


if __name__ == "__main__":
    main()
