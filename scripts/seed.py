"""
Demo Catalog Seeder

Creates the tables and a small catalog (two restaurants with menus) plus
a SAVE10 coupon, so the API and scripts/simulate.py have data to work on.

Run from project root:
    python scripts/seed.py            # seed if empty
    python scripts/seed.py --reset    # drop everything first
"""

import argparse
import asyncio
import logging
from decimal import Decimal

from sqlalchemy import func, select

from food_ordering.core.config import setup_logging
from food_ordering.database import Base, get_engine, get_session_maker, init_db
from food_ordering.models import Coupon, DiscountType, MenuItem, Restaurant

logger = logging.getLogger("food_ordering.seed")

RESTAURANTS = [
    {
        "restaurant": dict(id=1, owner_id=100, name="Pasta Place", minimum_order=Decimal("10.00"),
                           delivery_fee=Decimal("3.00"), delivery_time_min=30, delivery_time_max=45),
        "menu": [
            ("Lasagna", "25.00"),
            ("Garlic Bread", "4.00"),
            ("Tiramisu", "8.00"),
            ("Pasta Carbonara", "13.99"),
        ],
    },
    {
        "restaurant": dict(id=2, owner_id=200, name="Burger Barn", minimum_order=Decimal("15.00"),
                           delivery_fee=Decimal("4.50"), delivery_time_min=20, delivery_time_max=35),
        "menu": [
            ("Classic Burger", "12.00"),
            ("Fries", "4.50"),
            ("Milkshake", "6.00"),
        ],
    },
]


async def seed(reset: bool = False) -> None:
    engine = get_engine()

    if reset:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("Dropped all tables")

    await init_db(engine)
    try:
        await _seed_catalog()
    finally:
        await engine.dispose()


async def _seed_catalog() -> None:
    async with get_session_maker()() as session:
        existing = (await session.execute(select(func.count(Restaurant.id)))).scalar() or 0
        if existing:
            logger.info(f"Catalog already has {existing} restaurant(s); nothing to do")
            return

        for entry in RESTAURANTS:
            session.add(Restaurant(**entry["restaurant"]))
        await session.flush()

        for entry in RESTAURANTS:
            restaurant_id = entry["restaurant"]["id"]
            for name, price in entry["menu"]:
                session.add(MenuItem(restaurant_id=restaurant_id, name=name, price=Decimal(price)))

        session.add(Coupon(
            code="SAVE10",
            discount_type=DiscountType.PERCENT,
            value=Decimal("10"),
            min_order_amount=Decimal("20.00"),
            max_discount=Decimal("15.00"),
            usage_limit=0,
        ))
        await session.commit()

    logger.info(f"Seeded {len(RESTAURANTS)} restaurants and coupon SAVE10")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the demo catalog")
    parser.add_argument("--reset", action="store_true", help="Drop all tables before seeding")
    args = parser.parse_args()

    setup_logging()
    logger.info(f"Seeding {get_engine().url.render_as_string(hide_password=True)}")
    asyncio.run(seed(reset=args.reset))


if __name__ == "__main__":
    main()
