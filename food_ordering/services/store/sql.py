"""
SQLAlchemy Order Store

Production persistence on the async SQLAlchemy engine (PostgreSQL via
psycopg; SQLite via aiosqlite in tests).

The coupon counter race is closed in the database: redemption is a single
``UPDATE ... WHERE used_count < usage_limit`` whose row count says whether
this order got the coupon.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Collection, Optional, Sequence

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from food_ordering.core.exceptions import CouponCodeTaken, DuplicateOrderNumber
from food_ordering.database import build_session_maker, init_db
from food_ordering.models import (
    Coupon,
    MenuItem,
    Notification,
    Order,
    OrderStatus,
    OrderType,
    Restaurant,
)
from food_ordering.services.store.base import BaseOrderStore, BaseStoreTransaction

logger = logging.getLogger(__name__)


class SqlStoreTransaction(BaseStoreTransaction):
    """Order-creation unit of work bound to one session transaction."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def redeem_coupon(self, code: str) -> bool:
        stmt = (
            update(Coupon)
            .where(
                Coupon.code == code,
                Coupon.is_active.is_(True),
                or_(Coupon.usage_limit == 0, Coupon.used_count < Coupon.usage_limit),
            )
            .values(used_count=Coupon.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        redeemed = result.rowcount == 1
        logger.debug(f"Coupon {code} redemption {'succeeded' if redeemed else 'refused'}")
        return redeemed

    async def add_order(self, order: Order) -> Order:
        self._session.add(order)
        try:
            await self._session.flush()
        except IntegrityError as e:
            if "order_number" in str(e.orig):
                raise DuplicateOrderNumber(order.order_number) from e
            raise
        return order


class SqlOrderStore(BaseOrderStore):
    """Order store backed by an async SQLAlchemy engine."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_maker = build_session_maker(engine)

    @property
    def provider_name(self) -> str:
        return "sqlalchemy"

    async def initialize(self) -> None:
        await init_db(self.engine)

    async def close(self) -> None:
        await self.engine.dispose()

    async def health_check(self) -> bool:
        try:
            async with self._session_maker() as session:
                await session.execute(select(func.now()))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    # =========================================================================
    # CATALOG
    # =========================================================================

    async def get_restaurant(self, restaurant_id: int) -> Optional[Restaurant]:
        async with self._session_maker() as session:
            return await session.get(Restaurant, restaurant_id)

    async def list_restaurant_ids(self, owner_id: int) -> list[int]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(Restaurant.id).where(Restaurant.owner_id == owner_id).order_by(Restaurant.id)
            )
            return list(result.scalars().all())

    async def get_menu_items(self, item_ids: Sequence[int]) -> dict[int, MenuItem]:
        if not item_ids:
            return {}
        async with self._session_maker() as session:
            result = await session.execute(
                select(MenuItem).where(MenuItem.id.in_(set(item_ids)))
            )
            return {item.id: item for item in result.scalars().all()}

    # =========================================================================
    # COUPONS
    # =========================================================================

    async def get_coupon(self, code: str) -> Optional[Coupon]:
        async with self._session_maker() as session:
            result = await session.execute(select(Coupon).where(Coupon.code == code))
            return result.scalar_one_or_none()

    async def list_coupons(self) -> list[Coupon]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc())
            )
            return list(result.scalars().all())

    async def add_coupon(self, coupon: Coupon) -> Coupon:
        async with self._session_maker() as session:
            session.add(coupon)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise CouponCodeTaken("Coupon code already exists") from e
            await session.refresh(coupon)
            return coupon

    async def delete_coupon(self, coupon_id: int) -> bool:
        async with self._session_maker() as session:
            async with session.begin():
                result = await session.execute(delete(Coupon).where(Coupon.id == coupon_id))
            return result.rowcount == 1

    # =========================================================================
    # ORDERS
    # =========================================================================

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlStoreTransaction]:
        async with self._session_maker() as session:
            async with session.begin():
                yield SqlStoreTransaction(session)

    async def get_order(self, order_id: int) -> Optional[Order]:
        async with self._session_maker() as session:
            return await session.get(Order, order_id)

    async def list_orders(
        self,
        customer_id: Optional[int] = None,
        *,
        restaurant_ids: Optional[Collection[int]] = None,
        status: Optional[OrderStatus] = None,
        order_type: Optional[OrderType] = None,
        upcoming_after=None,
        skip: int = 0,
        limit: int = 10,
    ) -> tuple[int, list[Order]]:
        conditions = []
        if customer_id is not None:
            conditions.append(Order.customer_id == customer_id)
        if restaurant_ids is not None:
            conditions.append(Order.restaurant_id.in_(list(restaurant_ids)))
        if status is not None:
            conditions.append(Order.status == status)
        if order_type is not None:
            conditions.append(Order.order_type == order_type)
        if upcoming_after is not None:
            conditions.append(Order.scheduled_for >= upcoming_after)

        async with self._session_maker() as session:
            total = (
                await session.execute(select(func.count(Order.id)).where(*conditions))
            ).scalar() or 0

            result = await session.execute(
                select(Order)
                .where(*conditions)
                .order_by(Order.created_at.desc(), Order.id.desc())
                .offset(skip)
                .limit(limit)
            )
            return total, list(result.scalars().all())

    async def update_order_status(
        self,
        order_id: int,
        expected: OrderStatus,
        new_status: OrderStatus,
        *,
        actual_delivery_time=None,
        cancellation_reason: Optional[str] = None,
    ) -> Optional[Order]:
        values = {"status": new_status, "actual_delivery_time": actual_delivery_time}
        if cancellation_reason is not None:
            values["cancellation_reason"] = cancellation_reason

        async with self._session_maker() as session:
            async with session.begin():
                result = await session.execute(
                    update(Order)
                    .where(Order.id == order_id, Order.status == expected)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
            if result.rowcount != 1:
                return None
            return await session.get(Order, order_id, populate_existing=True)

    # =========================================================================
    # NOTIFICATIONS
    # =========================================================================

    async def add_notification(self, notification: Notification) -> Notification:
        async with self._session_maker() as session:
            session.add(notification)
            await session.commit()
            return notification

    async def list_notifications(self, user_id: int, limit: int = 10) -> list[Notification]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(Notification)
                .where(Notification.user_id == user_id)
                .order_by(Notification.created_at.desc(), Notification.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def mark_notifications_read(self, user_id: int) -> int:
        async with self._session_maker() as session:
            async with session.begin():
                result = await session.execute(
                    update(Notification)
                    .where(Notification.user_id == user_id, Notification.read.is_(False))
                    .values(read=True)
                    .execution_options(synchronize_session=False)
                )
            return result.rowcount
