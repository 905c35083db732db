"""In-memory fakes for testing.

FakeOrderStore implements the same BaseOrderStore interface as the SQL
store but keeps everything in dicts. Coupon reads hand out snapshots and
yield to the event loop first, so concurrent assemblies really do see
stale used counts; only the conditional redemption is atomic, exactly
like the database update.
"""

from __future__ import annotations

import asyncio
import itertools
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncIterator, Collection, Optional, Sequence

from food_ordering.core.exceptions import CouponCodeTaken, DuplicateOrderNumber
from food_ordering.models import (
    Coupon,
    DiscountType,
    FulfillmentMethod,
    MenuItem,
    Notification,
    Order,
    OrderItem,
    OrderStatus,
    OrderType,
    PaymentMethod,
    PaymentStatus,
    Restaurant,
)
from food_ordering.services.events.base import BaseEventPublisher, PublishedEvent
from food_ordering.services.store.base import BaseOrderStore, BaseStoreTransaction

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# BUILDERS
# =============================================================================

def make_restaurant(
    id: int = 1,
    owner_id: int = 100,
    name: str = "Pasta Place",
    minimum_order: str = "10.00",
    delivery_fee: str = "3.00",
    delivery_time_min: int = 30,
    delivery_time_max: int = 45,
    is_active: bool = True,
) -> Restaurant:
    return Restaurant(
        id=id,
        owner_id=owner_id,
        name=name,
        is_active=is_active,
        minimum_order=Decimal(minimum_order),
        delivery_fee=Decimal(delivery_fee),
        delivery_time_min=delivery_time_min,
        delivery_time_max=delivery_time_max,
        created_at=NOW,
    )


def make_menu_item(
    id: int,
    restaurant_id: int = 1,
    name: str = "Lasagna",
    price: str = "25.00",
    is_available: bool = True,
) -> MenuItem:
    return MenuItem(
        id=id,
        restaurant_id=restaurant_id,
        name=name,
        price=Decimal(price),
        is_available=is_available,
    )


def make_coupon(
    code: str = "SAVE10",
    discount_type: DiscountType = DiscountType.PERCENT,
    value: str = "10",
    min_order_amount: str = "0.00",
    max_discount: str = "0.00",
    usage_limit: int = 0,
    used_count: int = 0,
    is_active: bool = True,
    restaurant_id: Optional[int] = None,
    starts_at: Optional[datetime] = None,
    expires_at: Optional[datetime] = None,
    id: Optional[int] = None,
) -> Coupon:
    return Coupon(
        id=id,
        code=code,
        discount_type=discount_type,
        value=Decimal(value),
        min_order_amount=Decimal(min_order_amount),
        max_discount=Decimal(max_discount),
        starts_at=starts_at,
        expires_at=expires_at,
        usage_limit=usage_limit,
        used_count=used_count,
        is_active=is_active,
        restaurant_id=restaurant_id,
        created_by=None,
        created_at=NOW,
    )


def make_order(
    restaurant: Restaurant,
    *,
    customer_id: int = 1,
    status: OrderStatus = OrderStatus.PENDING,
    order_number: str = "ORD17607888000000001001",
    order_type: OrderType = OrderType.INSTANT,
    scheduled_for: Optional[datetime] = None,
    created_at: datetime = NOW,
) -> Order:
    """A persisted-looking pending order, for lifecycle tests."""
    return Order(
        order_number=order_number,
        customer_id=customer_id,
        restaurant_id=restaurant.id,
        restaurant=restaurant,
        fulfillment_method=FulfillmentMethod.PICKUP,
        status=status,
        subtotal=Decimal("20.00"),
        delivery_fee=Decimal("0.00"),
        tax=Decimal("1.60"),
        discount=Decimal("0.00"),
        coupon_code=None,
        total=Decimal("21.60"),
        payment_method=PaymentMethod.CASH,
        payment_status=PaymentStatus.PENDING,
        order_type=order_type,
        scheduled_for=scheduled_for,
        estimated_delivery_time=scheduled_for or created_at,
        actual_delivery_time=None,
        cancellation_reason=None,
        notes=None,
        created_at=created_at,
        updated_at=None,
        items=[
            OrderItem(
                position=0,
                menu_item_id=1,
                name="Lasagna",
                quantity=1,
                unit_price=Decimal("20.00"),
                special_instructions=None,
            )
        ],
    )


def snapshot_coupon(coupon: Coupon) -> Coupon:
    """Detached copy of a coupon row as of now."""
    return Coupon(**{column.key: getattr(coupon, column.key) for column in Coupon.__table__.columns})


# =============================================================================
# STORE
# =============================================================================

class FakeStoreTransaction(BaseStoreTransaction):

    def __init__(self, store: FakeOrderStore) -> None:
        self._store = store
        self.redeemed: list[str] = []
        self.orders: list[Order] = []

    async def redeem_coupon(self, code: str) -> bool:
        coupon = self._store.coupons.get(code)
        if coupon is None or not coupon.is_active:
            return False
        if coupon.usage_limit and coupon.used_count >= coupon.usage_limit:
            return False
        coupon.used_count += 1
        self.redeemed.append(code)
        return True

    async def add_order(self, order: Order) -> Order:
        if self._store.duplicate_failures > 0:
            self._store.duplicate_failures -= 1
            raise DuplicateOrderNumber(order.order_number)
        if any(o.order_number == order.order_number for o in self._store.orders.values()):
            raise DuplicateOrderNumber(order.order_number)
        self.orders.append(order)
        return order

    def rollback(self) -> None:
        for code in self.redeemed:
            self._store.coupons[code].used_count -= 1


class FakeOrderStore(BaseOrderStore):

    def __init__(
        self,
        restaurants: Sequence[Restaurant] = (),
        menu_items: Sequence[MenuItem] = (),
        coupons: Sequence[Coupon] = (),
    ) -> None:
        self.restaurants: dict[int, Restaurant] = {r.id: r for r in restaurants}
        self.menu_items: dict[int, MenuItem] = {m.id: m for m in menu_items}
        self.coupons: dict[str, Coupon] = {}
        self.orders: dict[int, Order] = {}
        self.notifications: list[Notification] = []
        self.duplicate_failures = 0
        self.fail_notifications = False
        self._ids = {kind: itertools.count(1) for kind in ("order", "item", "coupon", "notification")}
        for coupon in coupons:
            self._insert_coupon(coupon)

    @property
    def provider_name(self) -> str:
        return "memory"

    async def health_check(self) -> bool:
        return True

    # Catalog

    async def get_restaurant(self, restaurant_id: int) -> Optional[Restaurant]:
        return self.restaurants.get(restaurant_id)

    async def list_restaurant_ids(self, owner_id: int) -> list[int]:
        return sorted(r.id for r in self.restaurants.values() if r.owner_id == owner_id)

    async def get_menu_items(self, item_ids: Sequence[int]) -> dict[int, MenuItem]:
        return {i: self.menu_items[i] for i in item_ids if i in self.menu_items}

    # Coupons

    def _insert_coupon(self, coupon: Coupon) -> Coupon:
        if coupon.id is None:
            coupon.id = next(self._ids["coupon"])
        self.coupons[coupon.code] = coupon
        return coupon

    async def get_coupon(self, code: str) -> Optional[Coupon]:
        coupon = self.coupons.get(code)
        if coupon is None:
            return None
        snapshot = snapshot_coupon(coupon)
        await asyncio.sleep(0)
        return snapshot

    async def list_coupons(self) -> list[Coupon]:
        return sorted(self.coupons.values(), key=lambda c: c.id, reverse=True)

    async def add_coupon(self, coupon: Coupon) -> Coupon:
        if coupon.code in self.coupons:
            raise CouponCodeTaken(f"Coupon code {coupon.code} already exists")
        return self._insert_coupon(coupon)

    async def delete_coupon(self, coupon_id: int) -> bool:
        for code, coupon in list(self.coupons.items()):
            if coupon.id == coupon_id:
                del self.coupons[code]
                return True
        return False

    # Orders

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[FakeStoreTransaction]:
        tx = FakeStoreTransaction(self)
        try:
            yield tx
        except BaseException:
            tx.rollback()
            raise
        for order in tx.orders:
            self.add(order)

    def add(self, order: Order) -> Order:
        """Store an order directly, assigning ids."""
        order.id = next(self._ids["order"])
        for item in order.items:
            item.id = next(self._ids["item"])
            item.order_id = order.id
        self.orders[order.id] = order
        return order

    async def get_order(self, order_id: int) -> Optional[Order]:
        return self.orders.get(order_id)

    async def list_orders(
        self,
        customer_id: Optional[int] = None,
        *,
        restaurant_ids: Optional[Collection[int]] = None,
        status: Optional[OrderStatus] = None,
        order_type: Optional[OrderType] = None,
        upcoming_after: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 10,
    ) -> tuple[int, list[Order]]:
        matches = [
            o for o in self.orders.values()
            if (customer_id is None or o.customer_id == customer_id)
            and (restaurant_ids is None or o.restaurant_id in restaurant_ids)
            and (status is None or o.status == status)
            and (order_type is None or o.order_type == order_type)
            and (upcoming_after is None or (o.scheduled_for is not None and o.scheduled_for >= upcoming_after))
        ]
        matches.sort(key=lambda o: (o.created_at, o.id), reverse=True)
        return len(matches), matches[skip:skip + limit]

    async def update_order_status(
        self,
        order_id: int,
        expected: OrderStatus,
        new_status: OrderStatus,
        *,
        actual_delivery_time: Optional[datetime] = None,
        cancellation_reason: Optional[str] = None,
    ) -> Optional[Order]:
        order = self.orders.get(order_id)
        if order is None or order.status != expected:
            return None
        order.status = new_status
        order.actual_delivery_time = actual_delivery_time
        if cancellation_reason is not None:
            order.cancellation_reason = cancellation_reason
        order.updated_at = NOW
        return order

    # Notifications

    async def add_notification(self, notification: Notification) -> Notification:
        if self.fail_notifications:
            raise RuntimeError("notification store unavailable")
        notification.id = next(self._ids["notification"])
        self.notifications.append(notification)
        return notification

    async def list_notifications(self, user_id: int, limit: int = 10) -> list[Notification]:
        mine = [n for n in self.notifications if n.user_id == user_id]
        mine.sort(key=lambda n: (n.created_at, n.id), reverse=True)
        return mine[:limit]

    async def mark_notifications_read(self, user_id: int) -> int:
        count = 0
        for notification in self.notifications:
            if notification.user_id == user_id and not notification.read:
                notification.read = True
                count += 1
        return count


# =============================================================================
# PUBLISHERS
# =============================================================================

class RecordingPublisher(BaseEventPublisher):
    """Keeps every published event in order."""

    def __init__(self) -> None:
        self.events: list[PublishedEvent] = []

    @property
    def provider_name(self) -> str:
        return "recording"

    async def publish(self, event: PublishedEvent) -> Optional[int]:
        self.events.append(event)
        return 1

    async def health_check(self) -> bool:
        return True

    def names(self) -> list[str]:
        return [e.event for e in self.events]


class FailingPublisher(BaseEventPublisher):
    """A transport that is always down."""

    def __init__(self) -> None:
        self.attempts = 0

    @property
    def provider_name(self) -> str:
        return "failing"

    async def publish(self, event: PublishedEvent) -> Optional[int]:
        self.attempts += 1
        raise ConnectionError("event transport unreachable")

    async def health_check(self) -> bool:
        return False
