"""
Order Store Abstract Base Class

Defines everything the order engine needs from persistence: read-only
catalog lookups, coupon records, orders and notification records.

Design Pattern: Strategy Pattern
    - SqlOrderStore backs the running service
    - Tests substitute an in-memory implementation

Two guarantees every implementation must give:
    1. Order numbers are unique: adding a duplicate raises
       DuplicateOrderNumber instead of overwriting.
    2. Coupon redemption is an atomic conditional increment that only
       succeeds while the coupon is active and under its usage limit.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncContextManager, Collection, Optional, Sequence

from food_ordering.models import (
    Coupon,
    MenuItem,
    Notification,
    Order,
    OrderStatus,
    OrderType,
    Restaurant,
)


class BaseStoreTransaction(ABC):
    """
    Unit of work for persisting a new order.

    Everything done through one transaction commits together, or not at
    all when the block raises.
    """

    @abstractmethod
    async def redeem_coupon(self, code: str) -> bool:
        """
        Increment a coupon's used count if it is still redeemable.

        Returns:
            True if the count was incremented, False if the coupon is
            missing, inactive or already at its usage limit.
        """
        pass

    @abstractmethod
    async def add_order(self, order: Order) -> Order:
        """
        Insert a new order with its line items.

        Raises:
            DuplicateOrderNumber: If the order number is already taken
        """
        pass


class BaseOrderStore(ABC):
    """Abstract base class for order persistence."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the storage backend name."""
        pass

    async def initialize(self) -> None:
        """Prepare the backend (create tables, open pools)."""

    async def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check backend connectivity."""
        pass

    # =========================================================================
    # CATALOG
    # =========================================================================

    @abstractmethod
    async def get_restaurant(self, restaurant_id: int) -> Optional[Restaurant]:
        pass

    @abstractmethod
    async def list_restaurant_ids(self, owner_id: int) -> list[int]:
        """Ids of every restaurant the user owns."""
        pass

    @abstractmethod
    async def get_menu_items(self, item_ids: Sequence[int]) -> dict[int, MenuItem]:
        """Fetch menu items by id; unknown ids are simply absent."""
        pass

    # =========================================================================
    # COUPONS
    # =========================================================================

    @abstractmethod
    async def get_coupon(self, code: str) -> Optional[Coupon]:
        """Fetch a coupon by its normalized (upper-case) code."""
        pass

    @abstractmethod
    async def list_coupons(self) -> list[Coupon]:
        """All coupons, newest first."""
        pass

    @abstractmethod
    async def add_coupon(self, coupon: Coupon) -> Coupon:
        """
        Insert a coupon.

        Raises:
            CouponCodeTaken: If the code already exists
        """
        pass

    @abstractmethod
    async def delete_coupon(self, coupon_id: int) -> bool:
        pass

    # =========================================================================
    # ORDERS
    # =========================================================================

    @abstractmethod
    def transaction(self) -> AsyncContextManager[BaseStoreTransaction]:
        """Open a unit of work for order creation."""
        pass

    @abstractmethod
    async def get_order(self, order_id: int) -> Optional[Order]:
        """Fetch an order with its items and restaurant loaded."""
        pass

    @abstractmethod
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
        """
        Page through orders, newest first.

        Args:
            customer_id: Only orders placed by this customer
            restaurant_ids: Only orders of these restaurants
            status: Only orders in this status
            order_type: Only scheduled, or only instant orders
            upcoming_after: Only orders scheduled after this instant
            skip: Number of orders to skip
            limit: Page size

        Returns:
            (total matching orders, orders on this page)
        """
        pass

    @abstractmethod
    async def update_order_status(
        self,
        order_id: int,
        expected: OrderStatus,
        new_status: OrderStatus,
        *,
        actual_delivery_time: Optional[datetime] = None,
        cancellation_reason: Optional[str] = None,
    ) -> Optional[Order]:
        """
        Compare-and-set an order's status.

        Returns:
            The updated order, or None if its status is no longer
            ``expected`` (a concurrent transition won). The actual
            delivery time is set to ``actual_delivery_time``, so it is
            cleared on any move away from delivered.
        """
        pass

    # =========================================================================
    # NOTIFICATIONS
    # =========================================================================

    @abstractmethod
    async def add_notification(self, notification: Notification) -> Notification:
        pass

    @abstractmethod
    async def list_notifications(self, user_id: int, limit: int = 10) -> list[Notification]:
        """A user's most recent notifications, newest first."""
        pass

    @abstractmethod
    async def mark_notifications_read(self, user_id: int) -> int:
        """Mark every unread notification of a user as read; return the count."""
        pass
