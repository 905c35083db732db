"""
Order Lifecycle Controller

Moves orders through their status workflow on behalf of restaurant owners
and admins, and decides who may look at an order.

Transition rules (strict mode, the default):
    - forward only along pending -> confirmed -> preparing -> ready
      -> out_for_delivery -> delivered; skipping ahead is allowed
    - cancelled is reachable from any non-terminal status
    - delivered and cancelled are terminal
    - setting the current status again is rejected

With STRICT_STATUS_TRANSITIONS=false any status may follow any other.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from food_ordering.core.config import get_settings
from food_ordering.core.exceptions import (
    Forbidden,
    InvalidStatus,
    InvalidTransition,
    OrderNotFound,
)
from food_ordering.models import STATUS_SEQUENCE, Order, OrderStatus, Restaurant
from food_ordering.services.events.notifier import OrderEventNotifier
from food_ordering.services.store.base import BaseOrderStore

logger = logging.getLogger(__name__)


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    RESTAURANT_OWNER = "restaurant_owner"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller."""
    user_id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def can_manage(actor: Actor, restaurant: Optional[Restaurant]) -> bool:
    """Admins manage every order; owners only their own restaurant's."""
    if actor.is_admin:
        return True
    return (
        actor.role == UserRole.RESTAURANT_OWNER
        and restaurant is not None
        and restaurant.owner_id == actor.user_id
    )


def can_view(actor: Actor, order: Order) -> bool:
    if actor.role == UserRole.CUSTOMER:
        return order.customer_id == actor.user_id
    return can_manage(actor, order.restaurant)


def parse_status(value: Union[str, OrderStatus]) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise InvalidStatus(f"Invalid status '{value}'. Must be one of: {allowed}")


def is_allowed_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Strict workflow check."""
    if current.is_terminal or current == target:
        return False
    if target == OrderStatus.CANCELLED:
        return True
    return STATUS_SEQUENCE.index(target) > STATUS_SEQUENCE.index(current)


class OrderLifecycleController:
    """
    Applies authorized status transitions and emits status events.

    Args:
        store: Order persistence
        notifier: Receives status-changed events
        strict: Enforce the workflow (defaults to STRICT_STATUS_TRANSITIONS)
        clock: Source of "now" (UTC), used for delivery timestamps
    """

    def __init__(
        self,
        store: BaseOrderStore,
        notifier: OrderEventNotifier,
        *,
        strict: Optional[bool] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.notifier = notifier
        self.strict = get_settings().strict_status_transitions if strict is None else strict
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_order(self, order_id: int, actor: Actor) -> Order:
        """
        Fetch an order the actor is allowed to see.

        Raises:
            OrderNotFound: If no such order exists
            Forbidden: If the actor is not its customer, owner or an admin
        """
        order = await self.store.get_order(order_id)
        if order is None:
            raise OrderNotFound("Order not found")
        if not can_view(actor, order):
            raise Forbidden("Not authorized to view this order")
        return order

    async def list_managed_orders(
        self,
        actor: Actor,
        *,
        status: Optional[Union[str, OrderStatus]] = None,
        restaurant_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[int, list[Order]]:
        """
        Page through the orders an operator manages, newest first.

        Admins see every restaurant's orders; owners only their own
        restaurants'. Narrowing an owner's listing to a restaurant they
        do not own is forbidden.

        Raises:
            Forbidden: Customers, or an owner filtering on someone else's restaurant
            InvalidStatus: Unknown status filter
        """
        if actor.is_admin:
            restaurant_ids = None if restaurant_id is None else [restaurant_id]
        elif actor.role == UserRole.RESTAURANT_OWNER:
            restaurant_ids = await self.store.list_restaurant_ids(actor.user_id)
            if restaurant_id is not None:
                if restaurant_id not in restaurant_ids:
                    raise Forbidden("Not authorized to view this restaurant's orders")
                restaurant_ids = [restaurant_id]
        else:
            raise Forbidden("Restaurant owner or admin access required")

        return await self.store.list_orders(
            restaurant_ids=restaurant_ids,
            status=parse_status(status) if status else None,
            skip=skip,
            limit=limit,
        )

    async def transition_status(
        self,
        order_id: int,
        new_status: Union[str, OrderStatus],
        actor: Actor,
        *,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Move an order to a new status.

        Delivered orders get their actual delivery time stamped; a reason
        given with a cancellation is stored on the order.

        Raises:
            OrderNotFound: No such order
            Forbidden: Actor may not manage this order's restaurant
            InvalidStatus: Unknown status value
            InvalidTransition: Workflow violation, or a concurrent update won
        """
        order = await self.store.get_order(order_id)
        if order is None:
            raise OrderNotFound("Order not found")

        restaurant = order.restaurant
        if not can_manage(actor, restaurant):
            raise Forbidden("Not authorized to update this order")

        target = parse_status(new_status)

        current = order.status
        if self.strict and not is_allowed_transition(current, target):
            raise InvalidTransition(
                f"Cannot change order status from {current.value} to {target.value}",
                details={"from": current.value, "to": target.value},
            )

        updated = await self.store.update_order_status(
            order_id,
            current,
            target,
            actual_delivery_time=self._clock() if target == OrderStatus.DELIVERED else None,
            cancellation_reason=reason if target == OrderStatus.CANCELLED else None,
        )
        if updated is None:
            raise InvalidTransition(
                f"Order {order.order_number} changed status concurrently; retry with a fresh read",
                details={"from": current.value, "to": target.value},
            )

        logger.info(
            f"Order {updated.order_number}: {current.value} -> {target.value} "
            f"by user {actor.user_id} ({actor.role.value})"
        )
        self.notifier.status_changed(updated, restaurant)
        return updated
