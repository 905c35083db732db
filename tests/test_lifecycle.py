"""Tests for order status transitions and order access."""

from datetime import timedelta

import pytest

from food_ordering.core.exceptions import (
    Forbidden,
    InvalidStatus,
    InvalidTransition,
    OrderNotFound,
)
from food_ordering.models import NotificationType, OrderStatus
from food_ordering.services.events.notifier import ORDER_STATUS_UPDATED
from food_ordering.services.lifecycle import (
    Actor,
    OrderLifecycleController,
    UserRole,
    is_allowed_transition,
)
from tests.fakes import NOW, FakeOrderStore, make_order

DELIVERED_AT = NOW + timedelta(minutes=40)

OWNER = Actor(user_id=100, role=UserRole.RESTAURANT_OWNER)
OTHER_OWNER = Actor(user_id=200, role=UserRole.RESTAURANT_OWNER)
ADMIN = Actor(user_id=1, role=UserRole.ADMIN)
CUSTOMER = Actor(user_id=1, role=UserRole.CUSTOMER)
STRANGER = Actor(user_id=2, role=UserRole.CUSTOMER)


@pytest.fixture
def controller(store, notifier) -> OrderLifecycleController:
    return OrderLifecycleController(store, notifier, strict=True, clock=lambda: DELIVERED_AT)


@pytest.fixture
def order(store, restaurant):
    return store.add(make_order(restaurant, customer_id=1))


class TestAuthorization:

    async def test_owner_can_confirm(self, controller, order):
        updated = await controller.transition_status(order.id, "confirmed", OWNER)
        assert updated.status == OrderStatus.CONFIRMED

    async def test_admin_can_confirm(self, controller, order):
        updated = await controller.transition_status(order.id, OrderStatus.CONFIRMED, ADMIN)
        assert updated.status == OrderStatus.CONFIRMED

    @pytest.mark.parametrize("actor", [OTHER_OWNER, CUSTOMER, STRANGER])
    @pytest.mark.parametrize("target", ["confirmed", "cancelled", "delivered"])
    async def test_everyone_else_is_forbidden(self, controller, order, store, actor, target):
        with pytest.raises(Forbidden):
            await controller.transition_status(order.id, target, actor)
        assert store.orders[order.id].status == OrderStatus.PENDING

    async def test_unknown_order(self, controller):
        with pytest.raises(OrderNotFound):
            await controller.transition_status(999, "confirmed", ADMIN)

    async def test_missing_order_reported_before_bad_status(self, controller):
        with pytest.raises(OrderNotFound):
            await controller.transition_status(999, "teleported", ADMIN)

    async def test_outsider_with_bad_status_is_forbidden(self, controller, order):
        with pytest.raises(Forbidden):
            await controller.transition_status(order.id, "teleported", STRANGER)

    async def test_manager_with_bad_status(self, controller, order, store):
        with pytest.raises(InvalidStatus) as exc_info:
            await controller.transition_status(order.id, "teleported", OWNER)
        assert exc_info.value.status_code == 400
        assert store.orders[order.id].status == OrderStatus.PENDING


class TestSideEffects:

    async def test_delivered_stamps_delivery_time(self, controller, order):
        updated = await controller.transition_status(order.id, "delivered", OWNER)
        assert updated.actual_delivery_time == DELIVERED_AT

    @pytest.mark.parametrize("target", ["confirmed", "preparing", "ready", "out_for_delivery", "cancelled"])
    async def test_other_statuses_leave_delivery_time_unset(self, controller, order, target):
        updated = await controller.transition_status(order.id, target, OWNER)
        assert updated.actual_delivery_time is None

    async def test_cancellation_reason_recorded(self, controller, order):
        updated = await controller.transition_status(order.id, "cancelled", OWNER, reason="Out of pasta")
        assert updated.cancellation_reason == "Out of pasta"

    async def test_reason_ignored_for_other_statuses(self, controller, order):
        updated = await controller.transition_status(order.id, "confirmed", OWNER, reason="whatever")
        assert updated.cancellation_reason is None

    async def test_status_event_and_notification(self, controller, order, notifier, publisher, store):
        await controller.transition_status(order.id, "confirmed", OWNER)
        await notifier.drain()

        assert publisher.names() == [ORDER_STATUS_UPDATED]
        event = publisher.events[0]
        assert event.channel == "user:1"
        assert event.payload["status"] == "confirmed"
        assert event.payload["order_number"] == order.order_number
        assert event.payload["restaurant"] == {"id": 1, "name": "Pasta Place"}

        assert len(store.notifications) == 1
        notification = store.notifications[0]
        assert notification.user_id == 1
        assert notification.type == NotificationType.ORDER_STATUS
        assert notification.read is False
        assert notification.payload["status"] == "confirmed"

    async def test_events_follow_transition_order(self, controller, order, notifier, publisher):
        for target in ["confirmed", "preparing", "ready", "out_for_delivery", "delivered"]:
            await controller.transition_status(order.id, target, OWNER)
        await notifier.drain()

        assert [e.payload["status"] for e in publisher.events] == [
            "confirmed", "preparing", "ready", "out_for_delivery", "delivered",
        ]

    async def test_rejected_transition_emits_nothing(self, controller, order, notifier, publisher):
        with pytest.raises(Forbidden):
            await controller.transition_status(order.id, "confirmed", CUSTOMER)
        await notifier.drain()
        assert publisher.events == []


class TestStrictWorkflow:

    async def test_skipping_ahead_is_allowed(self, controller, order):
        updated = await controller.transition_status(order.id, "ready", OWNER)
        assert updated.status == OrderStatus.READY

    async def test_moving_backwards_is_rejected(self, controller, store, restaurant):
        order = store.add(make_order(restaurant, status=OrderStatus.READY))
        with pytest.raises(InvalidTransition) as exc_info:
            await controller.transition_status(order.id, "preparing", OWNER)
        assert exc_info.value.status_code == 409
        assert store.orders[order.id].status == OrderStatus.READY

    @pytest.mark.parametrize("terminal", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    async def test_terminal_states_are_final(self, controller, store, restaurant, terminal):
        order = store.add(make_order(restaurant, status=terminal))
        with pytest.raises(InvalidTransition):
            await controller.transition_status(order.id, "cancelled", ADMIN)

    async def test_same_status_rejected(self, controller, order):
        with pytest.raises(InvalidTransition):
            await controller.transition_status(order.id, "pending", OWNER)

    async def test_cancel_from_any_open_state(self, controller, store, restaurant):
        for status in [OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.OUT_FOR_DELIVERY]:
            order = store.add(make_order(restaurant, status=status, order_number=f"ORD-{status.value}"))
            updated = await controller.transition_status(order.id, "cancelled", OWNER)
            assert updated.status == OrderStatus.CANCELLED

    def test_transition_table(self):
        assert is_allowed_transition(OrderStatus.PENDING, OrderStatus.DELIVERED)
        assert is_allowed_transition(OrderStatus.READY, OrderStatus.CANCELLED)
        assert not is_allowed_transition(OrderStatus.DELIVERED, OrderStatus.CANCELLED)
        assert not is_allowed_transition(OrderStatus.CANCELLED, OrderStatus.PENDING)
        assert not is_allowed_transition(OrderStatus.CONFIRMED, OrderStatus.PENDING)


class TestPermissiveWorkflow:

    async def test_any_status_from_any_state(self, store, notifier, restaurant):
        controller = OrderLifecycleController(store, notifier, strict=False, clock=lambda: DELIVERED_AT)
        order = store.add(make_order(restaurant, status=OrderStatus.DELIVERED))

        updated = await controller.transition_status(order.id, "preparing", OWNER)

        assert updated.status == OrderStatus.PREPARING

    async def test_leaving_delivered_clears_delivery_time(self, store, notifier, restaurant):
        controller = OrderLifecycleController(store, notifier, strict=False, clock=lambda: DELIVERED_AT)
        order = store.add(make_order(restaurant, status=OrderStatus.OUT_FOR_DELIVERY))

        delivered = await controller.transition_status(order.id, "delivered", OWNER)
        assert delivered.actual_delivery_time == DELIVERED_AT

        reopened = await controller.transition_status(order.id, "preparing", OWNER)

        assert reopened.status == OrderStatus.PREPARING
        assert reopened.actual_delivery_time is None


class RacingStore(FakeOrderStore):
    """Another writer cancels the order between read and write."""

    async def update_order_status(self, order_id, expected, new_status, **kwargs):
        self.orders[order_id].status = OrderStatus.CANCELLED
        return await super().update_order_status(order_id, expected, new_status, **kwargs)


class TestConcurrentTransitions:

    async def test_lost_compare_and_set_is_a_conflict(self, notifier, restaurant, publisher):
        store = RacingStore(restaurants=[restaurant])
        order = store.add(make_order(restaurant))
        controller = OrderLifecycleController(store, notifier, strict=True)

        with pytest.raises(InvalidTransition):
            await controller.transition_status(order.id, "confirmed", OWNER)
        await notifier.drain()

        assert store.orders[order.id].status == OrderStatus.CANCELLED
        assert publisher.events == []


class TestReadAccess:

    async def test_customer_reads_own_order(self, controller, order):
        assert (await controller.get_order(order.id, CUSTOMER)) is order

    async def test_owner_and_admin_read(self, controller, order):
        assert (await controller.get_order(order.id, OWNER)) is order
        assert (await controller.get_order(order.id, ADMIN)) is order

    @pytest.mark.parametrize("actor", [STRANGER, OTHER_OWNER])
    async def test_others_cannot_read(self, controller, order, actor):
        with pytest.raises(Forbidden):
            await controller.get_order(order.id, actor)

    async def test_missing(self, controller):
        with pytest.raises(OrderNotFound):
            await controller.get_order(123, ADMIN)
