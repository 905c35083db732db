"""
Order Event Notifier

Turns order occurrences into outbound events:

    order_created   -> ``order:created`` on the customer's channel
    status_changed  -> ``order:status_updated`` on the customer's channel,
                       plus a durable ``order_status`` notification record
    message_posted  -> ``chat:new_message`` on the conversation channel and
                       on the recipient's channel

Every method is fire-and-forget: it enqueues a delivery and returns None.
A single background dispatcher drains the queue in FIFO order, so the
events of one order go out in the order they were emitted. Transport and
storage failures are logged and dropped; they never reach the caller.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from food_ordering.models import Notification, NotificationType, Order, Restaurant
from food_ordering.services.events.base import BaseEventPublisher, PublishedEvent
from food_ordering.services.store.base import BaseOrderStore

logger = logging.getLogger(__name__)

ORDER_CREATED = "order:created"
ORDER_STATUS_UPDATED = "order:status_updated"
CHAT_NEW_MESSAGE = "chat:new_message"


def user_channel(user_id: Any) -> str:
    return f"user:{user_id}"


def conversation_channel(conversation_id: Any) -> str:
    return f"conversation:{conversation_id}"


def restaurant_summary(order: Order, restaurant: Optional[Restaurant] = None) -> dict[str, Any]:
    restaurant = restaurant or order.restaurant
    return {
        "id": order.restaurant_id,
        "name": restaurant.name if restaurant is not None else None,
    }


@dataclass
class Delivery:
    """Events to publish and an optional notification to persist."""
    events: list[PublishedEvent] = field(default_factory=list)
    notification: Optional[Notification] = None


class OrderEventNotifier:
    """Best-effort, ordered fan-out of order events."""

    def __init__(
        self,
        publisher: BaseEventPublisher,
        store: BaseOrderStore,
        *,
        queue_size: int = 1000,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.publisher = publisher
        self.store = store
        self.queue_size = queue_size
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # =========================================================================
    # OCCURRENCES
    # =========================================================================

    def order_created(self, order: Order, restaurant: Optional[Restaurant] = None) -> None:
        payload = {
            "order_id": order.id,
            "order_number": order.order_number,
            "restaurant": restaurant_summary(order, restaurant),
            "items": [item.name for item in order.items],
            "status": order.status.value,
            "created_at": order.created_at.isoformat() if order.created_at else None,
        }
        self._enqueue(Delivery(
            events=[PublishedEvent(user_channel(order.customer_id), ORDER_CREATED, payload)],
        ))

    def status_changed(self, order: Order, restaurant: Optional[Restaurant] = None) -> None:
        summary = restaurant_summary(order, restaurant)
        payload = {
            "order_id": order.id,
            "order_number": order.order_number,
            "status": order.status.value,
            "restaurant": summary,
            "updated_at": self._clock().isoformat(),
        }
        notification = Notification(
            user_id=order.customer_id,
            type=NotificationType.ORDER_STATUS,
            payload={
                "order_id": order.id,
                "order_number": order.order_number,
                "status": order.status.value,
                "restaurant": summary,
            },
            read=False,
            created_at=self._clock(),
        )
        self._enqueue(Delivery(
            events=[PublishedEvent(user_channel(order.customer_id), ORDER_STATUS_UPDATED, payload)],
            notification=notification,
        ))

    def message_posted(self, conversation_id: Any, recipient_id: Any, message: dict[str, Any]) -> None:
        self._enqueue(Delivery(events=[
            PublishedEvent(conversation_channel(conversation_id), CHAT_NEW_MESSAGE, message),
            PublishedEvent(user_channel(recipient_id), CHAT_NEW_MESSAGE, message),
        ]))

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def _enqueue(self, delivery: Delivery) -> None:
        try:
            queue = self._ensure_worker()
            queue.put_nowait(delivery)
        except asyncio.QueueFull:
            logger.warning(
                f"Notification queue full ({self.queue_size}); dropping "
                f"{[e.event for e in delivery.events]}"
            )
        except RuntimeError as e:
            # No running event loop to dispatch on
            logger.warning(f"Cannot dispatch order events: {e}")

    def _ensure_worker(self) -> asyncio.Queue:
        loop = asyncio.get_running_loop()
        if self._loop is not loop or self._queue is None:
            self._loop = loop
            self._queue = asyncio.Queue(maxsize=self.queue_size)
            self._worker = None
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run(self._queue))
        return self._queue

    async def _run(self, queue: asyncio.Queue) -> None:
        while True:
            delivery = await queue.get()
            try:
                await self._deliver(delivery)
            finally:
                queue.task_done()

    async def _deliver(self, delivery: Delivery) -> None:
        for event in delivery.events:
            try:
                await self.publisher.publish(event)
            except Exception as e:
                logger.warning(f"Real-time delivery of {event.event} to {event.channel} failed: {e}")

        if delivery.notification is not None:
            try:
                await self.store.add_notification(delivery.notification)
            except Exception as e:
                logger.warning(
                    f"Could not persist notification for user {delivery.notification.user_id}: {e}"
                )

    async def drain(self) -> None:
        """Wait until every queued delivery has been attempted."""
        if self._queue is not None and self._loop is asyncio.get_running_loop():
            await self._queue.join()

    async def close(self) -> None:
        """Flush pending deliveries and stop the dispatcher."""
        await self.drain()
        if self._worker is not None and self._loop is asyncio.get_running_loop():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
