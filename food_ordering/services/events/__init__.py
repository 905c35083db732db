"""
Event Service Factory

Returns the Mock or Redis event publisher based on ENV_MODE, and the
notifier that fans order events out through it.

Environment Switching:
    - ENV_MODE=development -> MockEventPublisher (events logged)
    - ENV_MODE=staging/production -> RedisEventPublisher
"""

import logging
from functools import lru_cache

from food_ordering.core.config import get_settings
from food_ordering.services.events.base import BaseEventPublisher, PublishedEvent
from food_ordering.services.events.mock import MockEventPublisher
from food_ordering.services.events.notifier import OrderEventNotifier
from food_ordering.services.events.real import RedisEventPublisher
from food_ordering.services.store import get_order_store

logger = logging.getLogger(__name__)


@lru_cache()
def get_event_publisher() -> BaseEventPublisher:
    """Get the configured event publisher."""
    settings = get_settings()

    if settings.use_real_services:
        logger.info(f"Event Publisher: Using RedisEventPublisher ({settings.env_mode.value} mode)")
        return RedisEventPublisher()
    else:
        logger.info("Event Publisher: Using MockEventPublisher (development mode)")
        return MockEventPublisher()


@lru_cache()
def get_notifier() -> OrderEventNotifier:
    """Get the process-wide order event notifier."""
    settings = get_settings()
    return OrderEventNotifier(
        get_event_publisher(),
        get_order_store(),
        queue_size=settings.notification_queue_size,
    )


def reset_event_services() -> None:
    """Clear the cached publisher and notifier."""
    get_notifier.cache_clear()
    get_event_publisher.cache_clear()


__all__ = [
    "get_event_publisher",
    "get_notifier",
    "reset_event_services",
    "BaseEventPublisher",
    "PublishedEvent",
    "OrderEventNotifier",
]
