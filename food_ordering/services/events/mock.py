"""
Mock Event Publisher

Logs real-time events for development. Nothing leaves the process.
"""

import logging
from typing import Optional

from food_ordering.services.events.base import BaseEventPublisher, PublishedEvent

logger = logging.getLogger(__name__)


class MockEventPublisher(BaseEventPublisher):
    """Mock publisher for development."""

    def __init__(self):
        self.published_count = 0
        logger.info("MockEventPublisher initialized")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def publish(self, event: PublishedEvent) -> Optional[int]:
        self.published_count += 1
        logger.info(f"Mock event {event.event} on {event.channel}: {event.payload}")
        return 0

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
