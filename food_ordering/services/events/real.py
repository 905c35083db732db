"""
Redis Event Publisher

Production implementation using Redis pub/sub. The websocket gateway that
holds customer connections subscribes to the prefixed channels and relays
messages; delivery after that point is at-most-once.
"""

import json
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from food_ordering.core.config import get_settings
from food_ordering.services.events.base import BaseEventPublisher, PublishedEvent

logger = logging.getLogger(__name__)


class RedisEventPublisher(BaseEventPublisher):
    """Publishes events as JSON messages on ``<prefix>:<channel>``."""

    def __init__(self, redis_url: Optional[str] = None, prefix: Optional[str] = None):
        settings = get_settings()
        self.prefix = prefix or settings.event_channel_prefix
        self._redis = aioredis.from_url(
            redis_url or settings.redis_url,
            socket_timeout=2,
            socket_connect_timeout=2,
        )
        logger.info("RedisEventPublisher initialized")

    @property
    def provider_name(self) -> str:
        return "redis"

    def channel_name(self, channel: str) -> str:
        return f"{self.prefix}:{channel}"

    async def publish(self, event: PublishedEvent) -> Optional[int]:
        message = json.dumps(event.to_message(), default=str)
        receivers = await self._redis.publish(self.channel_name(event.channel), message)
        logger.debug(f"Published {event.event} on {event.channel} to {receivers} subscriber(s)")
        return receivers

    async def health_check(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        await self._redis.aclose()
