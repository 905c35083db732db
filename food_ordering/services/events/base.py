"""
Event Publisher Abstract Base Class

Defines the interface for pushing real-time order events to subscribed
clients. Supports both Mock (development) and Real (Redis pub/sub)
implementations.

Publishers may raise on transport errors; the OrderEventNotifier is the
only caller and never lets those errors reach request handling.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class PublishedEvent:
    """One real-time event on one channel."""
    channel: str
    event: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_message(self) -> dict[str, Any]:
        """Wire format sent to subscribers."""
        return {"event": self.event, "payload": self.payload}


class BaseEventPublisher(ABC):
    """Abstract base class for real-time event publishers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def publish(self, event: PublishedEvent) -> Optional[int]:
        """
        Publish an event.

        Returns:
            Number of subscribers that received it, when the transport
            reports it
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check transport connectivity."""
        pass

    async def close(self) -> None:
        """Release transport resources."""
