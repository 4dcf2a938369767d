"""
Broadcast Hub

Fan-out of lifecycle and message events to every connected real-time
subscriber. Delivery is fire-and-forget per subscriber: a slow or broken
subscriber never delays the publisher or the other subscribers.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Set

logger = logging.getLogger(__name__)


class Subscriber(ABC):
    """Opaque handle for one real-time channel connection."""

    @abstractmethod
    async def send_event(self, event: str, payload: Dict[str, Any]) -> None:
        """Deliver one event to the remote side."""
        pass


class BroadcastHub:
    """Holds the live subscriber set and publishes events to it."""

    def __init__(self, send_timeout: float = 5.0):
        self.send_timeout = send_timeout
        self._subscribers: Set[Subscriber] = set()
        self._pending: Set[asyncio.Task] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.add(subscriber)
        logger.info(f"Subscriber connected ({len(self._subscribers)} live)")

    def unsubscribe(self, subscriber: Subscriber) -> None:
        """Remove a subscriber. Unknown subscribers are ignored."""
        if subscriber in self._subscribers:
            self._subscribers.discard(subscriber)
            logger.info(f"Subscriber disconnected ({len(self._subscribers)} live)")

    def publish(self, event: str, payload: Dict[str, Any]) -> int:
        """
        Schedule delivery of an event to all current subscribers.

        Returns:
            Number of subscribers the event was scheduled for
        """
        targets = list(self._subscribers)
        for subscriber in targets:
            task = asyncio.create_task(self._deliver(subscriber, event, payload))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        logger.debug(f"Published {event} to {len(targets)} subscribers")
        return len(targets)

    async def _deliver(
        self, subscriber: Subscriber, event: str, payload: Dict[str, Any]
    ) -> None:
        try:
            await asyncio.wait_for(
                subscriber.send_event(event, payload), timeout=self.send_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Delivery of {event} timed out after {self.send_timeout}s")
        except Exception as e:
            logger.warning(f"Delivery of {event} failed: {e}")

    async def drain(self) -> None:
        """Wait for all in-flight deliveries to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
