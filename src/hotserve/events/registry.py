"""Registry of connected live-reload clients."""

import asyncio
import logging
from dataclasses import dataclass, field
from uuid import uuid4

logger = logging.getLogger(__name__)

RELOAD_MESSAGE = b"reload"

# One pending message per subscriber. A full channel means the consumer has
# not picked up the previous message yet and is skipped for that broadcast.
CHANNEL_CAPACITY = 1


@dataclass(eq=False)
class Subscriber:
    """One open reload stream and the channel feeding it."""

    id: str = field(default_factory=lambda: f"sse-{uuid4().hex[:8]}")
    channel: asyncio.Queue[bytes] = field(
        default_factory=lambda: asyncio.Queue(maxsize=CHANNEL_CAPACITY)
    )


class SubscriberRegistry:
    """Set of active subscribers guarded by a single lock.

    ``register``, ``unregister`` and ``broadcast`` each hold the lock for the
    whole operation and never await while holding it, so a slow client can
    not stall the watch loop or other connections.
    """

    def __init__(self) -> None:
        self._subscribers: set[Subscriber] = set()
        self._lock = asyncio.Lock()

    async def register(self) -> Subscriber:
        """Create a subscriber with a fresh channel and add it."""
        subscriber = Subscriber()
        async with self._lock:
            self._subscribers.add(subscriber)
        logger.debug(f"Subscriber {subscriber.id} connected ({len(self._subscribers)} total)")
        return subscriber

    async def unregister(self, subscriber: Subscriber) -> None:
        """Remove a subscriber. Unknown or already removed subscribers are ignored."""
        async with self._lock:
            if subscriber not in self._subscribers:
                return
            self._subscribers.discard(subscriber)
        logger.debug(f"Subscriber {subscriber.id} disconnected")

    async def broadcast(self, payload: bytes = RELOAD_MESSAGE) -> int:
        """Offer ``payload`` to every subscriber without waiting.

        Returns:
            Number of subscribers that accepted the payload.
        """
        delivered = 0
        async with self._lock:
            for subscriber in self._subscribers:
                try:
                    subscriber.channel.put_nowait(payload)
                except asyncio.QueueFull:
                    logger.debug(f"Subscriber {subscriber.id} busy, skipping")
                    continue
                delivered += 1
        logger.debug(f"Broadcast {payload!r} to {delivered} subscriber(s)")
        return delivered

    def __contains__(self, subscriber: object) -> bool:
        return subscriber in self._subscribers

    def __len__(self) -> int:
        return len(self._subscribers)

    @property
    def subscriber_count(self) -> int:
        """Get the number of active subscribers."""
        return len(self._subscribers)
