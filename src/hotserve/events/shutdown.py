"""Process-wide shutdown signal."""

import asyncio


class ShutdownSignal:
    """One-shot signal observed by every long-lived task.

    Closing it wakes all waiters at once. It can not be reopened.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def close(self) -> None:
        """Close the signal. Closing twice is a no-op."""
        self._event.set()

    @property
    def closed(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Block until the signal is closed."""
        await self._event.wait()

    @property
    def event(self) -> asyncio.Event:
        """Underlying event, for APIs that accept an ``asyncio.Event``."""
        return self._event
