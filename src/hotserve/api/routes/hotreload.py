"""Server-sent events endpoint for live reload."""

import asyncio
import contextlib
import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from hotserve.api.deps import get_registry, get_shutdown
from hotserve.events import ShutdownSignal, Subscriber, SubscriberRegistry

logger = logging.getLogger(__name__)

RELOAD_PATH = "/_hotreload"

router = APIRouter()


def format_event(payload: bytes) -> bytes:
    """Frame ``payload`` as a server-sent event."""
    return b"data: " + payload + b"\n\n"


class EventStreamResponse(Response):
    """Long-lived event stream bound to one registry subscriber.

    The stream stays open until the client disconnects or the shutdown
    signal closes; either way the subscriber is removed from the registry
    before the response returns.
    """

    def __init__(self, registry: SubscriberRegistry, shutdown: ShutdownSignal):
        self.registry = registry
        self.shutdown = shutdown
        self.status_code = 200
        self.background = None
        self.raw_headers = [
            (b"content-type", b"text/event-stream"),
            (b"cache-control", b"no-cache"),
            (b"connection", b"keep-alive"),
        ]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        subscriber = await self.registry.register()
        try:
            await send(
                {
                    "type": "http.response.start",
                    "status": self.status_code,
                    "headers": self.raw_headers,
                }
            )
            await self._stream(subscriber, receive, send)
        except OSError as e:
            logger.debug(f"Reload stream {subscriber.id} write failed: {e}")
        finally:
            await self.registry.unregister(subscriber)

        with contextlib.suppress(OSError):
            await send({"type": "http.response.body", "body": b"", "more_body": False})

    async def _stream(self, subscriber: Subscriber, receive: Receive, send: Send) -> None:
        disconnected = asyncio.create_task(_wait_for_disconnect(receive))
        closing = asyncio.create_task(self.shutdown.wait())
        message: asyncio.Task | None = None
        try:
            while True:
                message = asyncio.create_task(subscriber.channel.get())
                done, _pending = await asyncio.wait(
                    [message, disconnected, closing],
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if message not in done:
                    break
                await send(
                    {
                        "type": "http.response.body",
                        "body": format_event(message.result()),
                        "more_body": True,
                    }
                )
                if disconnected.done() or closing.done():
                    break
        finally:
            for task in (message, disconnected, closing):
                if task is None:
                    continue
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task


async def _wait_for_disconnect(receive: Receive) -> None:
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            return


@router.get(RELOAD_PATH)
async def hot_reload(
    registry: Annotated[SubscriberRegistry, Depends(get_registry)],
    shutdown: Annotated[ShutdownSignal, Depends(get_shutdown)],
) -> EventStreamResponse:
    """Stream ``data: reload`` events to the browser."""
    return EventStreamResponse(registry, shutdown)
