"""FastAPI dependencies."""

from fastapi import Request

from hotserve.events import ShutdownSignal, SubscriberRegistry


async def get_registry(request: Request) -> SubscriberRegistry:
    """Get the subscriber registry from app state."""
    return request.app.state.registry


async def get_shutdown(request: Request) -> ShutdownSignal:
    """Get the process-wide shutdown signal from app state."""
    return request.app.state.shutdown
