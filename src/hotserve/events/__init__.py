"""Live-reload subscriber fan-out."""

from hotserve.events.registry import RELOAD_MESSAGE, Subscriber, SubscriberRegistry
from hotserve.events.shutdown import ShutdownSignal

__all__ = ["RELOAD_MESSAGE", "ShutdownSignal", "Subscriber", "SubscriberRegistry"]
