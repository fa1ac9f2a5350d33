"""API route modules."""

from hotserve.api.routes import hotreload

__all__ = ["hotreload"]
