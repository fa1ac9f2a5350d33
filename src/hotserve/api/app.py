"""FastAPI application factory."""

import logging

from fastapi import FastAPI

from hotserve import __version__
from hotserve.api.router import ReloadInjectionMiddleware
from hotserve.api.routes import hotreload
from hotserve.api.static import SiteFiles
from hotserve.config import ServerConfig
from hotserve.events import ShutdownSignal, SubscriberRegistry

logger = logging.getLogger(__name__)


def create_app(
    config: ServerConfig,
    registry: SubscriberRegistry | None = None,
    shutdown: ShutdownSignal | None = None,
) -> FastAPI:
    """Create the application serving ``config.root`` with live reload.

    Dispatch order: inject-eligible paths through the interceptor, then the
    reload stream, then plain static files. Docs routes are disabled so every
    other path belongs to the served tree.
    """
    app = FastAPI(
        title="Hotserve",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.config = config
    app.state.registry = registry if registry is not None else SubscriberRegistry()
    app.state.shutdown = shutdown if shutdown is not None else ShutdownSignal()

    site = SiteFiles(config.root)

    app.add_middleware(
        ReloadInjectionMiddleware,
        static=site,
        inject_exts=config.inject_exts,
    )

    app.include_router(hotreload.router, tags=["hotreload"])
    app.mount("/", site, name="site")

    return app
