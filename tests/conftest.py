"""Pytest configuration and fixtures."""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from hotserve.api.app import create_app
from hotserve.config import ServerConfig
from hotserve.events import ShutdownSignal, SubscriberRegistry

INDEX_HTML = "<html><body>Hi</body></html>"


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """Create a small site to serve."""
    root = tmp_path / "site"
    root.mkdir()
    (root / "index.html").write_text(INDEX_HTML)
    (root / "fragment.html").write_text("<p>no body tag</p>")
    (root / "style.css").write_text("body { color: red; }")
    (root / "app.js").write_text("console.log('</body>');")
    (root / "page.xhtml").write_text(
        '<html xmlns="http://www.w3.org/1999/xhtml"><body>x</body></html>'
    )

    docs = root / "docs"
    docs.mkdir()
    (docs / "guide.html").write_text("<html><body>Guide</body></html>")
    (docs / "notes.txt").write_text("notes")

    hidden = root / ".cache"
    hidden.mkdir()
    (hidden / "stale.html").write_text("<html><body>stale</body></html>")
    return root


@pytest.fixture
def config(site: Path) -> ServerConfig:
    """Default configuration for the test site."""
    return ServerConfig.from_directory(site, ip="127.0.0.1", port=0)


@pytest.fixture
def registry() -> SubscriberRegistry:
    """Create a fresh registry for each test."""
    return SubscriberRegistry()


@pytest.fixture
def shutdown() -> ShutdownSignal:
    return ShutdownSignal()


@pytest.fixture
async def client(
    config: ServerConfig,
    registry: SubscriberRegistry,
    shutdown: ShutdownSignal,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client for the app."""
    app = create_app(config, registry, shutdown)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _wait_until(condition: Callable[[], bool], timeout: float = 2.0) -> None:
    async def poll() -> None:
        while not condition():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout=timeout)


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Poll a condition until it holds or the timeout expires."""
    return _wait_until
