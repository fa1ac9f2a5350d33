"""Tests for the live-reload file watcher."""

import asyncio
import logging
from pathlib import Path

import pytest
from watchfiles import Change

from hotserve.config import ServerConfig
from hotserve.errors import WatcherError
from hotserve.events import ShutdownSignal, SubscriberRegistry
from hotserve.reload import HiddenDirectoryFilter, ReloadWatcher, WatchEvent


def batches(*groups: list[WatchEvent]):
    """Build an event source yielding the given batches."""

    async def source():
        for group in groups:
            yield group

    return source


@pytest.fixture
def watcher(config: ServerConfig, registry: SubscriberRegistry, shutdown: ShutdownSignal):
    return ReloadWatcher(config, registry, shutdown)


class TestSetup:
    """Tests for the startup directory walk."""

    def test_collects_visible_directories(self, watcher: ReloadWatcher, site: Path):
        (site / "docs" / "deep").mkdir()
        (site / ".cache" / "inner").mkdir()

        directories = watcher.setup()

        assert site in directories
        assert site / "docs" in directories
        assert site / "docs" / "deep" in directories
        assert site / ".cache" not in directories
        assert site / ".cache" / "inner" not in directories

    def test_missing_root_is_fatal(self, site: Path, registry, shutdown):
        config = ServerConfig(root=site / "gone")
        watcher = ReloadWatcher(config, registry, shutdown)

        with pytest.raises(WatcherError, match="Failed to watch directory"):
            watcher.setup()


class TestHiddenDirectoryFilter:
    """Tests for the watchfiles filter."""

    def test_visible_paths(self, site: Path):
        watch_filter = HiddenDirectoryFilter(site)

        assert watch_filter(Change.modified, str(site / "index.html"))
        assert watch_filter(Change.modified, str(site / "docs" / "guide.html"))

    def test_hidden_directories_rejected(self, site: Path):
        watch_filter = HiddenDirectoryFilter(site)

        assert not watch_filter(Change.modified, str(site / ".cache" / "stale.html"))
        assert not watch_filter(Change.modified, str(site / "docs" / ".git" / "x" / "a.html"))

    def test_hidden_file_in_visible_directory(self, site: Path):
        """Only directories are skipped, like a per-directory watcher would."""
        watch_filter = HiddenDirectoryFilter(site)

        assert watch_filter(Change.modified, str(site / ".draft.html"))


class TestHandle:
    """Tests for matching single events."""

    async def test_write_to_watched_file_broadcasts(
        self, watcher: ReloadWatcher, registry: SubscriberRegistry, site: Path
    ):
        subscriber = await registry.register()

        handled = await watcher.handle(WatchEvent(str(site / "index.html"), Change.modified))

        assert handled
        assert subscriber.channel.get_nowait() == b"reload"

    async def test_unwatched_extension_ignored(
        self, watcher: ReloadWatcher, registry: SubscriberRegistry, site: Path
    ):
        subscriber = await registry.register()

        handled = await watcher.handle(WatchEvent(str(site / "style.css"), Change.modified))

        assert not handled
        assert subscriber.channel.empty()

    @pytest.mark.parametrize("kind", [Change.added, Change.deleted])
    async def test_non_write_events_ignored(
        self, watcher: ReloadWatcher, registry: SubscriberRegistry, site: Path, kind: Change
    ):
        subscriber = await registry.register()

        assert not await watcher.handle(WatchEvent(str(site / "new.html"), kind))
        assert subscriber.channel.empty()

    async def test_multiple_watched_extensions(
        self, site: Path, registry: SubscriberRegistry, shutdown: ShutdownSignal
    ):
        config = ServerConfig.from_directory(site, watch_exts=(".css", ".html", ".css"))
        watcher = ReloadWatcher(config, registry, shutdown)
        subscriber = await registry.register()

        await watcher.handle(WatchEvent(str(site / "style.css"), Change.modified))

        assert subscriber.channel.qsize() == 1


class TestRun:
    """Tests for the watch loop."""

    async def test_broadcasts_for_each_matching_event(
        self, watcher: ReloadWatcher, registry: SubscriberRegistry, site: Path
    ):
        subscriber = await registry.register()
        received: list[bytes] = []

        async def source():
            yield [WatchEvent(str(site / "style.css"), Change.modified)]
            yield [WatchEvent(str(site / "index.html"), Change.modified)]
            received.append(await subscriber.channel.get())
            yield [WatchEvent(str(site / "docs" / "guide.html"), Change.modified)]

        await asyncio.wait_for(watcher.run(source), timeout=1.0)

        received.append(subscriber.channel.get_nowait())
        assert received == [b"reload", b"reload"]

    async def test_stops_when_source_ends(self, watcher: ReloadWatcher):
        await asyncio.wait_for(watcher.run(batches([], [])), timeout=1.0)

    async def test_stops_on_shutdown(
        self, watcher: ReloadWatcher, shutdown: ShutdownSignal, site: Path
    ):
        handled: list[str] = []

        async def source():
            for index in range(100):
                path = str(site / f"page{index}.html")
                handled.append(path)
                if index == 2:
                    shutdown.close()
                yield [WatchEvent(path, Change.modified)]

        await asyncio.wait_for(watcher.run(source), timeout=1.0)

        assert len(handled) == 3

    async def test_error_after_start_is_logged_and_loop_continues(
        self,
        watcher: ReloadWatcher,
        registry: SubscriberRegistry,
        site: Path,
        caplog: pytest.LogCaptureFixture,
        monkeypatch: pytest.MonkeyPatch,
    ):
        monkeypatch.setattr("hotserve.reload.watcher.RESTART_DELAY", 0.01)
        subscriber = await registry.register()
        attempts = 0

        async def flaky():
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                yield []
                raise OSError("inotify watch limit reached")
            yield [WatchEvent(str(site / "index.html"), Change.modified)]

        with caplog.at_level(logging.ERROR, logger="hotserve.reload.watcher"):
            await asyncio.wait_for(watcher.run(flaky), timeout=1.0)

        assert attempts == 2
        assert "Watcher error: inotify watch limit reached" in caplog.text
        assert subscriber.channel.get_nowait() == b"reload"

    async def test_failure_before_first_batch_is_fatal(self, watcher: ReloadWatcher):
        attempts = 0

        async def broken():
            nonlocal attempts
            attempts += 1
            raise OSError("OS file watch limit reached")
            yield []

        with pytest.raises(WatcherError, match="Failed to create watcher: OS file watch limit reached"):
            await asyncio.wait_for(watcher.run(broken), timeout=1.0)

        assert attempts == 1

    async def test_failure_before_first_batch_is_set_on_ready(self, watcher: ReloadWatcher):
        async def broken():
            raise RuntimeError("Error creating watcher")
            yield []

        ready: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        await asyncio.wait_for(watcher.run(broken, ready=ready), timeout=1.0)

        with pytest.raises(WatcherError, match="Error creating watcher"):
            await ready

    async def test_ready_resolves_on_first_batch(self, watcher: ReloadWatcher, shutdown: ShutdownSignal):
        ready: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        async def idle():
            yield []
            await shutdown.wait()

        task = asyncio.create_task(watcher.run(idle, ready=ready))
        await asyncio.wait_for(ready, timeout=1.0)
        assert not task.done()

        shutdown.close()
        await asyncio.wait_for(task, timeout=1.0)


class TestNativeWatching:
    """Tests against real filesystem notifications."""

    async def test_file_write_triggers_reload(
        self, watcher: ReloadWatcher, registry: SubscriberRegistry, shutdown: ShutdownSignal, site: Path
    ):
        subscriber = await registry.register()
        watcher.setup()
        task = asyncio.create_task(watcher.run())

        try:
            received = None
            for attempt in range(20):
                (site / "index.html").write_text(f"<html><body>{attempt}</body></html>")
                try:
                    received = await asyncio.wait_for(subscriber.channel.get(), timeout=0.5)
                    break
                except TimeoutError:
                    continue
            assert received == b"reload"
        finally:
            shutdown.close()
            await asyncio.wait_for(task, timeout=2.0)

    async def test_hidden_directory_changes_ignored(
        self, watcher: ReloadWatcher, registry: SubscriberRegistry, shutdown: ShutdownSignal, site: Path
    ):
        subscriber = await registry.register()
        task = asyncio.create_task(watcher.run())

        try:
            await asyncio.sleep(0.3)
            (site / ".cache" / "stale.html").write_text("<html><body>changed</body></html>")
            await asyncio.sleep(0.6)
            assert subscriber.channel.empty()
        finally:
            shutdown.close()
            await asyncio.wait_for(task, timeout=2.0)
