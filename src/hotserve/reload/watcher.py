"""File change watching for live reload.

Watches the served tree recursively and broadcasts a reload message to every
connected client when a file with a watched extension is written. Directories
whose name starts with a dot, and everything below them, are never watched.
"""

import asyncio
import contextlib
import logging
import os
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from watchfiles import Change, awatch

from hotserve.config import ServerConfig
from hotserve.errors import WatcherError
from hotserve.events import RELOAD_MESSAGE, ShutdownSignal, SubscriberRegistry

logger = logging.getLogger(__name__)

# watchfiles batches changes: it waits STEP_MS for more activity, at most DEBOUNCE_MS.
DEBOUNCE_MS = 200
STEP_MS = 20
RESTART_DELAY = 1.0
# The native watcher yields an empty batch when idle this long, so its startup is observable.
IDLE_TIMEOUT_MS = 200

EventSource = Callable[[], AsyncIterator[Iterable["WatchEvent"]]]


@dataclass(frozen=True)
class WatchEvent:
    """A single change reported by the watcher."""

    path: str
    kind: Change

    @property
    def is_write(self) -> bool:
        return self.kind == Change.modified


def is_hidden(name: str) -> bool:
    return name.startswith(".")


class HiddenDirectoryFilter:
    """watchfiles filter rejecting paths below a hidden directory of ``root``."""

    def __init__(self, root: Path):
        self.root = root

    def __call__(self, change: Change, path: str) -> bool:
        try:
            relative = Path(path).relative_to(self.root)
        except ValueError:
            return True
        return not any(is_hidden(part) for part in relative.parts[:-1])


class ReloadWatcher:
    """Watches the served directory and fans changes out to subscribers."""

    def __init__(
        self,
        config: ServerConfig,
        registry: SubscriberRegistry,
        shutdown: ShutdownSignal,
        debounce_ms: int = DEBOUNCE_MS,
        step_ms: int = STEP_MS,
    ):
        self.config = config
        self.registry = registry
        self.shutdown = shutdown
        self.debounce_ms = debounce_ms
        self.step_ms = step_ms
        self.watched_dirs: list[Path] = []

    def setup(self) -> list[Path]:
        """Walk the root and collect every non-hidden directory.

        Raises:
            WatcherError: If the root can not be walked.
        """
        root = self.config.root
        if not root.is_dir():
            raise WatcherError(f"Failed to watch directory: {root} is not a directory")

        def fail(exc: OSError) -> None:
            raise exc

        directories: list[Path] = []
        try:
            for current, dirnames, _files in os.walk(root, onerror=fail):
                dirnames[:] = [d for d in dirnames if not is_hidden(d)]
                directories.append(Path(current))
        except OSError as e:
            raise WatcherError(f"Failed to watch directory: {e}") from e

        self.watched_dirs = directories
        logger.info(f"Watching {len(directories)} directories under {root}")
        return directories

    async def changes(self) -> AsyncIterator[list[WatchEvent]]:
        """Yield batches of filesystem changes until shutdown."""
        async for batch in awatch(
            self.config.root,
            watch_filter=HiddenDirectoryFilter(self.config.root),
            debounce=self.debounce_ms,
            step=self.step_ms,
            stop_event=self.shutdown.event,
            rust_timeout=IDLE_TIMEOUT_MS,
            yield_on_timeout=True,
            recursive=True,
        ):
            yield [WatchEvent(path=path, kind=kind) for kind, path in batch]

    async def handle(self, event: WatchEvent) -> bool:
        """Broadcast a reload if ``event`` is a write to a watched file.

        Returns:
            True if a reload was broadcast.
        """
        if not event.is_write or not self.config.is_watched(event.path):
            return False
        logger.info(f"File changed: {event.path}")
        await self.registry.broadcast(RELOAD_MESSAGE)
        return True

    async def run(
        self,
        source: EventSource | None = None,
        ready: asyncio.Future[None] | None = None,
    ) -> None:
        """Consume change batches until the source ends or shutdown closes.

        The first batch, empty or not, means the watcher is running; ``ready``
        is resolved at that point. A failure before it is fatal: it is set on
        ``ready``, or raised when no future is given. Errors after a successful
        start are logged and the watcher is restarted after a short pause.

        Raises:
            WatcherError: If the watcher fails before its first batch and
                ``ready`` is not given.
        """
        source = source or self.changes
        started = False
        while not self.shutdown.closed:
            try:
                async for batch in source():
                    if not started:
                        started = True
                        logger.debug("File watcher started")
                        _resolve(ready)
                    for event in batch:
                        await self.handle(event)
                    if self.shutdown.closed:
                        break
            except (OSError, RuntimeError) as e:
                if not started:
                    error = WatcherError(f"Failed to create watcher: {e}")
                    if ready is None:
                        raise error from e
                    if not ready.done():
                        ready.set_exception(error)
                    return
                logger.error(f"Watcher error: {e}")
                await self._pause(RESTART_DELAY)
                continue
            break
        _resolve(ready)
        logger.debug("File watcher stopped")

    async def _pause(self, seconds: float) -> None:
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self.shutdown.wait(), timeout=seconds)


def _resolve(ready: asyncio.Future[None] | None) -> None:
    if ready is not None and not ready.done():
        ready.set_result(None)
