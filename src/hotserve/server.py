"""Server lifecycle: listener, watch loop and graceful shutdown."""

import asyncio
import contextlib
import logging
import signal
import socket
from collections.abc import Iterator
from enum import Enum

import uvicorn

from hotserve.api.app import create_app
from hotserve.config import ServerConfig
from hotserve.errors import BindError, WatcherError
from hotserve.events import ShutdownSignal, SubscriberRegistry
from hotserve.reload import ReloadWatcher

logger = logging.getLogger(__name__)

SHUTDOWN_GRACE_SECONDS = 5.0
WATCHER_START_SECONDS = 5.0
EXIT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownOutcome(str, Enum):
    """How the listener finished."""

    GRACEFUL = "graceful"
    FORCED = "forced"


class _Listener(uvicorn.Server):
    """uvicorn server that leaves signal handling to DevServer."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def drop_connections(self) -> None:
        """Close every open connection and cancel its request task."""
        for connection in list(self.server_state.connections):
            transport = getattr(connection, "transport", None)
            if transport is not None:
                transport.close()
        for task in list(self.server_state.tasks):
            task.cancel()


def bind_socket(config: ServerConfig) -> socket.socket:
    """Bind the listening socket.

    Raises:
        BindError: If the address can not be bound.
    """
    try:
        sock = socket.create_server((config.bind_host, config.port))
    except OSError as e:
        raise BindError(config.address, e.strerror or str(e)) from e
    sock.setblocking(False)
    return sock


class DevServer:
    """Runs the HTTP listener and the watch loop until stopped.

    ``stop()`` closes the shutdown signal, which ends every open reload
    stream and the watch loop at once. The listener then stops accepting
    connections and gets ``grace_period`` seconds to finish in-flight
    requests before the remaining connections are dropped.
    """

    def __init__(
        self,
        config: ServerConfig,
        grace_period: float = SHUTDOWN_GRACE_SECONDS,
        access_log: bool = True,
    ):
        self.config = config
        self.grace_period = grace_period
        self.access_log = access_log
        self.registry = SubscriberRegistry()
        self.shutdown = ShutdownSignal()
        self.app = create_app(config, self.registry, self.shutdown)
        self.watcher = ReloadWatcher(config, self.registry, self.shutdown)
        self.port: int | None = None
        self.started = asyncio.Event()
        self._stop_requested = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def url(self) -> str:
        return f"http://{self.config.ip}:{self.port}"

    def stop(self) -> None:
        """Request shutdown. Safe to call from a signal handler or another thread."""
        if self._loop is None or self._loop.is_closed():
            self._request_stop()
            return
        self._loop.call_soon_threadsafe(self._request_stop)

    def _request_stop(self) -> None:
        self.shutdown.close()
        self._stop_requested.set()

    async def serve(self, install_signal_handlers: bool = False) -> ShutdownOutcome:
        """Serve until ``stop()`` is called or an exit signal arrives.

        Raises:
            WatcherError: If the watcher can not be set up or started.
            BindError: If the listening address can not be bound.
        """
        self._loop = asyncio.get_running_loop()
        self.watcher.setup()
        watch_task = await self._start_watcher()
        try:
            sock = bind_socket(self.config)
        except BindError:
            await self._stop_watcher(watch_task)
            raise
        self.port = sock.getsockname()[1]

        listener = _Listener(
            uvicorn.Config(
                self.app,
                log_config=None,
                access_log=self.access_log,
                lifespan="off",
            )
        )

        if install_signal_handlers:
            for sig in EXIT_SIGNALS:
                self._loop.add_signal_handler(sig, self.stop)

        server_task = asyncio.create_task(listener.serve(sockets=[sock]), name="http-listener")
        stop_task = asyncio.create_task(self._stop_requested.wait())

        logger.info(f"Serving {self.config.root} on {self.url}")
        self.started.set()

        try:
            await asyncio.wait([server_task, stop_task], return_when=asyncio.FIRST_COMPLETED)
            return await self._shutdown(listener, server_task, watch_task)
        finally:
            stop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stop_task
            if install_signal_handlers:
                for sig in EXIT_SIGNALS:
                    self._loop.remove_signal_handler(sig)
            sock.close()

    async def _start_watcher(self) -> asyncio.Task:
        """Start the watch loop and wait until the native watcher is running."""
        assert self._loop is not None
        ready: asyncio.Future[None] = self._loop.create_future()
        watch_task = asyncio.create_task(self.watcher.run(ready=ready), name="watch-loop")
        try:
            await asyncio.wait_for(ready, timeout=WATCHER_START_SECONDS)
        except TimeoutError as e:
            await self._stop_watcher(watch_task)
            raise WatcherError(
                f"File watcher did not start within {WATCHER_START_SECONDS:g}s"
            ) from e
        except WatcherError:
            await self._stop_watcher(watch_task)
            raise
        return watch_task

    async def _stop_watcher(self, watch_task: asyncio.Task) -> None:
        self.shutdown.close()
        try:
            await asyncio.wait_for(watch_task, timeout=self.grace_period)
        except TimeoutError:
            logger.warning("File watcher did not stop in time")

    async def _shutdown(
        self,
        listener: _Listener,
        server_task: asyncio.Task,
        watch_task: asyncio.Task,
    ) -> ShutdownOutcome:
        self.shutdown.close()
        listener.should_exit = True

        outcome = ShutdownOutcome.GRACEFUL
        try:
            await asyncio.wait_for(asyncio.shield(server_task), timeout=self.grace_period)
        except TimeoutError:
            logger.warning(
                f"Requests still running after {self.grace_period:g}s, closing connections"
            )
            outcome = ShutdownOutcome.FORCED
            listener.force_exit = True
            listener.drop_connections()
            await server_task

        await self._stop_watcher(watch_task)

        logger.info(f"Server stopped ({outcome.value})")
        return outcome
