# =============================================================================
# pigpio Python Client -- Async Client
# =============================================================================
#
# Primary public API. Owns the two daemon sockets, the request pipeline on
# the command socket and the watcher registry fed by the notification
# socket. The session is ready once both sockets finished their handshake,
# in either order.
# =============================================================================

from __future__ import annotations

import asyncio

from collections import defaultdict
from typing import Any, Callable

from ._logging import logger
from .commands import Command
from .connection import ConnectionManager
from .constants import (
    BSC_EVENT_BIT,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    EVENT_CONNECTED,
    EVENT_DISCONNECTED,
    EVENT_ERROR,
    RETRY_BACKOFF,
)
from .errors import (
    PigpioConnectionError,
    PigpioError,
    PigpioNotConnectedError,
)
from .gpio import Gpio
from .notifications import NotificationStream, WatcherRegistry
from .pipeline import CompletionCallback, RequestPipeline, attach_callback
from .types import ClientConfig, SessionInfo, SocketRole, WatcherCallback

EventHandler = Callable[..., Any]


class AsyncPigpioClient:
    """Async client for a pigpio daemon.

    Args:
        host: pigpiod host name or address.
        port: pigpiod socket port.
        pipelining: Allow several requests in flight on the command socket.
        timeout: Minutes to keep retrying a failed connect (``0``: fail on
            the first error). Also the default keep-alive window.
        retry_backoff: Seconds between connect attempts.
        keepalive: Minutes of notification silence before both sockets are
            dropped. ``None`` reuses *timeout*, ``0`` disables it.
        config: Prebuilt :class:`ClientConfig`; overrides the keywords.

    Example::

        async with AsyncPigpioClient("raspberrypi.local") as pi:
            led = pi.gpio(17)
            await led.mode_set("output")
            await led.write(1)
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        *,
        pipelining: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
        retry_backoff: float = RETRY_BACKOFF,
        keepalive: float | None = None,
        config: ClientConfig | None = None,
    ) -> None:
        if config is None:
            config = ClientConfig(
                host=host,
                port=port,
                pipelining=pipelining,
                timeout=timeout,
                retry_backoff=retry_backoff,
                keepalive=keepalive,
            )
        self._config = config
        self._info = SessionInfo.from_config(config)

        # Callback handlers: event name -> handlers
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._background_tasks: set[asyncio.Task[Any]] = set()

        # Services
        self._pipeline = RequestPipeline(pipelining=config.pipelining, on_error=self.emit_error)
        self._watchers = WatcherRegistry(spawn=self._fire_task)
        self._stream = NotificationStream(self._watchers, on_event=self._emit)

        self._command = ConnectionManager(
            SocketRole.COMMAND,
            config,
            handshake=self._command_handshake,
            on_data=self._pipeline.feed,
            on_connected=self._on_socket_ready,
            on_connect_failed=self._on_connect_failed,
            on_disconnect=self._on_socket_down,
        )
        self._notification = ConnectionManager(
            SocketRole.NOTIFICATION,
            config,
            handshake=self._notification_handshake,
            on_data=self._stream.feed,
            on_connected=self._on_socket_ready,
            on_connect_failed=self._on_connect_failed,
            on_disconnect=self._on_socket_down,
            idle_timeout=config.keepalive_window,
        )

        self._settled = asyncio.Event()
        self._connect_error: PigpioError | None = None
        self._disconnected = asyncio.Event()
        self._disconnected.set()
        # True between the connected and disconnected announcements.
        self._ready = False

    # -- Context manager ------------------------------------------------------

    async def __aenter__(self) -> AsyncPigpioClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.end()

    # -- Properties -----------------------------------------------------------

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        return self._command.is_connected and self._notification.is_connected

    @property
    def pending_requests(self) -> int:
        """Requests written or queued but not yet answered."""
        return self._pipeline.in_flight + self._pipeline.queued

    def get_info(self) -> SessionInfo:
        return self._info

    def get_handle(self) -> int | None:
        """Notification handle from the last NOIB exchange."""
        return self._stream.handle

    # -- Connect / Disconnect -------------------------------------------------

    async def connect(self) -> SessionInfo:
        """Open both sockets and wait until the session is ready.

        An active session is destroyed first, so every connect is a full
        handshake.

        Raises:
            PigpioConnectionError: A socket could not be opened (or, with a
                retry timeout, could not be opened in time).
            PigpioError: A handshake was refused or malformed.
        """
        if self._command.is_active or self._notification.is_active:
            logger.debug("Destroying previous session before connecting")
            self.destroy()

        self._settled = asyncio.Event()
        self._connect_error = None
        logger.info("Connecting to pigpiod at %s:%d", self._config.host, self._config.port)
        self._command.start()
        self._notification.start()

        await self._settled.wait()
        if self._connect_error is not None:
            raise self._connect_error
        return self._info

    async def end(self) -> None:
        """Close both sockets; returns after ``disconnected`` was emitted."""
        if not (self._command.is_connected or self._notification.is_connected):
            self.destroy()
            return
        waiter = self._disconnected
        await self._command.close()
        await self._notification.close()
        await waiter.wait()

    def destroy(self) -> None:
        """Drop both sockets immediately."""
        self._abort_connect(PigpioConnectionError("Connection destroyed"))
        self._command.teardown("destroyed")
        self._notification.teardown("destroyed")
        self._pipeline.detach()
        self._stream.reset()

    # -- Requests -------------------------------------------------------------

    def request(
        self,
        command: int,
        p1: int = 0,
        p2: int = 0,
        p3: int = 0,
        extension: bytes = b"",
        callback: CompletionCallback | None = None,
    ) -> asyncio.Future[Any]:
        """Send a command and return a future for its result.

        The result is ``p3`` for ordinary commands and ``(p3, extension)``
        for commands with an extended response. A negative ``p3`` fails the
        future with :class:`~pigpio_client.errors.PigpioRemoteError`.

        Args:
            command: Command code, see :class:`~pigpio_client.commands.Command`.
            p1: First parameter.
            p2: Second parameter.
            p3: Third parameter; replaced by the extension length for
                extended-request commands.
            extension: Extension payload for extended-request commands.
            callback: Optional ``callback(error, result)``; not called for
                requests abandoned by a disconnect.
        """
        future = self._pipeline.submit(command, p1, p2, p3, extension)
        if callback is not None:
            attach_callback(future, callback)
        return future

    def get_current_tick(self) -> asyncio.Future[Any]:
        return self.request(Command.TICK)

    def read_bank1(self) -> asyncio.Future[Any]:
        return self.request(Command.BR1)

    def hw_clock(self, gpio: int, frequency: int) -> asyncio.Future[Any]:
        return self.request(Command.HC, gpio, frequency)

    def gpio(self, gpio: int) -> Gpio:
        """Per-pin helper bound to this client.

        Raises:
            ValueError: *gpio* is not a user GPIO on the connected board.
        """
        return Gpio(self, gpio)

    # -- Notifications --------------------------------------------------------

    async def start_notifications(self, bits: int, callback: WatcherCallback) -> int:
        """Watch the GPIO lines in *bits*; returns the watcher id.

        *callback* is called as ``callback(levels, tick)`` whenever a watched
        line changes, and once more as ``callback(None, None)`` when the
        watcher is stopped.

        Raises:
            PigpioNotificationLimitError: All watcher slots are in use.
            PigpioNotConnectedError: The session is not connected.
        """
        if not callable(callback):
            raise TypeError("callback must be callable")
        self._watchers.check_capacity()
        if not self._pipeline.attached or self._stream.handle is None:
            raise PigpioNotConnectedError(api="NB")

        idle = self._watchers.mask == 0
        watcher = self._watchers.add(bits, callback)
        if idle:
            self._prime_levels()
        try:
            await self._pipeline.submit(Command.NB, self._stream.handle, self._watchers.mask)
        except BaseException:
            self._watchers.remove(watcher.id)
            raise
        logger.debug("Watcher %d started for bits 0x%08x", watcher.id, watcher.bits)
        return watcher.id

    async def stop_notifications(self, watcher_id: int) -> Any:
        """Stop a watcher; it receives its final ``(None, None)`` call.

        Raises:
            ValueError: No watcher has this id.
        """
        # Unregistered before the await: from here on the id is unknown and
        # the mask excludes its bits.
        watcher = self._watchers.remove(watcher_id)
        if watcher is None:
            raise ValueError(f"Unknown watcher id {watcher_id}")
        try:
            return await self._pipeline.submit(
                Command.NB, self._handle_or_zero(), self._watchers.mask
            )
        finally:
            self._watchers.finish(watcher)
            logger.debug("Watcher %d stopped", watcher_id)

    async def pause_notifications(self) -> Any:
        """Pause every watcher on this session's notification handle."""
        return await self._pipeline.submit(Command.NP, self._handle_or_zero())

    async def close_notifications(self) -> Any:
        """Close this session's notification handle on the daemon."""
        return await self._pipeline.submit(Command.NC, self._handle_or_zero())

    def _handle_or_zero(self) -> int:
        return self._stream.handle if self._stream.handle is not None else 0

    def _prime_levels(self) -> None:
        def _primed(error: PigpioError | None, levels: Any) -> None:
            if error is not None:
                self.emit_error(error)
                return
            self._stream.previous_levels = levels

        self._pipeline.post(Command.BR1, on_complete=_primed)

    # -- Handler registration -------------------------------------------------

    def on(self, event: str, fn: EventHandler | None = None) -> Any:
        """Register an event handler, directly or as a decorator.

        Events: ``connected(info)``, ``disconnected(reason)``,
        ``error(exc)`` and ``EVENT_BSC()``.

        Example::

            @pi.on("disconnected")
            def lost(reason):
                print("pigpiod gone:", reason)
        """
        if fn is not None:
            self._handlers[event].append(fn)
            return fn

        def decorator(handler: EventHandler) -> EventHandler:
            self._handlers[event].append(handler)
            return handler

        return decorator

    def off(self, event: str, fn: EventHandler) -> None:
        """Remove a specific handler."""
        handlers = self._handlers.get(event, [])
        if fn in handlers:
            handlers.remove(fn)

    def emit_error(self, error: BaseException) -> None:
        """Broadcast an error that no request owns."""
        self._emit(EVENT_ERROR, error)

    # -- Internal: events -----------------------------------------------------

    def _emit(self, event: str, *args: Any) -> None:
        handlers = list(self._handlers.get(event, []))
        if event == EVENT_ERROR and not handlers:
            logger.error("Unhandled pigpio error: %s", args[0] if args else "")
            return
        for handler in handlers:
            try:
                result = handler(*args)
                if asyncio.iscoroutine(result):
                    self._fire_task(result)
            except Exception as exc:
                logger.error("Handler error for '%s': %s", event, exc)

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    # -- Internal: handshakes -------------------------------------------------

    async def _command_handshake(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self._pipeline.attach(self._command.write)
        self._command.start_reading()
        self._info.pigpio_version = await self._pipeline.submit(Command.PIGPV)
        revision = await self._pipeline.submit(Command.HWVER)
        self._info.apply_hardware_revision(revision)
        logger.info(
            "pigpio version %d, hardware revision 0x%x (type %d)",
            self._info.pigpio_version,
            revision,
            self._info.hardware_type,
        )

    async def _notification_handshake(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        await self._stream.open(reader, writer)

    # -- Internal: lifecycle --------------------------------------------------

    def _on_socket_ready(self, role: SocketRole) -> None:
        self._info.set_connected(role, True)
        if not self._info.fully_connected:
            return

        logger.info("Connected to pigpiod at %s:%d", self._config.host, self._config.port)
        self._disconnected = asyncio.Event()
        self._ready = True
        self._enable_bsc_events()
        self._rearm_watchers()
        self._settled.set()
        self._emit(EVENT_CONNECTED, self._info)

    def _enable_bsc_events(self) -> None:
        def _done(error: PigpioError | None, _result: Any) -> None:
            if error is not None:
                logger.warning("BSC event monitoring failed: %s", error)
            else:
                logger.debug("BSC event monitoring active")

        self._pipeline.post(Command.EVM, self._handle_or_zero(), BSC_EVENT_BIT, on_complete=_done)

    def _rearm_watchers(self) -> None:
        mask = self._watchers.mask
        if not mask:
            return
        logger.debug("Re-arming %d watcher(s), bits 0x%08x", len(self._watchers), mask)
        self._prime_levels()
        self._pipeline.post(Command.NB, self._handle_or_zero(), mask)

    def _on_connect_failed(self, role: SocketRole, error: PigpioError) -> None:
        self._info.set_connected(role, False)
        if role is SocketRole.COMMAND:
            self._pipeline.detach()
        else:
            self._stream.reset()
        self._abort_connect(error)
        other = self._other(role)
        if other.is_active:
            other.teardown(f"{role.value} failed to connect")

    def _on_socket_down(self, role: SocketRole, reason: str) -> None:
        self._info.set_connected(role, False)
        if role is SocketRole.COMMAND:
            self._pipeline.detach()
        else:
            self._stream.reset()
        self._abort_connect(PigpioConnectionError(f"{role.value} {reason} during connect"))

        other = self._other(role)
        if other.is_connected:
            # The other socket's teardown re-enters here and announces it.
            other.teardown(reason)
            return
        other.teardown(reason)

        self._disconnected.set()
        if not self._ready:
            # Half-open session from a failed connect; it was never announced.
            logger.debug("Dropped partial session: %s", reason)
            return
        self._ready = False
        logger.info("Disconnected from pigpiod: %s", reason)
        self._emit(EVENT_DISCONNECTED, reason)

    def _abort_connect(self, error: PigpioError) -> None:
        if self._settled.is_set():
            return
        if self._connect_error is None:
            self._connect_error = error
        self._settled.set()

    def _other(self, role: SocketRole) -> ConnectionManager:
        return self._notification if role is SocketRole.COMMAND else self._command
