# =============================================================================
# pigpio Python Client -- Connection Manager
# =============================================================================
#
# One manager per daemon socket (command, notification): TCP open, connect
# retry with fixed backoff, socket-specific handshake, read loop, idle
# (keep-alive) timeout and teardown.
# =============================================================================

from __future__ import annotations

import asyncio

from typing import Any, Awaitable, Callable

from ._logging import logger
from .constants import READ_CHUNK_SIZE
from .errors import (
    PigpioConnectionError,
    PigpioError,
    PigpioNotConnectedError,
    PigpioTimeoutError,
)
from .types import ClientConfig, ConnectionState, SocketRole

Handshake = Callable[[asyncio.StreamReader, asyncio.StreamWriter], Awaitable[None]]


class ConnectionManager:
    """Lifecycle of a single daemon socket.

    The manager knows nothing about frames. It hands every chunk it reads
    to ``on_data`` and reports lifecycle changes through the callbacks:

    * ``on_connected(role)`` once the handshake completed,
    * ``on_connect_failed(role, exc)`` when connecting gave up,
    * ``on_disconnect(role, reason)`` when an established socket went down.
    """

    def __init__(
        self,
        role: SocketRole,
        config: ClientConfig,
        *,
        handshake: Handshake,
        on_data: Callable[[bytes], Any],
        on_connected: Callable[[SocketRole], Any],
        on_connect_failed: Callable[[SocketRole, PigpioError], Any],
        on_disconnect: Callable[[SocketRole, str], Any],
        idle_timeout: float = 0.0,
    ) -> None:
        self.role = role
        self._config = config
        self._handshake = handshake
        self._idle_timeout = idle_timeout

        # Callbacks
        self._on_data = on_data
        self._on_connected = on_connected
        self._on_connect_failed = on_connect_failed
        self._on_disconnect = on_disconnect

        # State
        self._state = ConnectionState.DISCONNECTED
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._closing: set[asyncio.StreamWriter] = set()

        # Tasks
        self._connect_task: asyncio.Task[None] | None = None
        self._read_task: asyncio.Task[None] | None = None

    # -- Properties -----------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def is_active(self) -> bool:
        """Connected or still trying to connect."""
        return self._state != ConnectionState.DISCONNECTED

    # -- Connect --------------------------------------------------------------

    def start(self) -> None:
        """Begin connecting in the background."""
        if self.is_active:
            return
        self._closing.clear()
        self._set_state(ConnectionState.CONNECTING)
        self._connect_task = asyncio.create_task(
            self._connect_loop(), name=f"pigpio-{self.role.value}-connect"
        )

    async def _connect_loop(self) -> None:
        cfg = self._config
        loop = asyncio.get_running_loop()
        deadline = loop.time() + cfg.retry_window
        attempt = 0

        while True:
            attempt += 1
            self._set_state(ConnectionState.CONNECTING)
            try:
                self._reader, self._writer = await asyncio.wait_for(
                    asyncio.open_connection(cfg.host, cfg.port),
                    timeout=cfg.connect_timeout,
                )
                break
            except (OSError, asyncio.TimeoutError) as exc:
                reason = str(exc) or type(exc).__name__
                if cfg.retry_window <= 0:
                    self._fail(
                        PigpioConnectionError(
                            f"{self.role.value} failed to connect to "
                            f"{cfg.host}:{cfg.port}: {reason}"
                        )
                    )
                    return
                if loop.time() >= deadline:
                    self._fail(
                        PigpioTimeoutError(
                            f"Could not connect {self.role.value} to "
                            f"{cfg.host}:{cfg.port} within {cfg.timeout:g} minute(s)"
                        )
                    )
                    return
                logger.info(
                    "%s connect attempt %d failed (%s), retrying in %.1fs",
                    self.role.value,
                    attempt,
                    reason,
                    cfg.retry_backoff,
                )
                self._set_state(ConnectionState.RETRY_PENDING)
                await asyncio.sleep(cfg.retry_backoff)

        logger.debug("%s TCP connected to %s:%d", self.role.value, cfg.host, cfg.port)
        try:
            await asyncio.wait_for(
                self._handshake(self._reader, self._writer),
                timeout=cfg.connect_timeout,
            )
        except PigpioError as exc:
            self._fail(exc)
            return
        except (OSError, EOFError, asyncio.TimeoutError) as exc:
            reason = str(exc) or type(exc).__name__
            self._fail(PigpioConnectionError(f"{self.role.value} handshake failed: {reason}"))
            return

        self._connect_task = None
        self.start_reading()
        self._set_state(ConnectionState.CONNECTED)
        self._on_connected(self.role)

    def start_reading(self) -> None:
        """Start the read loop; the command handshake needs it early."""
        if self._read_task is not None or self._reader is None:
            return
        self._read_task = asyncio.create_task(
            self._read_loop(self._reader), name=f"pigpio-{self.role.value}-read"
        )

    def _fail(self, error: PigpioError) -> None:
        logger.warning("%s: %s", self.role.value, error)
        self._drop()
        self._on_connect_failed(self.role, error)

    # -- Send -----------------------------------------------------------------

    def write(self, data: bytes) -> None:
        if self._writer is None or self._writer.is_closing():
            raise PigpioNotConnectedError(f"{self.role.value} is not connected")
        self._writer.write(data)

    # -- Receive --------------------------------------------------------------

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        idle = self._idle_timeout
        try:
            while True:
                if idle > 0 and self._state == ConnectionState.CONNECTED:
                    chunk = await asyncio.wait_for(reader.read(READ_CHUNK_SIZE), timeout=idle)
                else:
                    chunk = await reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    self._lost("closed unexpectedly")
                    return
                self._on_data(chunk)
        except asyncio.TimeoutError:
            logger.warning(
                "%s: no data within %.0fs keep-alive window", self.role.value, idle
            )
            self._lost("keep-alive timeout")
        except OSError as exc:
            logger.warning("%s socket error: %s", self.role.value, exc)
            self._lost(f"socket error: {exc}")
        except Exception:
            logger.exception("%s read loop failed", self.role.value)
            self._lost("internal error")

    def _lost(self, reason: str) -> None:
        if self._state == ConnectionState.CONNECTED:
            self.teardown(reason)
        elif self._state != ConnectionState.DISCONNECTED:
            # Peer went away in the middle of the handshake.
            self._fail(PigpioConnectionError(f"{self.role.value} {reason} during handshake"))

    # -- Disconnect -----------------------------------------------------------

    def teardown(self, reason: str) -> None:
        """Drop the socket immediately. Safe to call in any state.

        ``on_disconnect`` fires only when the socket had been connected.
        """
        was_connected = self._state == ConnectionState.CONNECTED
        self._drop()
        if was_connected:
            logger.info("%s disconnected: %s", self.role.value, reason)
            self._on_disconnect(self.role, reason)

    async def close(self, reason: str = "connection ended") -> None:
        """Tear down and wait for the transport to finish closing."""
        self.teardown(reason)
        closing = list(self._closing)
        self._closing.clear()
        for writer in closing:
            try:
                await writer.wait_closed()
            except OSError:
                pass

    def _drop(self) -> None:
        current = asyncio.current_task()
        for task in (self._connect_task, self._read_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._connect_task = None
        self._read_task = None

        if self._writer is not None:
            self._writer.close()
            self._closing.add(self._writer)
        self._reader = None
        self._writer = None
        self._set_state(ConnectionState.DISCONNECTED)

    # -- State management -----------------------------------------------------

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state == self._state:
            return
        old = self._state
        self._state = new_state
        logger.debug("%s state: %s -> %s", self.role.value, old.value, new_state.value)
