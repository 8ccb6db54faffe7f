# =============================================================================
# pigpio Python Client -- Synchronous Wrapper
# =============================================================================
#
# Thread-based wrapper around AsyncPigpioClient for blocking usage.
# =============================================================================

from __future__ import annotations

import asyncio
import threading

from typing import Any, Callable, Coroutine

from ._logging import logger
from .client import AsyncPigpioClient
from .errors import PigpioNotConnectedError, PigpioTimeoutError
from .types import ClientConfig, SessionInfo, WatcherCallback


class SyncPigpioClient:
    """Blocking pigpio client.

    Runs an :class:`AsyncPigpioClient` on a background thread. Public
    methods are thread-safe and block until the daemon answered. Event
    handlers and watcher callbacks run on the background thread.

    Args:
        host: pigpiod host name or address.
        port: pigpiod socket port.
        call_timeout: Seconds to wait for any single blocking call.
        **kwargs: Passed on to :class:`AsyncPigpioClient`.

    Example::

        pi = SyncPigpioClient("raspberrypi.local")
        pi.connect()
        level = pi.request(Command.READ, 4)
        pi.end()
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        *,
        call_timeout: float = 30.0,
        config: ClientConfig | None = None,
        **kwargs: Any,
    ) -> None:
        if config is None:
            if host is not None:
                kwargs["host"] = host
            if port is not None:
                kwargs["port"] = port
            config = ClientConfig(**kwargs)
        self._config = config
        self._call_timeout = call_timeout

        self._handlers: list[tuple[str, Callable[..., Any]]] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._client: AsyncPigpioClient | None = None
        self._started = threading.Event()

    # -- Lifecycle ------------------------------------------------------------

    def connect(self, timeout: float | None = None) -> SessionInfo:
        """Connect both sockets. Blocks until the session is ready.

        Raises:
            PigpioTimeoutError: *timeout* expired first.
            PigpioConnectionError: Connecting failed.
        """
        if timeout is None:
            timeout = self._config.retry_window + self._call_timeout
        self._ensure_loop()
        try:
            return self._call(self._client_or_raise().connect(), timeout=timeout)
        except TimeoutError as exc:
            raise PigpioTimeoutError(f"connect() timed out after {timeout}s") from exc

    def end(self) -> None:
        """Close the session and stop the background thread."""
        if self._loop is None or self._client is None:
            return
        try:
            self._call(self._client.end())
        finally:
            self._stop_loop()

    close = end

    # -- Requests -------------------------------------------------------------

    def request(
        self,
        command: int,
        p1: int = 0,
        p2: int = 0,
        p3: int = 0,
        extension: bytes = b"",
    ) -> Any:
        """Send a command and block for its result."""
        client = self._client_or_raise()

        async def _request() -> Any:
            return await client.request(command, p1, p2, p3, extension)

        return self._call(_request())

    def start_notifications(self, bits: int, callback: WatcherCallback) -> int:
        return self._call(self._client_or_raise().start_notifications(bits, callback))

    def stop_notifications(self, watcher_id: int) -> Any:
        return self._call(self._client_or_raise().stop_notifications(watcher_id))

    def pause_notifications(self) -> Any:
        return self._call(self._client_or_raise().pause_notifications())

    def close_notifications(self) -> Any:
        return self._call(self._client_or_raise().close_notifications())

    # -- Handler registration -------------------------------------------------

    def on(self, event: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator for event handlers; they run on the background thread."""

        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            self._handlers.append((event, fn))
            if self._client is not None:
                self._client.on(event, fn)
            return fn

        return decorator

    # -- Properties -----------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    def get_info(self) -> SessionInfo | None:
        return self._client.get_info() if self._client is not None else None

    def get_handle(self) -> int | None:
        return self._client.get_handle() if self._client is not None else None

    # -- Internal -------------------------------------------------------------

    def _ensure_loop(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._started.clear()
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name="pigpio-client")
        self._thread.start()
        self._started.wait()

    def _run_loop(self) -> None:
        """Background thread: run the async event loop."""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        try:
            loop.run_until_complete(self._create_client())
            self._started.set()
            loop.run_forever()
        except Exception as exc:
            logger.error("Background loop error: %s", exc)
        finally:
            self._started.set()
            loop.close()
            self._loop = None

    async def _create_client(self) -> None:
        self._client = AsyncPigpioClient(config=self._config)
        for event, fn in self._handlers:
            self._client.on(event, fn)

    def _stop_loop(self) -> None:
        loop = self._loop
        if loop is not None:
            loop.call_soon_threadsafe(loop.stop)
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=5.0)
        self._thread = None
        self._client = None

    def _client_or_raise(self) -> AsyncPigpioClient:
        if self._client is None or self._loop is None:
            raise PigpioNotConnectedError("Call connect() first")
        return self._client

    def _call(self, coro: Coroutine[Any, Any, Any], timeout: float | None = None) -> Any:
        if self._loop is None:
            coro.close()
            raise PigpioNotConnectedError("Call connect() first")
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout=timeout if timeout is not None else self._call_timeout)
        except TimeoutError:
            future.cancel()
            raise
