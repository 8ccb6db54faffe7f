"""Asyncio client for the pigpio daemon (pigpiod) socket interface.

Async usage::

    from pigpio_client import pigpio

    async with pigpio("raspberrypi.local", timeout=2) as pi:
        button = pi.gpio(4)
        await button.mode_set("input")
        await button.notify(lambda level, tick: print(level, tick))

Sync usage::

    from pigpio_client import Command, SyncPigpioClient

    pi = SyncPigpioClient("raspberrypi.local")
    pi.connect()
    print(pi.request(Command.HWVER))
    pi.end()
"""

from ._version import __version__
from .client import AsyncPigpioClient
from .commands import Command
from .errors import (
    PigpioConnectionError,
    PigpioError,
    PigpioNotConnectedError,
    PigpioNotificationLimitError,
    PigpioProtocolError,
    PigpioRemoteError,
    PigpioTimeoutError,
)
from .gpio import Gpio
from .sync_client import SyncPigpioClient
from .types import (
    ClientConfig,
    ConnectionState,
    HardwareType,
    SessionInfo,
    SocketRole,
)


def pigpio(host: str = "localhost", port: int = 8888, **kwargs) -> AsyncPigpioClient:
    """Create a pigpio client.

    Use as an async context manager, or call ``await pi.connect()``.
    Keyword arguments are forwarded to :class:`AsyncPigpioClient` -- common
    ones: ``pipelining``, ``timeout``, ``keepalive``.

    Raises:
        ValueError: If an option is out of range.
    """
    return AsyncPigpioClient(host, port, **kwargs)


__all__ = [
    "__version__",
    "pigpio",
    "AsyncPigpioClient",
    "SyncPigpioClient",
    "Gpio",
    "Command",
    "ClientConfig",
    "SessionInfo",
    "ConnectionState",
    "HardwareType",
    "SocketRole",
    "PigpioError",
    "PigpioRemoteError",
    "PigpioProtocolError",
    "PigpioConnectionError",
    "PigpioNotConnectedError",
    "PigpioTimeoutError",
    "PigpioNotificationLimitError",
]
