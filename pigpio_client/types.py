# =============================================================================
# pigpio Python Client -- Type Definitions
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Callable

from ._version import __version__
from .constants import (
    CONNECTION_TIMEOUT,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    HW_TYPE1_GPIO_MASK,
    HW_TYPE1_REVISIONS,
    HW_TYPE2_GPIO_MASK,
    HW_TYPE2_REVISIONS,
    HW_TYPE3_GPIO_MASK,
    RETRY_BACKOFF,
)

# (levels, tick), or (None, None) once the watcher has been stopped.
WatcherCallback = Callable[[Any, Any], Any]


class ConnectionState(str, Enum):
    """Socket lifecycle state.

    Typical flow: DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED.
    RETRY_PENDING is entered between failed connect attempts while the
    retry timeout has not yet expired.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    RETRY_PENDING = "retry-pending"
    CONNECTED = "connected"


class SocketRole(str, Enum):
    """Which of the two daemon sockets a connection serves."""

    COMMAND = "commandSocket"
    NOTIFICATION = "notificationSocket"


class HardwareType(IntEnum):
    """Raspberry Pi board generation, derived from the hardware revision."""

    TYPE_1 = 1  # 26 pin header
    TYPE_2 = 2  # 26 pin plus 8 pin P5
    TYPE_3 = 3  # 40 pin header


@dataclass
class ClientConfig:
    """Connection options for :class:`~pigpio_client.client.AsyncPigpioClient`.

    Attributes:
        host: pigpiod host name or address.
        port: pigpiod socket port.
        pipelining: Allow several requests in flight on the command socket.
        timeout: Minutes to keep retrying a failed connect, ``0`` to fail on
            the first error.
        retry_backoff: Seconds between connect attempts.
        keepalive: Minutes of notification-socket silence before both sockets
            are torn down. ``None`` reuses *timeout*, ``0`` disables it.
        connect_timeout: Seconds allowed for a single TCP open.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    pipelining: bool = False
    timeout: float = DEFAULT_TIMEOUT
    retry_backoff: float = RETRY_BACKOFF
    keepalive: float | None = None
    connect_timeout: float = CONNECTION_TIMEOUT

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port must be 0-65535, got {self.port}")
        if self.timeout < 0:
            raise ValueError("timeout must not be negative")
        if self.retry_backoff <= 0:
            raise ValueError("retry_backoff must be positive")
        if self.keepalive is not None and self.keepalive < 0:
            raise ValueError("keepalive must not be negative")

    @property
    def retry_window(self) -> float:
        """Seconds during which failed connects are retried (0 = no retry)."""
        return self.timeout * 60.0

    @property
    def keepalive_window(self) -> float:
        """Seconds of notification silence tolerated (0 = unlimited)."""
        minutes = self.timeout if self.keepalive is None else self.keepalive
        return minutes * 60.0


@dataclass
class SessionInfo:
    """Connection and board facts for one client session.

    ``command_socket`` / ``notification_socket`` are ``None`` until the
    first connect, then ``True`` or ``False``. Version fields are rewritten
    on every command socket handshake and survive disconnects.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    pipelining: bool = False
    timeout: float = DEFAULT_TIMEOUT
    command_socket: bool | None = None
    notification_socket: bool | None = None
    pigpio_version: int | None = None
    hw_version: int | None = None
    hardware_type: HardwareType = HardwareType.TYPE_2
    user_gpio_mask: int = HW_TYPE2_GPIO_MASK
    version: str = __version__

    @classmethod
    def from_config(cls, config: ClientConfig) -> SessionInfo:
        return cls(
            host=config.host,
            port=config.port,
            pipelining=config.pipelining,
            timeout=config.timeout,
        )

    def connected(self, role: SocketRole) -> bool | None:
        if role is SocketRole.COMMAND:
            return self.command_socket
        return self.notification_socket

    def set_connected(self, role: SocketRole, value: bool) -> None:
        if role is SocketRole.COMMAND:
            self.command_socket = value
        else:
            self.notification_socket = value

    @property
    def fully_connected(self) -> bool:
        return bool(self.command_socket and self.notification_socket)

    @property
    def fully_disconnected(self) -> bool:
        return not self.command_socket and not self.notification_socket

    def apply_hardware_revision(self, revision: int) -> None:
        """Select hardware type and user GPIO mask for a board revision.

        Revisions 0 and 1 are not assigned to any board and leave the
        previous selection untouched.
        """
        self.hw_version = revision
        if HW_TYPE1_REVISIONS[0] <= revision <= HW_TYPE1_REVISIONS[1]:
            self.hardware_type = HardwareType.TYPE_1
            self.user_gpio_mask = HW_TYPE1_GPIO_MASK
        elif HW_TYPE2_REVISIONS[0] <= revision <= HW_TYPE2_REVISIONS[1]:
            self.hardware_type = HardwareType.TYPE_2
            self.user_gpio_mask = HW_TYPE2_GPIO_MASK
        elif revision > HW_TYPE2_REVISIONS[1]:
            self.hardware_type = HardwareType.TYPE_3
            self.user_gpio_mask = HW_TYPE3_GPIO_MASK

    def is_user_gpio(self, gpio: int) -> bool:
        return 0 <= gpio <= 31 and bool((1 << gpio) & self.user_gpio_mask)


@dataclass(frozen=True, slots=True)
class ResponseFrame:
    """One decoded reply from the command socket.

    Attributes:
        command: Command code echoed by the daemon.
        p1: First parameter echoed back.
        p2: Second parameter echoed back.
        result: ``p3`` -- unsigned for never-fail commands, otherwise signed
            (negative is an error, positive may be an extension length).
        extension: Trailing payload for extended-response commands.
    """

    command: int
    p1: int
    p2: int
    result: int
    extension: bytes = b""

    @property
    def failed(self) -> bool:
        return self.result < 0


@dataclass(frozen=True, slots=True)
class NotificationRecord:
    """One 12 byte report from the notification socket."""

    sequence: int
    flags: int
    tick: int
    levels: int


@dataclass(slots=True)
class Watcher:
    """A registered interest in a set of GPIO lines."""

    id: int
    bits: int
    callback: WatcherCallback = field(repr=False)
