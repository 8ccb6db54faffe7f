# =============================================================================
# pigpio Python Client -- Error Types
# =============================================================================

from __future__ import annotations


class PigpioError(Exception):
    """Base exception for all pigpio client errors.

    Attributes:
        code: Symbolic error code, e.g. ``"PI_BAD_GPIO"``.
        api: Name of the command that produced the error, if any.
    """

    def __init__(self, message: str = "", *, code: str = "PI_CLIENT", api: str = "") -> None:
        self.code = code
        self.api = api
        super().__init__(message)

    def __str__(self) -> str:
        message = super().__str__()
        if self.api:
            return f"{message}, api: {self.api}"
        return message


class PigpioRemoteError(PigpioError):
    """The daemon answered a request with a negative result code."""

    def __init__(self, errno: int, code: str, message: str, *, api: str = "") -> None:
        self.errno = errno
        super().__init__(message, code=code, api=api)


class PigpioProtocolError(PigpioError):
    """The byte stream violated the protocol (unexpected reply, queue underflow)."""


class PigpioConnectionError(PigpioError):
    """Connection-related errors (refused, reset, lost, could not connect)."""


class PigpioNotConnectedError(PigpioConnectionError):
    """A request was submitted while the command socket was down."""

    def __init__(self, message: str = "Not connected to pigpiod", **kwargs) -> None:
        super().__init__(message, **kwargs)


class PigpioTimeoutError(PigpioConnectionError):
    """Connect retry timeout or keep-alive timeout expired."""


class PigpioNotificationLimitError(PigpioError):
    """All watcher slots are in use."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(
            f"Notification limit ({limit}) reached, cannot add this notifier",
            code="PI_CLIENT_NOTIFICATION_LIMIT",
        )
