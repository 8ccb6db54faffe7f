# =============================================================================
# pigpio Python Client -- GPIO Helper
# =============================================================================

from __future__ import annotations

import asyncio
import re
import struct

from typing import Any, Protocol

from .commands import Command
from .types import SessionInfo, WatcherCallback

_OUTPUT = re.compile(r"^outp?u?t?$")
_INPUT = re.compile(r"^inp?u?t?$")

MAX_GLITCH_STEADY = 300_000  # microseconds


class Dispatcher(Protocol):
    """What a :class:`Gpio` needs from the client that created it."""

    def request(
        self,
        command: int,
        p1: int = 0,
        p2: int = 0,
        p3: int = 0,
        extension: bytes = b"",
    ) -> asyncio.Future[Any]: ...

    def emit_error(self, error: BaseException) -> None: ...

    async def start_notifications(self, bits: int, callback: WatcherCallback) -> int: ...

    async def stop_notifications(self, watcher_id: int) -> Any: ...

    def get_info(self) -> SessionInfo: ...


class Gpio:
    """One user GPIO on the connected board.

    Obtain through :meth:`AsyncPigpioClient.gpio`. Every method returns the
    awaitable of the underlying request; argument errors are raised
    immediately.

    Raises:
        ValueError: *gpio* is not a user GPIO for the detected hardware.
    """

    def __init__(self, dispatcher: Dispatcher, gpio: int) -> None:
        if not isinstance(gpio, int) or not dispatcher.get_info().is_user_gpio(gpio):
            raise ValueError(f"GPIO {gpio!r} is not a user GPIO")
        self._pi = dispatcher
        self.gpio = gpio
        self._watcher_id: int | None = None

    def __repr__(self) -> str:
        return f"Gpio({self.gpio})"

    @property
    def bit(self) -> int:
        return 1 << self.gpio

    # -- Basic I/O ------------------------------------------------------------

    def mode_set(self, mode: str) -> asyncio.Future[Any]:
        """Set the pin mode: ``"input"`` or ``"output"`` (prefixes allowed)."""
        if not isinstance(mode, str):
            raise TypeError("mode must be a string")
        if _OUTPUT.match(mode):
            value = 1
        elif _INPUT.match(mode):
            value = 0
        else:
            raise ValueError(f"Invalid mode {mode!r}")
        return self._pi.request(Command.MODES, self.gpio, value)

    def mode_get(self) -> asyncio.Future[Any]:
        return self._pi.request(Command.MODEG, self.gpio)

    def pull_up_down(self, pud: int) -> asyncio.Future[Any]:
        # The daemon range checks pud.
        if not isinstance(pud, int):
            raise TypeError("pud must be an int")
        return self._pi.request(Command.PUD, self.gpio, pud)

    def read(self) -> asyncio.Future[Any]:
        return self._pi.request(Command.READ, self.gpio)

    def write(self, level: int) -> asyncio.Future[Any]:
        if level not in (0, 1):
            raise ValueError("level must be 0 or 1")
        return self._pi.request(Command.WRITE, self.gpio, int(level))

    def trigger(self, length: int, level: int) -> asyncio.Future[Any]:
        """Send a *length* microsecond pulse at *level*."""
        return self._pi.request(
            Command.TRIG, self.gpio, length, 4, struct.pack("<I", level)
        )

    # -- PWM / Servo ----------------------------------------------------------

    def analog_write(self, duty_cycle: int) -> asyncio.Future[Any]:
        return self._pi.request(Command.PWM, self.gpio, duty_cycle)

    set_pwm_duty_cycle = analog_write

    def set_pwm_frequency(self, frequency: int) -> asyncio.Future[Any]:
        return self._pi.request(Command.PFS, self.gpio, frequency)

    def get_pwm_duty_cycle(self) -> asyncio.Future[Any]:
        return self._pi.request(Command.GDC, self.gpio)

    def hardware_pwm(self, frequency: int, duty_cycle: int) -> asyncio.Future[Any]:
        return self._pi.request(
            Command.HP, self.gpio, frequency, 4, struct.pack("<I", duty_cycle)
        )

    def set_servo_pulsewidth(self, pulse_width: int) -> asyncio.Future[Any]:
        return self._pi.request(Command.SERVO, self.gpio, pulse_width)

    def get_servo_pulsewidth(self) -> asyncio.Future[Any]:
        return self._pi.request(Command.GPW, self.gpio)

    # -- Glitch filter --------------------------------------------------------

    def glitch_set(self, steady: int) -> asyncio.Future[Any]:
        if not isinstance(steady, int) or not 0 <= steady <= MAX_GLITCH_STEADY:
            raise ValueError(f"steady must be 0-{MAX_GLITCH_STEADY}")
        return self._pi.request(Command.FG, self.gpio, steady)

    # -- Notifications --------------------------------------------------------

    async def notify(self, callback: WatcherCallback) -> int:
        """Call ``callback(level, tick)`` on every level change of this pin.

        The callback receives ``(None, None)`` after :meth:`end_notify`.

        Raises:
            RuntimeError: A notifier is already registered for this pin.
        """
        if self._watcher_id is not None:
            raise RuntimeError(f"Notifier already registered for GPIO {self.gpio}")
        gpio = self.gpio
        bit = self.bit

        def _on_change(levels: int | None, tick: int | None) -> Any:
            if levels is None:
                return callback(None, None)
            return callback((levels & bit) >> gpio, tick)

        self._watcher_id = await self._pi.start_notifications(bit, _on_change)
        return self._watcher_id

    async def end_notify(self) -> None:
        if self._watcher_id is None:
            return
        watcher_id, self._watcher_id = self._watcher_id, None
        await self._pi.stop_notifications(watcher_id)
