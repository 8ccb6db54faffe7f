# =============================================================================
# pigpio Python Client -- Notification Stream
# =============================================================================
#
# The notification socket is opened in-band with NOIB, which returns the
# handle later used by NB/NP/NC on the command socket. From then on the
# daemon streams 12 byte level reports. Watchers are called for every
# report whose levels differ from the previous report on a watched bit.
# =============================================================================

from __future__ import annotations

import asyncio

from typing import Any, Callable, Iterator

from ._logging import logger, wire_logger
from .assembler import NotificationAssembler
from .commands import Command
from .constants import (
    BSC_EVENT_ID,
    EVENT_BSC,
    HEADER_SIZE,
    MAX_WATCHERS,
    NTFY_FLAGS_EVENT,
    NTFY_FLAGS_GPIO,
)
from .errors import PigpioNotificationLimitError, PigpioProtocolError
from .protocol import decode_response, encode_request, error_for, hexdump
from .types import NotificationRecord, Watcher, WatcherCallback


class WatcherRegistry:
    """Registered watchers, keyed by a monotonically increasing id."""

    def __init__(
        self,
        limit: int = MAX_WATCHERS,
        *,
        spawn: Callable[[Any], Any] | None = None,
    ) -> None:
        self._limit = limit
        self._spawn = spawn
        self._watchers: dict[int, Watcher] = {}
        self._next_id = 0

    def __len__(self) -> int:
        return len(self._watchers)

    def __iter__(self) -> Iterator[Watcher]:
        return iter(list(self._watchers.values()))

    def __contains__(self, watcher_id: object) -> bool:
        return watcher_id in self._watchers

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def full(self) -> bool:
        return len(self._watchers) >= self._limit

    @property
    def mask(self) -> int:
        """OR of every watcher's bits."""
        bits = 0
        for watcher in self._watchers.values():
            bits |= watcher.bits
        return bits

    def check_capacity(self) -> None:
        if self.full:
            raise PigpioNotificationLimitError(self._limit)

    def add(self, bits: int, callback: WatcherCallback) -> Watcher:
        """Register a watcher.

        Raises:
            PigpioNotificationLimitError: All slots are taken; nothing is
                registered.
        """
        self.check_capacity()
        watcher = Watcher(self._next_id, int(bits), callback)
        self._next_id += 1
        self._watchers[watcher.id] = watcher
        return watcher

    def get(self, watcher_id: int) -> Watcher | None:
        return self._watchers.get(watcher_id)

    def remove(self, watcher_id: int) -> Watcher | None:
        return self._watchers.pop(watcher_id, None)

    def clear(self) -> None:
        self._watchers.clear()

    def dispatch(self, changed: int, levels: int, tick: int) -> None:
        for watcher in self:
            if watcher.bits & changed:
                self._invoke(watcher, levels, tick)

    def finish(self, watcher: Watcher) -> None:
        """Deliver the terminal ``(None, None)`` call."""
        self._invoke(watcher, None, None)

    def _invoke(self, watcher: Watcher, levels: int | None, tick: int | None) -> None:
        try:
            result = watcher.callback(levels, tick)
            if asyncio.iscoroutine(result) and self._spawn is not None:
                self._spawn(result)
        except Exception as exc:
            logger.error("Watcher %d callback error: %s", watcher.id, exc)


class NotificationStream:
    """Decode notification reports and fan them out to watchers.

    Args:
        watchers: Registry receiving level changes.
        on_event: Called with an event name for daemon side events.
    """

    def __init__(
        self,
        watchers: WatcherRegistry,
        on_event: Callable[[str], Any],
    ) -> None:
        self._watchers = watchers
        self._on_event = on_event
        self._assembler = NotificationAssembler()
        self.handle: int | None = None
        self.previous_levels: int | None = None

    async def open(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> int:
        """Run the NOIB exchange on a fresh notification socket.

        Raises:
            PigpioProtocolError: The reply is not an NOIB reply.
            PigpioRemoteError: The daemon refused to open a channel.
        """
        request = encode_request(Command.NOIB)
        wire_logger.debug("request NOIB: %s", hexdump(request))
        writer.write(request)
        await writer.drain()

        reply = await reader.readexactly(HEADER_SIZE)
        wire_logger.debug("response NOIB: %s", hexdump(reply))
        decoded = decode_response(reply)
        assert decoded is not None
        frame, _ = decoded
        if frame.command != Command.NOIB or frame.p1 != 0 or frame.p2 != 0:
            raise PigpioProtocolError(
                "Unexpected response to NOIB command on notification socket",
                api="NOIB",
            )
        if frame.failed:
            raise error_for(frame)

        self._assembler.clear()
        self.handle = frame.result
        logger.debug("Opened notification socket with handle %d", self.handle)
        return self.handle

    def feed(self, chunk: bytes) -> None:
        wire_logger.debug("notification chunk (%d bytes): %s", len(chunk), hexdump(chunk))
        for record in self._assembler.feed(chunk):
            self._process(record)

    def _process(self, record: NotificationRecord) -> None:
        if record.flags & NTFY_FLAGS_EVENT:
            # Event reports carry an event id, not a level change.
            if record.flags & NTFY_FLAGS_GPIO == BSC_EVENT_ID:
                self._on_event(EVENT_BSC)
            else:
                logger.debug("Ignoring event %d", record.flags & NTFY_FLAGS_GPIO)
            return

        changed = (self.previous_levels or 0) ^ record.levels
        self.previous_levels = record.levels
        if changed:
            self._watchers.dispatch(changed, record.levels, record.tick)

    def reset(self) -> None:
        """Forget the socket; previous levels are re-primed on the next start."""
        self._assembler.clear()
        self.handle = None
