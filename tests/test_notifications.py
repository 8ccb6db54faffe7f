"""Tests for the watcher registry and notification stream decoding."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from pigpio_client.commands import Command
from pigpio_client.constants import (
    EVENT_BSC,
    MAX_WATCHERS,
    NTFY_FLAGS_ALIVE,
    NTFY_FLAGS_EVENT,
    NTFY_FLAGS_WDOG,
)
from pigpio_client.errors import (
    PigpioNotificationLimitError,
    PigpioProtocolError,
    PigpioRemoteError,
)
from pigpio_client.notifications import NotificationStream, WatcherRegistry
from pigpio_client.protocol import encode_notification, encode_response


def _stream():
    registry = WatcherRegistry()
    events = []
    return registry, NotificationStream(registry, on_event=events.append), events


class TestWatcherRegistry:
    def test_ids_increase(self):
        registry = WatcherRegistry()
        first = registry.add(1, lambda *a: None)
        second = registry.add(2, lambda *a: None)
        registry.remove(first.id)
        third = registry.add(4, lambda *a: None)
        assert (first.id, second.id, third.id) == (0, 1, 2)

    def test_mask(self):
        registry = WatcherRegistry()
        a = registry.add(0b0011, lambda *a: None)
        registry.add(0b0110, lambda *a: None)
        assert registry.mask == 0b0111
        registry.remove(a.id)
        assert registry.mask == 0b0110

    def test_limit(self):
        registry = WatcherRegistry()
        for i in range(MAX_WATCHERS):
            registry.add(1 << (i % 32), lambda *a: None)
        with pytest.raises(PigpioNotificationLimitError) as info:
            registry.add(1, lambda *a: None)
        assert info.value.code == "PI_CLIENT_NOTIFICATION_LIMIT"
        assert len(registry) == MAX_WATCHERS

    def test_dispatch_only_intersecting(self):
        registry = WatcherRegistry()
        hits = []
        registry.add(0b01, lambda levels, tick: hits.append(("a", levels, tick)))
        registry.add(0b10, lambda levels, tick: hits.append(("b", levels, tick)))
        registry.dispatch(0b10, 0b10, 99)
        assert hits == [("b", 0b10, 99)]

    def test_failing_callback_isolated(self):
        registry = WatcherRegistry()
        hits = []

        def broken(levels, tick):
            raise RuntimeError("oops")

        registry.add(1, broken)
        registry.add(1, lambda levels, tick: hits.append(levels))
        registry.dispatch(1, 1, 0)
        assert hits == [1]

    def test_finish_sends_sentinel(self):
        registry = WatcherRegistry()
        calls = []
        watcher = registry.add(1, lambda levels, tick: calls.append((levels, tick)))
        registry.finish(watcher)
        assert calls == [(None, None)]

    @pytest.mark.asyncio
    async def test_coroutine_callback_spawned(self):
        spawned = []
        registry = WatcherRegistry(spawn=spawned.append)

        async def handler(levels, tick):
            return None

        registry.add(1, handler)
        registry.dispatch(1, 1, 0)
        assert len(spawned) == 1
        await spawned[0]


class TestNotificationStream:
    def test_xor_change_detection(self):
        registry, stream, _ = _stream()
        hits = []
        registry.add(1 << 4, lambda levels, tick: hits.append((levels, tick)))

        sequence = [0x00, 0x10, 0x10, 0x11, 0x01, 0x01, 0x00, 0x10]
        data = b"".join(encode_notification(i, 0, i, lv) for i, lv in enumerate(sequence))
        stream.feed(data)

        assert hits == [(0x10, 1), (0x01, 4), (0x10, 7)]
        assert stream.previous_levels == 0x10

    def test_unprimed_levels_treated_as_zero(self):
        registry, stream, _ = _stream()
        hits = []
        registry.add(1, lambda levels, tick: hits.append(levels))
        stream.feed(encode_notification(0, 0, 0, 1))
        assert hits == [1]

    def test_primed_levels_suppress_first_report(self):
        registry, stream, _ = _stream()
        hits = []
        registry.add(1, lambda levels, tick: hits.append(levels))
        stream.previous_levels = 1
        stream.feed(encode_notification(0, NTFY_FLAGS_ALIVE, 0, 1))
        assert hits == []

    def test_watchdog_report_without_change_is_quiet(self):
        registry, stream, _ = _stream()
        hits = []
        registry.add(1 << 3, lambda levels, tick: hits.append(levels))
        stream.previous_levels = 0x8
        stream.feed(encode_notification(0, NTFY_FLAGS_WDOG | 3, 10, 0x8))
        assert hits == []

    def test_bsc_event(self):
        registry, stream, events = _stream()
        hits = []
        registry.add(0xFFFFFFFF, lambda levels, tick: hits.append(levels))
        stream.feed(encode_notification(0, NTFY_FLAGS_EVENT | 31, 0, 0xFFFF))
        assert events == [EVENT_BSC]
        assert hits == []
        assert stream.previous_levels is None

    def test_other_event_ignored(self):
        registry, stream, events = _stream()
        stream.feed(encode_notification(0, NTFY_FLAGS_EVENT | 3, 0, 0))
        assert events == []

    def test_fragmented_records(self):
        registry, stream, _ = _stream()
        hits = []
        registry.add(1, lambda levels, tick: hits.append(tick))
        data = encode_notification(0, 0, 5, 1) + encode_notification(1, 0, 6, 0)
        for i in range(len(data)):
            stream.feed(data[i : i + 1])
        assert hits == [5, 6]


def _reader(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    return reader


def _writer() -> MagicMock:
    writer = MagicMock()
    writer.drain = AsyncMock()
    return writer


class TestNotificationHandshake:
    @pytest.mark.asyncio
    async def test_open_returns_handle(self):
        _, stream, _ = _stream()
        writer = _writer()
        handle = await stream.open(_reader(encode_response(Command.NOIB, 0, 0, 3)), writer)
        assert handle == 3
        assert stream.handle == 3
        sent = writer.write.call_args[0][0]
        assert sent == encode_response(Command.NOIB, 0, 0, 0)

    @pytest.mark.asyncio
    async def test_unexpected_reply(self):
        _, stream, _ = _stream()
        with pytest.raises(PigpioProtocolError, match="NOIB"):
            await stream.open(_reader(encode_response(Command.NB, 0, 0, 0)), _writer())

    @pytest.mark.asyncio
    async def test_nonzero_params_rejected(self):
        _, stream, _ = _stream()
        with pytest.raises(PigpioProtocolError):
            await stream.open(_reader(encode_response(Command.NOIB, 1, 0, 0)), _writer())

    @pytest.mark.asyncio
    async def test_refused(self):
        _, stream, _ = _stream()
        with pytest.raises(PigpioRemoteError) as info:
            await stream.open(_reader(encode_response(Command.NOIB, 0, 0, -24)), _writer())
        assert info.value.code == "PI_NO_HANDLE"

    @pytest.mark.asyncio
    async def test_eof_during_handshake(self):
        _, stream, _ = _stream()
        reader = _reader(b"\x63\x00")
        reader.feed_eof()
        with pytest.raises(asyncio.IncompleteReadError):
            await stream.open(reader, _writer())

    def test_reset_forgets_handle(self):
        _, stream, _ = _stream()
        stream.handle = 5
        stream.reset()
        assert stream.handle is None
