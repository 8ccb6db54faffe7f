"""Tests for the request pipeline (FIFO correlation without sockets)."""

import asyncio
import struct

import pytest

from pigpio_client.commands import Command
from pigpio_client.errors import (
    PigpioNotConnectedError,
    PigpioProtocolError,
    PigpioRemoteError,
)
from pigpio_client.pipeline import RequestPipeline, attach_callback
from pigpio_client.protocol import encode_response


def _commands(written):
    return [struct.unpack_from("<I", frame)[0] for frame in written]


@pytest.fixture
def errors():
    return []


def _pipeline(errors, *, pipelining=False):
    written = []
    pipe = RequestPipeline(pipelining=pipelining, on_error=errors.append)
    pipe.attach(written.append)
    return pipe, written


class TestQueueing:
    @pytest.mark.asyncio
    async def test_without_pipelining_one_in_flight(self, errors):
        pipe, written = _pipeline(errors)
        futures = [pipe.submit(Command.READ, gpio) for gpio in (1, 2, 3)]

        assert len(written) == 1
        assert pipe.in_flight == 1
        assert pipe.queued == 2

        pipe.feed(encode_response(Command.READ, 1, 0, 0))
        assert len(written) == 2
        assert pipe.in_flight == 1
        assert pipe.queued == 1
        assert await futures[0] == 0

        pipe.feed(encode_response(Command.READ, 2, 0, 1))
        pipe.feed(encode_response(Command.READ, 3, 0, 1))
        assert [await f for f in futures] == [0, 1, 1]
        assert pipe.in_flight == 0
        assert pipe.queued == 0

    @pytest.mark.asyncio
    async def test_with_pipelining_all_written(self, errors):
        pipe, written = _pipeline(errors, pipelining=True)
        for gpio in (1, 2, 3):
            pipe.submit(Command.READ, gpio)
        assert len(written) == 3
        assert pipe.in_flight == 3
        assert pipe.queued == 0

    @pytest.mark.asyncio
    async def test_fifo_with_mixed_extensions_byte_at_a_time(self, errors):
        pipe, written = _pipeline(errors, pipelining=True)
        futures = [
            pipe.submit(Command.SPIR, 0, 3),
            pipe.submit(Command.READ, 4),
            pipe.submit(Command.I2CRD, 1, 1),
            pipe.submit(Command.TICK),
        ]
        stream = (
            encode_response(Command.SPIR, 0, 3, 3, b"xyz")
            + encode_response(Command.READ, 4, 0, 1)
            + encode_response(Command.I2CRD, 1, 1, 1, b"!")
            + encode_response(Command.TICK, 0, 0, 0xFFFFFFF0)
        )
        for i in range(len(stream)):
            pipe.feed(stream[i : i + 1])

        assert await futures[0] == (3, b"xyz")
        assert await futures[1] == 1
        assert await futures[2] == (1, b"!")
        assert await futures[3] == 0xFFFFFFF0
        assert pipe.buffered == 0
        assert errors == []

    @pytest.mark.asyncio
    async def test_queued_request_released_after_error(self, errors):
        pipe, written = _pipeline(errors)
        first = pipe.submit(Command.WRITE, 99, 1)
        second = pipe.submit(Command.READ, 4)

        pipe.feed(encode_response(Command.WRITE, 99, 1, -2))
        assert _commands(written) == [Command.WRITE, Command.READ]
        with pytest.raises(PigpioRemoteError) as info:
            await first
        assert info.value.code == "PI_BAD_USER_GPIO"

        pipe.feed(encode_response(Command.READ, 4, 0, 0))
        assert await second == 0

    @pytest.mark.asyncio
    async def test_callback_submitting_keeps_order(self, errors):
        pipe, written = _pipeline(errors)
        order = []

        def chained(error, value):
            order.append(("first", value))
            pipe.post(Command.TICK, on_complete=lambda e, v: order.append(("chained", v)))

        pipe.post(Command.READ, 4, on_complete=chained)
        pipe.post(Command.READ, 5, on_complete=lambda e, v: order.append(("second", v)))

        pipe.feed(encode_response(Command.READ, 4, 0, 1))
        pipe.feed(encode_response(Command.READ, 5, 0, 0))
        pipe.feed(encode_response(Command.TICK, 0, 0, 42))
        assert order == [("first", 1), ("second", 0), ("chained", 42)]
        assert _commands(written) == [Command.READ, Command.READ, Command.TICK]


class TestErrors:
    @pytest.mark.asyncio
    async def test_not_attached_fails_fast(self, errors):
        pipe = RequestPipeline(on_error=errors.append)
        future = pipe.submit(Command.READ, 4)
        with pytest.raises(PigpioNotConnectedError):
            await future
        assert pipe.in_flight == 0

    @pytest.mark.asyncio
    async def test_unexpected_response_reported(self, errors):
        pipe, _ = _pipeline(errors)
        pipe.feed(encode_response(Command.READ, 4, 0, 1))
        assert len(errors) == 1
        assert isinstance(errors[0], PigpioProtocolError)

    @pytest.mark.asyncio
    async def test_failed_post_reported(self, errors):
        pipe, _ = _pipeline(errors)
        pipe.post(Command.EVM, 0, 1 << 31)
        pipe.feed(encode_response(Command.EVM, 0, 1 << 31, -143))
        assert len(errors) == 1
        assert errors[0].code == "PI_BAD_EVENT_ID"

    @pytest.mark.asyncio
    async def test_post_with_on_complete_owns_error(self, errors):
        pipe, _ = _pipeline(errors)
        seen = []
        pipe.post(Command.WRITE, 4, 1, on_complete=lambda e, v: seen.append(e))
        pipe.feed(encode_response(Command.WRITE, 4, 1, -2))
        assert isinstance(seen[0], PigpioRemoteError)
        assert errors == []

    @pytest.mark.asyncio
    async def test_post_not_attached_reported(self, errors):
        pipe = RequestPipeline(on_error=errors.append)
        pipe.post(Command.NB, 0, 1)
        assert isinstance(errors[0], PigpioNotConnectedError)

    @pytest.mark.asyncio
    async def test_write_on_closed_transport_fails_request(self, errors):
        written = []
        transport = {"closed": True}

        def write(frame):
            if transport["closed"]:
                raise PigpioNotConnectedError("commandSocket is not connected")
            written.append(frame)

        pipe = RequestPipeline(on_error=errors.append)
        pipe.attach(write)
        failed = pipe.submit(Command.READ, 4)
        with pytest.raises(PigpioNotConnectedError) as info:
            await failed
        assert info.value.api == "READ"
        assert pipe.in_flight == 0

        pipe.post(Command.NB, 0, 1)
        assert isinstance(errors[0], PigpioNotConnectedError)
        assert pipe.in_flight == 0

        # Nothing stale blocks the next request.
        transport["closed"] = False
        ok = pipe.submit(Command.READ, 5)
        assert len(written) == 1
        assert pipe.queued == 0
        pipe.feed(encode_response(Command.READ, 5, 0, 1))
        assert await ok == 1

    @pytest.mark.asyncio
    async def test_bad_extension_raises_synchronously(self, errors):
        pipe, written = _pipeline(errors)
        with pytest.raises(ValueError):
            pipe.submit(Command.READ, 4, 0, 0, b"x")
        assert written == []


class TestTeardown:
    @pytest.mark.asyncio
    async def test_detach_abandons_everything(self, errors):
        pipe, _ = _pipeline(errors)
        futures = [pipe.submit(Command.READ, gpio) for gpio in (1, 2)]
        pipe.feed(b"\x03\x00")

        pipe.detach()
        assert all(f.cancelled() for f in futures)
        assert pipe.in_flight == 0
        assert pipe.queued == 0
        assert pipe.buffered == 0
        assert not pipe.attached

    @pytest.mark.asyncio
    async def test_attach_resets_previous_socket(self, errors):
        pipe, _ = _pipeline(errors)
        stale = pipe.submit(Command.READ, 1)
        written = []
        pipe.attach(written.append)
        assert stale.cancelled()
        pipe.submit(Command.READ, 2)
        assert len(written) == 1


class TestAttachCallback:
    @pytest.mark.asyncio
    async def test_result_delivered(self):
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        calls = []
        attach_callback(future, lambda e, v: calls.append((e, v)))
        future.set_result(5)
        await asyncio.sleep(0)
        assert calls == [(None, 5)]

    @pytest.mark.asyncio
    async def test_error_delivered(self):
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        calls = []
        attach_callback(future, lambda e, v: calls.append((e, v)))
        error = PigpioProtocolError("boom")
        future.set_exception(error)
        await asyncio.sleep(0)
        assert calls == [(error, None)]

    @pytest.mark.asyncio
    async def test_cancelled_never_delivered(self):
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        calls = []
        attach_callback(future, lambda e, v: calls.append((e, v)))
        future.cancel()
        await asyncio.sleep(0)
        assert calls == []
