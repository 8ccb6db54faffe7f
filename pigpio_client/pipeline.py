# =============================================================================
# pigpio Python Client -- Request Pipeline
# =============================================================================
#
# The wire format has no correlation id: responses are matched to requests
# purely by order. Every frame written to the command socket is appended to
# the in-flight queue at the moment it is written, and every decoded
# response pops the head of that queue.
#
# Without pipelining at most one request is in flight; later requests wait
# in the deferred queue and are released one per completed response.
# =============================================================================

from __future__ import annotations

import asyncio

from collections import deque
from typing import Any, Callable

from ._logging import logger, wire_logger
from .assembler import ResponseAssembler
from .commands import command_name
from .errors import PigpioError, PigpioNotConnectedError, PigpioProtocolError
from .protocol import encode_request, error_for, hexdump, response_value
from .types import ResponseFrame

# (error, value) -- exactly one of the two is None.
CompletionCallback = Callable[[PigpioError | None, Any], Any]


class PendingRequest:
    """One encoded request waiting for its response."""

    __slots__ = ("command", "frame", "future", "on_complete")

    def __init__(
        self,
        command: int,
        frame: bytes,
        future: asyncio.Future[Any] | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> None:
        self.command = command
        self.frame = frame
        self.future = future
        self.on_complete = on_complete

    @property
    def owned(self) -> bool:
        """Whether someone is waiting on the outcome."""
        return self.future is not None or self.on_complete is not None

    def complete(self, error: PigpioError | None, value: Any) -> None:
        if self.on_complete is not None:
            try:
                self.on_complete(error, value)
            except Exception:
                logger.exception("Completion callback for %s failed", command_name(self.command))
        if self.future is not None and not self.future.done():
            if error is not None:
                self.future.set_exception(error)
            else:
                self.future.set_result(value)

    def abandon(self) -> None:
        if self.future is not None and not self.future.done():
            self.future.cancel()


class RequestPipeline:
    """FIFO request/response correlation for the command socket.

    Args:
        pipelining: Allow more than one request in flight.
        on_error: Receives errors that no request owns: failed
            fire-and-forget requests and responses that arrive with nothing
            in flight.
    """

    def __init__(
        self,
        *,
        pipelining: bool = False,
        on_error: Callable[[PigpioError], Any] | None = None,
    ) -> None:
        self._pipelining = pipelining
        self._on_error = on_error
        self._write: Callable[[bytes], Any] | None = None
        self._assembler = ResponseAssembler()
        self._in_flight: deque[PendingRequest] = deque()
        self._queued: deque[PendingRequest] = deque()

    # -- Properties -----------------------------------------------------------

    @property
    def attached(self) -> bool:
        return self._write is not None

    @property
    def in_flight(self) -> int:
        """Requests written but not yet answered."""
        return len(self._in_flight)

    @property
    def queued(self) -> int:
        """Requests waiting to be written."""
        return len(self._queued)

    @property
    def buffered(self) -> int:
        return self._assembler.pending

    # -- Transport binding ----------------------------------------------------

    def attach(self, write: Callable[[bytes], Any]) -> None:
        """Bind to a freshly connected socket, dropping any previous state."""
        self.reset()
        self._write = write

    def detach(self) -> None:
        """Unbind from the socket and abandon everything outstanding."""
        self._write = None
        self.reset()

    def reset(self) -> None:
        abandoned = len(self._in_flight) + len(self._queued)
        if abandoned:
            logger.debug("Abandoning %d outstanding request(s)", abandoned)
        pending = list(self._in_flight) + list(self._queued)
        self._in_flight.clear()
        self._queued.clear()
        self._assembler.clear()
        for request in pending:
            request.abandon()

    # -- Submit ---------------------------------------------------------------

    def submit(
        self,
        command: int,
        p1: int = 0,
        p2: int = 0,
        p3: int = 0,
        extension: bytes = b"",
        *,
        on_complete: CompletionCallback | None = None,
    ) -> asyncio.Future[Any]:
        """Send a request and return a future for its result.

        The future fails with :class:`PigpioNotConnectedError` right away
        when no socket is attached.

        Raises:
            ValueError: The extension does not fit the command.
        """
        frame = encode_request(command, p1, p2, p3, extension)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        if self._write is None:
            future.set_exception(PigpioNotConnectedError(api=command_name(command)))
            return future
        self._enqueue(PendingRequest(command, frame, future, on_complete))
        return future

    def post(
        self,
        command: int,
        p1: int = 0,
        p2: int = 0,
        p3: int = 0,
        extension: bytes = b"",
        *,
        on_complete: CompletionCallback | None = None,
    ) -> None:
        """Send a request nobody awaits.

        Without *on_complete*, a failure is reported to ``on_error``.
        """
        frame = encode_request(command, p1, p2, p3, extension)
        if self._write is None:
            self._report(PigpioNotConnectedError(api=command_name(command)))
            return
        self._enqueue(PendingRequest(command, frame, None, on_complete))

    def _enqueue(self, request: PendingRequest) -> None:
        if self._queued or (self._in_flight and not self._pipelining):
            wire_logger.debug(
                "deferred %s: %s", command_name(request.command), hexdump(request.frame)
            )
            self._queued.append(request)
            return
        self._send(request)

    def _send(self, request: PendingRequest) -> None:
        assert self._write is not None
        wire_logger.debug("request %s: %s", command_name(request.command), hexdump(request.frame))
        try:
            self._write(request.frame)
        except PigpioNotConnectedError as exc:
            # Transport closed under us; the read loop reports the teardown.
            exc.api = command_name(request.command)
            self._fail(request, exc)
            return
        # Only written frames are in flight.
        self._in_flight.append(request)

    # -- Receive --------------------------------------------------------------

    def feed(self, chunk: bytes) -> None:
        """Process bytes read from the command socket."""
        wire_logger.debug("response chunk (%d bytes): %s", len(chunk), hexdump(chunk))
        for frame in self._assembler.feed(chunk):
            if self._write is None:
                # A completion callback tore the connection down.
                return
            self._dispatch(frame)
            if self._queued and self._write is not None:
                self._send(self._queued.popleft())

    def _dispatch(self, frame: ResponseFrame) -> None:
        api = command_name(frame.command)
        if not self._in_flight:
            self._report(
                PigpioProtocolError(
                    f"Received {api} response with no request in flight", api=api
                )
            )
            return

        request = self._in_flight.popleft()
        if request.command != frame.command:
            logger.warning(
                "Response %s does not match request %s",
                api,
                command_name(request.command),
            )

        if frame.failed:
            self._fail(request, error_for(frame))
            return
        request.complete(None, response_value(frame))

    def _fail(self, request: PendingRequest, error: PigpioError) -> None:
        if request.owned:
            request.complete(error, None)
        else:
            self._report(error)

    def _report(self, error: PigpioError) -> None:
        if self._on_error is not None:
            self._on_error(error)
        else:
            logger.error("Unhandled pigpio error: %s", error)


def attach_callback(future: asyncio.Future[Any], callback: CompletionCallback) -> None:
    """Deliver a future's outcome as ``callback(error, result)``.

    Cancelled futures (abandoned by a teardown) never reach the callback.
    """

    def _done(fut: asyncio.Future[Any]) -> None:
        if fut.cancelled():
            return
        error = fut.exception()
        try:
            if error is not None:
                callback(error, None)
            else:
                callback(None, fut.result())
        except Exception:
            logger.exception("Request callback failed")

    future.add_done_callback(_done)
