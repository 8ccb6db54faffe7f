# =============================================================================
# pigpio Python Client -- Stream Reassembly
# =============================================================================
#
# TCP delivers arbitrary chunks. Both assemblers keep the unprocessed tail
# in a buffer; after every feed() the buffer holds less than one frame.
# =============================================================================

from __future__ import annotations

from .constants import NOTIFICATION_SIZE
from .protocol import decode_notification, decode_response
from .types import NotificationRecord, ResponseFrame


class ResponseAssembler:
    """Split the command socket byte stream into response frames."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet forming a complete frame."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[ResponseFrame]:
        self._buffer += chunk
        frames: list[ResponseFrame] = []
        while True:
            decoded = decode_response(self._buffer)
            if decoded is None:
                break
            frame, consumed = decoded
            del self._buffer[:consumed]
            frames.append(frame)
        return frames

    def clear(self) -> None:
        self._buffer.clear()


class NotificationAssembler:
    """Split the notification socket byte stream into 12 byte records."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[NotificationRecord]:
        self._buffer += chunk
        usable = len(self._buffer) - len(self._buffer) % NOTIFICATION_SIZE
        records = [
            decode_notification(self._buffer, offset)
            for offset in range(0, usable, NOTIFICATION_SIZE)
        ]
        del self._buffer[:usable]
        return records

    def clear(self) -> None:
        self._buffer.clear()
