# =============================================================================
# pigpio Python Client -- Wire Protocol Codec
# =============================================================================
#
# Command socket (client -> daemon):
#   <u32 command><u32 p1><u32 p2><u32 p3>[extension]
#   p3 is the extension length for commands in EXTENDED_REQUEST.
#
# Command socket (daemon -> client):
#   <u32 command><u32 p1><u32 p2><i32|u32 p3>[extension]
#   p3 is unsigned for NEVER_FAILS commands; otherwise negative is an error
#   code and, for EXTENDED_RESPONSE commands, positive is the length of a
#   trailing extension.
#
# Notification socket (daemon -> client), after the NOIB handshake:
#   <u16 seq><u16 flags><u32 tick><u32 levels>
# =============================================================================

from __future__ import annotations

import struct

from typing import Any

from .commands import EXTENDED_REQUEST, EXTENDED_RESPONSE, NEVER_FAILS, command_name
from .constants import HEADER_SIZE, UINT32_MASK
from .error_codes import describe_error
from .errors import PigpioError, PigpioProtocolError, PigpioRemoteError
from .types import NotificationRecord, ResponseFrame

_REQUEST = struct.Struct("<IIII")
_RESPONSE_UNSIGNED = struct.Struct("<IIII")
_RESPONSE_SIGNED = struct.Struct("<IIIi")
_NOTIFICATION = struct.Struct("<HHII")


def encode_request(
    command: int,
    p1: int = 0,
    p2: int = 0,
    p3: int = 0,
    extension: bytes = b"",
) -> bytes:
    """Build one request frame.

    For extended-request commands the extension is appended and ``p3`` is
    replaced by its length. Negative parameters are sent as their 32-bit
    two's complement.

    Raises:
        ValueError: If an extension is given for a command that does not
            carry one.
    """
    if extension and command not in EXTENDED_REQUEST:
        raise ValueError(f"{command_name(command)} does not take an extension")
    if command in EXTENDED_REQUEST:
        p3 = len(extension)
    header = _REQUEST.pack(
        command & UINT32_MASK,
        p1 & UINT32_MASK,
        p2 & UINT32_MASK,
        p3 & UINT32_MASK,
    )
    return header + bytes(extension)


def decode_response(buf: bytes | bytearray | memoryview) -> tuple[ResponseFrame, int] | None:
    """Decode the first response frame in *buf*.

    Returns ``(frame, consumed)`` or ``None`` when *buf* does not yet hold a
    complete frame (header or extension still short). Nothing is consumed in
    that case.
    """
    if len(buf) < HEADER_SIZE:
        return None

    command = int.from_bytes(buf[0:4], "little")
    if command in NEVER_FAILS:
        _, p1, p2, result = _RESPONSE_UNSIGNED.unpack_from(buf)
    else:
        _, p1, p2, result = _RESPONSE_SIGNED.unpack_from(buf)

    ext_len = 0
    if result > 0 and command in EXTENDED_RESPONSE:
        ext_len = result
    total = HEADER_SIZE + ext_len
    if len(buf) < total:
        return None

    extension = bytes(buf[HEADER_SIZE:total])
    return ResponseFrame(command, p1, p2, result, extension), total


def decode_notification(buf: bytes | bytearray | memoryview, offset: int = 0) -> NotificationRecord:
    sequence, flags, tick, levels = _NOTIFICATION.unpack_from(buf, offset)
    return NotificationRecord(sequence, flags, tick, levels)


def encode_notification(sequence: int, flags: int, tick: int, levels: int) -> bytes:
    """Pack a notification record (used by test daemons and tools)."""
    return _NOTIFICATION.pack(
        sequence & 0xFFFF, flags & 0xFFFF, tick & UINT32_MASK, levels & UINT32_MASK
    )


def encode_response(command: int, p1: int, p2: int, result: int, extension: bytes = b"") -> bytes:
    """Pack a response frame as the daemon would send it."""
    return _REQUEST.pack(
        command & UINT32_MASK,
        p1 & UINT32_MASK,
        p2 & UINT32_MASK,
        result & UINT32_MASK,
    ) + bytes(extension)


def response_value(frame: ResponseFrame) -> Any:
    """Caller-facing result of a successful frame.

    ``frame.result`` for ordinary commands, ``(result, extension)`` for
    extended-response commands.
    """
    if frame.command in EXTENDED_RESPONSE:
        return frame.result, frame.extension
    return frame.result


def error_for(frame: ResponseFrame) -> PigpioError:
    """Translate a failed frame into an exception.

    A negative code missing from the error table is itself a protocol
    violation and is reported as :class:`PigpioProtocolError`.
    """
    api = command_name(frame.command)
    try:
        code, message = describe_error(frame.result)
    except KeyError:
        return PigpioProtocolError(
            f"Unknown pigpio error code {frame.result}",
            code="PI_CLIENT_UNKNOWN_ERROR",
            api=api,
        )
    return PigpioRemoteError(frame.result, code, message, api=api)


# Lowercase hex with a space between bytes, as the wire logger prints it.
def hexdump(data: bytes | bytearray | memoryview) -> str:
    return bytes(data).hex(" ")
