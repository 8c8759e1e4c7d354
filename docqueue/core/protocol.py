import msgpack
import struct
import asyncio
from enum import IntEnum
from typing import Any, Tuple


class Command(IntEnum):
    SEND = 1
    GET = 2
    ACK = 3
    ACK_SEND = 4
    REQUEUE = 5
    UPDATE_RESET_DURATION = 6
    COUNT = 7
    ENSURE_GET_INDEX = 8
    ENSURE_COUNT_INDEX = 9


PROTOCOL_VERSION = 1
MAX_MESSAGE_SIZE = 10 * 1024 * 1024  # 10MB limit


def pack_message(command: int, body: Any) -> bytes:
    """Pack a message into [length(4)][version(1)][command(1)][msgpack_body]."""
    packed_body = msgpack.packb(body)
    if not isinstance(packed_body, bytes):
        raise TypeError("msgpack.packb did not return bytes")

    header = struct.pack("!BB", PROTOCOL_VERSION, command)
    full_body = header + packed_body
    if len(full_body) > MAX_MESSAGE_SIZE:
        raise ValueError(f"Message size {len(full_body)} exceeds limit {MAX_MESSAGE_SIZE}")
    return struct.pack("!I", len(full_body)) + full_body


async def read_message(reader: asyncio.StreamReader) -> Tuple[int, int, Any]:
    """Read a message from an asyncio reader."""
    length_bytes = await reader.readexactly(4)
    length = struct.unpack("!I", length_bytes)[0]

    if length > MAX_MESSAGE_SIZE:
        raise ValueError(f"Message size {length} exceeds limit {MAX_MESSAGE_SIZE}")
    if length < 2:
        raise ValueError(f"Message size {length} is too small for a header")

    data = await reader.readexactly(length)
    version, command = struct.unpack("!BB", data[:2])
    body = msgpack.unpackb(data[2:])
    return version, command, body
