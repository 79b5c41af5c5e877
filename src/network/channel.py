import asyncio
import logging
import struct
from typing import Optional

logger = logging.getLogger(__name__)

LENGTH_PREFIX = struct.Struct(">I")
PROBE_FRAME = LENGTH_PREFIX.pack(0)
DEFAULT_READ_TIMEOUT = 1.0

ACCEPTED_REPLY = b"\x01"
REJECTED_REPLY = b"\x00"


def encode_frame(payload: bytes) -> bytes:
    return LENGTH_PREFIX.pack(len(payload)) + payload


async def read_bytes(reader: asyncio.StreamReader, size: int,
                     timeout: float = DEFAULT_READ_TIMEOUT) -> Optional[bytes]:
    """Read exactly ``size`` bytes, or return None if any wait for data times out or the peer closes."""
    buffer = bytearray()
    while len(buffer) < size:
        try:
            chunk = await asyncio.wait_for(reader.read(size - len(buffer)), timeout=timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Timed out waiting for {size - len(buffer)} more bytes")
            return None
        except (ConnectionError, OSError) as e:
            logger.debug(f"Read failed: {e}")
            return None
        if not chunk:
            return None
        buffer.extend(chunk)
    return bytes(buffer)


async def read_message(reader: asyncio.StreamReader,
                       timeout: float = DEFAULT_READ_TIMEOUT) -> Optional[bytes]:
    """Read one frame.

    Returns the payload, ``b""`` for a probe frame, or None when the frame
    could not be read completely.
    """
    prefix = await read_bytes(reader, LENGTH_PREFIX.size, timeout)
    if prefix is None:
        return None
    (length,) = LENGTH_PREFIX.unpack(prefix)
    return await read_bytes(reader, length, timeout)


async def write_message(writer: asyncio.StreamWriter, payload: bytes) -> bool:
    try:
        writer.write(encode_frame(payload))
        await writer.drain()
        return True
    except (ConnectionError, OSError) as e:
        logger.debug(f"Write failed: {e}")
        return False
