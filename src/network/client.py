import asyncio
import logging
from pathlib import Path
from typing import Optional

from network.channel import DEFAULT_READ_TIMEOUT, read_message, write_message
from network.gate import DEFAULT_PROBE_TIMEOUT, socket_path

logger = logging.getLogger(__name__)


async def send_message(
    name: str,
    socket_dir: Path,
    payload: bytes,
    connect_timeout: float = DEFAULT_PROBE_TIMEOUT,
    read_timeout: float = DEFAULT_READ_TIMEOUT,
    expect_reply: bool = True,
) -> Optional[bytes]:
    """Send one frame to a named server.

    Returns the reply payload, ``b""`` when no reply was requested, or None
    when the server is unreachable or the reply could not be read.
    """
    path = socket_path(name, socket_dir)
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_unix_connection(str(path)),
            timeout=connect_timeout
        )
    except (asyncio.TimeoutError, OSError) as e:
        logger.debug(f"Cannot connect to {name}: {e}")
        return None

    try:
        if not await write_message(writer, payload):
            return None
        if not expect_reply:
            return b""
        return await read_message(reader, timeout=read_timeout)
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError):
            pass


def send_message_sync(name: str, socket_dir: Path, payload: bytes, **kwargs) -> Optional[bytes]:
    return asyncio.run(send_message(name, socket_dir, payload, **kwargs))
