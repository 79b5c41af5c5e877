import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from network.channel import DEFAULT_READ_TIMEOUT, read_message, write_message
from network.gate import DEFAULT_PROBE_TIMEOUT, GateState, InstanceGate

logger = logging.getLogger(__name__)

Dispatch = Callable[[bytes], Optional[bytes]]


class ServerLoop:
    """
    Named local server handling one request per connection, one connection at a time.

    A zero-length frame is a probe from an instance that is about to exit; it
    is discarded and reported through ``on_probe``. Any other frame is handed
    to ``dispatch`` and a non-None result is written back as the reply.
    """

    def __init__(
        self,
        name: str,
        socket_dir: Path,
        dispatch: Dispatch,
        on_probe: Optional[Callable[[], None]] = None,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
    ):
        self.gate = InstanceGate(name, socket_dir, probe_timeout=probe_timeout)
        self.dispatch = dispatch
        self.on_probe_callback = on_probe
        self.read_timeout = read_timeout
        self._lock = asyncio.Lock()

    @property
    def state(self) -> GateState:
        return self.gate.state

    async def start(self) -> GateState:
        return await self.gate.try_become_server(self.handle_connection)

    async def handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        async with self._lock:
            try:
                message = await read_message(reader, timeout=self.read_timeout)
                if message is None:
                    logger.warning(f"Dropped incomplete message on {self.gate.name}")
                elif not message:
                    logger.debug(f"Probe received on {self.gate.name}")
                    if self.on_probe_callback:
                        self.on_probe_callback()
                else:
                    reply = self.dispatch(message)
                    if reply is not None:
                        await write_message(writer, reply)
            except Exception as e:
                logger.error(f"Error handling connection on {self.gate.name}: {e}")
            finally:
                writer.close()
                try:
                    await writer.wait_closed()
                except (ConnectionError, OSError):
                    pass

    async def stop(self):
        await self.gate.close()
