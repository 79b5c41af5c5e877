import asyncio
import logging
from pathlib import Path
from typing import Optional

from clipboard import ClipboardReader, get_clipboard_reader
from history.codec import HistoryFormatError, decode_entry, encode_entry
from history.hashing import clone_entry
from network.channel import ACCEPTED_REPLY, DEFAULT_READ_TIMEOUT, REJECTED_REPLY
from network.client import send_message
from network.gate import (
    DEFAULT_PROBE_TIMEOUT,
    GateState,
    clipboard_server_name,
    monitor_server_name,
)
from network.server import ServerLoop

logger = logging.getLogger(__name__)


class MonitorService:
    """
    Clipboard monitor process.

    Polls the OS clipboard and forwards every new capture to the history
    server. Entries sent to the monitor server are written to the OS
    clipboard and not echoed back.
    """

    def __init__(
        self,
        socket_dir: Path,
        reader: Optional[ClipboardReader] = None,
        history_server: Optional[str] = None,
        name: Optional[str] = None,
        poll_interval: float = 0.25,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
    ):
        self.socket_dir = socket_dir
        self.reader = reader or get_clipboard_reader()
        self.history_server = history_server or clipboard_server_name()
        self.name = name or monitor_server_name()
        self.poll_interval = poll_interval
        self.probe_timeout = probe_timeout
        self.read_timeout = read_timeout
        self.server: Optional[ServerLoop] = None
        self.last_hash: Optional[int] = None
        self._stop_event: Optional[asyncio.Event] = None

    def run_forever(self) -> GateState:
        try:
            return asyncio.run(self.run())
        except KeyboardInterrupt:
            return GateState.SERVING

    async def run(self) -> GateState:
        self._stop_event = asyncio.Event()
        self.server = ServerLoop(
            self.name,
            self.socket_dir,
            dispatch=self.handle_message,
            probe_timeout=self.probe_timeout,
            read_timeout=self.read_timeout,
        )

        state = await self.server.start()
        if state is not GateState.SERVING:
            logger.info("Clipboard monitor is already running")
            return state

        logger.info("Clipboard monitor started")
        try:
            while not self._stop_event.is_set():
                try:
                    await self.poll_once()
                except Exception as e:
                    logger.error(f"Clipboard poll error: {e}")
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.server.stop()
            logger.info("Clipboard monitor stopped")

        return state

    def stop(self):
        if self._stop_event is not None:
            self._stop_event.set()

    async def poll_once(self) -> bool:
        """Read the clipboard once and forward it if it changed.

        Returns True when the history server accepted a new entry.
        """
        loop = asyncio.get_running_loop()
        captured = await loop.run_in_executor(None, self.reader.read_entry)
        if captured is None:
            return False

        entry = clone_entry(captured)
        if entry.is_empty():
            return False

        current_hash = entry.data_hash
        if current_hash == self.last_hash:
            return False
        self.last_hash = current_hash

        logger.debug(f"Clipboard changed: {sorted(entry.formats)}")
        reply = await send_message(
            self.history_server,
            self.socket_dir,
            encode_entry(entry),
            connect_timeout=self.probe_timeout,
            read_timeout=self.read_timeout,
        )
        if reply is None:
            logger.warning("History server is not reachable")
            return False
        return reply == ACCEPTED_REPLY

    def handle_message(self, payload: bytes) -> bytes:
        try:
            entry = decode_entry(payload)
        except HistoryFormatError as e:
            logger.warning(f"Rejected malformed entry: {e}")
            return REJECTED_REPLY

        written = self.reader.write_entry(entry)
        if written is not None:
            # hash what the next poll will read back, not what was requested
            self.last_hash = clone_entry(written).data_hash
            logger.debug(f"Clipboard updated from history: {sorted(written.formats)}")
            return ACCEPTED_REPLY

        logger.warning("Could not write to the clipboard")
        return REJECTED_REPLY
