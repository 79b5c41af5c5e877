import asyncio
import fcntl
import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Mapping, Optional

from network.channel import PROBE_FRAME

logger = logging.getLogger(__name__)

CLIPBOARD_SERVER_BASE = "clipnest_server"
MONITOR_SERVER_BASE = "clipnest_monitor_server"
DEFAULT_PROBE_TIMEOUT = 2.0
LOCK_RETRY_INTERVAL = 0.01

ConnectionHandler = Callable[[asyncio.StreamReader, asyncio.StreamWriter], Awaitable[None]]


class GateState(Enum):
    PROBING = "probing"
    SERVING = "serving"
    YIELDED = "yielded"


def server_name(base: str, environ: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if environ is None else environ
    user_var = "USERNAME" if sys.platform == "win32" else "USER"
    return f"{base}_{env.get(user_var, '')}"


def clipboard_server_name(environ: Optional[Mapping[str, str]] = None) -> str:
    return server_name(CLIPBOARD_SERVER_BASE, environ)


def monitor_server_name(environ: Optional[Mapping[str, str]] = None) -> str:
    return server_name(MONITOR_SERVER_BASE, environ)


def socket_path(name: str, socket_dir: Path) -> Path:
    return Path(socket_dir) / name


def lock_path(path: Path) -> Path:
    return path.with_name(path.name + ".lock")


@asynccontextmanager
async def startup_lock(path: Path, timeout: float):
    """Hold an exclusive flock on ``path`` without blocking the event loop.

    Yields False if the lock could not be taken within ``timeout``.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a") as fp:
        start = time.monotonic()
        locked = False
        while True:
            try:
                fcntl.flock(fp.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                locked = True
                break
            except BlockingIOError:
                if time.monotonic() - start >= timeout:
                    break
                await asyncio.sleep(LOCK_RETRY_INTERVAL)

        try:
            yield locked
        finally:
            if locked:
                fcntl.flock(fp.fileno(), fcntl.LOCK_UN)


class InstanceGate:
    """
    Single-instance handshake for one named local server.

    ``try_become_server`` probes the socket. If a live server answers, one
    zero-length frame is sent to it and the gate yields. Otherwise the stale
    socket file is removed and this process binds the name.

    Probe, unlink and bind run under an flock on ``<socket>.lock`` so that
    instances starting at the same time cannot both bind.
    """

    def __init__(self, name: str, socket_dir: Path, probe_timeout: float = DEFAULT_PROBE_TIMEOUT):
        self.name = name
        self.path = socket_path(name, socket_dir)
        self.probe_timeout = probe_timeout
        self.state = GateState.PROBING
        self.server: Optional[asyncio.AbstractServer] = None

    async def _probe(self) -> bool:
        try:
            _reader, writer = await asyncio.wait_for(
                asyncio.open_unix_connection(str(self.path)),
                timeout=self.probe_timeout
            )
        except (asyncio.TimeoutError, OSError):
            return False

        try:
            writer.write(PROBE_FRAME)
            await writer.drain()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Probe write to {self.name} failed: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass
        return True

    async def try_become_server(self, handler: ConnectionHandler) -> GateState:
        if self.state is not GateState.PROBING:
            return self.state

        lock_timeout = self.probe_timeout * 2 + 1.0
        async with startup_lock(lock_path(self.path), lock_timeout) as locked:
            if not locked:
                logger.warning(f"Timed out waiting for the startup lock of {self.name}")

            if await self._probe():
                logger.info(f"Server {self.name} is already running")
                self.state = GateState.YIELDED
                return self.state

            try:
                self.path.unlink()
            except FileNotFoundError:
                pass

            self.server = await asyncio.start_unix_server(handler, path=str(self.path))
            os.chmod(self.path, 0o600)

        logger.info(f"Listening on {self.path}")
        self.state = GateState.SERVING
        return self.state

    async def close(self):
        if self.server is None:
            return

        self.server.close()
        await self.server.wait_closed()
        self.server = None
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
