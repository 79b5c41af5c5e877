import asyncio
import logging
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Optional

from network.channel import DEFAULT_READ_TIMEOUT
from network.gate import DEFAULT_PROBE_TIMEOUT, GateState, clipboard_server_name
from network.server import ServerLoop
from services.history_service import HistoryService

logger = logging.getLogger(__name__)


class ServerService:
    """
    Runs the history server on an event loop in a background thread.

    That thread owns the HistoryService; other threads reach it through
    ``call``.
    """

    def __init__(
        self,
        history: HistoryService,
        socket_dir: Path,
        name: Optional[str] = None,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        on_probe: Optional[Callable[[], None]] = None,
        auto_start: bool = False,
    ):
        self.history = history
        self.socket_dir = socket_dir
        self.name = name or clipboard_server_name()
        self.probe_timeout = probe_timeout
        self.read_timeout = read_timeout
        self.on_probe_callback = on_probe
        self.server: Optional[ServerLoop] = None
        self.state = GateState.PROBING
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._running = False
        self._ready = threading.Event()

        if auto_start:
            self.start()

    @property
    def loop(self) -> Optional[asyncio.AbstractEventLoop]:
        return self._loop

    def start(self):
        if self._running:
            return

        self._running = True
        self._ready.clear()
        self._thread = threading.Thread(
            target=self._run_server_loop, daemon=True)
        self._thread.start()

    def stop(self):
        self._running = False

        loop = self._loop
        if loop is not None and self._stop_event is not None and not loop.is_closed():
            try:
                loop.call_soon_threadsafe(self._stop_event.set)
            except RuntimeError:
                # the server thread closed the loop in the meantime
                pass

        if self._thread:
            self._thread.join(timeout=5.0)
            self._thread = None

        self._ready.clear()

    def _run_server_loop(self):
        try:
            self._loop = asyncio.new_event_loop()
            asyncio.set_event_loop(self._loop)
            self._loop.run_until_complete(self._async_server_main())
        except Exception as e:
            logger.error(f"Server loop error: {e}")
        finally:
            self.history.attach_loop(None)
            if self._loop:
                self._loop.close()
                self._loop = None
            self._running = False
            self._ready.set()

    async def _async_server_main(self):
        self._stop_event = asyncio.Event()
        self.history.attach_loop(asyncio.get_running_loop())

        try:
            self.server = ServerLoop(
                self.name,
                self.socket_dir,
                dispatch=self.history.handle_message,
                on_probe=self._handle_probe,
                probe_timeout=self.probe_timeout,
                read_timeout=self.read_timeout,
            )
            self.state = await self.server.start()
            self._ready.set()

            if self.state is not GateState.SERVING:
                return

            if self._running:
                await self._stop_event.wait()
        except Exception as e:
            logger.error(f"Server main error: {e}")
        finally:
            if self.server and self.state is GateState.SERVING:
                self.history.save()
                await self.server.stop()
            self._ready.set()

    def _handle_probe(self):
        logger.info("Another instance was started")
        if self.on_probe_callback:
            self.on_probe_callback()

    def call(self, fn: Callable[..., Any], *args, timeout: float = 5.0, **kwargs) -> Any:
        """Run ``fn`` on the thread that owns the history and return its result."""
        loop = self._loop
        if loop is None or not self._running:
            raise RuntimeError("Server is not running")

        if threading.current_thread() is self._thread:
            return fn(*args, **kwargs)

        future: Future = Future()

        def runner():
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as e:
                future.set_exception(e)

        loop.call_soon_threadsafe(runner)
        return future.result(timeout=timeout)

    def wait_until_ready(self, timeout: float = 10.0) -> bool:
        return self._ready.wait(timeout=timeout)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
