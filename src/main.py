#!/usr/bin/env python3

import argparse
import asyncio
import logging
import signal
import subprocess
import sys
import time
from pathlib import Path
from typing import Optional, Set

sys.path.insert(0, str(Path(__file__).parent))

from config.settings import AppSettings
from history.codec import encode_entry
from history.store import HistoryStore
from models.clipboard_entry import ClipboardEntry
from network.channel import ACCEPTED_REPLY
from network.client import send_message, send_message_sync
from network.gate import GateState, clipboard_server_name, monitor_server_name
from services.history_service import HistoryService
from services.monitor_service import MonitorService
from services.persistence import create_backend
from services.server_service import ServerService


logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


class ClipNestApp:

    def __init__(self, settings: AppSettings, spawn_monitor: bool = True):
        self.settings = settings
        self.spawn_monitor = spawn_monitor
        self.history: Optional[HistoryService] = None
        self.server_service: Optional[ServerService] = None
        self.monitor_process: Optional[subprocess.Popen] = None
        self.running = False
        self._push_tasks: Set[asyncio.Task] = set()

    def start(self) -> GateState:
        if self.running:
            return GateState.SERVING

        self.history = HistoryService(
            store=HistoryStore(capacity=self.settings.max_items),
            backend=create_backend(self.settings),
            save_delay=self.settings.save_delay,
        )
        self.history.on_current_changed(self._on_current_changed)

        self.server_service = ServerService(
            self.history,
            socket_dir=self.settings.runtime_dir,
            probe_timeout=self.settings.probe_timeout,
            read_timeout=self.settings.read_timeout,
            auto_start=True,
        )

        if not self.server_service.wait_until_ready(timeout=self.settings.probe_timeout + 5.0):
            logger.error("History server failed to start")
            self.server_service.stop()
            return GateState.PROBING

        state = self.server_service.state
        if state is not GateState.SERVING:
            self.server_service.stop()
            return state

        self.running = True
        self.server_service.call(self.history.load)

        if self.spawn_monitor:
            self._start_monitor()

        print(f"ClipNest running ({len(self.history.store)} items). Press Ctrl+C to stop")
        return state

    def _start_monitor(self):
        command = [sys.executable, str(Path(__file__).resolve()), "--monitor"]
        try:
            self.monitor_process = subprocess.Popen(command)
            logger.info(f"Started clipboard monitor (pid {self.monitor_process.pid})")
        except OSError as e:
            logger.error(f"Could not start clipboard monitor: {e}")

    def _on_current_changed(self, entry: ClipboardEntry):
        # runs on the server thread
        loop = self.server_service.loop if self.server_service else None
        if loop is None:
            return
        task = loop.create_task(self._push_to_monitor(entry))
        self._push_tasks.add(task)
        task.add_done_callback(self._push_done)

    def _push_done(self, task: asyncio.Task):
        self._push_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Failed to update the clipboard monitor: {task.exception()}")

    async def _push_to_monitor(self, entry: ClipboardEntry):
        reply = await send_message(
            monitor_server_name(),
            self.settings.runtime_dir,
            encode_entry(entry),
            connect_timeout=self.settings.probe_timeout,
            read_timeout=self.settings.read_timeout,
        )
        if reply != ACCEPTED_REPLY:
            logger.warning("Clipboard monitor did not accept the current item")

    def stop(self):
        if not self.running:
            return

        self.running = False

        if self.server_service:
            self.server_service.stop()

        if self.monitor_process and self.monitor_process.poll() is None:
            self.monitor_process.terminate()
            try:
                self.monitor_process.wait(timeout=5.0)
            except subprocess.TimeoutExpired:
                self.monitor_process.kill()

        print("ClipNest stopped")

    def run_forever(self) -> GateState:
        state = self.start()
        if state is not GateState.SERVING:
            return state

        try:
            while self.running:
                time.sleep(1.0)
        except KeyboardInterrupt:
            print("\nStopping...")
        finally:
            self.stop()
        return state


def send_text(settings: AppSettings, text: str) -> bool:
    reply = send_message_sync(
        clipboard_server_name(),
        settings.runtime_dir,
        encode_entry(ClipboardEntry.from_text(text)),
        connect_timeout=settings.probe_timeout,
        read_timeout=settings.read_timeout,
    )
    if reply is None:
        logger.error("ClipNest is not running")
        return False
    return reply == ACCEPTED_REPLY


def run_monitor(settings: AppSettings) -> int:
    monitor = MonitorService(
        socket_dir=settings.runtime_dir,
        poll_interval=settings.poll_interval,
        probe_timeout=settings.probe_timeout,
        read_timeout=settings.read_timeout,
    )

    def signal_handler(signum, frame):
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, signal_handler)
    monitor.run_forever()
    return 0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="ClipNest - Clipboard history manager"
    )

    parser.add_argument(
        "--monitor",
        action="store_true",
        help="Run the clipboard monitor process"
    )

    parser.add_argument(
        "-a", "--add",
        type=str,
        default=None,
        metavar="TEXT",
        help="Add TEXT to the history of the running instance"
    )

    parser.add_argument(
        "-m", "--max-items",
        type=int,
        default=None,
        help="Maximum number of items in history (default: 100)"
    )

    parser.add_argument(
        "-b", "--backend",
        choices=["file", "redis"],
        default=None,
        help="History storage backend (default: file)"
    )

    parser.add_argument(
        "--no-monitor",
        action="store_true",
        help="Do not start the clipboard monitor process"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose debug logging"
    )

    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    settings = AppSettings.from_env()
    overrides = {}
    if args.max_items is not None:
        overrides["max_items"] = max(args.max_items, 0)
    if args.backend is not None:
        overrides["backend"] = args.backend
    if overrides:
        settings = settings.model_copy(update=overrides)

    if args.monitor:
        sys.exit(run_monitor(settings))

    if args.add is not None:
        sys.exit(0 if send_text(settings, args.add) else 1)

    app = ClipNestApp(settings, spawn_monitor=not args.no_monitor)

    def signal_handler(signum, frame):
        app.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        state = app.run_forever()
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)

    if state is GateState.YIELDED:
        print("ClipNest is already running")
        sys.exit(0)
    if state is not GateState.SERVING:
        sys.exit(1)


if __name__ == "__main__":
    main()
