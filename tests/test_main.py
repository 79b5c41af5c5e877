import asyncio
import sys
import threading
import time
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parent.parent
SRC = REPO_ROOT / "src"
sys.path.insert(0, str(SRC))

import main  # type: ignore
from clipboard.base import ClipboardReader  # type: ignore
from config.settings import AppSettings  # type: ignore
from network.gate import GateState, clipboard_server_name, monitor_server_name  # type: ignore
from network.server import ServerLoop  # type: ignore
from services.history_service import HistoryService  # type: ignore
from services.monitor_service import MonitorService  # type: ignore
from services.server_service import ServerService  # type: ignore


class RecordingClipboard(ClipboardReader):

    def __init__(self):
        self.written = []

    def read_formats(self):
        return None

    def write_formats(self, formats):
        self.written.append(dict(formats))
        return dict(formats)


def _settings(tmp_path):
    return AppSettings(
        max_items=10,
        data_dir=tmp_path / "data",
        runtime_dir=tmp_path,
        backend="file",
        probe_timeout=0.5,
        read_timeout=0.5,
        save_delay=0,
    )


def _wait_for(condition, timeout=3.0):
    deadline = time.monotonic() + timeout
    while not condition() and time.monotonic() < deadline:
        time.sleep(0.05)
    return condition()


@pytest.fixture(autouse=True)
def short_user(monkeypatch):
    monkeypatch.setenv("USER", "t")
    monkeypatch.setattr(main.signal, "signal", lambda *args: None)


@pytest.fixture
def monitor_server(tmp_path):
    """Runs the monitor's request server in a thread with a recording clipboard."""
    clipboard = RecordingClipboard()
    monitor = MonitorService(socket_dir=tmp_path, reader=clipboard, probe_timeout=0.5)
    ready = threading.Event()
    done = threading.Event()

    async def serve():
        server = ServerLoop(monitor_server_name(), tmp_path, dispatch=monitor.handle_message, probe_timeout=0.5)
        await server.start()
        ready.set()
        while not done.is_set():
            await asyncio.sleep(0.02)
        await server.stop()

    thread = threading.Thread(target=lambda: asyncio.run(serve()), daemon=True)
    thread.start()
    assert ready.wait(timeout=5.0)
    yield clipboard
    done.set()
    thread.join(timeout=5.0)


def test_app_serves_and_stops(tmp_path):
    settings = _settings(tmp_path)
    app = main.ClipNestApp(settings, spawn_monitor=False)

    assert app.start() is GateState.SERVING
    try:
        assert main.send_text(settings, "hello")
        assert app.server_service.call(lambda: app.history.store.at(0).text()) == "hello"
    finally:
        app.stop()

    assert not app.running
    assert (tmp_path / "data" / "clipboard.dat").exists()


def test_current_item_is_pushed_to_monitor(tmp_path, monitor_server):
    app = main.ClipNestApp(_settings(tmp_path), spawn_monitor=False)
    assert app.start() is GateState.SERVING
    try:
        for text in ("second", "first"):
            app.server_service.call(app.history.add_text, text)
            expected = [{"text/plain": text.encode()}]
            assert _wait_for(lambda: monitor_server.written[-1:] == expected)

        assert app.server_service.call(app.history.move_to_front, 1)
        assert _wait_for(lambda: monitor_server.written[-1:] == [{"text/plain": b"second"}])
        assert _wait_for(lambda: not app._push_tasks)
    finally:
        app.stop()


def test_second_app_yields(tmp_path):
    settings = _settings(tmp_path)
    first = main.ClipNestApp(settings, spawn_monitor=False)
    assert first.start() is GateState.SERVING
    try:
        second = main.ClipNestApp(settings, spawn_monitor=False)
        assert second.start() is GateState.YIELDED
        assert not second.running
    finally:
        first.stop()


def _env_settings(monkeypatch, tmp_path):
    monkeypatch.setenv("CLIPNEST_RUNTIME_DIR", str(tmp_path))
    monkeypatch.setenv("CLIPNEST_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("CLIPNEST_PROBE_TIMEOUT", "0.5")
    monkeypatch.setenv("CLIPNEST_READ_TIMEOUT", "0.5")


def test_add_without_running_instance_exits_1(tmp_path, monkeypatch):
    _env_settings(monkeypatch, tmp_path)

    with pytest.raises(SystemExit) as exc:
        main.main(["--add", "orphan"])
    assert exc.value.code == 1


def test_add_to_running_instance_exits_0(tmp_path, monkeypatch):
    _env_settings(monkeypatch, tmp_path)
    history = HistoryService()

    with ServerService(history, socket_dir=tmp_path, name=clipboard_server_name(), probe_timeout=0.5) as service:
        assert service.wait_until_ready(timeout=5.0)
        with pytest.raises(SystemExit) as exc:
            main.main(["--add", "delivered"])
        assert exc.value.code == 0
        assert service.call(lambda: history.store.at(0).text()) == "delivered"


def test_yielding_instance_exits_0(tmp_path, monkeypatch):
    _env_settings(monkeypatch, tmp_path)

    with ServerService(HistoryService(), socket_dir=tmp_path, name=clipboard_server_name(), probe_timeout=0.5) as service:
        assert service.wait_until_ready(timeout=5.0)
        with pytest.raises(SystemExit) as exc:
            main.main(["--no-monitor"])
        assert exc.value.code == 0
        assert service.state is GateState.SERVING


def test_cli_flags_override_settings(tmp_path, monkeypatch):
    _env_settings(monkeypatch, tmp_path)
    monkeypatch.setenv("CLIPNEST_MAX_ITEMS", "50")
    created = []

    class FakeApp:

        def __init__(self, settings, spawn_monitor=True):
            created.append((settings, spawn_monitor))

        def run_forever(self):
            return GateState.YIELDED

        def stop(self):
            pass

    monkeypatch.setattr(main, "ClipNestApp", FakeApp)

    with pytest.raises(SystemExit) as exc:
        main.main(["-m", "-5", "-b", "redis", "--no-monitor"])

    assert exc.value.code == 0
    settings, spawn_monitor = created[0]
    assert settings.max_items == 0
    assert settings.backend == "redis"
    assert settings.runtime_dir == tmp_path
    assert spawn_monitor is False


def test_parse_args_defaults():
    args = main.parse_args([])
    assert not args.monitor
    assert args.add is None
    assert args.max_items is None
    assert args.backend is None
    assert not args.no_monitor
