import subprocess
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent
SRC = REPO_ROOT / "src"
sys.path.insert(0, str(SRC))

import clipboard.linux as linux  # type: ignore
from clipboard.linux import LinuxClipboardReader  # type: ignore
from models.clipboard_entry import ClipboardEntry  # type: ignore


class FakeXclip:
    """Stands in for subprocess.run with an xclip-like clipboard."""

    def __init__(self, targets):
        self.targets = dict(targets)
        self.calls = []

    def __call__(self, command, input=None, stdout=None, stderr=None, check=False, timeout=None):
        self.calls.append((list(command), input))
        if "-i" in command:
            mime = command[command.index("-t") + 1]
            self.targets = {"TARGETS": b"", mime: input}
            return subprocess.CompletedProcess(command, 0, b"", b"")

        target = command[command.index("-t") + 1]
        if target == "TARGETS":
            listing = "\n".join(t for t in self.targets if t != "TARGETS")
            return subprocess.CompletedProcess(command, 0, listing.encode(), b"")
        if target not in self.targets:
            raise subprocess.CalledProcessError(1, command)
        return subprocess.CompletedProcess(command, 0, self.targets[target], b"")


def _use_xclip(monkeypatch, fake):
    monkeypatch.delenv("WAYLAND_DISPLAY", raising=False)
    monkeypatch.setattr(linux.shutil, "which", lambda name: "/usr/bin/xclip" if name == "xclip" else None)
    monkeypatch.setattr(linux.subprocess, "run", fake)


def test_reads_every_advertised_target(monkeypatch):
    fake = FakeXclip({
        "UTF8_STRING": b"hello",
        "text/plain": b"hello",
        "text/html": b"<b>hello</b>",
    })
    _use_xclip(monkeypatch, fake)

    formats = LinuxClipboardReader().read_formats()
    assert formats == {
        "UTF8_STRING": b"hello",
        "text/plain": b"hello",
        "text/html": b"<b>hello</b>",
    }


def test_read_entry_without_tools_returns_none(monkeypatch):
    monkeypatch.delenv("WAYLAND_DISPLAY", raising=False)
    monkeypatch.setattr(linux.shutil, "which", lambda name: None)

    assert LinuxClipboardReader().read_entry() is None


def test_write_prefers_rich_formats(monkeypatch):
    fake = FakeXclip({})
    _use_xclip(monkeypatch, fake)

    entry = ClipboardEntry(formats={"text/plain": b"hi", "text/html": b"<i>hi</i>"})
    reader = LinuxClipboardReader()
    written = reader.write_entry(entry)

    command, payload = fake.calls[-1]
    assert command == ["xclip", "-selection", "clipboard", "-t", "text/html", "-i"]
    assert payload == b"<i>hi</i>"
    assert written.formats == {"text/html": b"<i>hi</i>"}
    assert reader.read_formats() == written.formats


def test_write_nothing_to_write(monkeypatch):
    fake = FakeXclip({})
    _use_xclip(monkeypatch, fake)

    assert LinuxClipboardReader().write_entry(ClipboardEntry(formats={"text/plain": b""})) is None
    assert fake.calls == []


def test_failing_command_is_reported_as_failure(monkeypatch):
    def broken(command, **kwargs):
        raise subprocess.TimeoutExpired(command, 1.5)

    monkeypatch.delenv("WAYLAND_DISPLAY", raising=False)
    monkeypatch.setattr(linux.shutil, "which", lambda name: "/usr/bin/xclip")
    monkeypatch.setattr(linux.subprocess, "run", broken)

    assert LinuxClipboardReader().write_entry(ClipboardEntry.from_text("x")) is None


def test_factory_picks_linux_reader(monkeypatch):
    import clipboard.factory as factory  # type: ignore

    monkeypatch.setattr(factory.platform, "system", lambda: "Linux")
    assert factory.get_clipboard_class() is LinuxClipboardReader


def test_factory_rejects_other_platforms(monkeypatch):
    import clipboard.factory as factory  # type: ignore

    monkeypatch.setattr(factory.platform, "system", lambda: "Darwin")
    try:
        factory.get_clipboard_class()
    except NotImplementedError:
        pass
    else:
        raise AssertionError("expected NotImplementedError")
