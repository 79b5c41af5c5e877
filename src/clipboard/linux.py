import logging
import os
import shutil
import subprocess
from typing import Callable, Dict, List, Mapping, Optional

from clipboard.base import ClipboardReader

logger = logging.getLogger(__name__)

# formats written back to the clipboard, most specific first
_WRITE_PREFERENCE = (
    "image/png",
    "text/uri-list",
    "text/html",
    "text/plain;charset=utf-8",
    "text/plain",
)


class LinuxClipboardReader(ClipboardReader):
    """Reads every advertised clipboard target through wl-paste or xclip."""

    def __init__(self, max_formats: int = 16, timeout: float = 1.5):
        self.max_formats = max_formats
        self.timeout = timeout

    def read_formats(self) -> Optional[Dict[str, bytes]]:
        strategies = (
            self._from_wayland,
            self._from_xclip,
        )

        for strategy in strategies:
            try:
                result = strategy()
            except Exception as e:
                logger.debug(f"Clipboard strategy failed: {e}")
                result = None
            if result is not None:
                return result

        return None

    def _from_wayland(self) -> Optional[Dict[str, bytes]]:
        if not os.environ.get("WAYLAND_DISPLAY") or not shutil.which("wl-paste"):
            return None

        types = self._parse_type_list(
            self._run_command(["wl-paste", "--list-types"])
        )

        def reader(target: str) -> Optional[bytes]:
            return self._run_command(["wl-paste", "--no-newline", "--type", target])

        return self._collect(types, reader)

    def _from_xclip(self) -> Optional[Dict[str, bytes]]:
        if not shutil.which("xclip"):
            return None

        types = self._parse_type_list(
            self._run_command(
                ["xclip", "-selection", "clipboard", "-t", "TARGETS", "-o"])
        )

        def reader(target: str) -> Optional[bytes]:
            return self._run_command(
                ["xclip", "-selection", "clipboard", "-t", target, "-o"])

        return self._collect(types, reader)

    def _collect(self, types: List[str], reader: Callable[[str], Optional[bytes]]) -> Dict[str, bytes]:
        formats: Dict[str, bytes] = {}
        for target in types[:self.max_formats]:
            data = reader(target)
            if data:
                formats[target] = data
        return formats

    def _parse_type_list(self, data: Optional[bytes]) -> List[str]:
        if not data:
            return []
        text = data.decode("utf-8", errors="ignore")
        return [line.strip() for line in text.splitlines() if line.strip()]

    def _run_command(self, command: List[str], payload: Optional[bytes] = None) -> Optional[bytes]:
        try:
            result = subprocess.run(
                command,
                input=payload,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
                timeout=self.timeout,
            )
            return result.stdout
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
            return None

    def _pick_format(self, formats: Mapping[str, bytes]) -> Optional[str]:
        for mime in _WRITE_PREFERENCE:
            if formats.get(mime):
                return mime
        for mime, payload in formats.items():
            if payload:
                return mime
        return None

    def write_formats(self, formats: Mapping[str, bytes]) -> Optional[Dict[str, bytes]]:
        mime = self._pick_format(formats)
        if mime is None:
            return None

        if os.environ.get("WAYLAND_DISPLAY") and shutil.which("wl-copy"):
            command = ["wl-copy", "--type", mime]
        elif shutil.which("xclip"):
            command = ["xclip", "-selection", "clipboard", "-t", mime, "-i"]
        else:
            return None

        if self._run_command(command, payload=formats[mime]) is None:
            return None
        # only one target is offered after a write
        return {mime: formats[mime]}
