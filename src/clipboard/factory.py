import platform
from typing import Type

from clipboard.base import ClipboardReader


def get_clipboard_class() -> Type[ClipboardReader]:
    system = platform.system()

    if system == "Linux":
        from clipboard.linux import LinuxClipboardReader
        return LinuxClipboardReader
    else:
        raise NotImplementedError(f"Platform '{system}' is not supported")


def get_clipboard_reader() -> ClipboardReader:
    clipboard_class = get_clipboard_class()
    return clipboard_class()
