from clipboard.base import ClipboardReader
from clipboard.factory import get_clipboard_class, get_clipboard_reader

__all__ = [
    'ClipboardReader',
    'get_clipboard_class',
    'get_clipboard_reader',
]
