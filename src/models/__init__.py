from models.clipboard_entry import ClipboardEntry, TEXT_FORMAT

__all__ = [
    'ClipboardEntry',
    'TEXT_FORMAT',
]
