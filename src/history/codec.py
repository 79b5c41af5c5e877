"""
Binary serialization of clipboard entries and whole histories.

Entry layout (also the payload of a history-server frame)::

    uint32 formatCount
    formatCount x (uint32 keyLength, key (utf-8), uint32 valueLength, value)

History layout::

    int32 entryCount
    entryCount x entry        (index 0 first)

All integers are big-endian.
"""
import io
import struct
from typing import BinaryIO

from history.store import HistoryStore
from models.clipboard_entry import ClipboardEntry

_UINT32 = struct.Struct(">I")
_INT32 = struct.Struct(">i")


class HistoryFormatError(ValueError):
    """Raised when serialized entry data is truncated or malformed."""


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if data is None or len(data) != size:
        raise HistoryFormatError(f"expected {size} bytes, got {len(data or b'')}")
    return data


def _read_blob(stream: BinaryIO) -> bytes:
    (length,) = _UINT32.unpack(_read_exact(stream, _UINT32.size))
    return _read_exact(stream, length)


def _write_blob(stream: BinaryIO, data: bytes):
    stream.write(_UINT32.pack(len(data)))
    stream.write(data)


def write_entry(stream: BinaryIO, entry: ClipboardEntry):
    stream.write(_UINT32.pack(len(entry.formats)))
    for mime, payload in entry.formats.items():
        _write_blob(stream, mime.encode("utf-8"))
        _write_blob(stream, bytes(payload))


def read_entry(stream: BinaryIO) -> ClipboardEntry:
    (count,) = _UINT32.unpack(_read_exact(stream, _UINT32.size))
    formats = {}
    for _ in range(count):
        try:
            mime = _read_blob(stream).decode("utf-8")
        except UnicodeDecodeError as e:
            raise HistoryFormatError(f"invalid format name: {e}") from e
        formats[mime] = _read_blob(stream)
    return ClipboardEntry(formats=formats)


def encode_entry(entry: ClipboardEntry) -> bytes:
    buffer = io.BytesIO()
    write_entry(buffer, entry)
    return buffer.getvalue()


def decode_entry(data: bytes) -> ClipboardEntry:
    stream = io.BytesIO(data)
    entry = read_entry(stream)
    if stream.read(1):
        raise HistoryFormatError("trailing bytes after entry")
    return entry


def save_history(store: HistoryStore, stream: BinaryIO) -> int:
    entries = store.entries()
    stream.write(_INT32.pack(len(entries)))
    for entry in entries:
        write_entry(stream, entry)
    return len(entries)


def load_history(store: HistoryStore, stream: BinaryIO) -> int:
    """
    Append stored entries to ``store`` and return how many were loaded.

    Only ``min(stored, capacity) - len(store)`` entries are read, so loading
    into a store that already holds entries tops it up to capacity instead of
    replacing its contents. Remaining entries are left unread. A truncated
    stream ends the load early; entries read so far are kept.
    """
    try:
        (stored,) = _INT32.unpack(_read_exact(stream, _INT32.size))
    except HistoryFormatError:
        return 0

    length = min(stored, store.capacity) - len(store)

    loaded = 0
    for _ in range(length):
        try:
            entry = read_entry(stream)
        except HistoryFormatError:
            break
        row = store.append()
        if row is None:
            break
        store.set_entry(row, entry)
        loaded += 1

    return loaded
