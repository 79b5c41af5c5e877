"""
Content identity hashing and filtered cloning of clipboard entries.

The identity hash is order independent: every format contributes
``hash_bytes(payload) + hash_string(mime)`` and contributions are XOR-ed
together. It has to be stable across processes (the monitor and the main
process compare hashes), so Python's randomized ``hash()`` is not used.
Collisions are possible and tolerated; lookups are best effort.
"""
import hashlib
from typing import Iterable, Mapping, Optional

from models.clipboard_entry import ClipboardEntry

__all__ = ["hash_bytes", "hash_string", "entry_hash", "clone_entry"]

HASH_MASK = 0xFFFFFFFF


def hash_bytes(data: bytes) -> int:
    return int.from_bytes(hashlib.blake2b(data, digest_size=4).digest(), "big")


def hash_string(text: str) -> int:
    return hash_bytes(text.encode("utf-8"))


def entry_hash(formats: Mapping[str, bytes], format_filter: Optional[Iterable[str]] = None) -> int:
    """
    Compute the identity hash over ``formats``.

    Args:
        formats: Mapping of MIME-like key to payload.
        format_filter: Formats to include. Defaults to every key in ``formats``.
            Formats missing from the mapping count as empty payloads.

    Returns:
        Unsigned 32-bit hash.
    """
    keys = formats.keys() if format_filter is None else format_filter
    value = 0
    for mime in keys:
        payload = formats.get(mime, b"")
        value ^= (hash_bytes(payload) + hash_string(mime)) & HASH_MASK
    return value


def clone_entry(entry: ClipboardEntry, format_filter: Optional[Iterable[str]] = None) -> ClipboardEntry:
    """
    Copy ``entry`` keeping only meaningful formats.

    With ``format_filter`` only the listed formats with non-empty payloads are
    copied. Without it every non-empty format whose name starts with a
    lowercase letter is copied; uppercase names are X11 selection markers
    such as TARGETS, TIMESTAMP or UTF8_STRING.
    """
    formats = {}
    if format_filter is not None:
        for mime in format_filter:
            payload = entry.formats.get(mime, b"")
            if payload:
                formats[mime] = bytes(payload)
    else:
        for mime, payload in entry.formats.items():
            if mime and mime[0].islower() and payload:
                formats[mime] = bytes(payload)
    return ClipboardEntry(formats=formats)
