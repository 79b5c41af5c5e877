"""
ClipNest History Package.

Bounded clipboard history, content hashing and binary persistence.
"""

from history.store import (
    ChangeKind,
    HistoryChange,
    HistoryStore,
    MoveDirection,
    alphabetical_key,
    position_key,
)
from history.hashing import clone_entry, entry_hash
from history.navigation import next_visible_index, normalize_index
from history.codec import (
    HistoryFormatError,
    decode_entry,
    encode_entry,
    load_history,
    save_history,
)

__all__ = [
    'ChangeKind',
    'HistoryChange',
    'HistoryStore',
    'MoveDirection',
    'alphabetical_key',
    'position_key',
    'clone_entry',
    'entry_hash',
    'next_visible_index',
    'normalize_index',
    'HistoryFormatError',
    'decode_entry',
    'encode_entry',
    'load_history',
    'save_history',
]
