import asyncio
import io
import logging
from typing import Callable, Iterable, List, Optional

import redis

from history.codec import HistoryFormatError, decode_entry, load_history, save_history
from history.navigation import next_visible_index
from history.store import (
    HistoryChange,
    HistoryStore,
    MoveDirection,
    alphabetical_key,
    position_key,
)
from models.clipboard_entry import ClipboardEntry
from network.channel import ACCEPTED_REPLY, REJECTED_REPLY
from services.persistence import HistoryBackend

logger = logging.getLogger(__name__)

PERSISTENCE_ERRORS = (OSError, redis.RedisError, HistoryFormatError)


class HistoryService:
    """
    Operations the rest of the application uses to work with the clipboard history.

    Owns the store and its persistence. Not thread safe: every call has to
    come from the thread running the attached event loop (see ServerService).
    """

    def __init__(
        self,
        store: Optional[HistoryStore] = None,
        backend: Optional[HistoryBackend] = None,
        save_delay: float = 1.0,
    ):
        self.store = store if store is not None else HistoryStore()
        self.backend = backend
        self.save_delay = save_delay
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._save_handle: Optional[asyncio.TimerHandle] = None
        self._loading = False
        self._current_changed_callbacks: List[Callable[[ClipboardEntry], None]] = []
        self.filter_text = ""
        self.store.add_listener(self._on_store_changed)

    def attach_loop(self, loop: Optional[asyncio.AbstractEventLoop]):
        self.loop = loop

    def on_current_changed(self, callback: Callable[[ClipboardEntry], None]):
        self._current_changed_callbacks.append(callback)

    def _emit_current_changed(self):
        entry = self.store.at(0)
        if entry is None:
            return
        for callback in list(self._current_changed_callbacks):
            try:
                callback(entry)
            except Exception as e:
                logger.error(f"Current clipboard callback error: {e}")

    def _on_store_changed(self, change: HistoryChange):
        if not self._loading:
            self.schedule_save()

    def add_entry(
        self,
        entry: ClipboardEntry,
        force: bool = False,
        position: int = 0,
        sync_clipboard: bool = True,
    ) -> bool:
        if not force:
            if entry.is_empty():
                return False
            first = self.store.at(0)
            if first is not None and first.data_hash == entry.data_hash:
                return False

        row = self.store.insert(position, entry)
        logger.debug(f"Added entry at {row} ({len(self.store)}/{self.store.capacity})")

        if sync_clipboard and row == 0:
            self._emit_current_changed()
        return True

    def add_text(self, text: str, force: bool = True) -> bool:
        return self.add_entry(ClipboardEntry.from_text(text), force=force)

    def add_texts(self, texts: Iterable[str]) -> int:
        """Add several texts so that the first one ends up on top."""
        added = 0
        for text in reversed(list(texts)):
            if self.add_text(text, force=True):
                added += 1
        return added

    def handle_message(self, payload: bytes) -> bytes:
        """Dispatch target for the history server: a serialized entry from the monitor."""
        try:
            entry = decode_entry(payload)
        except HistoryFormatError as e:
            logger.warning(f"Rejected malformed entry: {e}")
            return REJECTED_REPLY

        if self.add_entry(entry, force=False, position=0, sync_clipboard=False):
            return ACCEPTED_REPLY
        return REJECTED_REPLY

    def move_to_front(self, index: int) -> bool:
        if not 0 <= index < len(self.store):
            return False
        if index > 0 and not self.store.move(index, 0):
            return False
        self._emit_current_changed()
        return True

    def select(self, item_hash: int) -> bool:
        row = self.store.find_by_hash(item_hash)
        if row is None:
            return False
        return self.move_to_front(row)

    def find_by_hash(self, item_hash: int) -> Optional[int]:
        return self.store.find_by_hash(item_hash)

    def remove_at(self, index: int) -> bool:
        if not self.store.remove(index):
            return False
        if index == 0:
            self._emit_current_changed()
        return True

    def remove_many(self, indices: Iterable[int]) -> int:
        rows = sorted(set(indices), reverse=True)
        removed = 0
        for row in rows:
            if self.store.remove(row):
                removed += 1
        if removed and rows[-1] == 0:
            self._emit_current_changed()
        return removed

    def clear(self):
        self.store.clear()

    def set_capacity(self, maximum: int):
        self.store.set_capacity(maximum)

    def move_many(self, indices: Iterable[int], direction: MoveDirection) -> bool:
        moved_boundary = self.store.move_many(indices, direction)
        if moved_boundary:
            self._emit_current_changed()
        return moved_boundary

    def set_filter(self, text: str):
        self.filter_text = text.strip().lower()

    def is_hidden(self, index: int) -> bool:
        if not self.filter_text:
            return False
        entry = self.store.at(index)
        if entry is None:
            return True
        return self.filter_text not in entry.text().lower()

    def visible_rows(self) -> List[int]:
        return [row for row in range(len(self.store)) if not self.is_hidden(row)]

    def select_next(self, current: int, requested: int, cycle: bool = True) -> Optional[int]:
        """Row a selection moving from ``current`` towards ``requested`` lands on, skipping filtered rows."""
        return next_visible_index(current, requested, len(self.store), cycle, self.is_hidden)

    def sort_alphabetically(self, indices: Iterable[int]) -> bool:
        return self.store.sort(indices, alphabetical_key)

    def reverse(self, indices: Iterable[int]) -> bool:
        return self.store.sort(indices, position_key, reverse=True)

    def schedule_save(self):
        if self.backend is None:
            return
        if self.loop is None or self.loop.is_closed():
            self.save()
            return
        if self._save_handle is not None:
            return
        self._save_handle = self.loop.call_later(self.save_delay, self._delayed_save)

    def _delayed_save(self):
        self._save_handle = None
        self.save()

    def save(self) -> bool:
        if self._save_handle is not None:
            self._save_handle.cancel()
            self._save_handle = None

        if self.backend is None:
            return False

        buffer = io.BytesIO()
        count = save_history(self.store, buffer)
        try:
            self.backend.write(buffer.getvalue())
        except PERSISTENCE_ERRORS as e:
            logger.error(f"Failed to save history: {e}")
            return False

        logger.debug(f"Saved {count} entries")
        return True

    def load(self) -> int:
        if self.backend is None:
            return 0

        try:
            data = self.backend.read()
        except PERSISTENCE_ERRORS as e:
            logger.error(f"Failed to load history: {e}")
            return 0

        if not data:
            return 0

        self._loading = True
        try:
            loaded = load_history(self.store, io.BytesIO(data))
        finally:
            self._loading = False

        logger.info(f"Loaded {loaded} entries")
        return loaded

    def purge(self):
        if self.backend is None:
            return
        try:
            self.backend.purge()
        except PERSISTENCE_ERRORS as e:
            logger.error(f"Failed to purge history: {e}")
