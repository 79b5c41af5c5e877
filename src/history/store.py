import locale
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Tuple

from history.navigation import normalize_index
from models.clipboard_entry import ClipboardEntry

DEFAULT_CAPACITY = 100

ComparisonItem = Tuple[int, ClipboardEntry]


class ChangeKind(Enum):
    INSERTED = "inserted"
    REMOVED = "removed"
    MOVED = "moved"
    CHANGED = "changed"
    RESET = "reset"


class MoveDirection(Enum):
    UP = "up"
    DOWN = "down"
    TOP = "top"
    BOTTOM = "bottom"


@dataclass(frozen=True)
class HistoryChange:
    """Mutation notice sent to store listeners.

    ``first`` and ``last`` are the affected positions after the change; for
    MOVED they are the source and destination.
    """
    kind: ChangeKind
    first: int = -1
    last: int = -1

    def touches(self, index: int) -> bool:
        if self.kind is ChangeKind.RESET:
            return True
        low, high = sorted((self.first, self.last))
        return low <= index <= high


Listener = Callable[[HistoryChange], None]


def alphabetical_key(item: ComparisonItem) -> Any:
    return locale.strxfrm(item[1].text())


def position_key(item: ComparisonItem) -> int:
    return item[0]


class HistoryStore:
    """
    Ordered, bounded clipboard history. Index 0 is the current clipboard.

    Not thread safe: one thread owns the store and performs every mutation.
    Out-of-range requests are no-ops that return False.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self._entries: List[ClipboardEntry] = []
        self._capacity = capacity if capacity > 0 else 0
        self._listeners: List[Listener] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))

    @property
    def capacity(self) -> int:
        return self._capacity

    def at(self, index: int) -> Optional[ClipboardEntry]:
        if 0 <= index < len(self._entries):
            return self._entries[index]
        return None

    def entries(self) -> List[ClipboardEntry]:
        return list(self._entries)

    def add_listener(self, callback: Listener):
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: Listener):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self, kind: ChangeKind, first: int = -1, last: int = -1):
        change = HistoryChange(kind, first, last)
        for callback in list(self._listeners):
            callback(change)

    def append(self) -> Optional[int]:
        """Add an empty slot at the tail and return its index (None when full)."""
        if len(self._entries) >= self._capacity:
            return None
        self._entries.append(ClipboardEntry())
        row = len(self._entries) - 1
        self._notify(ChangeKind.INSERTED, row, row)
        return row

    def insert(self, position: int, entry: ClipboardEntry) -> int:
        row = max(0, min(position, len(self._entries)))
        self._entries.insert(row, entry)
        self._notify(ChangeKind.INSERTED, row, row)
        self._crop()
        return row

    def set_entry(self, index: int, entry: ClipboardEntry) -> bool:
        if not 0 <= index < len(self._entries):
            return False
        self._entries[index] = entry
        self._notify(ChangeKind.CHANGED, index, index)
        return True

    def remove(self, position: int) -> bool:
        return self.remove_range(position, 1)

    def remove_range(self, position: int, count: int) -> bool:
        rows = len(self._entries)
        if position < 0 or position >= rows or count <= 0:
            return False

        last = min(position + count - 1, rows - 1)
        del self._entries[position:last + 1]
        self._notify(ChangeKind.REMOVED, position, last)
        return True

    def clear(self):
        if not self._entries:
            return
        self._entries.clear()
        self._notify(ChangeKind.RESET)

    def set_capacity(self, maximum: int):
        self._capacity = maximum if maximum > 0 else 0
        self._crop()

    def _crop(self):
        rows = len(self._entries)
        if rows <= self._capacity:
            return
        del self._entries[self._capacity:]
        self._notify(ChangeKind.REMOVED, self._capacity, rows - 1)

    def move(self, source: int, target: int, cycle: bool = True) -> bool:
        count = len(self._entries)
        source = normalize_index(source, count, cycle)
        target = normalize_index(target, count, cycle)

        if source == -1 or target == -1 or source == target:
            return False

        entry = self._entries.pop(source)
        self._entries.insert(target, entry)
        self._notify(ChangeKind.MOVED, source, target)
        return True

    def move_many(self, indices: Iterable[int], direction: MoveDirection) -> bool:
        """
        Move a block of rows one step (UP/DOWN) or to an end (TOP/BOTTOM).

        Rows are processed from the side they travel towards so the block
        keeps its relative order. Moving past an end wraps around; the offset
        tracks rows that already wrapped.

        Returns:
            True if any moved row touched a boundary, i.e. the first entry may
            have changed. False if nothing touched one or a move failed.
        """
        rows = sorted(indices, reverse=direction in (MoveDirection.DOWN, MoveDirection.BOTTOM))

        touched_boundary = False
        offset = 0
        for i, row in enumerate(rows):
            source = row + offset

            if direction is MoveDirection.DOWN:
                target = source + 1
            elif direction is MoveDirection.UP:
                target = source - 1
            elif direction is MoveDirection.BOTTOM:
                target = len(self._entries) - i - 1
            else:
                target = i

            if target < 0:
                offset -= 1
            elif target >= len(self._entries):
                offset += 1

            if not self.move(source, target):
                return False
            if not touched_boundary:
                touched_boundary = target == 0 or source == 0 or target == len(self._entries)

        return touched_boundary

    def sort(self, indices: Iterable[int], key: Callable[[ComparisonItem], Any], reverse: bool = False) -> bool:
        """Reorder only the given positions by ``key((index, entry))``."""
        items: List[ComparisonItem] = []
        rows: List[int] = []
        for row in indices:
            if not 0 <= row < len(self._entries):
                return False
            items.append((row, self._entries[row]))
            rows.append(row)

        rows.sort()
        items.sort(key=key, reverse=reverse)

        for (old_row, entry), new_row in zip(items, rows):
            if old_row != new_row:
                self._entries[new_row] = entry
                self._notify(ChangeKind.CHANGED, new_row, new_row)
        return True

    def find_by_hash(self, item_hash: int) -> Optional[int]:
        for i, entry in enumerate(self._entries):
            if entry.data_hash == item_hash:
                return i
        return None
